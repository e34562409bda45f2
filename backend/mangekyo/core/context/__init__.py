"""Narrative context tracking.

- ContextTracker: session memory, relevance scoring, terminology checks
- ContextStore: per-manga persistence (SQLAlchemy or in-memory)
"""

from .models import (
    BubbleRecord,
    CharacterProfile,
    ContextConfig,
    ContextSession,
    PageContext,
    PageInfo,
    RelevantContext,
    Scene,
    SessionState,
    TermAction,
    TermCheck,
    TermEntry,
)
from .store import ContextStore, InMemoryContextStore, SQLAlchemyContextStore, StoredContext
from .tracker import ContextTracker

__all__ = [
    # Tracker
    "ContextTracker",
    # Models
    "BubbleRecord",
    "CharacterProfile",
    "ContextConfig",
    "ContextSession",
    "PageContext",
    "PageInfo",
    "RelevantContext",
    "Scene",
    "SessionState",
    "TermAction",
    "TermCheck",
    "TermEntry",
    # Stores
    "ContextStore",
    "InMemoryContextStore",
    "SQLAlchemyContextStore",
    "StoredContext",
]
