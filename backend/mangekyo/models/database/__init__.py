"""Database models package."""

from mangekyo.models.database.base import Base, async_session_maker, init_db
from mangekyo.models.database.cache_entry import CacheEntryRecord
from mangekyo.models.database.context_snapshot import ContextSnapshot

__all__ = [
    # Base
    "Base",
    "async_session_maker",
    "init_db",
    # Models
    "CacheEntryRecord",
    "ContextSnapshot",
]
