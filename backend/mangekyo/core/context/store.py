"""Persistence for session context, namespaced per manga."""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter, ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from mangekyo.core.translation.errors import ContextCorruptError
from mangekyo.models.database.context_snapshot import ContextSnapshot

from .models import CharacterProfile, ContextSession, Scene, TermEntry

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1

_profiles = TypeAdapter(Dict[str, CharacterProfile])
_terms = TypeAdapter(Dict[str, TermEntry])
_memory = TypeAdapter(Dict[str, str])
_scenes = TypeAdapter(List[Scene])


@dataclass
class StoredContext:
    manga_id: str
    session_id: str
    chapter_id: Optional[str]
    data: Dict[str, Any]
    saved_at: datetime = field(default_factory=datetime.utcnow)


def snapshot_session(session: ContextSession) -> Dict[str, Any]:
    """Serialize the durable part of a session to JSON-compatible data."""
    arc = session.narrative_arc
    return {
        "version": SNAPSHOT_VERSION,
        "character_profiles": _profiles.dump_python(session.character_profiles, mode="json"),
        "terminology": _terms.dump_python(session.terminology, mode="json"),
        "translation_memory": dict(session.translation_memory),
        "narrative_arc": {
            "emotional_tone": arc.emotional_tone,
            "setting": arc.setting,
            "previous_scenes": _scenes.dump_python(arc.previous_scenes, mode="json"),
        },
    }


def restore_snapshot(session: ContextSession, data: Dict[str, Any]) -> None:
    """Load snapshot data into a session.

    Raises:
        ContextCorruptError: If the data does not match the snapshot layout
    """
    try:
        profiles = _profiles.validate_python(data.get("character_profiles", {}))
        terms = _terms.validate_python(data.get("terminology", {}))
        memory = _memory.validate_python(data.get("translation_memory", {}))
        arc = data.get("narrative_arc", {}) or {}
        scenes = _scenes.validate_python(arc.get("previous_scenes", []))
    except (ValidationError, AttributeError, TypeError) as e:
        raise ContextCorruptError(
            f"Stored context is unreadable: {e}", details={"manga_id": session.manga_id}
        )

    session.character_profiles = profiles
    session.terminology = terms
    session.translation_memory = memory
    session.narrative_arc.emotional_tone = arc.get("emotional_tone") or "neutral"
    session.narrative_arc.setting = arc.get("setting")
    session.narrative_arc.previous_scenes = scenes


class ContextStore(ABC):
    """Durable storage for per-manga context snapshots."""

    @abstractmethod
    async def load(self, manga_id: str) -> Optional[StoredContext]:
        pass

    @abstractmethod
    async def save(self, stored: StoredContext) -> bool:
        pass

    @abstractmethod
    async def delete(self, manga_id: str) -> bool:
        pass


class InMemoryContextStore(ContextStore):
    def __init__(self):
        self._snapshots: Dict[str, StoredContext] = {}

    async def load(self, manga_id: str) -> Optional[StoredContext]:
        return self._snapshots.get(manga_id)

    async def save(self, stored: StoredContext) -> bool:
        self._snapshots[stored.manga_id] = stored
        return True

    async def delete(self, manga_id: str) -> bool:
        return self._snapshots.pop(manga_id, None) is not None


class SQLAlchemyContextStore(ContextStore):
    """Context snapshots in the context_snapshots table.

    Database failures are logged and reported as a missing snapshot or a
    failed save; the tracker keeps working in memory.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def load(self, manga_id: str) -> Optional[StoredContext]:
        try:
            async with self._session_maker() as db:
                record = await db.get(ContextSnapshot, manga_id)
                if record is None:
                    return None
                return StoredContext(
                    manga_id=record.manga_id,
                    session_id=record.session_id,
                    chapter_id=record.chapter_id,
                    data=record.data,
                    saved_at=record.saved_at,
                )
        except SQLAlchemyError as e:
            logger.error(f"[Context] Failed to load context for {manga_id}: {e}")
            return None

    async def save(self, stored: StoredContext) -> bool:
        try:
            async with self._session_maker() as db:
                await db.merge(
                    ContextSnapshot(
                        manga_id=stored.manga_id,
                        session_id=stored.session_id,
                        chapter_id=stored.chapter_id,
                        data=stored.data,
                        version=stored.data.get("version", SNAPSHOT_VERSION),
                        saved_at=stored.saved_at,
                    )
                )
                await db.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"[Context] Failed to save context for {stored.manga_id}: {e}")
            return False

    async def delete(self, manga_id: str) -> bool:
        try:
            async with self._session_maker() as db:
                record = await db.get(ContextSnapshot, manga_id)
                if record is None:
                    return False
                await db.delete(record)
                await db.commit()
                return True
        except SQLAlchemyError as e:
            logger.error(f"[Context] Failed to delete context for {manga_id}: {e}")
            return False
