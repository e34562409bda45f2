"""Narrative context tracking across a reading session.

The tracker keeps one ContextSession: character profiles, the terminology
glossary, translation memory and scene state. The orchestrator asks it
for relevant context before each engine call and reports each finished
translation back. Only the orchestrator mutates the session.
"""

import hashlib
import logging
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from mangekyo.core.translation.errors import ContextCorruptError
from mangekyo.utils.text import bigram_similarity, normalize_text, word_count

from .analysis import (
    categorize_term,
    continuity_markers,
    conversation_flow,
    detect_formality,
    detect_tone,
    extract_expressions,
    extract_key_phrases,
    extract_terms,
    is_scene_transition,
    normalize_term,
    smooth_tone,
)
from .models import (
    FORMALITY_LEVELS,
    MAX_COMMON_PHRASES,
    MAX_EXPRESSIONS,
    MAX_RECENT_BUBBLES,
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
from .store import ContextStore, StoredContext, restore_snapshot, snapshot_session

logger = logging.getLogger(__name__)

EXPORT_VERSION = "1.0"
FORMALITY_STEP = 0.3
PRUNE_RATIO = 0.2


class ContextTracker:
    """Session-scoped narrative memory."""

    def __init__(
        self,
        config: Optional[ContextConfig] = None,
        store: Optional[ContextStore] = None,
    ):
        self.config = config or ContextConfig()
        self.store = store
        self.session = ContextSession()

    @property
    def state(self) -> SessionState:
        return self.session.state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize_session(
        self,
        manga_id: str,
        chapter_id: Optional[str] = None,
        page: int = 0,
    ) -> ContextSession:
        """Start a session, restoring persisted context for the same manga.

        Stored context older than expiry_days is ignored. Unreadable stored
        context is logged and the session starts fresh.
        """
        session = ContextSession(manga_id=manga_id, chapter_id=chapter_id, current_page=page)

        stored = await self.store.load(manga_id) if self.store else None
        if stored is not None:
            age = datetime.utcnow() - stored.saved_at
            if age < timedelta(days=self.config.expiry_days):
                try:
                    restore_snapshot(session, stored.data)
                    logger.info(
                        f"[Context] Restored context for {manga_id}: "
                        f"{len(session.character_profiles)} characters, "
                        f"{len(session.terminology)} terms"
                    )
                except ContextCorruptError as e:
                    logger.warning(f"[Context] {e}; starting fresh")
                    session = ContextSession(
                        manga_id=manga_id, chapter_id=chapter_id, current_page=page
                    )
            else:
                logger.info(f"[Context] Stored context for {manga_id} expired ({age.days} days old)")

        session.state = SessionState.ACTIVE
        self.session = session
        logger.info(f"[Context] Session {session.id} started: manga={manga_id}, chapter={chapter_id}")
        return session

    async def end_session(self, persist: bool = True) -> None:
        if persist:
            await self.save()
        ended_id = self.session.id
        self.session = ContextSession(state=SessionState.ENDED)
        logger.info(f"[Context] Session {ended_id} ended")

    def reset_session(self) -> ContextSession:
        """Discard in-memory context and start a fresh session for the same manga."""
        old = self.session
        self.session = ContextSession(
            manga_id=old.manga_id,
            chapter_id=old.chapter_id,
            current_page=old.current_page,
            state=SessionState.ACTIVE,
        )
        logger.warning(f"[Context] Session {old.id} reset, new session {self.session.id}")
        return self.session

    async def save(self) -> bool:
        """Persist the durable part of the session."""
        session = self.session
        if self.store is None or not session.manga_id:
            return False
        saved = await self.store.save(
            StoredContext(
                manga_id=session.manga_id,
                session_id=session.id,
                chapter_id=session.chapter_id,
                data=snapshot_session(session),
            )
        )
        if saved:
            session.state = SessionState.PERSISTED
            logger.debug(f"[Context] Session {session.id} saved")
        return saved

    def _touch(self) -> None:
        self.session.last_activity = datetime.utcnow()
        if self.session.state in (SessionState.PERSISTED, SessionState.UNINITIALIZED):
            self.session.state = SessionState.ACTIVE

    # ------------------------------------------------------------------
    # Pages and scenes
    # ------------------------------------------------------------------

    def process_page(self, page_number: int, page_info: Optional[PageInfo] = None) -> PageContext:
        """Move to a page and detect scene transitions from its cues."""
        self._touch()
        session = self.session
        arc = session.narrative_arc
        session.current_page = page_number
        info = page_info or PageInfo()

        changed = False
        if page_info is not None and is_scene_transition(
            arc.current_scene,
            info.setting,
            info.time_of_day,
            info.mood,
            self.config.mood_shift_threshold,
        ):
            self._start_scene(page_number, info)
            changed = True

        profiles = {
            character: session.character_profiles[character]
            for character in info.characters
            if character in session.character_profiles
        }
        return PageContext(
            page_number=page_number,
            scene=arc.current_scene,
            emotional_tone=arc.emotional_tone,
            scene_changed=changed,
            character_profiles=profiles,
            continuity=continuity_markers(info.texts),
        )

    def _start_scene(self, page_number: int, info: PageInfo) -> None:
        arc = self.session.narrative_arc
        if arc.current_scene is not None:
            arc.current_scene.end_page = page_number
            arc.previous_scenes.append(arc.current_scene)
            if len(arc.previous_scenes) > self.config.max_previous_scenes:
                arc.previous_scenes = arc.previous_scenes[-self.config.max_previous_scenes:]

        arc.current_scene = Scene(
            start_page=page_number,
            setting=info.setting,
            time_of_day=info.time_of_day,
            mood=info.mood,
            characters=list(info.characters),
        )
        if info.setting:
            arc.setting = info.setting
        self.session.recent_bubbles = deque(maxlen=MAX_RECENT_BUBBLES)
        logger.info(f"[Context] Scene transition on page {page_number}: {arc.current_scene.id}")

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    def get_relevant_context(self, text: str, character: Optional[str] = None) -> RelevantContext:
        """Select the context that should inform translating text.

        Recent bubbles are scored by recency, same speaker, same scene and
        overall similarity; the top window_size are returned oldest first.

        Raises:
            ContextCorruptError: If the session state cannot be read
        """
        session = self.session
        config = self.config
        try:
            scene = session.narrative_arc.current_scene
            scene_id = scene.id if scene else None
            bubbles = list(session.recent_bubbles)
            normalized = normalize_text(text)

            scored = []
            for index, bubble in enumerate(bubbles):
                recency = (index + 1) / len(bubbles)
                score = recency * config.recency_weight
                if character and bubble.character == character:
                    score += config.character_weight
                if scene_id and bubble.scene_id == scene_id:
                    score += config.scene_weight
                score += bigram_similarity(normalized, normalize_text(bubble.text)) * config.global_weight
                scored.append((score, index, bubble))

            top = sorted(scored, key=lambda s: s[0], reverse=True)[: config.window_size]
            immediate = [bubble for _, _, bubble in sorted(top, key=lambda s: s[1])]

            terminology = {
                term: entry.translation
                for term, entry in session.terminology.items()
                if term and term in normalized
            }
            profile = session.character_profiles.get(character) if character else None
        except (AttributeError, KeyError, TypeError, ZeroDivisionError) as e:
            raise ContextCorruptError(
                f"Session context is unreadable: {e}", details={"session_id": session.id}
            )

        return RelevantContext(
            immediate_context=immediate,
            character_profile=profile,
            terminology=terminology,
            scene=scene,
            tone=session.narrative_arc.emotional_tone,
        )

    def get_character_profile(self, character: str) -> Dict[str, Any]:
        profile = self.session.character_profiles.get(character)
        if profile is None:
            return {"known": False, "formality_level": "neutral", "common_phrases": []}
        return {
            "known": True,
            "formality_level": profile.formality_label,
            "common_phrases": profile.common_phrases[-5:],
            "expressions": profile.expressions[-3:],
            "avg_sentence_length": profile.avg_sentence_length,
            "speech_patterns": profile.speech_patterns,
            "appearance_count": len(profile.appearances),
        }

    def conversation_flow(self) -> str:
        return conversation_flow(list(self.session.recent_bubbles))

    def context_fingerprint(
        self,
        manga_id: Optional[str],
        character: Optional[str],
        modes: str,
    ) -> str:
        """Short hash of the narrative state that can change a translation.

        Args:
            manga_id: Work the bubble belongs to
            character: Speaking character
            modes: Marker modes in effect (honorific and SFX)
        """
        scene = self.session.narrative_arc.current_scene
        setting = scene.setting if scene and scene.setting else ""
        material = "|".join([manga_id or "", character or "", setting, modes])
        return hashlib.sha256(material.encode("utf-8")).hexdigest()[:16]

    # ------------------------------------------------------------------
    # Terminology
    # ------------------------------------------------------------------

    def check_terminology_consistency(self, term: str, proposed: str) -> TermCheck:
        """Compare a proposed rendering of term against the glossary.

        Established terms (used at least override_frequency_bound times)
        always keep their mapping. A conflicting proposal overrides a
        rarely used term only if it was seen within the last hour.
        """
        key = normalize_term(term)
        entry = self.session.terminology.get(key)
        if entry is None:
            return TermCheck(action=TermAction.ADD, proposed=proposed)

        similarity = bigram_similarity(normalize_text(proposed), normalize_text(entry.translation))
        if similarity >= self.config.similarity_threshold:
            return TermCheck(
                action=TermAction.ACCEPT,
                existing=entry.translation,
                proposed=proposed,
                similarity=similarity,
                frequency=entry.frequency,
            )

        recent = datetime.utcnow() - entry.last_seen < timedelta(
            seconds=self.config.override_recency_seconds
        )
        override = entry.frequency < self.config.override_frequency_bound and recent
        if override:
            suggestion = f'Consider updating glossary: "{entry.translation}" → "{proposed}"'
        else:
            suggestion = f'Use existing: "{entry.translation}" for consistency'
        return TermCheck(
            action=TermAction.OVERRIDE if override else TermAction.KEEP_EXISTING,
            existing=entry.translation,
            proposed=proposed,
            similarity=similarity,
            frequency=entry.frequency,
            suggestion=suggestion,
        )

    def record_term(
        self, term: str, translation: str, category: Optional[str] = None
    ) -> TermCheck:
        """Record one use of a term rendering, applying the consistency rules."""
        self._touch()
        key = normalize_term(term)
        check = self.check_terminology_consistency(term, translation)
        now = datetime.utcnow()

        if check.action == TermAction.ADD:
            self.session.terminology[key] = TermEntry(
                translation=translation, context=category or categorize_term(term)
            )
            if len(self.session.terminology) > self.config.max_terminology_entries:
                self.prune_terminology()
        elif check.action == TermAction.ACCEPT:
            entry = self.session.terminology[key]
            entry.frequency += 1
            entry.last_seen = now
        elif check.action == TermAction.OVERRIDE:
            entry = self.session.terminology[key]
            logger.info(f"[Context] Glossary override: {key}: {entry.translation} → {translation}")
            entry.translation = translation
            entry.frequency = 1
            entry.last_seen = now
        else:
            logger.debug(f"[Context] Keeping '{check.existing}' for {key}, ignoring '{translation}'")
        return check

    def prune_terminology(self) -> int:
        """Drop the least used fifth of the glossary."""
        entries = sorted(self.session.terminology.items(), key=lambda kv: kv[1].frequency)
        victims = entries[: int(len(entries) * PRUNE_RATIO)]
        for term, _ in victims:
            del self.session.terminology[term]
        if victims:
            logger.info(f"[Context] Pruned {len(victims)} glossary entries")
        return len(victims)

    def glossary(self) -> Dict[str, str]:
        return {term: entry.translation for term, entry in self.session.terminology.items()}

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    async def store_translation(
        self,
        text: str,
        translation: str,
        confidence: float,
        character: Optional[str] = None,
        bubble_type: str = "speech",
        page_number: Optional[int] = None,
    ) -> None:
        """Record a finished translation and update session state.

        Saves the session every save_interval bubbles.
        """
        self._touch()
        session = self.session
        scene = session.narrative_arc.current_scene
        session.recent_bubbles.append(
            BubbleRecord(
                text=text,
                translation=translation,
                character=character,
                bubble_type=bubble_type,
                page_number=page_number if page_number is not None else session.current_page,
                scene_id=scene.id if scene else None,
            )
        )

        if confidence > self.config.memory_confidence:
            for phrase in extract_key_phrases(text):
                session.translation_memory.setdefault(normalize_term(phrase), translation)

        if character:
            self._update_profile(character, text, translation, bubble_type)

        normalized = normalize_term(text)
        for term in extract_terms(text):
            if term in session.terminology:
                entry = session.terminology[term]
                entry.frequency += 1
                entry.last_seen = datetime.utcnow()
            elif term == normalized and confidence > self.config.memory_confidence:
                self.record_term(term, translation.strip(" 。.!！?？"), categorize_term(term))

        session.narrative_arc.emotional_tone = smooth_tone(
            session.narrative_arc.emotional_tone, detect_tone(f"{text} {translation}")
        )

        session.bubbles_processed += 1
        if session.bubbles_processed % self.config.save_interval == 0:
            await self.save()

    def _update_profile(
        self, character: str, text: str, translation: str, bubble_type: str
    ) -> None:
        session = self.session
        profile = session.character_profiles.get(character)
        if profile is None:
            profile = CharacterProfile(id=character)
            session.character_profiles[character] = profile

        profile.appearances.add(session.current_page)
        profile.last_appearance = datetime.utcnow()

        profile.common_phrases.append(
            {"original": text[:50], "translated": translation[:50], "type": bubble_type}
        )
        if len(profile.common_phrases) > MAX_COMMON_PHRASES:
            profile.common_phrases = profile.common_phrases[-MAX_COMMON_PHRASES:]

        detected = detect_formality(text)
        if detected:
            target = FORMALITY_LEVELS[detected]
            profile.formality_level += (target - profile.formality_level) * FORMALITY_STEP

        profile.expressions.extend(extract_expressions(text))
        if len(profile.expressions) > MAX_EXPRESSIONS:
            profile.expressions = profile.expressions[-MAX_EXPRESSIONS:]

        if bubble_type == "thought" and "internal-monologue" not in profile.speech_patterns:
            profile.speech_patterns.append("internal-monologue")
        elif bubble_type == "narration" and "narrative" not in profile.speech_patterns:
            profile.speech_patterns.append("narrative")

        profile.avg_sentence_length = (
            profile.avg_sentence_length * 0.8 + word_count(translation) * 0.2
        )

    # ------------------------------------------------------------------
    # Summary, export and import
    # ------------------------------------------------------------------

    def generate_summary(self) -> Dict[str, Any]:
        session = self.session
        scene = session.narrative_arc.current_scene
        return {
            "session_id": session.id,
            "manga_id": session.manga_id,
            "chapter_id": session.chapter_id,
            "page": session.current_page,
            "state": session.state.value,
            "scene": scene.setting if scene and scene.setting else "unknown",
            "tone": session.narrative_arc.emotional_tone,
            "conversation_flow": self.conversation_flow(),
            "active_characters": list(session.character_profiles),
            "key_terminology": [
                f"{term}: {entry.translation}"
                for term, entry in list(session.terminology.items())[-10:]
            ],
            "recent_dialogue": [
                b.text if len(b.text) <= 50 else f"{b.text[:50]}..."
                for b in list(session.recent_bubbles)[-3:]
            ],
            "bubbles_processed": session.bubbles_processed,
        }

    def export_context(self) -> Dict[str, Any]:
        data = snapshot_session(self.session)
        data["version"] = EXPORT_VERSION
        data["manga_id"] = self.session.manga_id
        data["exported_at"] = datetime.utcnow().isoformat()
        return data

    def import_context(self, data: Dict[str, Any]) -> bool:
        """Merge exported context into the current session.

        Character profiles and translation memory from the import win;
        existing glossary entries are kept.
        """
        incoming = ContextSession(manga_id=self.session.manga_id)
        try:
            restore_snapshot(incoming, data)
        except ContextCorruptError as e:
            logger.error(f"[Context] Import failed: {e}")
            return False

        session = self.session
        session.character_profiles.update(incoming.character_profiles)
        for term, entry in incoming.terminology.items():
            session.terminology.setdefault(term, entry)
        session.translation_memory.update(incoming.translation_memory)
        self._touch()
        logger.info(
            f"[Context] Imported {len(incoming.character_profiles)} characters, "
            f"{len(incoming.terminology)} terms"
        )
        return True

    def recent_bubbles(self) -> List[BubbleRecord]:
        return list(self.session.recent_bubbles)
