"""
mapping_store.py -- Process-wide holder of the active EmotionMapping.

Single writer (bootstrap + refresher), many readers. Readers take the current
reference without locking; writers validate a full candidate first and then
swap the reference under a lock, so no reader ever sees a half-built mapping.
An invalid candidate is rejected whole and the previous mapping stays active.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any, Optional

from pydantic import ValidationError

from mood.adapters.json_store import KeyValueStore
from mood.defaults import DEFAULT_MAPPING
from mood.models import EmotionMapping

logger = logging.getLogger(__name__)

SNAPSHOT_KEY: str = "emotion_mapping"


class MappingStore:
    """Holds the built-in default or the latest validated refreshed mapping."""

    def __init__(
        self,
        persistence: Optional[KeyValueStore] = None,
        default: EmotionMapping = DEFAULT_MAPPING,
    ) -> None:
        self._default = default
        self._current = default
        self._persistence = persistence
        self._write_lock = threading.Lock()
        self._persist_lock = threading.Lock()

    def get(self) -> EmotionMapping:
        """Return the active mapping. Never blocks, never empty."""
        return self._current

    @property
    def is_default(self) -> bool:
        return self._current is self._default

    def try_set(self, candidate: EmotionMapping | dict[str, Any], persist: bool = True) -> bool:
        """
        Validate a candidate and atomically install it.

        Accepts an EmotionMapping or a raw dict with camelCase table names.
        Returns True only if the swap happened. With persist=True the snapshot
        is written after the lock is released; callers on an event loop pass
        persist=False and run save_snapshot() in a worker thread instead.
        """
        try:
            mapping = EmotionMapping.model_validate(
                candidate.to_json_dict() if isinstance(candidate, EmotionMapping) else candidate
            )
        except ValidationError as exc:
            logger.warning("Rejected mapping candidate (%d errors): %s", exc.error_count(), exc.errors()[0]["msg"])
            return False

        with self._write_lock:
            self._current = mapping
            logger.info(
                "Installed emotion mapping: %d emotions, %d keywords",
                len(mapping.emotion_map),
                len(mapping.keyword_map),
            )
        if persist:
            self.save_snapshot()
        return True

    def reset(self) -> None:
        """Reinstall the built-in default (not persisted)."""
        with self._write_lock:
            self._current = self._default
        logger.info("Emotion mapping reset to built-in default")

    def load_persisted(self) -> Optional[EmotionMapping]:
        """Read the last persisted snapshot, or None if absent or corrupt."""
        if self._persistence is None:
            return None
        try:
            raw = self._persistence.get(SNAPSHOT_KEY)
        except (OSError, ValueError) as exc:
            logger.warning("Could not read persisted mapping: %s", exc)
            return None
        if raw is None:
            return None
        try:
            return EmotionMapping.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Persisted mapping is corrupt, ignoring it: %s", exc)
            return None

    def save_snapshot(self) -> None:
        """Persist the active mapping. Best effort: a failed write is only logged."""
        if self._persistence is None:
            return
        with self._persist_lock:
            mapping = self._current
            try:
                self._persistence.set(SNAPSHOT_KEY, json.dumps(mapping.to_json_dict(), ensure_ascii=False))
            except (OSError, ValueError, TypeError) as exc:
                logger.warning("Failed to persist emotion mapping: %s", exc)
