"""
stylepath/features/progression/store.py

Persistence contract for per-user progression state, plus the in-memory
implementation used by default and in tests. The SQL implementation lives in
store_sql.py and keeps the identical interface.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from stylepath.models.achievement import UserAchievementProgress
from stylepath.models.stats import StatField, UserStatCounters
from stylepath.models.streak import StreakRecord
from stylepath.models.style import InteractionLogEntry, StylePreferenceVector, TagCorrectionEntry

logger = logging.getLogger("stylepath")


class ProgressionStore(Protocol):
    """
    Per-user get/upsert for every progression record.

    Every write is attributable to one user key and is atomic per row.
    Reads return copies; mutating a returned object never changes the store.

    record_progress() overwrites current_progress and, when `unlock` is set,
    claims unlocked_at only if it is still empty. It returns True for the one
    call that claimed it, so two racing callers never both see the unlock.

    update_style_vector() runs `change` on the latest stored vector and saves
    the result only if nothing else wrote the row in between, re-running
    `change` on the fresh row otherwise. `change` returns False to skip the
    write and must not call back into the store.
    """

    def get_streak(self, user_id: str) -> Optional[StreakRecord]: ...

    def save_streak(self, record: StreakRecord) -> None: ...

    def get_stats(self, user_id: str) -> Optional[UserStatCounters]: ...

    def increment_stat(self, user_id: str, stat: StatField) -> UserStatCounters: ...

    def add_style_points(self, user_id: str, points: int) -> UserStatCounters: ...

    def get_progress(self, user_id: str, achievement_id: str) -> Optional[UserAchievementProgress]: ...

    def list_progress(self, user_id: str) -> Dict[str, UserAchievementProgress]: ...

    def record_progress(
        self, user_id: str, achievement_id: str, progress_value: int, *, unlock: bool, now: datetime
    ) -> bool: ...

    def mark_progress_seen(self, user_id: str, achievement_id: str, now: datetime) -> bool: ...

    def get_style_vector(self, user_id: str) -> Optional[StylePreferenceVector]: ...

    def update_style_vector(
        self, user_id: str, change: Callable[[StylePreferenceVector], bool]
    ) -> StylePreferenceVector: ...

    def append_interaction(self, entry: InteractionLogEntry) -> None: ...

    def list_interactions(self, user_id: str) -> List[InteractionLogEntry]: ...

    def append_tag_correction(self, entry: TagCorrectionEntry) -> None: ...

    def list_tag_corrections(self, user_id: str) -> List[TagCorrectionEntry]: ...


class InMemoryProgressionStore:
    """
    Dict-backed store. A single lock serialises writes, which gives the same
    per-row atomicity a database transaction would.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._streaks: Dict[str, StreakRecord] = {}
        self._stats: Dict[str, UserStatCounters] = {}
        self._progress: Dict[Tuple[str, str], UserAchievementProgress] = {}
        self._vectors: Dict[str, StylePreferenceVector] = {}
        self._interactions: List[InteractionLogEntry] = []
        self._tag_corrections: List[TagCorrectionEntry] = []

    # Streaks ----------------------------------------------------------
    def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        record = self._streaks.get(user_id)
        return record.copy() if record else None

    def save_streak(self, record: StreakRecord) -> None:
        with self._lock:
            self._streaks[record.user_id] = record.copy()

    # Stats ------------------------------------------------------------
    def get_stats(self, user_id: str) -> Optional[UserStatCounters]:
        stats = self._stats.get(user_id)
        return stats.copy() if stats else None

    def increment_stat(self, user_id: str, stat: StatField) -> UserStatCounters:
        with self._lock:
            stats = self._stats.setdefault(user_id, UserStatCounters(user_id=user_id))
            setattr(stats, stat.value, stats.get(stat) + 1)
            return stats.copy()

    def add_style_points(self, user_id: str, points: int) -> UserStatCounters:
        with self._lock:
            stats = self._stats.setdefault(user_id, UserStatCounters(user_id=user_id))
            stats.total_style_points += points
            return stats.copy()

    # Achievement progress ---------------------------------------------
    def get_progress(self, user_id: str, achievement_id: str) -> Optional[UserAchievementProgress]:
        progress = self._progress.get((user_id, achievement_id))
        return progress.copy() if progress else None

    def list_progress(self, user_id: str) -> Dict[str, UserAchievementProgress]:
        return {
            achievement_id: progress.copy()
            for (owner, achievement_id), progress in self._progress.items()
            if owner == user_id
        }

    def record_progress(
        self, user_id: str, achievement_id: str, progress_value: int, *, unlock: bool, now: datetime
    ) -> bool:
        with self._lock:
            progress = self._progress.setdefault(
                (user_id, achievement_id), UserAchievementProgress(user_id=user_id, achievement_id=achievement_id)
            )
            progress.current_progress = progress_value
            progress.updated_at = now
            if unlock and progress.unlocked_at is None:
                progress.unlocked_at = now
                return True
            return False

    def mark_progress_seen(self, user_id: str, achievement_id: str, now: datetime) -> bool:
        with self._lock:
            progress = self._progress.get((user_id, achievement_id))
            if progress is None or progress.unlocked_at is None or progress.seen_at is not None:
                return False
            progress.seen_at = now
            return True

    # Style vectors ----------------------------------------------------
    def get_style_vector(self, user_id: str) -> Optional[StylePreferenceVector]:
        vector = self._vectors.get(user_id)
        return vector.copy() if vector else None

    def update_style_vector(
        self, user_id: str, change: Callable[[StylePreferenceVector], bool]
    ) -> StylePreferenceVector:
        with self._lock:
            current = self._vectors.get(user_id)
            state = current.copy() if current else StylePreferenceVector(user_id=user_id)
            if change(state):
                self._vectors[user_id] = state.copy()
            return state

    # Append-only logs -------------------------------------------------
    def append_interaction(self, entry: InteractionLogEntry) -> None:
        with self._lock:
            self._interactions.append(entry)

    def list_interactions(self, user_id: str) -> List[InteractionLogEntry]:
        return [e for e in self._interactions if e.user_id == user_id]

    def append_tag_correction(self, entry: TagCorrectionEntry) -> None:
        with self._lock:
            self._tag_corrections.append(entry)

    def list_tag_corrections(self, user_id: str) -> List[TagCorrectionEntry]:
        return [e for e in self._tag_corrections if e.user_id == user_id]


def get_progression_store():
    """
    Pick the store implementation.

    - SQL store when a database URL is configured and reachable
    - In-memory otherwise
    Uses the same URL lookup as the engine, so TEST_DATABASE_URL wins.
    Callers are agnostic to the implementation.
    """
    from stylepath.core.database import get_database_url

    if get_database_url():
        try:
            from stylepath.core.database import check_connection, create_all_tables
            from stylepath.features.progression.store_sql import SqlProgressionStore

            if check_connection():
                create_all_tables()
                return SqlProgressionStore()
            logger.warning("[store] database unavailable, falling back to in-memory")
        except Exception as e:
            logger.warning(f"[store] failed to initialize SQL store: {e}; falling back to in-memory")

    return InMemoryProgressionStore()
