"""
stylepath/features/progression/store_sql.py

SQLAlchemy-backed progression store. PostgreSQL in production; any
SQLAlchemy URL works (tests use SQLite).

Maintains the identical interface to InMemoryProgressionStore. Every write is
one transaction keyed on the user (or user + achievement) unique key; an
insert that loses a race on that key is retried as an update. Unlocks are
claimed with a conditional UPDATE and style vectors are compare-and-swapped
on their version column.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from sqlalchemy import insert, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from stylepath.core.database import (
    get_db_session,
    get_session_factory,
    tag_corrections,
    user_achievements,
    user_interactions,
    user_stats,
    user_streaks,
    user_style_vectors,
)
from stylepath.core.errors import StoreError
from stylepath.models.achievement import UserAchievementProgress
from stylepath.models.stats import StatField, UserStatCounters
from stylepath.models.streak import StreakRecord
from stylepath.models.style import InteractionLogEntry, InteractionType, StylePreferenceVector, TagCorrectionEntry

STYLE_VECTOR_WRITE_ATTEMPTS = 5


def _aware(moment: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back; everything is stored as UTC.
    if moment is None or moment.tzinfo is not None:
        return moment
    return moment.replace(tzinfo=timezone.utc)


class SqlProgressionStore:
    def __init__(self, session_factory=None):
        self._session_factory = session_factory or get_session_factory()

    def _session(self):
        return get_db_session(self._session_factory)

    def _transact(self, work, operation: str, user_id: Optional[str] = None):
        """Run `work(session)` in one transaction, once more if it loses an insert race."""
        try:
            try:
                with self._session() as session:
                    return work(session)
            except IntegrityError:
                # Concurrent insert won the race on the unique key
                with self._session() as session:
                    return work(session)
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to {operation}", user_id=user_id, operation=operation) from exc

    def _upsert(self, table, key: dict, values: dict, operation: str) -> None:
        where = [table.c[name] == value for name, value in key.items()]

        def work(session):
            if session.execute(update(table).where(*where).values(**values)).rowcount == 0:
                session.execute(insert(table).values(**key, **values))

        self._transact(work, operation, key.get("user_id"))

    def _fetch_one(self, query, operation: str):
        try:
            with self._session() as session:
                return session.execute(query).first()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to {operation}", operation=operation) from exc

    def _fetch_all(self, query, operation: str):
        try:
            with self._session() as session:
                return session.execute(query).all()
        except SQLAlchemyError as exc:
            raise StoreError(f"Failed to {operation}", operation=operation) from exc

    # Streaks ----------------------------------------------------------
    def get_streak(self, user_id: str) -> Optional[StreakRecord]:
        row = self._fetch_one(
            select(user_streaks).where(user_streaks.c.user_id == user_id), "read streak"
        )
        if not row:
            return None
        return StreakRecord(
            user_id=row.user_id,
            current_streak=row.current_streak,
            longest_streak=row.longest_streak,
            last_active_date=row.last_active_date,
            total_days_active=row.total_days_active,
        )

    def save_streak(self, record: StreakRecord) -> None:
        self._upsert(
            user_streaks,
            {"user_id": record.user_id},
            {
                "current_streak": record.current_streak,
                "longest_streak": record.longest_streak,
                "last_active_date": record.last_active_date,
                "total_days_active": record.total_days_active,
                "updated_at": datetime.now(timezone.utc),
            },
            "save streak",
        )

    # Stats ------------------------------------------------------------
    @staticmethod
    def _stats_from_row(row) -> UserStatCounters:
        return UserStatCounters(
            user_id=row.user_id,
            total_items_added=row.total_items_added,
            total_outfits_generated=row.total_outfits_generated,
            total_outfits_worn=row.total_outfits_worn,
            total_outfits_shared=row.total_outfits_shared,
            total_style_points=row.total_style_points,
        )

    def get_stats(self, user_id: str) -> Optional[UserStatCounters]:
        row = self._fetch_one(select(user_stats).where(user_stats.c.user_id == user_id), "read stats")
        return self._stats_from_row(row) if row else None

    def _add_to_column(self, user_id: str, column: str, amount: int, operation: str) -> UserStatCounters:
        col = user_stats.c[column]
        stmt = (
            update(user_stats)
            .where(user_stats.c.user_id == user_id)
            .values({column: col + amount, "updated_at": datetime.now(timezone.utc)})
        )
        empty = {
            "user_id": user_id,
            "total_items_added": 0,
            "total_outfits_generated": 0,
            "total_outfits_worn": 0,
            "total_outfits_shared": 0,
            "total_style_points": 0,
        }

        def work(session):
            if session.execute(stmt).rowcount == 0:
                session.execute(insert(user_stats).values(**{**empty, column: amount}))
            return session.execute(select(user_stats).where(user_stats.c.user_id == user_id)).first()

        return self._stats_from_row(self._transact(work, operation, user_id))

    def increment_stat(self, user_id: str, stat: StatField) -> UserStatCounters:
        return self._add_to_column(user_id, stat.value, 1, "update user stats")

    def add_style_points(self, user_id: str, points: int) -> UserStatCounters:
        return self._add_to_column(user_id, "total_style_points", points, "add style points")

    # Achievement progress ---------------------------------------------
    @staticmethod
    def _progress_from_row(row) -> UserAchievementProgress:
        return UserAchievementProgress(
            user_id=row.user_id,
            achievement_id=row.achievement_id,
            current_progress=row.current_progress,
            unlocked_at=_aware(row.unlocked_at),
            seen_at=_aware(row.seen_at),
            updated_at=_aware(row.updated_at),
        )

    def get_progress(self, user_id: str, achievement_id: str) -> Optional[UserAchievementProgress]:
        row = self._fetch_one(
            select(user_achievements).where(
                user_achievements.c.user_id == user_id,
                user_achievements.c.achievement_id == achievement_id,
            ),
            "read achievement progress",
        )
        return self._progress_from_row(row) if row else None

    def list_progress(self, user_id: str) -> Dict[str, UserAchievementProgress]:
        rows = self._fetch_all(
            select(user_achievements).where(user_achievements.c.user_id == user_id),
            "list achievement progress",
        )
        return {row.achievement_id: self._progress_from_row(row) for row in rows}

    def record_progress(
        self, user_id: str, achievement_id: str, progress_value: int, *, unlock: bool, now: datetime
    ) -> bool:
        where = [user_achievements.c.user_id == user_id, user_achievements.c.achievement_id == achievement_id]
        values = {"current_progress": progress_value, "updated_at": now}

        def work(session):
            if session.execute(update(user_achievements).where(*where).values(**values)).rowcount == 0:
                session.execute(insert(user_achievements).values(user_id=user_id, achievement_id=achievement_id, **values))
            if not unlock:
                return False
            claimed = session.execute(
                update(user_achievements)
                .where(*where, user_achievements.c.unlocked_at.is_(None))
                .values(unlocked_at=now)
            )
            return claimed.rowcount == 1

        return self._transact(work, "save achievement progress", user_id)

    def mark_progress_seen(self, user_id: str, achievement_id: str, now: datetime) -> bool:
        stmt = (
            update(user_achievements)
            .where(
                user_achievements.c.user_id == user_id,
                user_achievements.c.achievement_id == achievement_id,
                user_achievements.c.unlocked_at.is_not(None),
                user_achievements.c.seen_at.is_(None),
            )
            .values(seen_at=now)
        )
        return self._transact(lambda session: session.execute(stmt).rowcount == 1, "mark achievement seen", user_id)

    # Style vectors ----------------------------------------------------
    def _load_style_vector(self, user_id: str) -> Tuple[Optional[StylePreferenceVector], Optional[int]]:
        """The stored vector and its version, or (None, None) when there is no row."""
        row = self._fetch_one(
            select(user_style_vectors).where(user_style_vectors.c.user_id == user_id),
            "read style vector",
        )
        if not row:
            return None, None
        vector = StylePreferenceVector(
            user_id=row.user_id,
            vector=list(row.style_vector) if row.style_vector is not None else None,
            interaction_count=row.interaction_count,
            preferred_tags=set(row.preferred_tags or []),
            avoided_tags=set(row.avoided_tags or []),
            last_updated=_aware(row.last_updated),
        )
        return vector, row.version

    def get_style_vector(self, user_id: str) -> Optional[StylePreferenceVector]:
        return self._load_style_vector(user_id)[0]

    def update_style_vector(
        self, user_id: str, change: Callable[[StylePreferenceVector], bool]
    ) -> StylePreferenceVector:
        for _ in range(STYLE_VECTOR_WRITE_ATTEMPTS):
            current, version = self._load_style_vector(user_id)
            state = current or StylePreferenceVector(user_id=user_id)
            if not change(state):
                return state
            if self._write_style_vector(state, version):
                return state
        raise StoreError(
            "Style vector kept changing during the update", user_id=user_id, operation="save style vector"
        )

    def _write_style_vector(self, vector: StylePreferenceVector, version: Optional[int]) -> bool:
        """Insert, or update only if the row is still at `version`. False when another write got there first."""
        values = {
            "style_vector": list(vector.vector) if vector.vector is not None else None,
            "interaction_count": vector.interaction_count,
            "preferred_tags": sorted(vector.preferred_tags),
            "avoided_tags": sorted(vector.avoided_tags),
            "last_updated": vector.last_updated,
        }
        try:
            with self._session() as session:
                if version is None:
                    session.execute(insert(user_style_vectors).values(user_id=vector.user_id, version=1, **values))
                    return True
                result = session.execute(
                    update(user_style_vectors)
                    .where(user_style_vectors.c.user_id == vector.user_id, user_style_vectors.c.version == version)
                    .values(version=version + 1, **values)
                )
                return result.rowcount == 1
        except IntegrityError:
            return False
        except SQLAlchemyError as exc:
            raise StoreError("Failed to save style vector", user_id=vector.user_id, operation="save style vector") from exc

    # Append-only logs -------------------------------------------------
    def append_interaction(self, entry: InteractionLogEntry) -> None:
        try:
            with self._session() as session:
                session.execute(
                    insert(user_interactions).values(
                        user_id=entry.user_id,
                        interaction_type=entry.interaction_type.value,
                        interaction_weight=entry.weight,
                        item_ids=list(entry.item_ids),
                        occurred_at=entry.occurred_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to log interaction", user_id=entry.user_id, operation="log interaction") from exc

    def list_interactions(self, user_id: str) -> List[InteractionLogEntry]:
        rows = self._fetch_all(
            select(user_interactions)
            .where(user_interactions.c.user_id == user_id)
            .order_by(user_interactions.c.occurred_at, user_interactions.c.id),
            "list interactions",
        )
        return [
            InteractionLogEntry(
                user_id=row.user_id,
                interaction_type=InteractionType(row.interaction_type),
                weight=row.interaction_weight,
                item_ids=tuple(row.item_ids or ()),
                occurred_at=_aware(row.occurred_at),
            )
            for row in rows
        ]

    def append_tag_correction(self, entry: TagCorrectionEntry) -> None:
        try:
            with self._session() as session:
                session.execute(
                    insert(tag_corrections).values(
                        user_id=entry.user_id,
                        item_id=entry.item_id,
                        field_name=entry.field_name,
                        original_value=entry.original_value,
                        corrected_value=entry.corrected_value,
                        occurred_at=entry.occurred_at,
                    )
                )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to log tag correction", user_id=entry.user_id, operation="log tag correction") from exc

    def list_tag_corrections(self, user_id: str) -> List[TagCorrectionEntry]:
        rows = self._fetch_all(
            select(tag_corrections)
            .where(tag_corrections.c.user_id == user_id)
            .order_by(tag_corrections.c.occurred_at, tag_corrections.c.id),
            "list tag corrections",
        )
        return [
            TagCorrectionEntry(
                user_id=row.user_id,
                item_id=row.item_id,
                field_name=row.field_name,
                original_value=row.original_value,
                corrected_value=row.corrected_value,
                occurred_at=_aware(row.occurred_at),
            )
            for row in rows
        ]
