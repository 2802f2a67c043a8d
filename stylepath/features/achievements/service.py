from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Protocol

from stylepath.core.errors import NotFoundError, ValidationError, require_user_id
from stylepath.core.logging import log_event
from stylepath.features.progression.store import ProgressionStore
from stylepath.models.achievement import (
    AchievementCategory,
    AchievementDefinition,
    AchievementView,
    UnlockedAchievement,
    UserAchievementProgress,
)


class AchievementCatalog(Protocol):
    def by_category(self, category: AchievementCategory) -> List[AchievementDefinition]: ...

    def get(self, achievement_id: str) -> Optional[AchievementDefinition]: ...

    def all(self) -> List[AchievementDefinition]: ...


class AchievementService:
    """Idempotent achievement unlocks over caller-supplied progress values."""

    def __init__(self, store: ProgressionStore, catalog: AchievementCatalog):
        self._store = store
        self._catalog = catalog

    def evaluate(
        self,
        *,
        user_id: str,
        category: AchievementCategory,
        progress_value: int,
        now: Optional[datetime] = None,
    ) -> List[UnlockedAchievement]:
        """
        Overwrite progress for every achievement in `category` and unlock the
        ones crossing their target for the first time.

        `progress_value` is absolute, never a delta, so replaying the same
        value is harmless. Unlock timestamps are sticky: a lower value later
        leaves them in place. A lower value does overwrite current_progress;
        passing a fresh counter is the caller's job.

        Each row is written before its unlock is reported. If a write fails
        the StoreError propagates and that achievement is not in the result.
        The store claims the unlock atomically, so a concurrent evaluation
        for the same user reports it at most once and never clears it.
        """
        user_id = require_user_id(user_id, "evaluate_achievements")
        if progress_value is None or progress_value < 0:
            raise ValidationError("progress_value must be a non-negative integer", user_id=user_id, operation="evaluate_achievements")

        moment = now or datetime.now(timezone.utc)
        definitions = self._catalog.by_category(category)
        if not definitions:
            log_event(
                "warning",
                "achievements.category_empty",
                user_id=user_id,
                operation="evaluate_achievements",
                error_code=NotFoundError.code,
                extra={"category": category.value},
            )
            return []

        newly_unlocked: List[UnlockedAchievement] = []
        for definition in definitions:
            unlocked = self._store.record_progress(
                user_id,
                definition.id,
                progress_value,
                unlock=progress_value >= definition.target_progress,
                now=moment,
            )
            if unlocked:
                newly_unlocked.append(UnlockedAchievement.from_definition(definition))
                log_event(
                    "info",
                    "achievement.unlocked",
                    user_id=user_id,
                    operation="evaluate_achievements",
                    extra={"achievement_id": definition.id},
                )

        return newly_unlocked

    def list_for_user(self, user_id: str, category: Optional[AchievementCategory] = None) -> List[AchievementView]:
        user_id = require_user_id(user_id, "list_achievements")
        definitions = self._catalog.by_category(category) if category else self._catalog.all()
        progress = self._store.list_progress(user_id)
        return [self._view(definition, progress.get(definition.id)) for definition in definitions]

    def next_achievement(self, user_id: str, category: Optional[AchievementCategory] = None) -> Optional[AchievementView]:
        """The locked achievement closest to unlocking, or None when all are unlocked."""
        locked = [view for view in self.list_for_user(user_id, category) if not view.is_unlocked]
        if not locked:
            return None
        # max() keeps the first of equal candidates, i.e. catalog order
        return max(locked, key=lambda view: view.progress_percent)

    def mark_seen(self, *, user_id: str, achievement_id: str, now: Optional[datetime] = None) -> AchievementView:
        user_id = require_user_id(user_id, "mark_achievement_seen")
        definition = self._catalog.get(achievement_id)
        if definition is None:
            raise NotFoundError(f"Achievement {achievement_id} not found", user_id=user_id, operation="mark_achievement_seen")

        progress = self._store.get_progress(user_id, achievement_id)
        if progress is None or not progress.is_unlocked:
            raise ValidationError(
                f"Achievement {achievement_id} is not unlocked yet", user_id=user_id, operation="mark_achievement_seen"
            )

        if progress.seen_at is None:
            self._store.mark_progress_seen(user_id, achievement_id, now or datetime.now(timezone.utc))
            progress = self._store.get_progress(user_id, achievement_id)

        return self._view(definition, progress)

    @staticmethod
    def _view(definition: AchievementDefinition, progress: Optional[UserAchievementProgress]) -> AchievementView:
        return AchievementView(
            id=definition.id,
            title=definition.title,
            description=definition.description,
            category=definition.category,
            rarity=definition.rarity,
            icon_name=definition.icon_name,
            xp_reward=definition.xp_reward,
            sort_order=definition.sort_order,
            progress=progress.current_progress if progress else 0,
            target=definition.target_progress,
            is_unlocked=bool(progress and progress.is_unlocked),
            unlocked_at=progress.unlocked_at if progress else None,
            seen_at=progress.seen_at if progress else None,
        )
