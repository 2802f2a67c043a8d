"""
stylepath/features/progression/orchestrator.py

Entry point callers use for user events. Wires streaks, achievements and
style vectors over one injected store and catalog.

Failure policy:
- Validation and store errors of the primary operation propagate.
- Work chained after a committed primary write (streak achievements, XP
  credit, unlock webhook) is logged, swallowed and reported as a warning.
- process() isolates every sub-operation and reports partial failure.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from stylepath.core.errors import AppError, UpstreamDependencyError, ValidationError, require_user_id
from stylepath.core.logging import log_event
from stylepath.features.achievements.levels import level_progress
from stylepath.features.achievements.service import AchievementCatalog, AchievementService
from stylepath.features.progression.notifier import UnlockNotifier
from stylepath.features.progression.store import ProgressionStore
from stylepath.features.streaks.service import StreakService
from stylepath.features.style.service import StyleVectorService
from stylepath.models.achievement import AchievementCategory, UnlockedAchievement
from stylepath.models.progression import (
    STYLE_INTERACTION_ADAPTER,
    ActivityResult,
    EventResult,
    InteractionResult,
    OperationFailure,
    ProgressionEvent,
    StyleResult,
)
from stylepath.models.stats import ACTION_RULES, ActionType, UserStatCounters
from stylepath.models.style import StyleInteraction


class ProgressionOrchestrator:
    def __init__(
        self,
        store: ProgressionStore,
        catalog: AchievementCatalog,
        *,
        notifier: Optional[UnlockNotifier] = None,
        style_dim: Optional[int] = None,
        style_alpha: Optional[float] = None,
    ):
        self.store = store
        self.catalog = catalog
        self.streaks = StreakService(store)
        self.achievements = AchievementService(store, catalog)
        self.style = StyleVectorService(store, dim=style_dim, alpha=style_alpha)
        self.notifier = notifier if notifier is not None else UnlockNotifier()

    def record_activity(self, *, user_id: str, now: Optional[datetime] = None) -> ActivityResult:
        """
        Record today's activity and check streak achievements when the streak
        moved (increased or reset). A same-day repeat checks nothing.
        """
        user_id = require_user_id(user_id, "record_activity")
        update = self.streaks.record_activity(user_id=user_id, now=now)
        result = ActivityResult(update=update)

        if update.increased or update.reset:
            try:
                result.newly_unlocked = self.achievements.evaluate(
                    user_id=user_id,
                    category=AchievementCategory.STREAKS,
                    progress_value=update.record.current_streak,
                    now=now,
                )
            except AppError as exc:
                self._warn(result.warnings, "achievement_check_failed", exc, user_id, "record_activity")

        stats = self._settle_unlocks(user_id, result.newly_unlocked, result.warnings, "record_activity", now)
        if stats is not None:
            result.level = level_progress(stats.total_style_points).to_dict()
        return result

    def record_interaction(
        self,
        *,
        user_id: str,
        action_type: Union[ActionType, str],
        value: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> InteractionResult:
        user_id = require_user_id(user_id, "record_interaction")
        action = self._parse_action(action_type, user_id)
        if value is not None and value < 0:
            raise ValidationError("value must be a non-negative integer", user_id=user_id, operation="record_interaction")

        rule = ACTION_RULES[action]
        stats = None
        if rule.stat is not None:
            stats = self.store.increment_stat(user_id, rule.stat)
            progress_value = stats.get(rule.stat)
        else:
            progress_value = value if value is not None else 0

        unlocked = self.achievements.evaluate(
            user_id=user_id, category=rule.category, progress_value=progress_value, now=now
        )
        warnings: List[str] = []
        settled = self._settle_unlocks(user_id, unlocked, warnings, "record_interaction", now)
        stats = settled or stats or UserStatCounters(user_id=user_id)
        result = InteractionResult(
            stats=stats,
            newly_unlocked=unlocked,
            level=level_progress(stats.total_style_points).to_dict(),
            warnings=warnings,
        )

        log_event(
            "info",
            "progression.interaction_recorded",
            user_id=user_id,
            operation="record_interaction",
            extra={"action_type": action.value, "progress_value": progress_value, "unlocked": len(unlocked)},
        )
        return result

    def apply_style_preference_update(
        self,
        *,
        user_id: str,
        interaction: Union[StyleInteraction, Mapping[str, Any]],
        now: Optional[datetime] = None,
    ) -> StyleResult:
        user_id = require_user_id(user_id, "apply_style_update")
        if isinstance(interaction, Mapping):
            try:
                interaction = STYLE_INTERACTION_ADAPTER.validate_python(dict(interaction))
            except PydanticValidationError as exc:
                first = exc.errors()[0] if exc.errors() else {}
                raise ValidationError(
                    f"Invalid interaction: {first.get('msg', 'malformed payload')}",
                    user_id=user_id,
                    operation="apply_style_update",
                ) from exc

        update = self.style.apply_interaction(user_id=user_id, interaction=interaction, now=now)
        return StyleResult(
            updated=update.updated,
            tags_changed=update.tags_changed,
            interaction_count=update.vector.interaction_count,
        )

    def process(self, event: ProgressionEvent) -> EventResult:
        """Run every sub-operation the event carries; one failing never stops the others."""
        now = event.occurred_at
        result = EventResult(user_id=event.user_id)

        if event.record_activity:
            result.activity = self._attempt(
                result, "record_activity", lambda: self.record_activity(user_id=event.user_id, now=now)
            )
        if event.action_type is not None:
            result.interaction = self._attempt(
                result,
                "record_interaction",
                lambda: self.record_interaction(
                    user_id=event.user_id, action_type=event.action_type, value=event.value, now=now
                ),
            )
        if event.interaction is not None:
            result.style = self._attempt(
                result,
                "apply_style_update",
                lambda: self.apply_style_preference_update(
                    user_id=event.user_id, interaction=event.interaction, now=now
                ),
            )

        if result.failures:
            log_event(
                "warning",
                "progression.event_partial" if result.partial else "progression.event_failed",
                user_id=event.user_id,
                operation="process_event",
                extra={"failed": [failure.operation for failure in result.failures]},
            )
        return result

    def level_for(self, user_id: str) -> dict:
        user_id = require_user_id(user_id, "get_level")
        stats = self.store.get_stats(user_id) or UserStatCounters(user_id=user_id)
        return level_progress(stats.total_style_points).to_dict()

    # Internal helpers -------------------------------------------------
    def _attempt(self, result: EventResult, operation: str, fn: Callable[[], Any]):
        result.attempted += 1
        try:
            return fn()
        except AppError as exc:
            code, message = exc.code, exc.message
        except Exception as exc:
            code, message = "internal_error", str(exc) or exc.__class__.__name__

        log_event(
            "error",
            "progression.operation_failed",
            user_id=result.user_id,
            operation=operation,
            error_code=code,
            extra={"error": message},
        )
        result.failures.append(OperationFailure(operation=operation, code=code, error=message))
        return None

    def _settle_unlocks(
        self,
        user_id: str,
        unlocked: List[UnlockedAchievement],
        warnings: List[str],
        operation: str,
        now: Optional[datetime],
    ) -> Optional[UserStatCounters]:
        """Credit XP for fresh unlocks and notify the webhook. Returns the counters, or None if the credit failed."""
        stats = None
        try:
            xp = sum(achievement.xp_reward for achievement in unlocked)
            if xp > 0:
                stats = self.store.add_style_points(user_id, xp)
            else:
                stats = self.store.get_stats(user_id) or UserStatCounters(user_id=user_id)
        except AppError as exc:
            self._warn(warnings, "xp_credit_failed", exc, user_id, operation)

        try:
            self.notifier.notify(user_id=user_id, unlocked=unlocked, now=now)
        except UpstreamDependencyError as exc:
            self._warn(warnings, "unlock_notification_failed", exc, user_id, operation)

        return stats

    @staticmethod
    def _warn(warnings: List[str], warning: str, exc: AppError, user_id: str, operation: str) -> None:
        log_event(
            "warning",
            f"progression.{warning}",
            user_id=user_id,
            operation=operation,
            error_code=exc.code,
            extra={"error": exc.message},
        )
        warnings.append(warning)

    @staticmethod
    def _parse_action(action_type: Union[ActionType, str], user_id: str) -> ActionType:
        try:
            return ActionType(action_type)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown action_type: {action_type}", user_id=user_id, operation="record_interaction"
            ) from exc
