"""
Caller-facing results of the progression orchestrator, plus the combined
event accepted by `process()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, TypeAdapter, model_validator

from stylepath.models.achievement import UnlockedAchievement
from stylepath.models.stats import ActionType, UserStatCounters
from stylepath.models.streak import StreakUpdate
from stylepath.models.style import StyleInteraction

STYLE_INTERACTION_ADAPTER: TypeAdapter = TypeAdapter(StyleInteraction)


class ProgressionEvent(BaseModel):
    """One user event fanned out to every applicable sub-operation."""

    user_id: str = Field(..., min_length=1)
    action_type: Optional[ActionType] = None
    value: Optional[int] = Field(default=None, ge=0)
    interaction: Optional[StyleInteraction] = None
    record_activity: bool = False
    occurred_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _has_work(self) -> ProgressionEvent:
        if self.action_type is None and self.interaction is None and not self.record_activity:
            raise ValueError("event must carry an action_type, an interaction or record_activity")
        return self


def _unlocked_payload(unlocked: List[UnlockedAchievement]) -> List[dict]:
    return [achievement.model_dump(mode="json") for achievement in unlocked]


@dataclass
class ActivityResult:
    update: StreakUpdate
    newly_unlocked: List[UnlockedAchievement] = field(default_factory=list)
    level: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        record = self.update.record
        return {
            "success": True,
            "current_streak": record.current_streak,
            "longest_streak": record.longest_streak,
            "total_days_active": record.total_days_active,
            "last_active_date": record.last_active_date.isoformat() if record.last_active_date else None,
            "streak_increased": self.update.increased,
            "streak_reset": self.update.reset,
            "newly_unlocked": _unlocked_payload(self.newly_unlocked),
            "level": self.level,
            "warnings": list(self.warnings),
        }


@dataclass
class InteractionResult:
    stats: UserStatCounters
    newly_unlocked: List[UnlockedAchievement] = field(default_factory=list)
    level: Optional[Dict[str, Any]] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "success": True,
            "stats": self.stats.to_dict(),
            "newly_unlocked": _unlocked_payload(self.newly_unlocked),
            "level": self.level,
            "warnings": list(self.warnings),
        }


@dataclass
class StyleResult:
    updated: bool
    tags_changed: bool = False
    interaction_count: int = 0

    def to_dict(self) -> dict:
        return {
            "success": True,
            "updated": self.updated,
            "tags_changed": self.tags_changed,
            "interaction_count": self.interaction_count,
        }


@dataclass
class OperationFailure:
    operation: str
    code: str
    error: str

    def to_dict(self) -> dict:
        return {"operation": self.operation, "code": self.code, "error": self.error}


@dataclass
class EventResult:
    """Outcome of `process()`; `partial` means some sub-operations failed."""

    user_id: str
    activity: Optional[ActivityResult] = None
    interaction: Optional[InteractionResult] = None
    style: Optional[StyleResult] = None
    failures: List[OperationFailure] = field(default_factory=list)
    attempted: int = 0

    @property
    def success(self) -> bool:
        return len(self.failures) < self.attempted

    @property
    def partial(self) -> bool:
        return bool(self.failures) and self.success

    @property
    def newly_unlocked(self) -> List[UnlockedAchievement]:
        unlocked: List[UnlockedAchievement] = []
        for result in (self.activity, self.interaction):
            if result is not None:
                unlocked.extend(result.newly_unlocked)
        return unlocked

    def to_dict(self) -> dict:
        payload = {
            "success": self.success,
            "partial": self.partial,
            "user_id": self.user_id,
            "activity": self.activity.to_dict() if self.activity else None,
            "interaction": self.interaction.to_dict() if self.interaction else None,
            "style": self.style.to_dict() if self.style else None,
            "newly_unlocked": _unlocked_payload(self.newly_unlocked),
            "errors": [failure.to_dict() for failure in self.failures],
        }
        if not self.success and self.failures:
            payload["error"] = self.failures[0].error
        return payload
