from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, ConfigDict, Field

from stylepath.features.progression.orchestrator import ProgressionOrchestrator
from stylepath.models.achievement import AchievementCategory, AchievementView
from stylepath.models.progression import ProgressionEvent
from stylepath.models.stats import ActionType
from stylepath.models.style import StyleInteraction

router = APIRouter(prefix="/v1/progression")


def get_orchestrator(request: Request) -> ProgressionOrchestrator:
    return request.app.state.orchestrator


class ActivityEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    occurred_at: Optional[datetime] = None


class InteractionEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    action_type: ActionType
    value: Optional[int] = Field(default=None, ge=0)
    occurred_at: Optional[datetime] = None


class StyleInteractionEvent(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., min_length=1)
    interaction: StyleInteraction
    occurred_at: Optional[datetime] = None


class SeenEvent(BaseModel):
    user_id: str = Field(..., min_length=1)
    seen_at: Optional[datetime] = None


@router.post("/streak/activity")
def record_activity(event: ActivityEvent, orchestrator: ProgressionOrchestrator = Depends(get_orchestrator)):
    result = orchestrator.record_activity(user_id=event.user_id, now=_normalize(event.occurred_at))
    return result.to_dict()


@router.get("/streak")
def get_streak(
    user_id: str = Query(..., min_length=1),
    orchestrator: ProgressionOrchestrator = Depends(get_orchestrator),
):
    """Current streak state, milestone label and level for a user."""
    state = orchestrator.streaks.get_state(user_id)
    return {"success": True, **state, "level": orchestrator.level_for(user_id)}


@router.post("/interactions")
def record_interaction(event: InteractionEvent, orchestrator: ProgressionOrchestrator = Depends(get_orchestrator)):
    result = orchestrator.record_interaction(
        user_id=event.user_id,
        action_type=event.action_type,
        value=event.value,
        now=_normalize(event.occurred_at),
    )
    return result.to_dict()


@router.post("/style/interactions")
def apply_style_interaction(
    event: StyleInteractionEvent, orchestrator: ProgressionOrchestrator = Depends(get_orchestrator)
):
    result = orchestrator.apply_style_preference_update(
        user_id=event.user_id,
        interaction=event.interaction,
        now=_normalize(event.occurred_at),
    )
    return result.to_dict()


@router.get("/style")
def get_style(
    user_id: str = Query(..., min_length=1),
    include_vector: bool = Query(False),
    orchestrator: ProgressionOrchestrator = Depends(get_orchestrator),
):
    vector = orchestrator.style.get_vector(user_id)
    return {"success": True, **vector.to_dict(include_vector=include_vector)}


@router.get("/achievements")
def list_achievements(
    user_id: str = Query(..., min_length=1),
    category: Optional[AchievementCategory] = Query(None),
    orchestrator: ProgressionOrchestrator = Depends(get_orchestrator),
):
    views = orchestrator.achievements.list_for_user(user_id, category)
    return {
        "success": True,
        "achievements": [_view_payload(view) for view in views],
        "unlocked_count": sum(1 for view in views if view.is_unlocked),
        "total_count": len(views),
    }


@router.get("/achievements/next")
def next_achievement(
    user_id: str = Query(..., min_length=1),
    category: Optional[AchievementCategory] = Query(None),
    orchestrator: ProgressionOrchestrator = Depends(get_orchestrator),
):
    view = orchestrator.achievements.next_achievement(user_id, category)
    return {"success": True, "achievement": _view_payload(view) if view else None}


@router.post("/achievements/{achievement_id}/seen")
def mark_achievement_seen(
    achievement_id: str,
    event: SeenEvent,
    orchestrator: ProgressionOrchestrator = Depends(get_orchestrator),
):
    view = orchestrator.achievements.mark_seen(
        user_id=event.user_id,
        achievement_id=achievement_id,
        now=_normalize(event.seen_at),
    )
    return {"success": True, "achievement": _view_payload(view)}


@router.post("/events")
def process_event(event: ProgressionEvent, orchestrator: ProgressionOrchestrator = Depends(get_orchestrator)):
    """Fan one event out to streaks, counters and style; failures are reported per operation."""
    if event.occurred_at is not None:
        event = event.model_copy(update={"occurred_at": _normalize(event.occurred_at)})
    return orchestrator.process(event).to_dict()


def _view_payload(view: AchievementView) -> dict:
    payload = view.model_dump(mode="json")
    payload["progress_percent"] = round(view.progress_percent, 3)
    payload["is_new"] = view.is_new
    return payload


def _normalize(moment: Optional[datetime]) -> datetime:
    if moment is None:
        return datetime.now(timezone.utc)
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
