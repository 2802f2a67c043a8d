"""Outbound notification of fresh achievement unlocks."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional

import httpx

from stylepath.core.config import settings
from stylepath.core.errors import UpstreamDependencyError
from stylepath.models.achievement import UnlockedAchievement


def _canonical_json_bytes(payload: dict) -> bytes:
    return json.dumps(payload, separators=(",", ":"), sort_keys=True).encode()


class UnlockNotifier:
    """POSTs newly unlocked achievements to a single configured URL."""

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.url = url if url is not None else settings.UNLOCK_WEBHOOK_URL
        self.timeout_seconds = (
            timeout_seconds if timeout_seconds is not None else settings.UNLOCK_WEBHOOK_TIMEOUT_SECONDS
        )
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def notify(self, *, user_id: str, unlocked: List[UnlockedAchievement], now: Optional[datetime] = None) -> bool:
        """Returns False when disabled or there is nothing to send."""
        if not self.enabled or not unlocked:
            return False

        body = _canonical_json_bytes(
            {
                "event_type": "achievements.unlocked",
                "user_id": user_id,
                "occurred_at": (now or datetime.now(timezone.utc)).isoformat(),
                "achievements": [achievement.model_dump(mode="json") for achievement in unlocked],
            }
        )
        headers = {"Content-Type": "application/json"}
        try:
            with httpx.Client(timeout=self.timeout_seconds, transport=self._transport) as client:
                response = client.post(self.url, content=body, headers=headers)
                response.raise_for_status()
        except httpx.HTTPError as exc:
            raise UpstreamDependencyError(
                f"Unlock webhook failed: {exc}", user_id=user_id, operation="notify_unlocks"
            ) from exc
        return True
