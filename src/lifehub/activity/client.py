"""HTTP transport for the activity tracker.

``flush`` is the normal path: an awaited POST whose errors propagate to the
tracker. ``beacon`` is the teardown path: one short synchronous POST, no
response handling, failures ignored.
"""

from __future__ import annotations

from datetime import date
from typing import Any

import httpx
import structlog

logger = structlog.get_logger()

BEACON_TIMEOUT_SECONDS = 2.0


class ActivityApiClient:
    """Sends tracker flushes to the LifeHub API on behalf of one user."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        *,
        http: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._headers = {"Authorization": f"Bearer {access_token}"}
        self._timeout = timeout
        self._http = http

    async def flush(self, user_id: str, activity_date: date, minutes: int) -> dict[str, Any]:
        """POST minutes for the day; returns the referral status payload."""
        payload = {"activity_date": activity_date.isoformat(), "minutes": minutes}
        if self._http is not None:
            response = await self._http.post(
                f"{self.base_url}/api/v1/activity", json=payload, headers=self._headers,
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self.base_url}/api/v1/activity", json=payload, headers=self._headers,
                )
        response.raise_for_status()
        logger.debug("activity_flushed", user_id=user_id, minutes=minutes)
        return response.json()

    def beacon(self, user_id: str, activity_date: date, minutes: int) -> None:
        """Fire the teardown beacon. Never raises."""
        try:
            httpx.post(
                f"{self.base_url}/api/v1/activity/beacon",
                json={
                    "user_id": user_id,
                    "activity_date": activity_date.isoformat(),
                    "time_spent_minutes": minutes,
                },
                headers=self._headers,
                timeout=BEACON_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError:
            logger.debug("activity_beacon_lost", user_id=user_id, minutes=minutes)
