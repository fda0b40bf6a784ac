"""
Expiry sweeper.

Every tick:
- available donations past expiry_time become "expired"
- requests still "requested" past required_before become "cancelled" and
  their organization is taken off the donation, each as its own unit

Requested/reserved donations are left alone even when past expiry: a pending
human decision is never invalidated by the clock.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional

from foodconnect.core.errors import InvalidState
from foodconnect.db import DONATIONS, REQUESTS, utcnow
from foodconnect.services.reservations import LAPSED_REQUEST_STATUS, lapse_request

logger = logging.getLogger(__name__)


class ExpirySweeper:
    def __init__(self, repo, interval_seconds: float = 60.0, reopen_when_idle: Optional[bool] = None):
        self.repo = repo
        self.interval_seconds = interval_seconds
        # None defers to settings.reopen_on_last_cancel
        self.reopen_when_idle = reopen_when_idle
        self._running = False
        self._task: Optional[asyncio.Task] = None

    async def expire_donations(self, now: datetime) -> int:
        return await self.repo.update_many(
            DONATIONS,
            {"status": "available", "expiry_time": {"$lt": now}},
            {"$set": {"status": "expired", "updated_at": now}, "$inc": {"version": 1}},
        )

    async def expire_requests(self, now: datetime) -> int:
        # one unit per request: the organization also leaves donation.requested_by
        overdue = await self.repo.find(REQUESTS, {"status": "requested", "required_before": {"$lt": now}})
        lapsed = 0
        for r in overdue:
            try:
                if await lapse_request(self.repo, r["_id"], now=now, reopen_when_idle=self.reopen_when_idle):
                    lapsed += 1
            except InvalidState as e:
                # raced with a request handler; the next tick retries if still overdue
                logger.warning(f"Request {r['_id']} not lapsed: {e.message}")
        return lapsed

    async def sweep_once(self, now: Optional[datetime] = None) -> dict:
        """One tick. Each entity class is independent; errors are logged, never raised."""
        now = now or utcnow()
        result = {"donations": 0, "requests": 0}

        try:
            result["donations"] = await self.expire_donations(now)
            if result["donations"]:
                logger.info(f"{result['donations']} donations marked as expired")
        except Exception:
            logger.exception("Expiry check error (donations)")

        try:
            result["requests"] = await self.expire_requests(now)
            if result["requests"]:
                logger.info(f"{result['requests']} overdue requests marked as {LAPSED_REQUEST_STATUS}")
        except Exception:
            logger.exception("Expiry check error (requests)")

        return result

    async def run(self):
        self._running = True
        logger.info(f"Expiry sweeper started (every {self.interval_seconds}s)")
        while self._running:
            await self.sweep_once()
            await asyncio.sleep(self.interval_seconds)

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def stop(self):
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Expiry sweeper stopped")
