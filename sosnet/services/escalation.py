"""
SOSNet - SOS Escalation Sweep

A fixed-interval poll, independent of any request, that bumps the
escalation level of signals still pending after a threshold.

Logic:
    1. Select signals with status=pending, not marked safe,
       created at or before (now - threshold), escalation_level < 2
    2. escalation_level += 1, auto_escalated_at = now
    3. Commit, then publish sos-escalated to each signal room

The sweep opens its own DB session since it runs outside the request
lifecycle. It is not synchronized with request handlers: a concurrent
status update on the same signal is last-write-wins.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from sosnet.models.db_models import SosSignal, SignalStatus, MAX_ESCALATION_LEVEL, utcnow
from sosnet.ws_handlers.handler import RoomRelay, notify_escalation

logger = logging.getLogger(__name__)


def escalate_stale_signals(
    db: Session,
    threshold_minutes: float,
    now: Optional[datetime] = None
) -> List[SosSignal]:
    """Escalate every pending signal older than the threshold by exactly one level"""
    now = now or utcnow()
    cutoff = now - timedelta(minutes=threshold_minutes)

    stale = db.query(SosSignal).filter(
        SosSignal.status == SignalStatus.PENDING,
        SosSignal.victim_safe.is_(False),
        SosSignal.created_at <= cutoff,
        SosSignal.escalation_level < MAX_ESCALATION_LEVEL
    ).all()

    for sos in stale:
        sos.escalation_level = min(sos.escalation_level + 1, MAX_ESCALATION_LEVEL)
        sos.auto_escalated_at = now

    if stale:
        db.commit()
        logger.info(f"[ESCALATION] Escalated {len(stale)} pending signal(s)")

    return stale


class EscalationSweeper:
    """Runs escalate_stale_signals on a fixed interval as an asyncio task"""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        relay: RoomRelay,
        interval_minutes: float,
        threshold_minutes: float
    ):
        self.session_factory = session_factory
        self.relay = relay
        self.interval_minutes = interval_minutes
        self.threshold_minutes = threshold_minutes
        self._task: Optional[asyncio.Task] = None

    async def run_once(self, now: Optional[datetime] = None) -> List[str]:
        db = self.session_factory()
        try:
            escalated = escalate_stale_signals(db, self.threshold_minutes, now=now)
            events = [(sos.id, sos.escalation_level) for sos in escalated]
        finally:
            db.close()

        for sos_id, level in events:
            await notify_escalation(self.relay, sos_id, level)
        return [sos_id for sos_id, _ in events]

    async def _loop(self):
        logger.info(
            f"[ESCALATION] Sweep started: every {self.interval_minutes} min, "
            f"threshold {self.threshold_minutes} min"
        )
        while True:
            try:
                await self.run_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(f"[ESCALATION] Sweep failed: {e}", exc_info=True)
            await asyncio.sleep(self.interval_minutes * 60)

    def start(self):
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[ESCALATION] Sweep stopped")
