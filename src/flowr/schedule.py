"""Scheduled finish for duration-bounded sessions.

The finished record always carries the *scheduled* end instant, never the
instant at which a poller happened to notice it, so observers polling at
different cadences produce the same record.
"""

from __future__ import annotations

import logging
from dataclasses import replace

from .models import FINISHED, RUNNING, SCHEDULED, Session
from .ticker import Ticker

logger = logging.getLogger("flowr.schedule")


def is_due(session: Session, now: int) -> bool:
    if session.status != RUNNING or session.scheduled_finish_at is None:
        return False
    return now >= session.scheduled_finish_at


def finish_at(session: Session, ended_at: int) -> Session:
    started = session.started_at if session.started_at is not None else ended_at
    return replace(
        session,
        status=FINISHED,
        ended_at=ended_at,
        duration_ms=max(0, ended_at - started),
        stop_reason=SCHEDULED,
    )


def finish_if_due(session: Session, now: int) -> Session:
    if not is_due(session, now):
        return session
    return finish_at(session, session.scheduled_finish_at)


class ScheduleWatcher:
    """Periodically asks a timer to finish its session when it is due."""

    def __init__(self, timer, interval_seconds: float = 1.0) -> None:
        self._timer = timer
        self._ticker = Ticker(interval_seconds, self._tick, name="flowr-schedule")

    def _tick(self) -> None:
        finished = self._timer.check_schedule()
        if finished is not None:
            logger.info("Scheduled finish recorded at %s", finished.ended_at)

    def start(self) -> None:
        self._ticker.start()

    def stop(self) -> None:
        self._ticker.stop()

    @property
    def running(self) -> bool:
        return self._ticker.running
