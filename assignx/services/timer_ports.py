from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from typing import Callable, Dict, Optional, Protocol, Tuple

from assignx.core.clock import utcnow
from assignx.core.config import get_settings

logger = logging.getLogger(__name__)


class TimerPort(Protocol):
    """Where a durable timer row gets its wake-up call from."""

    def schedule(self, project_id: uuid.UUID, timer_id: uuid.UUID, fire_at: datetime) -> None:
        ...

    def cancel(self, project_id: uuid.UUID, timer_id: uuid.UUID) -> None:
        ...


class SweepTimerPort:
    """
    The timer rows are the schedule. A cron-driven sweep
    (`python -m assignx.jobs.auto_approval_sweep`) fires whatever is due,
    which also covers timers armed before a restart.
    """

    def schedule(self, project_id: uuid.UUID, timer_id: uuid.UUID, fire_at: datetime) -> None:
        logger.info(
            "auto-approval timer scheduled for sweep",
            extra={"project_id": str(project_id), "timer_id": str(timer_id), "fire_at": fire_at.isoformat()},
        )

    def cancel(self, project_id: uuid.UUID, timer_id: uuid.UUID) -> None:
        logger.info(
            "auto-approval timer cancelled",
            extra={"project_id": str(project_id), "timer_id": str(timer_id)},
        )


class InProcessTimerPort:
    """
    threading.Timer per armed row, calling `on_fire(project_id, timer_id)`.

    Lost on restart; run the sweep job as well. A cancelled timer whose thread
    already started is harmless because fire() re-checks the row.
    """

    def __init__(self, on_fire: Callable[[uuid.UUID, uuid.UUID], None]):
        self.on_fire = on_fire
        self._timers: Dict[Tuple[uuid.UUID, uuid.UUID], threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, project_id: uuid.UUID, timer_id: uuid.UUID, fire_at: datetime) -> None:
        delay = max((fire_at - utcnow()).total_seconds(), 0.0)
        t = threading.Timer(delay, self._run, args=(project_id, timer_id))
        t.daemon = True
        with self._lock:
            self._timers[(project_id, timer_id)] = t
        t.start()

    def cancel(self, project_id: uuid.UUID, timer_id: uuid.UUID) -> None:
        with self._lock:
            t = self._timers.pop((project_id, timer_id), None)
        if t is not None:
            t.cancel()

    def pending(self) -> int:
        with self._lock:
            return len(self._timers)

    def _run(self, project_id: uuid.UUID, timer_id: uuid.UUID) -> None:
        with self._lock:
            self._timers.pop((project_id, timer_id), None)
        try:
            self.on_fire(project_id, timer_id)
        except Exception:
            logger.exception(
                "in-process auto-approval fire failed",
                extra={"project_id": str(project_id), "timer_id": str(timer_id)},
            )


_default_port: Optional[TimerPort] = None


def get_timer_port() -> TimerPort:
    global _default_port
    if _default_port is None:
        if get_settings().timer_backend == "in_process":
            _default_port = InProcessTimerPort(on_fire=_fire_in_new_session)
        else:
            _default_port = SweepTimerPort()
    return _default_port


def _fire_in_new_session(project_id: uuid.UUID, timer_id: uuid.UUID) -> None:
    from assignx.db.session import session_scope
    from assignx.services.timer_service import TimerService

    with session_scope() as db:
        TimerService().fire(db, project_id=project_id, timer_id=timer_id)
