# assignx/services/timer_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.config import Settings, get_settings
from assignx.core.errors import LifecycleError, TimerAlreadyArmed
from assignx.models.auto_approval_timer import AutoApprovalTimer
from assignx.models.enums import LifecycleEvent, ProjectStatus, TimerState
from assignx.models.project import Project
from assignx.services.lifecycle_service import load_project
from assignx.services.notification_service import NotificationDispatcher
from assignx.services.settlement_service import SettlementService
from assignx.services.timer_ports import TimerPort, get_timer_port
from assignx.services.unit_of_work import after_commit, unit_of_work

logger = logging.getLogger(__name__)

SYSTEM_ROLE = "SYSTEM"


class TimerService:
    """
    72h auto-approval after delivery.

    Rows in auto_approval_timers are the source of truth; the TimerPort only
    decides when fire() gets called. fire() re-checks everything, so a late,
    duplicated or cancelled wake-up is a no-op.
    """

    def __init__(
        self,
        port: Optional[TimerPort] = None,
        notifier: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
    ):
        self.port = port or get_timer_port()
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.settlement = SettlementService(notifier=notifier, settings=self.settings)

    @property
    def default_duration(self) -> timedelta:
        return timedelta(hours=self.settings.auto_approval_hours)

    def get_armed(self, db: Session, *, project_id: uuid.UUID, for_update: bool = False) -> Optional[AutoApprovalTimer]:
        stmt = select(AutoApprovalTimer).where(
            AutoApprovalTimer.project_id == project_id,
            AutoApprovalTimer.state == TimerState.armed.value,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return db.execute(stmt).scalar_one_or_none()

    def list_for_project(self, db: Session, *, project_id: uuid.UUID) -> List[AutoApprovalTimer]:
        return list(
            db.execute(
                select(AutoApprovalTimer)
                .where(AutoApprovalTimer.project_id == project_id)
                .order_by(AutoApprovalTimer.armed_at.asc())
            )
            .scalars()
            .all()
        )

    # ─────────────────────────────────────────────
    # In-transaction building blocks
    # ─────────────────────────────────────────────

    def arm_in_tx(
        self,
        db: Session,
        project: Project,
        *,
        now: datetime,
        duration: Optional[timedelta] = None,
    ) -> AutoApprovalTimer:
        if self.get_armed(db, project_id=project.id) is not None:
            raise TimerAlreadyArmed("An auto-approval timer is already armed.", project_id=str(project.id))

        duration = duration or self.default_duration
        timer = AutoApprovalTimer(
            project_id=project.id,
            armed_at=now,
            fire_at=now + duration,
            duration_seconds=int(duration.total_seconds()),
        )
        db.add(timer)
        db.flush()

        project_id, timer_id, fire_at = project.id, timer.id, timer.fire_at
        after_commit(db, lambda: self.port.schedule(project_id, timer_id, fire_at))
        logger.info(
            "auto-approval timer armed",
            extra={"project_id": str(project_id), "timer_id": str(timer_id), "fire_at": fire_at.isoformat()},
        )
        return timer

    def disarm_in_tx(self, db: Session, project: Project, *, reason: str, now: datetime) -> Optional[AutoApprovalTimer]:
        timer = self.get_armed(db, project_id=project.id, for_update=True)
        if timer is None:
            return None
        timer.state = TimerState.disarmed.value
        timer.disarm_reason = reason
        timer.resolved_at = now
        db.flush()

        project_id, timer_id = project.id, timer.id
        after_commit(db, lambda: self.port.cancel(project_id, timer_id))
        logger.info(
            "auto-approval timer disarmed",
            extra={"project_id": str(project_id), "timer_id": str(timer_id), "reason": reason},
        )
        return timer

    # ─────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────

    def arm(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        duration: Optional[timedelta] = None,
        now: Optional[datetime] = None,
    ) -> AutoApprovalTimer:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            timer = self.arm_in_tx(db, project, now=now, duration=duration)
        db.refresh(timer)
        return timer

    def disarm(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        reason: str,
        now: Optional[datetime] = None,
    ) -> Optional[AutoApprovalTimer]:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            timer = self.disarm_in_tx(db, project, reason=reason, now=now)
        return timer

    def fire(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        timer_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Project]:
        """
        Auto-approve if, and only if, the timer is still armed, due, and the
        project is still `delivered`. Returns the project when it fired,
        otherwise None with nothing changed.
        """
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            if timer_id is not None:
                timer = db.execute(
                    select(AutoApprovalTimer)
                    .where(AutoApprovalTimer.id == timer_id, AutoApprovalTimer.project_id == project_id)
                    .with_for_update()
                ).scalar_one_or_none()
            else:
                timer = self.get_armed(db, project_id=project_id, for_update=True)

            if timer is None or timer.state != TimerState.armed.value:
                logger.info(
                    "auto-approval fire ignored: timer not armed",
                    extra={"project_id": str(project_id), "timer_id": str(timer_id) if timer_id else None},
                )
                return None
            if timer.fire_at > now:
                logger.info(
                    "auto-approval fire ignored: not due",
                    extra={"project_id": str(project_id), "timer_id": str(timer.id)},
                )
                return None

            project = load_project(db, project_id, for_update=True)
            if project.status_enum != ProjectStatus.delivered:
                logger.warning(
                    "auto-approval fire ignored: project not delivered",
                    extra={"project_id": str(project_id), "status": project.status},
                )
                return None

            timer.state = TimerState.fired.value
            timer.resolved_at = now
            self.settlement.finalize_in_tx(
                db,
                project,
                LifecycleEvent.auto_approve,
                actor_id=None,
                actor_role=SYSTEM_ROLE,
                notes=f"No client response within {timer.duration_seconds // 3600}h of delivery.",
                now=now,
            )

        db.refresh(project)
        return project

    def fire_due(self, db: Session, *, now: Optional[datetime] = None, limit: Optional[int] = None) -> List[uuid.UUID]:
        """Sweep: fire every armed timer whose deadline has passed."""
        now = now or utcnow()
        due = db.execute(
            select(AutoApprovalTimer.project_id, AutoApprovalTimer.id)
            .where(
                AutoApprovalTimer.state == TimerState.armed.value,
                AutoApprovalTimer.fire_at <= now,
            )
            .order_by(AutoApprovalTimer.fire_at.asc())
            .limit(limit or self.settings.timer_sweep_batch_size)
        ).all()

        fired: List[uuid.UUID] = []
        for project_id, timer_id in due:
            try:
                if self.fire(db, project_id=project_id, timer_id=timer_id, now=now) is not None:
                    fired.append(project_id)
            except LifecycleError:
                logger.exception(
                    "auto-approval sweep failed for project",
                    extra={"project_id": str(project_id), "timer_id": str(timer_id)},
                )

        logger.info("auto-approval sweep finished", extra={"due": len(due), "fired": len(fired)})
        return fired
