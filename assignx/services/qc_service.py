# assignx/services/qc_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.errors import NoDeliverables, NotPermitted
from assignx.models.deliverable import Deliverable
from assignx.models.enums import (
    DeliverableKind,
    LifecycleEvent,
    ParticipantRole,
    ProjectStatus,
    QCDecision,
)
from assignx.models.project import Project
from assignx.models.qc_review import QCReview
from assignx.models.revision import Revision
from assignx.policies.projects_policy import require_client, require_intermediary, require_worker, role_on_project
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher
from assignx.services.settlement_service import SettlementService
from assignx.services.timer_ports import TimerPort
from assignx.services.timer_service import TimerService
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

WORKER = ParticipantRole.WORKER.value
INTERMEDIARY = ParticipantRole.INTERMEDIARY.value
CLIENT = ParticipantRole.CLIENT.value


def _clean_refs(refs: Optional[Sequence[str]]) -> List[str]:
    return [r.strip() for r in (refs or []) if r and r.strip()]


class QCService:
    """
    Work → QC → delivery → client response.

    Delivery arms the auto-approval timer; approval and revision requests
    disarm it. Client approval releases the settlement in the same commit.
    """

    def __init__(
        self,
        timer_port: Optional[TimerPort] = None,
        notifier: Optional[NotificationDispatcher] = None,
    ):
        self.notifier = notifier
        self.lifecycle = LifecycleService()
        self.timers = TimerService(port=timer_port, notifier=notifier)
        self.settlement = SettlementService(notifier=notifier)

    # ─────────────────────────────────────────────
    # Deliverables
    # ─────────────────────────────────────────────

    def _record_deliverables(
        self,
        db: Session,
        project: Project,
        *,
        kind: DeliverableKind,
        refs: List[str],
        uploaded_by: uuid.UUID,
        now: datetime,
    ) -> int:
        last_cycle = db.execute(
            select(func.max(Deliverable.cycle)).where(
                Deliverable.project_id == project.id,
                Deliverable.kind == kind.value,
            )
        ).scalar_one_or_none()
        cycle = (last_cycle or 0) + 1

        db.execute(
            update(Deliverable)
            .where(
                Deliverable.project_id == project.id,
                Deliverable.kind == kind.value,
                Deliverable.is_current.is_(True),
            )
            .values(is_current=False)
            .execution_options(synchronize_session=False)
        )
        for ref in refs:
            db.add(
                Deliverable(
                    project_id=project.id,
                    uploaded_by=uploaded_by,
                    kind=kind.value,
                    ref=ref,
                    cycle=cycle,
                    is_current=True,
                    created_at=now,
                )
            )
        db.flush()
        return cycle

    def list_deliverables(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        kind: Optional[DeliverableKind] = None,
        current_only: bool = False,
    ) -> List[Deliverable]:
        stmt = select(Deliverable).where(Deliverable.project_id == project_id)
        if kind is not None:
            stmt = stmt.where(Deliverable.kind == DeliverableKind(kind).value)
        if current_only:
            stmt = stmt.where(Deliverable.is_current.is_(True))
        stmt = stmt.order_by(Deliverable.kind.asc(), Deliverable.cycle.asc(), Deliverable.created_at.asc())
        return list(db.execute(stmt.execution_options(populate_existing=True)).scalars().all())

    def _current_submission_cycle(self, db: Session, project_id: uuid.UUID) -> int:
        return (
            db.execute(
                select(func.max(Deliverable.cycle)).where(
                    Deliverable.project_id == project_id,
                    Deliverable.kind == DeliverableKind.submission.value,
                )
            ).scalar_one_or_none()
            or 0
        )

    # ─────────────────────────────────────────────
    # Worker side
    # ─────────────────────────────────────────────

    def start_work(self, db: Session, *, project_id: uuid.UUID, worker_id: uuid.UUID, now: Optional[datetime] = None) -> Project:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_worker(project, worker_id)
            self.lifecycle.apply(db, project, LifecycleEvent.start_work, actor_id=worker_id, actor_role=WORKER, now=now)
        db.refresh(project)
        return project

    def submit_for_qc(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        worker_id: uuid.UUID,
        deliverable_refs: Sequence[str],
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        now = now or utcnow()
        refs = _clean_refs(deliverable_refs)
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_worker(project, worker_id)
            if not refs:
                raise NoDeliverables("At least one deliverable is required for QC.")

            if project.status_enum == ProjectStatus.assigned:
                self.lifecycle.apply(
                    db, project, LifecycleEvent.start_work, actor_id=worker_id, actor_role=WORKER, now=now
                )

            coming_from_revision = project.status_enum == ProjectStatus.in_revision
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.submit_for_qc,
                actor_id=worker_id,
                actor_role=WORKER,
                notes=notes,
                metadata={"deliverables": len(refs)},
                now=now,
            )
            if coming_from_revision:
                db.execute(
                    update(Revision)
                    .where(Revision.project_id == project.id, Revision.resolved_at.is_(None))
                    .values(resolved_at=now)
                    .execution_options(synchronize_session=False)
                )

            self._record_deliverables(
                db, project, kind=DeliverableKind.submission, refs=refs, uploaded_by=worker_id, now=now
            )
            project.progress_percentage = 100

        db.refresh(project)
        return project

    def start_revision(
        self, db: Session, *, project_id: uuid.UUID, worker_id: uuid.UUID, now: Optional[datetime] = None
    ) -> Project:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_worker(project, worker_id)
            self.lifecycle.apply(
                db, project, LifecycleEvent.start_revision, actor_id=worker_id, actor_role=WORKER, now=now
            )
        db.refresh(project)
        return project

    # ─────────────────────────────────────────────
    # Intermediary side
    # ─────────────────────────────────────────────

    def record_qc_decision(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        decision: QCDecision,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        now = now or utcnow()
        decision = QCDecision(decision)
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)

            if project.status_enum == ProjectStatus.submitted_for_qc:
                self.lifecycle.apply(
                    db, project, LifecycleEvent.start_qc, actor_id=intermediary_id, actor_role=INTERMEDIARY, now=now
                )

            if decision == QCDecision.approve:
                self.lifecycle.apply(
                    db,
                    project,
                    LifecycleEvent.qc_approve,
                    actor_id=intermediary_id,
                    actor_role=INTERMEDIARY,
                    notes=notes,
                    now=now,
                )
            else:
                self.lifecycle.apply(
                    db,
                    project,
                    LifecycleEvent.qc_reject,
                    actor_id=intermediary_id,
                    actor_role=INTERMEDIARY,
                    notes=notes,
                    now=now,
                )
                project.qc_rejection_count += 1
                project.progress_percentage = 0
                self.lifecycle.apply(
                    db,
                    project,
                    LifecycleEvent.resume_work,
                    actor_id=intermediary_id,
                    actor_role=INTERMEDIARY,
                    notes=notes,
                    now=now,
                )

            db.add(
                QCReview(
                    project_id=project.id,
                    reviewer_id=intermediary_id,
                    submission_cycle=self._current_submission_cycle(db, project.id),
                    decision=decision.value,
                    notes=notes,
                    decided_at=now,
                )
            )
            db.flush()

        db.refresh(project)
        return project

    def list_reviews(self, db: Session, *, project_id: uuid.UUID) -> List[QCReview]:
        return list(
            db.execute(
                select(QCReview).where(QCReview.project_id == project_id).order_by(QCReview.decided_at.asc())
            )
            .scalars()
            .all()
        )

    def deliver(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        deliverable_refs: Sequence[str],
        now: Optional[datetime] = None,
    ) -> Project:
        now = now or utcnow()
        refs = _clean_refs(deliverable_refs)
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)
            if not refs:
                raise NoDeliverables("At least one deliverable is required for delivery.")

            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.deliver,
                actor_id=intermediary_id,
                actor_role=INTERMEDIARY,
                metadata={"deliverables": len(refs)},
                now=now,
            )
            cycle = self._record_deliverables(
                db, project, kind=DeliverableKind.delivery, refs=refs, uploaded_by=intermediary_id, now=now
            )
            self.timers.arm_in_tx(db, project, now=now)

        logger.info("project delivered", extra={"project_id": str(project_id), "delivery_cycle": cycle})
        db.refresh(project)
        return project

    # ─────────────────────────────────────────────
    # Client side
    # ─────────────────────────────────────────────

    def approve(self, db: Session, *, project_id: uuid.UUID, client_id: uuid.UUID, now: Optional[datetime] = None) -> Project:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_client(project, client_id)
            if project.status_enum == ProjectStatus.delivered:
                self.timers.disarm_in_tx(db, project, reason="client_approved", now=now)
            self.settlement.finalize_in_tx(
                db,
                project,
                LifecycleEvent.client_approve,
                actor_id=client_id,
                actor_role=CLIENT,
                now=now,
            )
        db.refresh(project)
        return project

    def request_revision(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        requester_id: uuid.UUID,
        notes: str,
        now: Optional[datetime] = None,
    ) -> Revision:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            role = role_on_project(project, requester_id)
            if role not in {ParticipantRole.CLIENT, ParticipantRole.INTERMEDIARY}:
                raise NotPermitted("Only the client or the intermediary may request a revision.")

            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.request_revision,
                actor_id=requester_id,
                actor_role=role.value,
                notes=notes,
                now=now,
            )
            self.timers.disarm_in_tx(db, project, reason="revision_requested", now=now)

            project.revision_count += 1
            project.progress_percentage = 0
            revision = Revision(
                project_id=project.id,
                revision_number=project.revision_count,
                requested_by=requester_id,
                requested_by_role=role.value,
                notes=notes,
                requested_at=now,
            )
            db.add(revision)
            db.flush()

        db.refresh(revision)
        return revision

    def list_revisions(self, db: Session, *, project_id: uuid.UUID) -> List[Revision]:
        return list(
            db.execute(
                select(Revision).where(Revision.project_id == project_id).order_by(Revision.revision_number.asc())
            )
            .scalars()
            .all()
        )
