# assignx/services/assignment_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.errors import (
    InvalidInput,
    NotFound,
    NotPermitted,
    WorkerAtCapacity,
    WorkerBlacklisted,
    WorkerUnavailable,
)
from assignx.models.assignment import Assignment
from assignx.models.blacklist import BlacklistEntry
from assignx.models.enums import AssignmentState, LifecycleEvent, ParticipantRole
from assignx.models.participant import Participant
from assignx.models.project import Project
from assignx.models.worker_profile import WorkerProfile
from assignx.policies.projects_policy import require_intermediary
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher, queue_notification
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)


class AssignmentService:
    """
    Binds paid projects to workers.

    WorkerProfile.active_assignment_count is only ever moved by the two
    conditional UPDATEs in _claim_slot / _release_slot, so two intermediaries
    racing for the last slot cannot both win.
    """

    def __init__(self, notifier: Optional[NotificationDispatcher] = None):
        self.notifier = notifier
        self.lifecycle = LifecycleService()

    # ─────────────────────────────────────────────
    # Worker aggregate
    # ─────────────────────────────────────────────

    def get_worker_profile(self, db: Session, *, worker_id: uuid.UUID) -> WorkerProfile:
        p = db.execute(
            select(WorkerProfile)
            .where(WorkerProfile.participant_id == worker_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if not p:
            raise NotFound("Worker profile not found.", worker_id=str(worker_id))
        return p

    def set_availability(
        self,
        db: Session,
        *,
        worker_id: uuid.UUID,
        is_available: bool,
        max_concurrent_projects: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> WorkerProfile:
        if max_concurrent_projects is not None and max_concurrent_projects < 0:
            raise InvalidInput("max_concurrent_projects cannot be negative.")

        with unit_of_work(db, self.notifier):
            values = {"is_available": is_available, "availability_updated_at": now or utcnow()}
            if max_concurrent_projects is not None:
                values["max_concurrent_projects"] = max_concurrent_projects
            stmt = update(WorkerProfile).where(WorkerProfile.participant_id == worker_id)
            if max_concurrent_projects is not None:
                # Capacity may shrink only down to the work already held.
                stmt = stmt.where(WorkerProfile.active_assignment_count <= max_concurrent_projects)
            res = db.execute(stmt.values(**values).execution_options(synchronize_session=False))
            if res.rowcount == 0:
                profile = self.get_worker_profile(db, worker_id=worker_id)
                raise InvalidInput(
                    "max_concurrent_projects cannot go below the active assignment count.",
                    active_assignment_count=profile.active_assignment_count,
                    max_concurrent_projects=max_concurrent_projects,
                )

        logger.info(
            "worker availability set",
            extra={"worker_id": str(worker_id), "is_available": is_available},
        )
        return self.get_worker_profile(db, worker_id=worker_id)

    def _is_blacklisted(self, db: Session, *, intermediary_id: uuid.UUID, worker_id: uuid.UUID) -> bool:
        return (
            db.execute(
                select(BlacklistEntry.id).where(
                    BlacklistEntry.intermediary_id == intermediary_id,
                    BlacklistEntry.worker_id == worker_id,
                )
            ).first()
            is not None
        )

    def _claim_slot(self, db: Session, *, intermediary_id: uuid.UUID, worker_id: uuid.UUID) -> None:
        if self._is_blacklisted(db, intermediary_id=intermediary_id, worker_id=worker_id):
            raise WorkerBlacklisted("Worker is blacklisted by this intermediary.", worker_id=str(worker_id))

        res = db.execute(
            update(WorkerProfile)
            .where(
                WorkerProfile.participant_id == worker_id,
                WorkerProfile.is_available.is_(True),
                WorkerProfile.active_assignment_count < WorkerProfile.max_concurrent_projects,
            )
            .values(active_assignment_count=WorkerProfile.active_assignment_count + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 1:
            return

        # Nothing matched: work out which guard failed.
        profile = self.get_worker_profile(db, worker_id=worker_id)
        if not profile.is_available:
            raise WorkerUnavailable("Worker is not accepting work.", worker_id=str(worker_id))
        raise WorkerAtCapacity(
            "Worker is at capacity.",
            worker_id=str(worker_id),
            max_concurrent_projects=profile.max_concurrent_projects,
        )

    def _release_slot(self, db: Session, *, worker_id: uuid.UUID) -> None:
        db.execute(
            update(WorkerProfile)
            .where(
                WorkerProfile.participant_id == worker_id,
                WorkerProfile.active_assignment_count > 0,
            )
            .values(active_assignment_count=WorkerProfile.active_assignment_count - 1)
            .execution_options(synchronize_session=False)
        )

    # ─────────────────────────────────────────────
    # Assignments
    # ─────────────────────────────────────────────

    def active_assignment(self, db: Session, *, project_id: uuid.UUID) -> Optional[Assignment]:
        return db.execute(
            select(Assignment).where(
                Assignment.project_id == project_id,
                Assignment.state == AssignmentState.active.value,
            )
        ).scalar_one_or_none()

    def list_for_project(self, db: Session, *, project_id: uuid.UUID) -> List[Assignment]:
        return list(
            db.execute(
                select(Assignment)
                .where(Assignment.project_id == project_id)
                .order_by(Assignment.assigned_at.asc())
            )
            .scalars()
            .all()
        )

    def _get_assignment(self, db: Session, assignment_id: uuid.UUID) -> Assignment:
        a = db.execute(
            select(Assignment).where(Assignment.id == assignment_id).with_for_update()
        ).scalar_one_or_none()
        if not a:
            raise NotFound("Assignment not found.", assignment_id=str(assignment_id))
        return a

    def _ensure_worker_role(self, db: Session, worker_id: uuid.UUID) -> None:
        role = db.execute(select(Participant.role).where(Participant.id == worker_id)).scalar_one_or_none()
        if role is None:
            raise NotFound("Worker not found.", worker_id=str(worker_id))
        if role != ParticipantRole.WORKER.value:
            raise InvalidInput("Participant is not a worker.", worker_id=str(worker_id))

    def assign(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        worker_id: uuid.UUID,
        now: Optional[datetime] = None,
    ) -> Assignment:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_intermediary(project, intermediary_id)
            self._ensure_worker_role(db, worker_id)

            # Validates paid/assigning before any slot is taken.
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.assign,
                actor_id=intermediary_id,
                actor_role=ParticipantRole.INTERMEDIARY.value,
                metadata={"worker_id": str(worker_id)},
                now=now,
            )
            self._claim_slot(db, intermediary_id=intermediary_id, worker_id=worker_id)

            assignment = Assignment(
                project_id=project.id,
                worker_id=worker_id,
                assigned_by=intermediary_id,
                assigned_at=now,
            )
            db.add(assignment)
            project.worker_id = worker_id
            project.progress_percentage = 0
            db.flush()

            queue_notification(
                db,
                recipient_id=worker_id,
                event_type="assignment.created",
                payload={"project_id": str(project.id), "assignment_id": str(assignment.id)},
            )

        db.refresh(assignment)
        return assignment

    def decline(
        self,
        db: Session,
        *,
        assignment_id: uuid.UUID,
        worker_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Assignment:
        """Worker turns the job down; the project goes back to `assigning`. Money is untouched."""
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            assignment = self._get_assignment(db, assignment_id)
            if assignment.worker_id != worker_id:
                raise NotPermitted("Only the assigned worker may decline.")
            if assignment.state != AssignmentState.active.value:
                raise InvalidInput("Assignment is no longer active.", state=assignment.state)

            project = load_project(db, assignment.project_id, for_update=True)
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.decline_assignment,
                actor_id=worker_id,
                actor_role=ParticipantRole.WORKER.value,
                notes=reason,
                metadata={"assignment_id": str(assignment.id)},
                now=now,
            )

            assignment.state = AssignmentState.declined.value
            assignment.end_reason = reason
            assignment.ended_at = now
            project.worker_id = None
            self._release_slot(db, worker_id=worker_id)
            db.flush()

            queue_notification(
                db,
                recipient_id=project.intermediary_id,
                event_type="assignment.declined",
                payload={"project_id": str(project.id), "assignment_id": str(assignment.id)},
            )

        db.refresh(assignment)
        return assignment

    def reassign(
        self,
        db: Session,
        *,
        assignment_id: uuid.UUID,
        intermediary_id: uuid.UUID,
        new_worker_id: uuid.UUID,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Assignment:
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            old = self._get_assignment(db, assignment_id)
            if old.state != AssignmentState.active.value:
                raise InvalidInput("Assignment is no longer active.", state=old.state)
            if old.worker_id == new_worker_id:
                raise InvalidInput("Project is already assigned to this worker.")

            project = load_project(db, old.project_id, for_update=True)
            require_intermediary(project, intermediary_id)
            self._ensure_worker_role(db, new_worker_id)

            old.state = AssignmentState.reassigned.value
            old.end_reason = reason
            old.ended_at = now
            # Close the old row before the new one exists (one active per project).
            db.flush()

            self._claim_slot(db, intermediary_id=intermediary_id, worker_id=new_worker_id)
            self._release_slot(db, worker_id=old.worker_id)

            new = Assignment(
                project_id=project.id,
                worker_id=new_worker_id,
                assigned_by=intermediary_id,
                assigned_at=now,
            )
            db.add(new)
            db.flush()
            old.replaced_by_id = new.id

            project.worker_id = new_worker_id
            project.progress_percentage = 0
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.reassign,
                actor_id=intermediary_id,
                actor_role=ParticipantRole.INTERMEDIARY.value,
                notes=reason,
                metadata={
                    "from_worker_id": str(old.worker_id),
                    "to_worker_id": str(new_worker_id),
                    "assignment_id": str(new.id),
                },
                now=now,
            )

            payload = {"project_id": str(project.id), "assignment_id": str(new.id), "reason": reason}
            queue_notification(db, recipient_id=old.worker_id, event_type="assignment.reassigned_away", payload=payload)
            queue_notification(db, recipient_id=new_worker_id, event_type="assignment.created", payload=payload)

        db.refresh(new)
        return new

    def release_for_project_in_tx(self, db: Session, project: Project, *, now: datetime, reason: str) -> None:
        """
        Close the live assignment and give its slot back. Called when the
        project completes, auto-approves or is cancelled.
        """
        a = self.active_assignment(db, project_id=project.id)
        if a is None:
            return
        a.state = AssignmentState.released.value
        a.end_reason = reason
        a.ended_at = now
        self._release_slot(db, worker_id=a.worker_id)
        db.flush()

    # ─────────────────────────────────────────────
    # Blacklist
    # ─────────────────────────────────────────────

    def blacklist_worker(
        self,
        db: Session,
        *,
        intermediary_id: uuid.UUID,
        worker_id: uuid.UUID,
        reason: Optional[str] = None,
    ) -> BlacklistEntry:
        self._ensure_worker_role(db, worker_id)
        existing = db.execute(
            select(BlacklistEntry).where(
                BlacklistEntry.intermediary_id == intermediary_id,
                BlacklistEntry.worker_id == worker_id,
            )
        ).scalar_one_or_none()
        if existing:
            return existing

        row = BlacklistEntry(intermediary_id=intermediary_id, worker_id=worker_id, reason=reason)
        db.add(row)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            return db.execute(
                select(BlacklistEntry).where(
                    BlacklistEntry.intermediary_id == intermediary_id,
                    BlacklistEntry.worker_id == worker_id,
                )
            ).scalar_one()
        db.refresh(row)
        logger.info(
            "worker blacklisted",
            extra={"intermediary_id": str(intermediary_id), "worker_id": str(worker_id)},
        )
        return row

    def unblacklist_worker(self, db: Session, *, intermediary_id: uuid.UUID, worker_id: uuid.UUID) -> bool:
        row = db.execute(
            select(BlacklistEntry).where(
                BlacklistEntry.intermediary_id == intermediary_id,
                BlacklistEntry.worker_id == worker_id,
            )
        ).scalar_one_or_none()
        if not row:
            return False
        db.delete(row)
        db.commit()
        return True

    def list_blacklist(self, db: Session, *, intermediary_id: uuid.UUID) -> List[BlacklistEntry]:
        return list(
            db.execute(
                select(BlacklistEntry)
                .where(BlacklistEntry.intermediary_id == intermediary_id)
                .order_by(BlacklistEntry.created_at.asc())
            )
            .scalars()
            .all()
        )
