# assignx/services/projects_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.errors import ConcurrentModification, IllegalTransition, InvalidInput, NotFound, NotPermitted
from assignx.core.status_graph import STATUS_CATEGORIES, TERMINAL_STATUSES
from assignx.models.enums import (
    LifecycleEvent,
    ParticipantRole,
    ProjectStatus,
    ServiceType,
    StatusCategory,
    UrgencyTier,
)
from assignx.models.participant import Participant
from assignx.models.project import Project
from assignx.policies.projects_policy import can_cancel_project, can_view_project, require_worker
from assignx.policies.rbac import Principal
from assignx.services.assignment_service import AssignmentService
from assignx.services.lifecycle_service import LifecycleService, load_project
from assignx.services.notification_service import NotificationDispatcher
from assignx.services.unit_of_work import unit_of_work

logger = logging.getLogger(__name__)

PROJECT_NUMBER_PREFIX = "AX-"
PROJECT_NUMBER_ATTEMPTS = 5

_OPEN_STATUSES = [s.value for s in ProjectStatus if s not in TERMINAL_STATUSES]


def format_project_number(n: int) -> str:
    return f"{PROJECT_NUMBER_PREFIX}{n:05d}"


class ProjectsService:
    def __init__(self, notifier: Optional[NotificationDispatcher] = None):
        self.notifier = notifier
        self.lifecycle = LifecycleService()
        self.assignments = AssignmentService(notifier=notifier)

    # ─────────────────────────────────────────────
    # Helpers
    # ─────────────────────────────────────────────

    def _next_project_number(self, db: Session) -> str:
        last = db.execute(select(func.max(Project.project_number))).scalar_one_or_none()
        n = int(last[len(PROJECT_NUMBER_PREFIX):]) if last else 0
        return format_project_number(n + 1)

    def route_intermediary(self, db: Session) -> uuid.UUID:
        """
        Active intermediary supervising the fewest open projects; ties go
        to the longest-registered account.
        """
        load = (
            select(Project.intermediary_id.label("iid"), func.count(Project.id).label("open_count"))
            .where(Project.status.in_(_OPEN_STATUSES))
            .group_by(Project.intermediary_id)
            .subquery()
        )
        row = db.execute(
            select(Participant.id)
            .outerjoin(load, load.c.iid == Participant.id)
            .where(
                Participant.role == ParticipantRole.INTERMEDIARY.value,
                Participant.is_active.is_(True),
            )
            .order_by(func.coalesce(load.c.open_count, 0).asc(), Participant.created_at.asc(), Participant.id.asc())
            .limit(1)
        ).first()
        if row is None:
            raise NotFound("No active intermediary is available to take the project.")
        return row[0]

    def _require_participant(self, db: Session, participant_id: uuid.UUID, role: ParticipantRole) -> Participant:
        p = db.execute(select(Participant).where(Participant.id == participant_id)).scalar_one_or_none()
        if not p:
            raise NotFound(f"{role.value.title()} not found.", participant_id=str(participant_id))
        if p.role != role.value:
            raise InvalidInput(f"Participant is not a {role.value.lower()}.", participant_id=str(participant_id))
        return p

    # ─────────────────────────────────────────────
    # Public API
    # ─────────────────────────────────────────────

    def create_project(
        self,
        db: Session,
        *,
        client_id: uuid.UUID,
        title: str,
        service_type: ServiceType,
        deadline: datetime,
        urgency: UrgencyTier = UrgencyTier.standard,
        subject: Optional[str] = None,
        word_count: Optional[int] = None,
        instructions: Optional[str] = None,
        intermediary_id: Optional[uuid.UUID] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """Creates the project and submits it in one step (draft → submitted)."""
        now = now or utcnow()
        if not title or not title.strip():
            raise InvalidInput("title is required.")
        if word_count is not None and word_count < 0:
            raise InvalidInput("word_count cannot be negative.")

        for attempt in range(1, PROJECT_NUMBER_ATTEMPTS + 1):
            try:
                p = self._create_in_tx(
                    db,
                    client_id=client_id,
                    title=title,
                    service_type=service_type,
                    deadline=deadline,
                    urgency=urgency,
                    subject=subject,
                    word_count=word_count,
                    instructions=instructions,
                    intermediary_id=intermediary_id,
                    now=now,
                )
                break
            except IntegrityError:
                # Another create took the same number first.
                logger.warning("project number collision", extra={"attempt": attempt})
        else:
            raise ConcurrentModification("Could not allocate a project number; retry.")

        logger.info("project created", extra={"project_id": str(p.id), "project_number": p.project_number})
        db.refresh(p)
        return p

    def _create_in_tx(
        self,
        db: Session,
        *,
        client_id: uuid.UUID,
        title: str,
        service_type: ServiceType,
        deadline: datetime,
        urgency: UrgencyTier,
        subject: Optional[str],
        word_count: Optional[int],
        instructions: Optional[str],
        intermediary_id: Optional[uuid.UUID],
        now: datetime,
    ) -> Project:
        with unit_of_work(db, self.notifier):
            self._require_participant(db, client_id, ParticipantRole.CLIENT)
            if intermediary_id is None:
                intermediary_id = self.route_intermediary(db)
            else:
                self._require_participant(db, intermediary_id, ParticipantRole.INTERMEDIARY)

            p = Project(
                project_number=self._next_project_number(db),
                client_id=client_id,
                intermediary_id=intermediary_id,
                title=title.strip(),
                service_type=ServiceType(service_type).value,
                subject=subject,
                word_count=word_count,
                deadline=deadline,
                urgency=UrgencyTier(urgency).value,
                instructions=instructions,
                status=ProjectStatus.draft.value,
                created_at=now,
                updated_at=now,
            )
            db.add(p)
            db.flush()

            self.lifecycle.record_creation(db, p, actor_id=client_id, actor_role=ParticipantRole.CLIENT.value, now=now)
            # The submit transition notifies the routed intermediary.
            self.lifecycle.apply(
                db, p, LifecycleEvent.submit, actor_id=client_id, actor_role=ParticipantRole.CLIENT.value, now=now
            )
        return p

    def get(self, db: Session, *, project_id: uuid.UUID) -> Project:
        return load_project(db, project_id)

    def get_for_participant(self, db: Session, *, principal: Principal, project_id: uuid.UUID) -> Project:
        p = load_project(db, project_id)
        if not can_view_project(principal, p):
            # Same answer as a missing project so other projects' ids stay hidden.
            raise NotFound("Project not found.", project_id=str(project_id))
        return p

    def list_for_participant(
        self,
        db: Session,
        *,
        principal: Principal,
        category: Optional[StatusCategory] = None,
        limit: int = 200,
    ) -> List[Project]:
        stmt = select(Project)

        if principal.role == ParticipantRole.CLIENT:
            stmt = stmt.where(Project.client_id == principal.id)
        elif principal.role == ParticipantRole.INTERMEDIARY:
            stmt = stmt.where(Project.intermediary_id == principal.id)
        elif principal.role == ParticipantRole.WORKER:
            stmt = stmt.where(Project.worker_id == principal.id)
        elif principal.role != ParticipantRole.ADMIN:
            raise NotPermitted("Role cannot list projects.")

        if category is not None:
            members = STATUS_CATEGORIES[StatusCategory(category)]
            stmt = stmt.where(Project.status.in_([s.value for s in members]))

        stmt = stmt.order_by(Project.created_at.desc(), Project.project_number.desc()).limit(limit)
        return list(db.execute(stmt).scalars().all())

    def update_progress(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        worker_id: uuid.UUID,
        percent: int,
        now: Optional[datetime] = None,
    ) -> Project:
        """Worker-reported progress; never changes status."""
        if isinstance(percent, bool) or not isinstance(percent, int) or not 0 <= percent <= 100:
            raise InvalidInput("Progress must be an integer between 0 and 100.", percent=percent)

        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            require_worker(project, worker_id)
            if project.status_enum not in {ProjectStatus.in_progress, ProjectStatus.in_revision}:
                raise IllegalTransition(
                    project.status,
                    "update_progress",
                    detail="Progress can only be reported while work is in progress.",
                )
            project.progress_percentage = percent
            db.flush()

        db.refresh(project)
        return project

    def cancel(
        self,
        db: Session,
        *,
        project_id: uuid.UUID,
        principal: Principal,
        reason: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Project:
        """
        payment_pending..in_progress → cancelled. The worker's slot is given
        back; captured money stays put until `refund`.
        """
        now = now or utcnow()
        with unit_of_work(db, self.notifier):
            project = load_project(db, project_id, for_update=True)
            if not can_cancel_project(principal, project):
                raise NotPermitted("Only the client, the intermediary or an admin may cancel.")

            cancelled_from = project.status
            self.lifecycle.apply(
                db,
                project,
                LifecycleEvent.cancel,
                actor_id=principal.id,
                actor_role=principal.role.value,
                notes=reason,
                now=now,
            )
            project.cancelled_from_status = cancelled_from
            project.cancellation_reason = reason
            self.assignments.release_for_project_in_tx(db, project, now=now, reason="cancelled")

        logger.info(
            "project cancelled",
            extra={"project_id": str(project_id), "cancelled_from": cancelled_from, "is_paid": project.is_paid},
        )
        db.refresh(project)
        return project

    def count_by_category(self, db: Session, *, principal: Principal) -> dict:
        rows = self.list_for_participant(db, principal=principal, limit=10_000)
        counts = {c.value: 0 for c in StatusCategory}
        for p in rows:
            for cat, members in STATUS_CATEGORIES.items():
                if p.status_enum in members:
                    counts[cat.value] += 1
        return counts
