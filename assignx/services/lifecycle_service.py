# assignx/services/lifecycle_service.py
from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from assignx.core.clock import utcnow
from assignx.core.errors import NotFound
from assignx.core.status_graph import transition
from assignx.models.enums import LifecycleEvent, ProjectStatus
from assignx.models.project import Project
from assignx.models.status_history import ProjectStatusHistory
from assignx.services.notification_service import queue_notification

logger = logging.getLogger(__name__)

# Column stamped the first time a project enters the status.
_TIMESTAMP_COLUMNS: Dict[ProjectStatus, str] = {
    ProjectStatus.quoted: "quoted_at",
    ProjectStatus.paid: "paid_at",
    ProjectStatus.assigned: "assigned_at",
    ProjectStatus.delivered: "delivered_at",
    ProjectStatus.completed: "completed_at",
    ProjectStatus.auto_approved: "completed_at",
    ProjectStatus.cancelled: "cancelled_at",
    ProjectStatus.refunded: "refunded_at",
}

# Statuses that always overwrite their timestamp (re-quote, re-assign, re-deliver).
_RESTAMP = {ProjectStatus.quoted, ProjectStatus.assigned, ProjectStatus.delivered}


def load_project(db: Session, project_id: uuid.UUID, *, for_update: bool = False) -> Project:
    stmt = select(Project).where(Project.id == project_id)
    if for_update:
        stmt = stmt.with_for_update()
    p = db.execute(stmt).scalar_one_or_none()
    if not p:
        raise NotFound("Project not found.", project_id=str(project_id))
    return p


class LifecycleService:
    """
    The only code path that writes `Project.status`.

    Every call validates the event against the transition table, stamps the
    lifecycle timestamp, appends a history row and queues a notification for
    the participants on the project. Nothing is committed here: the calling
    service owns the unit of work.
    """

    def apply(
        self,
        db: Session,
        project: Project,
        event: LifecycleEvent,
        *,
        actor_id: Optional[uuid.UUID],
        actor_role: Optional[str],
        notes: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> ProjectStatus:
        now = now or utcnow()
        current = project.status_enum
        nxt = transition(current, event)

        project.status = nxt.value
        project.status_updated_at = now

        col = _TIMESTAMP_COLUMNS.get(nxt)
        if col and (nxt in _RESTAMP or getattr(project, col) is None):
            setattr(project, col, now)

        db.add(
            ProjectStatusHistory(
                project_id=project.id,
                seq=self._next_seq(db, project.id),
                from_status=current.value,
                to_status=nxt.value,
                event=LifecycleEvent(event).value,
                actor_id=actor_id,
                actor_role=actor_role,
                notes=notes,
                metadata_json=metadata or {},
                created_at=now,
            )
        )
        db.flush()

        logger.info(
            "project transition",
            extra={
                "project_id": str(project.id),
                "project_number": project.project_number,
                "from_status": current.value,
                "to_status": nxt.value,
                "event": LifecycleEvent(event).value,
                "actor_id": str(actor_id) if actor_id else None,
            },
        )

        payload = {
            "project_id": str(project.id),
            "project_number": project.project_number,
            "from_status": current.value,
            "to_status": nxt.value,
            "event": LifecycleEvent(event).value,
        }
        for recipient in {project.client_id, project.intermediary_id, project.worker_id}:
            if recipient is not None and recipient != actor_id:
                queue_notification(
                    db, recipient_id=recipient, event_type=f"project.{nxt.value}", payload=payload
                )

        return nxt

    def record_creation(
        self,
        db: Session,
        project: Project,
        *,
        actor_id: uuid.UUID,
        actor_role: str,
        now: Optional[datetime] = None,
    ) -> None:
        """First history row: the project exists in `draft` before `submit`."""
        db.add(
            ProjectStatusHistory(
                project_id=project.id,
                seq=self._next_seq(db, project.id),
                from_status=None,
                to_status=ProjectStatus.draft.value,
                event="create",
                actor_id=actor_id,
                actor_role=actor_role,
                metadata_json={},
                created_at=now or utcnow(),
            )
        )
        db.flush()

    def history(self, db: Session, *, project_id: uuid.UUID) -> List[ProjectStatusHistory]:
        return list(
            db.execute(
                select(ProjectStatusHistory)
                .where(ProjectStatusHistory.project_id == project_id)
                .order_by(ProjectStatusHistory.seq.asc())
            )
            .scalars()
            .all()
        )

    def _next_seq(self, db: Session, project_id: uuid.UUID) -> int:
        last = db.execute(
            select(func.max(ProjectStatusHistory.seq)).where(ProjectStatusHistory.project_id == project_id)
        ).scalar_one_or_none()
        return (last or 0) + 1
