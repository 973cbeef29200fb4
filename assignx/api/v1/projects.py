# assignx/api/v1/projects.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep
from assignx.db.session import get_db
from assignx.models.enums import StatusCategory
from assignx.policies.rbac import (
    ACTION_CANCEL_PROJECT,
    ACTION_CREATE_PROJECT,
    ACTION_DO_WORK,
    ACTION_VIEW_AUDIT,
    Principal,
    require_action,
)
from assignx.schemas.projects import CancelRequest, ProjectCreate, ProjectOut, ProgressUpdate, StatusHistoryOut
from assignx.services import audit_service
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.lifecycle_service import LifecycleService
from assignx.services.projects_service import ProjectsService

router = APIRouter(prefix="/projects")


@router.post("", response_model=ProjectOut, status_code=201)
def create_project(
    req: ProjectCreate,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_CREATE_PROJECT)

    p = ProjectsService(notifier=notifier).create_project(
        db,
        client_id=principal.id,
        title=req.title,
        service_type=req.service_type,
        subject=req.subject,
        word_count=req.word_count,
        deadline=req.deadline,
        urgency=req.urgency,
        instructions=req.instructions,
        intermediary_id=req.intermediary_id,
    )

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=p.id,
        action=AuditAction.PROJECT_CREATED,
        payload_summary={"project_number": p.project_number, "service_type": p.service_type},
        ref_id=p.project_number,
    )
    return p


@router.get("", response_model=List[ProjectOut])
def list_projects(
    category: Optional[StatusCategory] = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ProjectsService().list_for_participant(db, principal=principal, category=category, limit=limit)


@router.get("/counts")
def project_counts(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Dashboard tab counts (active / completed / cancelled...)."""
    return ProjectsService().count_by_category(db, principal=principal)


@router.get("/{project_id}", response_model=ProjectOut)
def get_project(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    return ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)


@router.get("/{project_id}/history", response_model=List[StatusHistoryOut])
def get_history(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    return LifecycleService().history(db, project_id=project_id)


@router.post("/{project_id}/progress", response_model=ProjectOut)
def update_progress(
    project_id: uuid.UUID,
    req: ProgressUpdate,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_DO_WORK)
    p = ProjectsService().update_progress(db, project_id=project_id, worker_id=principal.id, percent=req.percent)

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=p.id,
        action=AuditAction.PROGRESS_UPDATED,
        payload_summary={"percent": req.percent},
    )
    return p


@router.post("/{project_id}/cancel", response_model=ProjectOut)
def cancel_project(
    project_id: uuid.UUID,
    req: CancelRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_CANCEL_PROJECT)
    p = ProjectsService(notifier=notifier).cancel(db, project_id=project_id, principal=principal, reason=req.reason)

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=p.id,
        action=AuditAction.PROJECT_CANCELLED,
        payload_summary={"cancelled_from": p.cancelled_from_status, "is_paid": bool(p.is_paid)},
    )
    return p


@router.get("/{project_id}/audit")
def get_project_audit(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_VIEW_AUDIT)
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)

    rows = audit_service.list_for_project(db, project_id=project_id)
    return [
        {
            "action": r.action,
            "status": r.status,
            "actorRole": r.actor_role,
            "route": r.route,
            "requestId": r.request_id,
            "payloadHash": r.payload_hash,
            "summary": r.payload_summary_json or {},
            "createdAtIso": r.created_at.isoformat() if r.created_at else None,
        }
        for r in rows
    ]
