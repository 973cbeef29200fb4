# assignx/api/v1/assignments.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep
from assignx.db.session import get_db
from assignx.policies.rbac import (
    ACTION_ASSIGN,
    ACTION_MANAGE_BLACKLIST,
    ACTION_RESPOND_ASSIGNMENT,
    ACTION_SET_AVAILABILITY,
    Principal,
    require_action,
)
from assignx.schemas.assignments import (
    AssignmentOut,
    AssignRequest,
    AvailabilityUpdate,
    BlacklistOut,
    BlacklistRequest,
    DeclineRequest,
    ReassignRequest,
    WorkerProfileOut,
)
from assignx.services.assignment_service import AssignmentService
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.projects_service import ProjectsService

router = APIRouter()


@router.post("/projects/{project_id}/assignments", response_model=AssignmentOut, status_code=201)
def assign_worker(
    project_id: uuid.UUID,
    req: AssignRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_ASSIGN)
    a = AssignmentService(notifier=notifier).assign(
        db, project_id=project_id, intermediary_id=principal.id, worker_id=req.worker_id
    )

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=project_id,
        action=AuditAction.WORKER_ASSIGNED,
        payload_summary={"worker_id": str(req.worker_id)},
        ref_id=str(a.id),
    )
    return a


@router.get("/projects/{project_id}/assignments", response_model=List[AssignmentOut])
def list_assignments(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    return AssignmentService().list_for_project(db, project_id=project_id)


@router.post("/assignments/{assignment_id}/decline", response_model=AssignmentOut)
def decline_assignment(
    assignment_id: uuid.UUID,
    req: DeclineRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_RESPOND_ASSIGNMENT)
    a = AssignmentService(notifier=notifier).decline(
        db, assignment_id=assignment_id, worker_id=principal.id, reason=req.reason
    )

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=a.project_id,
        action=AuditAction.ASSIGNMENT_DECLINED,
        payload_summary={"reason": req.reason},
        ref_id=str(a.id),
    )
    return a


@router.post("/assignments/{assignment_id}/reassign", response_model=AssignmentOut, status_code=201)
def reassign_worker(
    assignment_id: uuid.UUID,
    req: ReassignRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_ASSIGN)
    a = AssignmentService(notifier=notifier).reassign(
        db,
        assignment_id=assignment_id,
        intermediary_id=principal.id,
        new_worker_id=req.new_worker_id,
        reason=req.reason,
    )

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=a.project_id,
        action=AuditAction.WORKER_REASSIGNED,
        payload_summary={"previous_assignment_id": str(assignment_id), "worker_id": str(req.new_worker_id)},
        ref_id=str(a.id),
    )
    return a


# ─────────────────────────────────────────────
# Worker self-service
# ─────────────────────────────────────────────


@router.get("/workers/me", response_model=WorkerProfileOut)
def get_my_profile(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_SET_AVAILABILITY)
    return AssignmentService().get_worker_profile(db, worker_id=principal.id)


@router.put("/workers/me/availability", response_model=WorkerProfileOut)
def set_my_availability(
    req: AvailabilityUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_SET_AVAILABILITY)
    return AssignmentService().set_availability(
        db,
        worker_id=principal.id,
        is_available=req.is_available,
        max_concurrent_projects=req.max_concurrent_projects,
    )


# ─────────────────────────────────────────────
# Intermediary blacklist
# ─────────────────────────────────────────────


@router.post("/blacklist", response_model=BlacklistOut, status_code=201)
def add_to_blacklist(
    req: BlacklistRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_MANAGE_BLACKLIST)
    row = AssignmentService().blacklist_worker(
        db, intermediary_id=principal.id, worker_id=req.worker_id, reason=req.reason
    )

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=None,
        action=AuditAction.WORKER_BLACKLISTED,
        payload_summary={"worker_id": str(req.worker_id)},
    )
    return row


@router.get("/blacklist", response_model=List[BlacklistOut])
def list_blacklist(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_MANAGE_BLACKLIST)
    return AssignmentService().list_blacklist(db, intermediary_id=principal.id)


@router.delete("/blacklist/{worker_id}")
def remove_from_blacklist(
    worker_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_MANAGE_BLACKLIST)
    if not AssignmentService().unblacklist_worker(db, intermediary_id=principal.id, worker_id=worker_id):
        raise HTTPException(status_code=404, detail="Worker is not on your blacklist.")

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=None,
        action=AuditAction.WORKER_UNBLACKLISTED,
        payload_summary={"worker_id": str(worker_id)},
    )
    return {"status": "removed", "worker_id": str(worker_id)}
