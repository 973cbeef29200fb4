# assignx/api/v1/qc.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep, timer_port_dep
from assignx.db.session import get_db
from assignx.models.enums import DeliverableKind
from assignx.policies.rbac import (
    ACTION_APPROVE,
    ACTION_DELIVER,
    ACTION_DO_WORK,
    ACTION_QC,
    ACTION_REQUEST_REVISION,
    Principal,
    require_action,
)
from assignx.schemas.projects import ProjectOut
from assignx.schemas.qc import DeliverableOut, DeliverableRefs, QCDecisionRequest, RevisionOut, RevisionRequest
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.projects_service import ProjectsService
from assignx.services.qc_service import QCService

router = APIRouter(prefix="/projects/{project_id}")


def _audit(db: Session, request: Request, principal: Principal, project_id: uuid.UUID, action: str, summary: dict):
    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=project_id,
        action=action,
        payload_summary=summary,
    )


@router.post("/start", response_model=ProjectOut)
def start_work(
    project_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_DO_WORK)
    p = QCService(notifier=notifier).start_work(db, project_id=project_id, worker_id=principal.id)
    _audit(db, request, principal, p.id, AuditAction.WORK_STARTED, {"status": p.status})
    return p


@router.post("/qc/submit", response_model=ProjectOut)
def submit_for_qc(
    project_id: uuid.UUID,
    req: DeliverableRefs,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_DO_WORK)
    p = QCService(notifier=notifier).submit_for_qc(
        db, project_id=project_id, worker_id=principal.id, deliverable_refs=req.deliverable_refs, notes=req.notes
    )
    _audit(db, request, principal, p.id, AuditAction.SUBMITTED_FOR_QC, {"deliverables": len(req.deliverable_refs)})
    return p


@router.post("/qc/decision", response_model=ProjectOut)
def record_qc_decision(
    project_id: uuid.UUID,
    req: QCDecisionRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_QC)
    p = QCService(notifier=notifier).record_qc_decision(
        db, project_id=project_id, intermediary_id=principal.id, decision=req.decision, notes=req.notes
    )
    _audit(db, request, principal, p.id, AuditAction.QC_DECISION, {"decision": req.decision.value, "status": p.status})
    return p


@router.post("/deliver", response_model=ProjectOut)
def deliver(
    project_id: uuid.UUID,
    req: DeliverableRefs,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    timer_port=Depends(timer_port_dep),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_DELIVER)
    p = QCService(timer_port=timer_port, notifier=notifier).deliver(
        db, project_id=project_id, intermediary_id=principal.id, deliverable_refs=req.deliverable_refs
    )
    _audit(db, request, principal, p.id, AuditAction.DELIVERED, {"deliverables": len(req.deliverable_refs)})
    return p


@router.post("/approve", response_model=ProjectOut)
def approve(
    project_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    timer_port=Depends(timer_port_dep),
    notifier=Depends(notifier_dep),
):
    """Client accepts the delivery; payouts are released in the same commit."""
    require_action(principal, ACTION_APPROVE)
    p = QCService(timer_port=timer_port, notifier=notifier).approve(db, project_id=project_id, client_id=principal.id)
    _audit(db, request, principal, p.id, AuditAction.CLIENT_APPROVED, {"worker_payout": p.worker_payout})
    return p


@router.post("/revisions", response_model=RevisionOut, status_code=201)
def request_revision(
    project_id: uuid.UUID,
    req: RevisionRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    timer_port=Depends(timer_port_dep),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REQUEST_REVISION)
    r = QCService(timer_port=timer_port, notifier=notifier).request_revision(
        db, project_id=project_id, requester_id=principal.id, notes=req.notes
    )
    _audit(db, request, principal, project_id, AuditAction.REVISION_REQUESTED, {"revision_number": r.revision_number})
    return r


@router.get("/revisions", response_model=List[RevisionOut])
def list_revisions(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    return QCService().list_revisions(db, project_id=project_id)


@router.post("/revisions/start", response_model=ProjectOut)
def start_revision(
    project_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_DO_WORK)
    p = QCService(notifier=notifier).start_revision(db, project_id=project_id, worker_id=principal.id)
    _audit(db, request, principal, p.id, AuditAction.REVISION_STARTED, {"revision_count": p.revision_count})
    return p


@router.get("/deliverables", response_model=List[DeliverableOut])
def list_deliverables(
    project_id: uuid.UUID,
    kind: Optional[DeliverableKind] = Query(default=None),
    current_only: bool = Query(default=False),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    return QCService().list_deliverables(db, project_id=project_id, kind=kind, current_only=current_only)
