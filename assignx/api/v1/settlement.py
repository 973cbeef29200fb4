# assignx/api/v1/settlement.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep
from assignx.core.deps_idempotency import idempotency_guard, remember_response, replay_or_none
from assignx.core.errors import AlreadySettled
from assignx.db.session import get_db
from assignx.models.enums import LedgerOwnerRole, ParticipantRole
from assignx.policies.rbac import ACTION_REFUND, ACTION_SETTLE, Principal, require_action
from assignx.schemas.ledger import LedgerEntryOut, LedgerOut, LedgerVerifyOut, RefundRequest, WalletOut
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.ledger_service import LedgerService
from assignx.services.projects_service import ProjectsService
from assignx.services.settlement_service import SettlementService

router = APIRouter()


def _entries_json(entries) -> list:
    return [LedgerEntryOut.model_validate(e).model_dump(mode="json") for e in entries]


def _already_settled(e: AlreadySettled) -> JSONResponse:
    body = e.to_dict()
    body["entries"] = _entries_json(e.existing or [])
    return JSONResponse(status_code=e.status_code, content=body)


@router.post("/projects/{project_id}/settlement", dependencies=[Depends(idempotency_guard)])
def settle_project(
    project_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    """
    Manual release for an approved project. Approval already settles, so
    this mostly answers AlreadySettled with the original entries.
    """
    require_action(principal, ACTION_SETTLE)

    replay = replay_or_none(request)
    if replay is not None:
        return replay

    try:
        entries = SettlementService(notifier=notifier).settle(db, project_id=project_id)
    except AlreadySettled as e:
        return _already_settled(e)

    body = {"project_id": str(project_id), "entries": _entries_json(entries)}
    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=project_id,
        action=AuditAction.SETTLEMENT_RELEASED,
        payload_summary={"entries": len(entries)},
    )
    remember_response(db, request, body)
    return body


@router.post("/projects/{project_id}/refund", dependencies=[Depends(idempotency_guard)])
def refund_project(
    project_id: uuid.UUID,
    req: RefundRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REFUND)
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)

    replay = replay_or_none(request)
    if replay is not None:
        return replay

    try:
        entries = SettlementService(notifier=notifier).refund(
            db,
            project_id=project_id,
            actor_id=principal.id,
            actor_role=principal.role.value,
            amount=req.amount,
        )
    except AlreadySettled as e:
        return _already_settled(e)

    body = {"project_id": str(project_id), "entries": _entries_json(entries)}
    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=project_id,
        action=AuditAction.REFUND_ISSUED,
        payload_summary={"amount": entries[0].amount if entries else 0},
    )
    remember_response(db, request, body)
    return body


@router.get("/projects/{project_id}/ledger", response_model=LedgerOut)
def get_project_ledger(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    ledger = LedgerService()
    return LedgerOut(
        project_id=project_id,
        balance=ledger.project_balance(db, project_id=project_id),
        entries=ledger.list_entries(db, project_id=project_id),
    )


@router.get("/projects/{project_id}/ledger/verify", response_model=LedgerVerifyOut)
def verify_project_ledger(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    ledger = LedgerService()
    return LedgerVerifyOut(
        project_id=project_id,
        valid=ledger.verify_chain(db, project_id=project_id),
        entries=len(ledger.list_entries(db, project_id=project_id)),
    )


@router.get("/wallet", response_model=WalletOut)
def get_wallet(
    platform: bool = Query(default=False, description="admin only: platform earnings instead of your own"),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    owner_id: Optional[uuid.UUID] = principal.id
    if platform or principal.role == ParticipantRole.ADMIN:
        require_action(principal, ACTION_SETTLE)
        role, owner_id = LedgerOwnerRole.PLATFORM, None
    else:
        role = LedgerOwnerRole(principal.role.value)
    return LedgerService().owner_balance(db, owner_role=role, owner_id=owner_id)
