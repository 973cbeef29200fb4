# assignx/api/v1/payouts.py
from __future__ import annotations

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.config import get_settings
from assignx.core.deps import notifier_dep
from assignx.core.errors import NotFound
from assignx.db.session import get_db
from assignx.models.enums import LedgerOwnerRole, PayoutStatus
from assignx.policies.rbac import (
    ACTION_REQUEST_PAYOUT,
    ACTION_REVIEW_PAYOUT,
    Principal,
    allowed_actions,
    require_action,
)
from assignx.schemas.ledger import LedgerEntryOut
from assignx.schemas.payouts import PayoutBalanceOut, PayoutComplete, PayoutCreate, PayoutFail, PayoutOut
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.payout_service import PayoutService

router = APIRouter(prefix="/payouts")


def _audit(db: Session, request: Request, principal: Principal, action: str, row, **summary) -> None:
    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=None,
        action=action,
        payload_summary={"amount": row.amount, "status": row.status, **summary},
        ref_id=str(row.id),
    )


@router.post("", response_model=PayoutOut, status_code=201)
def request_payout(
    req: PayoutCreate,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REQUEST_PAYOUT)
    row = PayoutService(notifier=notifier).request_payout(
        db,
        requester_id=principal.id,
        requester_role=principal.role,
        amount=req.amount,
        method=req.method,
        destination_ref=req.destination_ref,
    )
    _audit(db, request, principal, AuditAction.PAYOUT_REQUESTED, row, method=row.method)
    return row


@router.get("", response_model=List[PayoutOut])
def list_payouts(
    status: Optional[PayoutStatus] = Query(default=None),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    """Own requests; admins see everyone's."""
    svc = PayoutService()
    if ACTION_REVIEW_PAYOUT in allowed_actions(principal.role):
        return svc.list_requests(db, status=status)
    require_action(principal, ACTION_REQUEST_PAYOUT)
    return svc.list_requests(db, requester_id=principal.id, status=status)


@router.get("/balance", response_model=PayoutBalanceOut)
def payout_balance(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_REQUEST_PAYOUT)
    svc = PayoutService()
    wallet = svc.available_balance(db, owner_role=LedgerOwnerRole(principal.role.value), owner_id=principal.id)
    settings = get_settings()
    return PayoutBalanceOut(
        **wallet,
        minimum=settings.payout_minimum_paise,
        fee_bps=settings.payout_processing_fee_bps,
    )


@router.get("/{payout_id}", response_model=PayoutOut)
def get_payout(
    payout_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    row = PayoutService().get(db, payout_id=payout_id)
    if row.requester_id != principal.id and ACTION_REVIEW_PAYOUT not in allowed_actions(principal.role):
        raise NotFound("Payout request not found.", payout_id=str(payout_id))
    return row


@router.get("/{payout_id}/ledger", response_model=List[LedgerEntryOut])
def get_payout_ledger(
    payout_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    svc = PayoutService()
    row = svc.get(db, payout_id=payout_id)
    if row.requester_id != principal.id and ACTION_REVIEW_PAYOUT not in allowed_actions(principal.role):
        raise NotFound("Payout request not found.", payout_id=str(payout_id))
    return svc.ledger_entries(db, payout_id=payout_id)


@router.post("/{payout_id}/cancel", response_model=PayoutOut)
def cancel_payout(
    payout_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REQUEST_PAYOUT)
    row = PayoutService(notifier=notifier).cancel(db, payout_id=payout_id, requester_id=principal.id)
    _audit(db, request, principal, AuditAction.PAYOUT_CANCELLED, row)
    return row


@router.post("/{payout_id}/approve", response_model=PayoutOut)
def approve_payout(
    payout_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REVIEW_PAYOUT)
    row = PayoutService(notifier=notifier).approve(db, payout_id=payout_id, admin_id=principal.id)
    _audit(db, request, principal, AuditAction.PAYOUT_APPROVED, row)
    return row


@router.post("/{payout_id}/complete", response_model=PayoutOut)
def complete_payout(
    payout_id: uuid.UUID,
    req: PayoutComplete,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REVIEW_PAYOUT)
    row = PayoutService(notifier=notifier).complete(
        db, payout_id=payout_id, admin_id=principal.id, gateway_reference=req.gateway_reference
    )
    _audit(db, request, principal, AuditAction.PAYOUT_COMPLETED, row, net_amount=row.net_amount)
    return row


@router.post("/{payout_id}/fail", response_model=PayoutOut)
def fail_payout(
    payout_id: uuid.UUID,
    req: PayoutFail,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_REVIEW_PAYOUT)
    row = PayoutService(notifier=notifier).fail(db, payout_id=payout_id, admin_id=principal.id, reason=req.reason)
    _audit(db, request, principal, AuditAction.PAYOUT_FAILED, row)
    return row
