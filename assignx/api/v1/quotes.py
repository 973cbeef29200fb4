# assignx/api/v1/quotes.py
from __future__ import annotations

import uuid
from typing import List

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep, payment_gateway_dep
from assignx.core.deps_idempotency import idempotency_guard, remember_response, replay_or_none
from assignx.db.session import get_db
from assignx.models.enums import UrgencyTier
from assignx.policies.rbac import (
    ACTION_MANAGE_QUOTE,
    ACTION_PAY,
    ACTION_RESPOND_QUOTE,
    Principal,
    require_action,
)
from assignx.schemas.projects import ProjectOut
from assignx.schemas.quotes import (
    PaymentCapture,
    PaymentOrderOut,
    PaymentOrderRequest,
    QuoteCreate,
    QuoteOut,
    QuoteReject,
    QuoteSuggestion,
    ReopenRequest,
)
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.distribution import suggest_quote
from assignx.services.payment_service import PaymentService
from assignx.services.projects_service import ProjectsService
from assignx.services.quote_service import QuoteService

router = APIRouter()


def _audit(db: Session, request: Request, principal: Principal, project_id: uuid.UUID, action: str, summary: dict, ref_id=None):
    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=project_id,
        action=action,
        payload_summary=summary,
        ref_id=ref_id,
    )


# ─────────────────────────────────────────────
# Quotes
# ─────────────────────────────────────────────


@router.get("/quotes/suggest", response_model=QuoteSuggestion)
def get_quote_suggestion(
    word_count: int = Query(..., ge=0),
    urgency: UrgencyTier = Query(default=UrgencyTier.standard),
    principal: Principal = Depends(get_current_principal),
):
    require_action(principal, ACTION_MANAGE_QUOTE)
    return QuoteSuggestion(word_count=word_count, urgency=urgency, suggested_amount=suggest_quote(word_count, urgency))


@router.post("/projects/{project_id}/analysis", response_model=ProjectOut)
def start_analysis(
    project_id: uuid.UUID,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_MANAGE_QUOTE)
    p = QuoteService(notifier=notifier).start_analysis(db, project_id=project_id, intermediary_id=principal.id)
    _audit(db, request, principal, p.id, AuditAction.ANALYSIS_STARTED, {"status": p.status})
    return p


@router.post("/projects/{project_id}/quotes", response_model=QuoteOut, status_code=201)
def issue_quote(
    project_id: uuid.UUID,
    req: QuoteCreate,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_MANAGE_QUOTE)
    q = QuoteService(notifier=notifier).issue_quote(
        db, project_id=project_id, intermediary_id=principal.id, amount=req.amount, notes=req.notes
    )
    _audit(db, request, principal, project_id, AuditAction.QUOTE_ISSUED, {"amount": q.amount}, ref_id=str(q.id))
    return q


@router.get("/projects/{project_id}/quotes", response_model=List[QuoteOut])
def list_quotes(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    return QuoteService().list_quotes(db, project_id=project_id)


@router.post("/projects/{project_id}/quotes/reopen", response_model=ProjectOut)
def reopen_quote(
    project_id: uuid.UUID,
    req: ReopenRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_MANAGE_QUOTE)
    p = QuoteService(notifier=notifier).reopen_quote(
        db, project_id=project_id, intermediary_id=principal.id, reason=req.reason
    )
    _audit(db, request, principal, p.id, AuditAction.QUOTE_REOPENED, {"reason": req.reason})
    return p


@router.post("/projects/{project_id}/quotes/{quote_id}/reject", response_model=QuoteOut)
def reject_quote(
    project_id: uuid.UUID,
    quote_id: uuid.UUID,
    req: QuoteReject,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_RESPOND_QUOTE)
    q = QuoteService(notifier=notifier).reject_quote(
        db, project_id=project_id, client_id=principal.id, quote_id=quote_id, reason=req.reason
    )
    _audit(db, request, principal, project_id, AuditAction.QUOTE_REJECTED, {"reason": req.reason}, ref_id=str(q.id))
    return q


# ─────────────────────────────────────────────
# Payment
# ─────────────────────────────────────────────


@router.post("/projects/{project_id}/payments/order", response_model=PaymentOrderOut)
def create_payment_order(
    project_id: uuid.UUID,
    req: PaymentOrderRequest,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway=Depends(payment_gateway_dep),
    notifier=Depends(notifier_dep),
):
    require_action(principal, ACTION_PAY)
    order = PaymentService(gateway=gateway, notifier=notifier).initiate_payment(
        db, project_id=project_id, client_id=principal.id, quote_id=req.quote_id
    )
    _audit(
        db,
        request,
        principal,
        project_id,
        AuditAction.PAYMENT_ORDER_CREATED,
        {"quote_id": order.quote_id, "amount": order.amount},
        ref_id=order.order_ref,
    )
    return order.as_dict()


@router.post("/projects/{project_id}/payments/capture", dependencies=[Depends(idempotency_guard)])
def capture_payment(
    project_id: uuid.UUID,
    req: PaymentCapture,
    request: Request,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    gateway=Depends(payment_gateway_dep),
    notifier=Depends(notifier_dep),
):
    """
    Verify the gateway callback and move the project to `paid`.

    Requires an Idempotency-Key header; a retried request with the same key
    and body gets the stored response back.
    """
    require_action(principal, ACTION_PAY)

    replay = replay_or_none(request)
    if replay is not None:
        return replay

    preview = PaymentService(gateway=gateway, notifier=notifier).capture_payment(
        db,
        project_id=project_id,
        quote_id=req.quote_id,
        payment_reference=req.payment_reference,
        order_ref=req.order_ref,
        signature=req.signature,
        actor_id=principal.id,
    )

    _audit(
        db,
        request,
        principal,
        project_id,
        AuditAction.PAYMENT_CAPTURED,
        {"quote_id": str(req.quote_id), "amount": preview["client_quote"]},
        ref_id=req.payment_reference,
    )
    remember_response(db, request, preview)
    return preview
