from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session
from starlette.requests import Request

from assignx.core.hashing import payload_hash
from assignx.models.audit_log import AuditLogRecord


class AuditAction:
    # Projects
    PROJECT_CREATED = "PROJECT_CREATED"
    PROJECT_CANCELLED = "PROJECT_CANCELLED"
    PROGRESS_UPDATED = "PROGRESS_UPDATED"

    # Quote / payment gate
    ANALYSIS_STARTED = "ANALYSIS_STARTED"
    QUOTE_ISSUED = "QUOTE_ISSUED"
    QUOTE_REOPENED = "QUOTE_REOPENED"
    QUOTE_REJECTED = "QUOTE_REJECTED"
    PAYMENT_ORDER_CREATED = "PAYMENT_ORDER_CREATED"
    PAYMENT_CAPTURED = "PAYMENT_CAPTURED"
    PAYMENT_VERIFICATION_FAILED = "PAYMENT_VERIFICATION_FAILED"

    # Assignment
    WORKER_ASSIGNED = "WORKER_ASSIGNED"
    ASSIGNMENT_DECLINED = "ASSIGNMENT_DECLINED"
    WORKER_REASSIGNED = "WORKER_REASSIGNED"
    WORKER_BLACKLISTED = "WORKER_BLACKLISTED"
    WORKER_UNBLACKLISTED = "WORKER_UNBLACKLISTED"

    # QC / delivery
    WORK_STARTED = "WORK_STARTED"
    SUBMITTED_FOR_QC = "SUBMITTED_FOR_QC"
    QC_DECISION = "QC_DECISION"
    DELIVERED = "DELIVERED"
    CLIENT_APPROVED = "CLIENT_APPROVED"
    REVISION_REQUESTED = "REVISION_REQUESTED"
    REVISION_STARTED = "REVISION_STARTED"

    # Money
    SETTLEMENT_RELEASED = "SETTLEMENT_RELEASED"
    REFUND_ISSUED = "REFUND_ISSUED"
    PAYOUT_REQUESTED = "PAYOUT_REQUESTED"
    PAYOUT_CANCELLED = "PAYOUT_CANCELLED"
    PAYOUT_APPROVED = "PAYOUT_APPROVED"
    PAYOUT_COMPLETED = "PAYOUT_COMPLETED"
    PAYOUT_FAILED = "PAYOUT_FAILED"

    # Timers
    TIMER_SWEEP = "TIMER_SWEEP"


def audit_event(
    db: Session,
    *,
    request: Optional[Request],
    actor_participant_id: str,
    actor_role: str,
    project_id: Optional[uuid.UUID],
    action: str,
    payload_summary: Dict[str, Any],
    status: str = "ok",
    ref_id: Optional[str] = None,
) -> AuditLogRecord:
    """
    Append-only audit record insert.

    payload_summary MUST be safe: no payment signatures or password material.
    Audit stores hash + safe summary only.
    """
    if request is not None:
        rid = getattr(request.state, "request_id", None) or "missing"
        route = str(request.url.path)
        method = request.method
    else:
        rid, route, method = "internal", "internal", "-"

    row = AuditLogRecord(
        request_id=rid,
        route=route,
        method=method,
        actor_participant_id=actor_participant_id,
        actor_role=actor_role,
        project_id=project_id,
        action=action,
        status=status,
        payload_hash=payload_hash(payload_summary),
        payload_summary_json=payload_summary,
        ref_id=ref_id,
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row


def list_for_project(db: Session, *, project_id: uuid.UUID, limit: int = 500) -> List[AuditLogRecord]:
    return list(
        db.execute(
            select(AuditLogRecord)
            .where(AuditLogRecord.project_id == project_id)
            .order_by(AuditLogRecord.created_at.asc())
            .limit(limit)
        )
        .scalars()
        .all()
    )
