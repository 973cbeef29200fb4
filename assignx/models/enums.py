#assignx/models/enums.py
from __future__ import annotations
from enum import Enum


class ParticipantRole(str, Enum):
    CLIENT = "CLIENT"
    WORKER = "WORKER"
    INTERMEDIARY = "INTERMEDIARY"
    ADMIN = "ADMIN"


class ProjectStatus(str, Enum):
    draft = "draft"
    submitted = "submitted"
    analyzing = "analyzing"
    quoted = "quoted"
    payment_pending = "payment_pending"
    paid = "paid"
    assigning = "assigning"
    assigned = "assigned"
    in_progress = "in_progress"
    submitted_for_qc = "submitted_for_qc"
    qc_in_progress = "qc_in_progress"
    qc_approved = "qc_approved"
    qc_rejected = "qc_rejected"
    delivered = "delivered"
    revision_requested = "revision_requested"
    in_revision = "in_revision"
    completed = "completed"
    auto_approved = "auto_approved"
    cancelled = "cancelled"
    refunded = "refunded"


class LifecycleEvent(str, Enum):
    submit = "submit"
    start_analysis = "start_analysis"
    issue_quote = "issue_quote"
    reopen_quote = "reopen_quote"
    reject_quote = "reject_quote"
    initiate_payment = "initiate_payment"
    capture_payment = "capture_payment"
    start_assigning = "start_assigning"
    assign = "assign"
    decline_assignment = "decline_assignment"
    reassign = "reassign"
    start_work = "start_work"
    submit_for_qc = "submit_for_qc"
    start_qc = "start_qc"
    qc_approve = "qc_approve"
    qc_reject = "qc_reject"
    resume_work = "resume_work"
    deliver = "deliver"
    client_approve = "client_approve"
    request_revision = "request_revision"
    start_revision = "start_revision"
    auto_approve = "auto_approve"
    cancel = "cancel"
    refund = "refund"


class ServiceType(str, Enum):
    new_project = "new_project"
    proofreading = "proofreading"
    report = "report"
    consultation = "consultation"


class UrgencyTier(str, Enum):
    standard = "standard"
    h72 = "h72"
    h48 = "h48"
    h24 = "h24"


class QuoteState(str, Enum):
    active = "active"
    accepted = "accepted"
    rejected = "rejected"
    superseded = "superseded"


class AssignmentState(str, Enum):
    active = "active"
    declined = "declined"
    reassigned = "reassigned"
    released = "released"


class TimerState(str, Enum):
    armed = "armed"
    disarmed = "disarmed"
    fired = "fired"


class QCDecision(str, Enum):
    approve = "approve"
    reject = "reject"


class DeliverableKind(str, Enum):
    submission = "submission"
    delivery = "delivery"


class SettlementKind(str, Enum):
    settlement = "settlement"
    refund = "refund"


class LedgerReason(str, Enum):
    client_payment = "client_payment"
    worker_payout = "worker_payout"
    intermediary_commission = "intermediary_commission"
    platform_fee = "platform_fee"
    client_refund = "client_refund"
    worker_penalty_share = "worker_penalty_share"
    intermediary_penalty_share = "intermediary_penalty_share"
    withdrawal = "withdrawal"
    payout_fee = "payout_fee"


class PayoutStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class PayoutMethod(str, Enum):
    bank_transfer = "bank_transfer"
    upi = "upi"


class LedgerOwnerRole(str, Enum):
    CLIENT = "CLIENT"
    WORKER = "WORKER"
    INTERMEDIARY = "INTERMEDIARY"
    PLATFORM = "PLATFORM"


class StatusCategory(str, Enum):
    pending = "pending"
    active = "active"
    review = "review"
    completed = "completed"
    closed = "closed"
