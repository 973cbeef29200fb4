# assignx/core/status_graph.py
from __future__ import annotations

from typing import Dict, FrozenSet, Set, Tuple

from assignx.core.errors import IllegalTransition
from assignx.models.enums import LifecycleEvent as E
from assignx.models.enums import ProjectStatus as S
from assignx.models.enums import StatusCategory

# (current status, event) -> next status. Anything absent is illegal.
ALLOWED_TRANSITIONS: Dict[Tuple[S, E], S] = {
    (S.draft, E.submit): S.submitted,
    (S.submitted, E.start_analysis): S.analyzing,
    (S.analyzing, E.issue_quote): S.quoted,
    (S.quoted, E.reopen_quote): S.analyzing,
    (S.payment_pending, E.reopen_quote): S.analyzing,
    (S.quoted, E.reject_quote): S.analyzing,
    (S.quoted, E.initiate_payment): S.payment_pending,
    (S.payment_pending, E.capture_payment): S.paid,
    (S.paid, E.start_assigning): S.assigning,
    (S.paid, E.assign): S.assigned,
    (S.assigning, E.assign): S.assigned,
    (S.assigned, E.decline_assignment): S.assigning,
    (S.assigned, E.reassign): S.assigned,
    (S.in_progress, E.reassign): S.assigned,
    (S.assigned, E.start_work): S.in_progress,
    (S.in_progress, E.submit_for_qc): S.submitted_for_qc,
    (S.in_revision, E.submit_for_qc): S.submitted_for_qc,
    (S.submitted_for_qc, E.start_qc): S.qc_in_progress,
    (S.qc_in_progress, E.qc_approve): S.qc_approved,
    (S.qc_in_progress, E.qc_reject): S.qc_rejected,
    (S.qc_rejected, E.resume_work): S.in_progress,
    (S.qc_approved, E.deliver): S.delivered,
    (S.delivered, E.client_approve): S.completed,
    (S.delivered, E.request_revision): S.revision_requested,
    (S.delivered, E.auto_approve): S.auto_approved,
    (S.revision_requested, E.start_revision): S.in_revision,
    (S.payment_pending, E.cancel): S.cancelled,
    (S.paid, E.cancel): S.cancelled,
    (S.assigning, E.cancel): S.cancelled,
    (S.assigned, E.cancel): S.cancelled,
    (S.in_progress, E.cancel): S.cancelled,
    (S.cancelled, E.refund): S.refunded,
}

TERMINAL_STATUSES: FrozenSet[S] = frozenset({S.completed, S.auto_approved, S.cancelled, S.refunded})

# Statuses whose settlement has been released to worker/intermediary/platform.
SETTLEABLE_STATUSES: FrozenSet[S] = frozenset({S.completed, S.auto_approved})

# Statuses in which the worker is actually holding the project.
WORK_STARTED_STATUSES: FrozenSet[S] = frozenset({S.assigned, S.in_progress})

STATUS_CATEGORIES: Dict[StatusCategory, FrozenSet[S]] = {
    StatusCategory.pending: frozenset(
        {S.draft, S.submitted, S.analyzing, S.quoted, S.payment_pending, S.paid, S.assigning}
    ),
    StatusCategory.active: frozenset({S.assigned, S.in_progress, S.in_revision, S.revision_requested}),
    StatusCategory.review: frozenset({S.submitted_for_qc, S.qc_in_progress, S.qc_approved, S.qc_rejected, S.delivered}),
    StatusCategory.completed: frozenset({S.completed, S.auto_approved}),
    StatusCategory.closed: frozenset({S.cancelled, S.refunded}),
}


def parse_status(raw: str) -> S:
    """
    Reject any status string outside the closed enum.
    """
    try:
        return S(raw)
    except ValueError:
        raise ValueError(f"Unknown project status '{raw}'.")


def transition(current: S | str, event: E | str) -> S:
    """
    Pure transition function over ALLOWED_TRANSITIONS.
    """
    cur = parse_status(current)
    try:
        ev = E(event)
    except ValueError:
        raise IllegalTransition(cur.value, str(event))

    nxt = ALLOWED_TRANSITIONS.get((cur, ev))
    if nxt is None:
        raise IllegalTransition(cur.value, ev.value)
    return nxt


def allowed_events(current: S | str) -> Set[E]:
    cur = parse_status(current)
    return {ev for (st, ev) in ALLOWED_TRANSITIONS if st == cur}


def is_terminal(status: S | str) -> bool:
    return S(status) in TERMINAL_STATUSES


def category_of(status: S | str) -> StatusCategory:
    st = S(status)
    for cat, members in STATUS_CATEGORIES.items():
        if st in members:
            return cat
    raise ValueError(f"Status '{st.value}' has no category.")
