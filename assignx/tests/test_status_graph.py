import pytest

from assignx.core.errors import IllegalTransition
from assignx.core.status_graph import (
    ALLOWED_TRANSITIONS,
    STATUS_CATEGORIES,
    allowed_events,
    category_of,
    is_terminal,
    parse_status,
    transition,
)
from assignx.models.enums import LifecycleEvent as E
from assignx.models.enums import ProjectStatus as S


def test_happy_path_walks_to_completed():
    path = [
        (E.submit, S.submitted),
        (E.start_analysis, S.analyzing),
        (E.issue_quote, S.quoted),
        (E.initiate_payment, S.payment_pending),
        (E.capture_payment, S.paid),
        (E.assign, S.assigned),
        (E.start_work, S.in_progress),
        (E.submit_for_qc, S.submitted_for_qc),
        (E.start_qc, S.qc_in_progress),
        (E.qc_approve, S.qc_approved),
        (E.deliver, S.delivered),
        (E.client_approve, S.completed),
    ]
    status = S.draft
    for event, expected in path:
        status = transition(status, event)
        assert status == expected


def test_revision_loop_returns_to_qc():
    assert transition(S.delivered, E.request_revision) == S.revision_requested
    assert transition(S.revision_requested, E.start_revision) == S.in_revision
    assert transition(S.in_revision, E.submit_for_qc) == S.submitted_for_qc


def test_qc_reject_goes_back_to_work():
    assert transition(S.qc_in_progress, E.qc_reject) == S.qc_rejected
    assert transition(S.qc_rejected, E.resume_work) == S.in_progress


def test_cannot_assign_before_payment():
    for status in (S.submitted, S.analyzing, S.quoted, S.payment_pending):
        with pytest.raises(IllegalTransition) as exc:
            transition(status, E.assign)
        assert exc.value.current == status.value
        assert exc.value.event == "assign"


def test_auto_approve_only_from_delivered():
    assert transition(S.delivered, E.auto_approve) == S.auto_approved
    for status in S:
        if status == S.delivered:
            continue
        with pytest.raises(IllegalTransition):
            transition(status, E.auto_approve)


def test_cancel_window():
    cancellable = {S.payment_pending, S.paid, S.assigning, S.assigned, S.in_progress}
    for status in S:
        if status in cancellable:
            assert transition(status, E.cancel) == S.cancelled
        else:
            with pytest.raises(IllegalTransition):
                transition(status, E.cancel)


def test_terminal_statuses_only_allow_refund_from_cancelled():
    for status in (S.completed, S.auto_approved, S.refunded):
        assert is_terminal(status)
        assert allowed_events(status) == set()
    assert is_terminal(S.cancelled)
    assert allowed_events(S.cancelled) == {E.refund}


def test_unknown_status_and_event_rejected():
    with pytest.raises(ValueError):
        parse_status("archived")
    with pytest.raises(IllegalTransition):
        transition(S.draft, "teleport")


def test_every_status_has_exactly_one_category():
    for status in S:
        owners = [cat for cat, members in STATUS_CATEGORIES.items() if status in members]
        assert len(owners) == 1
        assert category_of(status) == owners[0]


def test_graph_targets_are_known_statuses():
    for (src, ev), dst in ALLOWED_TRANSITIONS.items():
        assert isinstance(src, S) and isinstance(ev, E) and isinstance(dst, S)


_FORBIDDEN_PAIRS = [(s, e) for s in S for e in E if (s, e) not in ALLOWED_TRANSITIONS]


@pytest.mark.parametrize("status,event", _FORBIDDEN_PAIRS, ids=lambda v: v.value)
def test_every_pair_outside_the_table_is_rejected(status, event):
    with pytest.raises(IllegalTransition) as exc:
        transition(status, event)
    assert (exc.value.current, exc.value.event) == (status.value, event.value)


@pytest.mark.parametrize("pair,expected", list(ALLOWED_TRANSITIONS.items()), ids=lambda v: str(v))
def test_every_pair_in_the_table_transitions(pair, expected):
    assert transition(*pair) == expected
