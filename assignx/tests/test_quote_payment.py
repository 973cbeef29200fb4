import uuid

import pytest

from conftest import T0
from assignx.core.errors import (
    AlreadyPaid,
    IllegalTransition,
    InvalidAmount,
    NotPermitted,
    PaymentVerificationFailed,
    StaleQuote,
)
from assignx.models.enums import LedgerReason, ProjectStatus, QuoteState
from assignx.services.audit_service import AuditAction, list_for_project
from assignx.services.ledger_service import LedgerService


def test_issue_quote_moves_to_quoted_and_notifies_client(db, people, driver, notifier):
    p, q = driver.quoted(amount=120_000)

    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.quoted.value
    assert project.quoted_at == T0
    # The project carries no money until capture.
    assert project.client_quote is None and project.is_paid is False

    assert q.state == QuoteState.active.value
    assert (q.worker_amount, q.intermediary_amount, q.platform_amount) == (78_000, 18_000, 24_000)
    assert "quote.issued" in notifier.events_for(people.client)


@pytest.mark.parametrize("amount", [0, -1, 10_000_001])
def test_issue_quote_rejects_bad_amounts(db, people, driver, amount):
    p = driver.create()
    driver.quotes.start_analysis(db, project_id=p.id, intermediary_id=people.intermediary, now=T0)
    with pytest.raises(InvalidAmount):
        driver.quotes.issue_quote(db, project_id=p.id, intermediary_id=people.intermediary, amount=amount)
    assert driver.projects.get(db, project_id=p.id).status == ProjectStatus.analyzing.value


def test_only_supervising_intermediary_quotes(db, people, driver):
    p = driver.create()
    with pytest.raises(NotPermitted):
        driver.quotes.start_analysis(db, project_id=p.id, intermediary_id=people.client)


def test_reject_then_requote_supersedes(db, people, driver):
    p, q1 = driver.quoted(amount=100_000)

    rejected = driver.quotes.reject_quote(
        db, project_id=p.id, client_id=people.client, quote_id=q1.id, reason="too expensive"
    )
    assert rejected.state == QuoteState.rejected.value
    assert driver.projects.get(db, project_id=p.id).status == ProjectStatus.analyzing.value

    q2 = driver.quotes.issue_quote(db, project_id=p.id, intermediary_id=people.intermediary, amount=80_000)
    assert driver.quotes.active_quote(db, project_id=p.id).id == q2.id

    with pytest.raises(StaleQuote):
        driver.quotes.reject_quote(db, project_id=p.id, client_id=people.client, quote_id=q1.id)


def test_reopen_supersedes_active_quote(db, people, driver):
    p, q1 = driver.quoted()
    driver.quotes.reopen_quote(db, project_id=p.id, intermediary_id=people.intermediary, reason="scope changed")

    quotes = driver.quotes.list_quotes(db, project_id=p.id)
    assert [q.state for q in quotes] == [QuoteState.superseded.value]
    assert driver.quotes.active_quote(db, project_id=p.id) is None


def test_capture_moves_to_paid_and_debits_client(db, people, driver):
    p, q = driver.quoted(amount=100_000)
    preview = driver.capture(p.id, q.id)

    assert preview["client_quote"] == 100_000
    assert preview["worker_payout"] == 65_000
    assert preview["intermediary_commission"] == 15_000
    assert preview["platform_fee"] == 20_000

    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.paid.value
    assert project.is_paid is True
    assert project.paid_at == T0
    assert (project.client_quote, project.worker_payout) == (100_000, 65_000)

    entries = LedgerService().list_entries(db, project_id=p.id)
    assert [(e.reason, e.amount) for e in entries] == [(LedgerReason.client_payment.value, -100_000)]


def test_capture_replay_is_idempotent(db, people, driver, gateway):
    p, q = driver.quoted()
    first = driver.capture(p.id, q.id, payment_reference="pay_777")

    quote = driver.quotes.get_quote(db, project_id=p.id, quote_id=q.id)
    again = driver.payments.capture_payment(
        db,
        project_id=p.id,
        quote_id=q.id,
        payment_reference="pay_777",
        order_ref=quote.order_ref,
        signature=gateway.sign(quote.order_ref, "pay_777"),
        actor_id=people.client,
    )
    assert again == first
    assert len(LedgerService().list_entries(db, project_id=p.id)) == 1


def test_second_payment_is_already_paid(db, people, driver, gateway):
    p, q = driver.quoted()
    first = driver.capture(p.id, q.id, payment_reference="pay_1")
    quote = driver.quotes.get_quote(db, project_id=p.id, quote_id=q.id)

    with pytest.raises(AlreadyPaid) as exc:
        driver.payments.capture_payment(
            db,
            project_id=p.id,
            quote_id=q.id,
            payment_reference="pay_2",
            order_ref=quote.order_ref,
            signature=gateway.sign(quote.order_ref, "pay_2"),
            actor_id=people.client,
        )
    assert exc.value.existing == first
    assert len(LedgerService().list_entries(db, project_id=p.id)) == 1


def test_bad_signature_leaves_project_untouched_and_is_audited(db, people, driver):
    p, q = driver.quoted()
    order = driver.payments.initiate_payment(db, project_id=p.id, client_id=people.client, quote_id=q.id)

    with pytest.raises(PaymentVerificationFailed):
        driver.payments.capture_payment(
            db,
            project_id=p.id,
            quote_id=q.id,
            payment_reference="pay_x",
            order_ref=order.order_ref,
            signature="forged",
            actor_id=people.client,
        )

    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.payment_pending.value
    assert project.is_paid is False
    assert LedgerService().list_entries(db, project_id=p.id) == []

    actions = [r.action for r in list_for_project(db, project_id=p.id)]
    assert actions == [AuditAction.PAYMENT_VERIFICATION_FAILED]


def test_order_mismatch_is_rejected(db, people, driver, gateway):
    p, q = driver.quoted()
    driver.payments.initiate_payment(db, project_id=p.id, client_id=people.client, quote_id=q.id)

    with pytest.raises(PaymentVerificationFailed):
        driver.payments.capture_payment(
            db,
            project_id=p.id,
            quote_id=q.id,
            payment_reference="pay_1",
            order_ref="order_someone_else",
            signature=gateway.sign("order_someone_else", "pay_1"),
            actor_id=people.client,
        )


def test_capture_against_superseded_quote_is_stale(db, people, driver, gateway):
    p, q1 = driver.quoted()
    driver.quotes.reopen_quote(db, project_id=p.id, intermediary_id=people.intermediary)
    driver.quotes.issue_quote(db, project_id=p.id, intermediary_id=people.intermediary, amount=90_000)

    with pytest.raises(StaleQuote):
        driver.payments.capture_payment(
            db,
            project_id=p.id,
            quote_id=q1.id,
            payment_reference="pay_1",
            order_ref="order_abc",
            signature=gateway.sign("order_abc", "pay_1"),
            actor_id=people.client,
        )


def test_capture_from_quoted_applies_checkout_first(db, people, driver, gateway):
    p, q = driver.quoted()
    driver.payments.capture_payment(
        db,
        project_id=p.id,
        quote_id=q.id,
        payment_reference="pay_direct",
        order_ref="order_direct",
        signature=gateway.sign("order_direct", "pay_direct"),
        actor_id=people.client,
        now=T0,
    )
    events = [h.event for h in driver.projects.lifecycle.history(db, project_id=p.id)]
    assert events[-2:] == ["initiate_payment", "capture_payment"]


def test_only_client_pays(db, people, driver):
    p, q = driver.quoted()
    with pytest.raises(NotPermitted):
        driver.payments.initiate_payment(db, project_id=p.id, client_id=people.intermediary, quote_id=q.id)


def test_payment_requires_quote(db, people, driver):
    p = driver.create()
    with pytest.raises(StaleQuote):
        driver.payments.initiate_payment(db, project_id=p.id, client_id=people.client, quote_id=uuid.uuid4())


def test_reopen_after_payment_is_illegal(db, people, driver):
    p = driver.paid()
    with pytest.raises(IllegalTransition):
        driver.quotes.reopen_quote(db, project_id=p.id, intermediary_id=people.intermediary)
