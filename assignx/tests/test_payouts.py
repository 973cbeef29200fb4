import pytest

from conftest import T0
from assignx.core.config import get_settings
from assignx.core.errors import IllegalTransition, InvalidAmount, InvalidInput, NotFound, NotPermitted
from assignx.models.enums import LedgerOwnerRole, ParticipantRole, PayoutMethod, PayoutStatus
from assignx.services.ledger_service import LedgerService
from assignx.services.payout_service import PayoutService


def _earn(driver, amount=100_000):
    # Worker is credited 65%, intermediary 15% on approval.
    p = driver.delivered(amount=amount)
    driver.qc.approve(driver.db, project_id=p.id, client_id=driver.people.client)
    return p


def _svc(notifier=None, **overrides):
    return PayoutService(notifier=notifier, settings=get_settings().model_copy(update=overrides))


def _request(svc, db, people, amount, who=None, role=ParticipantRole.WORKER):
    return svc.request_payout(
        db,
        requester_id=who or people.worker,
        requester_role=role,
        amount=amount,
        method=PayoutMethod.upi,
        destination_ref="doer1@upi",
        now=T0,
    )


def test_request_is_bounded_by_minimum_and_available_balance(db, people, driver):
    _earn(driver)
    svc = _svc(payout_minimum_paise=10_000)

    with pytest.raises(InvalidAmount):
        _request(svc, db, people, 9_999)
    with pytest.raises(InvalidAmount) as exc:
        _request(svc, db, people, 65_001)
    assert exc.value.context == {"available": 65_000, "requested": 65_001}

    first = _request(svc, db, people, 50_000)
    assert first.status == PayoutStatus.pending.value
    assert svc.available_balance(db, owner_role=LedgerOwnerRole.WORKER, owner_id=people.worker) == {
        "balance": 65_000,
        "held": 50_000,
        "available": 15_000,
    }

    # The pending request holds its amount even though the ledger is untouched.
    with pytest.raises(InvalidAmount):
        _request(svc, db, people, 20_000)
    assert len(svc.list_requests(db, requester_id=people.worker)) == 1


def test_default_minimum_applies(db, people, driver):
    _earn(driver)
    svc = PayoutService()
    assert get_settings().payout_minimum_paise == 50_000
    with pytest.raises(InvalidAmount):
        _request(svc, db, people, 49_999)


def test_completion_debits_wallet_and_credits_fee(db, people, driver, notifier):
    _earn(driver)
    svc = _svc(notifier=notifier, payout_processing_fee_bps=200)

    row = _request(svc, db, people, 50_000)
    assert (row.fee, row.net_amount) == (1_000, 49_000)

    svc.approve(db, payout_id=row.id, admin_id=people.admin, now=T0)
    row = svc.complete(db, payout_id=row.id, admin_id=people.admin, gateway_reference="pout_123", now=T0)

    assert row.status == PayoutStatus.completed.value
    assert row.reviewed_by == people.admin
    assert row.gateway_reference == "pout_123"
    assert row.completed_at is not None

    entries = svc.ledger_entries(db, payout_id=row.id)
    assert [(e.seq, e.owner_role, e.amount, e.reason) for e in entries] == [
        (1, "WORKER", -50_000, "withdrawal"),
        (2, "PLATFORM", 1_000, "payout_fee"),
    ]
    assert all(e.project_id is None for e in entries)
    assert LedgerService().verify_chain(db, payout_request_id=row.id) is True

    wallet = LedgerService().owner_balance(db, owner_role=LedgerOwnerRole.WORKER, owner_id=people.worker)
    assert wallet["balance"] == 15_000
    assert wallet["by_reason"]["withdrawal"] == -50_000
    assert svc.held_amount(db, requester_id=people.worker) == 0

    assert "payout.processing" in notifier.events_for(people.worker)
    assert "payout.completed" in notifier.events_for(people.worker)


def test_complete_requires_approval_and_happens_once(db, people, driver):
    _earn(driver)
    svc = _svc()
    row = _request(svc, db, people, 60_000)

    with pytest.raises(IllegalTransition) as exc:
        svc.complete(db, payout_id=row.id, admin_id=people.admin)
    assert exc.value.current == "pending"

    svc.approve(db, payout_id=row.id, admin_id=people.admin)
    svc.complete(db, payout_id=row.id, admin_id=people.admin)
    with pytest.raises(IllegalTransition):
        svc.complete(db, payout_id=row.id, admin_id=people.admin)

    assert len(svc.ledger_entries(db, payout_id=row.id)) == 1
    assert LedgerService().owner_balance(db, owner_role=LedgerOwnerRole.WORKER, owner_id=people.worker)["balance"] == 5_000


def test_failure_releases_the_hold(db, people, driver, notifier):
    _earn(driver)
    svc = _svc(notifier=notifier)
    row = _request(svc, db, people, 60_000)
    svc.approve(db, payout_id=row.id, admin_id=people.admin)

    with pytest.raises(InvalidInput):
        svc.fail(db, payout_id=row.id, admin_id=people.admin, reason="  ")

    row = svc.fail(db, payout_id=row.id, admin_id=people.admin, reason="IFSC rejected by bank")
    assert row.status == PayoutStatus.failed.value
    assert row.failure_reason == "IFSC rejected by bank"
    assert svc.ledger_entries(db, payout_id=row.id) == []
    assert svc.available_balance(db, owner_role=LedgerOwnerRole.WORKER, owner_id=people.worker)["available"] == 65_000
    assert "payout.failed" in notifier.events_for(people.worker)

    with pytest.raises(IllegalTransition):
        svc.approve(db, payout_id=row.id, admin_id=people.admin)


def test_requester_cancels_only_own_pending_request(db, people, driver):
    _earn(driver)
    svc = _svc()
    row = _request(svc, db, people, 50_000)

    with pytest.raises(NotFound):
        svc.cancel(db, payout_id=row.id, requester_id=people.worker2)

    row = svc.cancel(db, payout_id=row.id, requester_id=people.worker)
    assert row.status == PayoutStatus.cancelled.value
    assert svc.held_amount(db, requester_id=people.worker) == 0

    with pytest.raises(IllegalTransition):
        svc.cancel(db, payout_id=row.id, requester_id=people.worker)


def test_intermediary_withdraws_commission(db, people, driver):
    _earn(driver)
    svc = _svc(payout_minimum_paise=10_000)
    row = _request(svc, db, people, 15_000, who=people.intermediary, role=ParticipantRole.INTERMEDIARY)
    assert row.requester_role == "INTERMEDIARY"

    with pytest.raises(InvalidAmount):
        _request(svc, db, people, 10_000, who=people.intermediary, role=ParticipantRole.INTERMEDIARY)


def test_clients_have_no_withdrawable_wallet(db, people, driver):
    _earn(driver)
    with pytest.raises(NotPermitted):
        _request(_svc(), db, people, 50_000, who=people.client, role=ParticipantRole.CLIENT)
