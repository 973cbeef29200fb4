from datetime import timedelta

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from conftest import T0
from assignx.core.deps import notifier_dep, parse_uuid, payment_gateway_dep, timer_port_dep
from assignx.db.session import get_db
from assignx.main import create_app
from assignx.models.enums import ParticipantRole
from assignx.services.auth_service import register_participant

API = "/api/v1"
PASSWORD = "pass123"


@pytest.fixture
def client(session_factory, gateway, timer_port):
    app = create_app()

    def _get_db():
        s = session_factory()
        try:
            yield s
        finally:
            s.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[payment_gateway_dep] = lambda: gateway
    app.dependency_overrides[timer_port_dep] = lambda: timer_port
    app.dependency_overrides[notifier_dep] = lambda: None

    with TestClient(app) as c:
        yield c


@pytest.fixture
def accounts(db):
    ids = {}
    for username, role in [
        ("client1", ParticipantRole.CLIENT),
        ("supervisor1", ParticipantRole.INTERMEDIARY),
        ("doer1", ParticipantRole.WORKER),
        ("admin", ParticipantRole.ADMIN),
    ]:
        p = register_participant(db, username=username, password=PASSWORD, role=role, display_name=username.title())
        ids[username] = str(p.id)
    return ids


def _headers(client, username):
    r = client.post(f"{API}/auth/login", json={"username": username, "password": PASSWORD})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['access_token']}"}


def _new_project(client, h):
    r = client.post(
        f"{API}/projects",
        json={
            "title": "Market sizing for campus food delivery",
            "service_type": "report",
            "word_count": 3000,
            "deadline": (T0 + timedelta(days=10)).isoformat(),
        },
        headers=h,
    )
    assert r.status_code == 201, r.text
    return r.json()


def test_health_reports_request_id(client):
    r = client.get(f"{API}/health", headers={"X-Request-Id": "req-123"})
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "ok"
    assert body["request_id"] == "req-123"


def test_me_returns_token_claims(client, accounts):
    h = _headers(client, "doer1")
    r = client.get(f"{API}/auth/me", headers=h)
    assert r.status_code == 200
    assert r.json()["participant_id"] == accounts["doer1"]
    assert r.json()["role"] == "WORKER"


def test_bad_password_is_401(client, accounts):
    r = client.post(f"{API}/auth/login", json={"username": "client1", "password": "nope"})
    assert r.status_code == 401


def test_full_lifecycle_over_http(client, accounts, gateway, timer_port):
    ch = _headers(client, "client1")
    ih = _headers(client, "supervisor1")
    wh = _headers(client, "doer1")

    project = _new_project(client, ch)
    pid = project["id"]
    assert project["status"] == "submitted"
    assert project["intermediary_id"] == accounts["supervisor1"]
    assert project["project_number"].startswith("AX-")

    r = client.post(f"{API}/projects/{pid}/analysis", headers=ih)
    assert r.status_code == 200 and r.json()["status"] == "analyzing"

    r = client.post(f"{API}/projects/{pid}/quotes", json={"amount": 250_000}, headers=ih)
    assert r.status_code == 201, r.text
    quote = r.json()
    assert (quote["worker_amount"], quote["intermediary_amount"], quote["platform_amount"]) == (162_500, 37_500, 50_000)

    events = [n["eventType"] for n in client.get(f"{API}/notifications", headers=ch).json()]
    assert "quote.issued" in events

    r = client.post(f"{API}/projects/{pid}/payments/order", json={"quote_id": quote["id"]}, headers=ch)
    assert r.status_code == 200, r.text
    order_ref = r.json()["order_ref"]

    capture = {
        "quote_id": quote["id"],
        "payment_reference": "pay_api_1",
        "order_ref": order_ref,
        "signature": gateway.sign(order_ref, "pay_api_1"),
    }
    idem = {**ch, "Idempotency-Key": "capture-1"}
    first = client.post(f"{API}/projects/{pid}/payments/capture", json=capture, headers=idem)
    assert first.status_code == 200, first.text
    assert first.json()["client_quote"] == 250_000
    assert first.json()["worker_payout"] == 162_500

    replay = client.post(f"{API}/projects/{pid}/payments/capture", json=capture, headers=idem)
    assert replay.status_code == 200
    assert replay.json() == first.json()

    changed = {**capture, "payment_reference": "pay_api_2"}
    conflict = client.post(f"{API}/projects/{pid}/payments/capture", json=changed, headers=idem)
    assert conflict.status_code == 409

    r = client.post(f"{API}/projects/{pid}/assignments", json={"worker_id": accounts["doer1"]}, headers=ih)
    assert r.status_code == 201, r.text

    r = client.post(f"{API}/projects/{pid}/start", headers=wh)
    assert r.json()["status"] == "in_progress"

    r = client.post(f"{API}/projects/{pid}/qc/submit", json={"deliverable_refs": ["s3://drafts/v1.docx"]}, headers=wh)
    assert r.json()["status"] == "submitted_for_qc"

    r = client.post(f"{API}/projects/{pid}/qc/decision", json={"decision": "approve"}, headers=ih)
    assert r.json()["status"] == "qc_approved"

    r = client.post(f"{API}/projects/{pid}/deliver", json={"deliverable_refs": ["s3://final/v1.pdf"]}, headers=ih)
    assert r.json()["status"] == "delivered"
    assert len(timer_port.scheduled) == 1

    r = client.post(f"{API}/projects/{pid}/approve", headers=ch)
    assert r.status_code == 200, r.text
    assert r.json()["status"] == "completed"
    assert len(timer_port.cancelled) == 1

    r = client.get(f"{API}/projects/{pid}/ledger/verify", headers=ch)
    assert r.json() == {"project_id": pid, "valid": True, "entries": 4}

    ledger = client.get(f"{API}/projects/{pid}/ledger", headers=ih).json()
    assert ledger["balance"] == 0

    wallet = client.get(f"{API}/wallet", headers=wh).json()
    assert wallet["balance"] == 162_500

    history = client.get(f"{API}/projects/{pid}/history", headers=ch).json()
    assert history[-1]["to_status"] == "completed"


def test_illegal_transition_is_409_with_code(client, accounts):
    ch = _headers(client, "client1")
    pid = _new_project(client, ch)["id"]

    r = client.post(f"{API}/projects/{pid}/approve", headers=ch)
    assert r.status_code == 409
    assert r.json()["code"] == "illegal_transition"
    assert "detail" in r.json()


def test_wrong_role_is_403(client, accounts):
    wh = _headers(client, "doer1")
    r = client.post(
        f"{API}/projects",
        json={"title": "x", "service_type": "report", "deadline": T0.isoformat()},
        headers=wh,
    )
    assert r.status_code == 403
    assert r.json()["code"] == "not_permitted"


def test_other_clients_project_is_not_found(client, accounts, db):
    register_participant(db, username="client2", password=PASSWORD, role=ParticipantRole.CLIENT, display_name="C2")
    pid = _new_project(client, _headers(client, "client1"))["id"]

    r = client.get(f"{API}/projects/{pid}", headers=_headers(client, "client2"))
    assert r.status_code == 404


def test_capture_requires_idempotency_key(client, accounts):
    ch = _headers(client, "client1")
    pid = _new_project(client, ch)["id"]
    r = client.post(
        f"{API}/projects/{pid}/payments/capture",
        json={"quote_id": pid, "payment_reference": "p", "order_ref": "o", "signature": "s"},
        headers=ch,
    )
    assert r.status_code == 400


def test_mark_notification_read(client, accounts):
    ih = _headers(client, "supervisor1")
    _new_project(client, _headers(client, "client1"))

    unread = client.get(f"{API}/notifications", params={"unread_only": True}, headers=ih).json()
    assert [n["eventType"] for n in unread] == ["project.submitted"]

    r = client.post(f"{API}/notifications/{unread[0]['notificationId']}/read", headers=ih)
    assert r.status_code == 200 and r.json()["isRead"] is True
    assert client.get(f"{API}/notifications", params={"unread_only": True}, headers=ih).json() == []


def test_payout_routes_check_roles_and_balance(client, accounts):
    wh = _headers(client, "doer1")

    r = client.post(f"{API}/payouts", json={"amount": 50_000, "method": "upi"}, headers=_headers(client, "client1"))
    assert r.status_code == 403

    balance = client.get(f"{API}/payouts/balance", headers=wh).json()
    assert balance == {"balance": 0, "held": 0, "available": 0, "minimum": 50_000, "fee_bps": 0}

    r = client.post(f"{API}/payouts", json={"amount": 50_000, "method": "upi"}, headers=wh)
    assert r.status_code == 422
    assert r.json()["code"] == "invalid_amount"
    assert client.get(f"{API}/payouts", headers=wh).json() == []

    r = client.post(f"{API}/payouts/{accounts['doer1']}/approve", headers=wh)
    assert r.status_code == 403
    r = client.post(f"{API}/payouts/{accounts['doer1']}/approve", headers=_headers(client, "admin"))
    assert r.status_code == 404


def test_parse_uuid_rejects_garbage_with_400():
    assert str(parse_uuid("0b6e7bd1-7d2a-4c59-9c3e-1f3e8f9b2a10")) == "0b6e7bd1-7d2a-4c59-9c3e-1f3e8f9b2a10"
    with pytest.raises(HTTPException) as exc:
        parse_uuid("not-a-uuid", "project_id")
    assert exc.value.status_code == 400
    assert exc.value.detail == "project_id must be UUID."
