import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("PAYMENT_GATEWAY_KEY_SECRET", "test-gateway-secret")

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

# FORCE model registration
import assignx.models  # noqa

from assignx.db.base import Base
from assignx.models.enums import ParticipantRole, QCDecision, ServiceType, UrgencyTier
from assignx.models.participant import Participant
from assignx.models.worker_profile import WorkerProfile
from assignx.services.assignment_service import AssignmentService
from assignx.services.payment_gateway import HmacPaymentGateway
from assignx.services.payment_service import PaymentService
from assignx.services.projects_service import ProjectsService
from assignx.services.qc_service import QCService
from assignx.services.quote_service import QuoteService
from assignx.services.settlement_service import SettlementService
from assignx.services.timer_service import TimerService

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="function")
def engine():
    # One private in-memory database per test; StaticPool keeps the single
    # connection alive across threads (TestClient).
    eng = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    try:
        yield eng
    finally:
        Base.metadata.drop_all(eng)
        eng.dispose()


@pytest.fixture(scope="function")
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False)


@pytest.fixture(scope="function")
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


# ─────────────────────────────────────────────
# Collaborator doubles
# ─────────────────────────────────────────────


class RecordingTimerPort:
    def __init__(self):
        self.scheduled = []
        self.cancelled = []

    def schedule(self, project_id, timer_id, fire_at):
        self.scheduled.append((project_id, timer_id, fire_at))

    def cancel(self, project_id, timer_id):
        self.cancelled.append((project_id, timer_id))


class RecordingNotifier:
    def __init__(self):
        self.sent = []

    def notify(self, recipient_id, event_type, payload):
        self.sent.append((recipient_id, event_type, payload))

    def events_for(self, recipient_id):
        return [e for (r, e, _p) in self.sent if r == recipient_id]


@pytest.fixture
def gateway():
    return HmacPaymentGateway(key_id="rzp_test_local", key_secret="test-gateway-secret")


@pytest.fixture
def timer_port():
    return RecordingTimerPort()


@pytest.fixture
def notifier():
    return RecordingNotifier()


# ─────────────────────────────────────────────
# Participants
# ─────────────────────────────────────────────


def add_participant(db, role: ParticipantRole, username: str, max_concurrent_projects: int = 3):
    p = Participant(
        id=uuid.uuid4(),
        role=role.value,
        display_name=username.title(),
        username=username,
        password_hash="not-a-real-hash",
    )
    db.add(p)
    if role == ParticipantRole.WORKER:
        db.add(WorkerProfile(participant_id=p.id, max_concurrent_projects=max_concurrent_projects))
    db.commit()
    return p.id


class People:
    def __init__(self, db):
        self.client = add_participant(db, ParticipantRole.CLIENT, "client1")
        self.intermediary = add_participant(db, ParticipantRole.INTERMEDIARY, "supervisor1")
        self.worker = add_participant(db, ParticipantRole.WORKER, "doer1")
        self.worker2 = add_participant(db, ParticipantRole.WORKER, "doer2")
        self.admin = add_participant(db, ParticipantRole.ADMIN, "admin")


@pytest.fixture
def people(db):
    return People(db)


# ─────────────────────────────────────────────
# Lifecycle driver: walks a project up to a given status
# ─────────────────────────────────────────────


class Driver:
    def __init__(self, db, people, gateway, timer_port, notifier):
        self.db = db
        self.people = people
        self.gateway = gateway
        self.projects = ProjectsService(notifier=notifier)
        self.quotes = QuoteService(notifier=notifier)
        self.payments = PaymentService(gateway=gateway, notifier=notifier)
        self.assignments = AssignmentService(notifier=notifier)
        self.qc = QCService(timer_port=timer_port, notifier=notifier)
        self.timers = TimerService(port=timer_port, notifier=notifier)
        self.settlement = SettlementService(notifier=notifier)

    def create(self, now=T0, **kw):
        params = dict(
            client_id=self.people.client,
            title="Literature review on urban heat islands",
            service_type=ServiceType.report,
            deadline=now + timedelta(days=7),
            urgency=UrgencyTier.standard,
            word_count=2000,
            now=now,
        )
        params.update(kw)
        return self.projects.create_project(self.db, **params)

    def quoted(self, amount=100_000, now=T0):
        p = self.create(now=now)
        self.quotes.start_analysis(self.db, project_id=p.id, intermediary_id=self.people.intermediary, now=now)
        q = self.quotes.issue_quote(
            self.db, project_id=p.id, intermediary_id=self.people.intermediary, amount=amount, now=now
        )
        return p, q

    def capture(self, project_id, quote_id, payment_reference="pay_001", now=T0):
        order = self.payments.initiate_payment(
            self.db, project_id=project_id, client_id=self.people.client, quote_id=quote_id, now=now
        )
        return self.payments.capture_payment(
            self.db,
            project_id=project_id,
            quote_id=quote_id,
            payment_reference=payment_reference,
            order_ref=order.order_ref,
            signature=self.gateway.sign(order.order_ref, payment_reference),
            actor_id=self.people.client,
            now=now,
        )

    def paid(self, amount=100_000, now=T0):
        p, q = self.quoted(amount=amount, now=now)
        self.capture(p.id, q.id, now=now)
        return self.projects.get(self.db, project_id=p.id)

    def assigned(self, amount=100_000, worker=None, now=T0):
        p = self.paid(amount=amount, now=now)
        self.assignments.assign(
            self.db,
            project_id=p.id,
            intermediary_id=self.people.intermediary,
            worker_id=worker or self.people.worker,
            now=now,
        )
        return self.projects.get(self.db, project_id=p.id)

    def in_progress(self, amount=100_000, now=T0):
        p = self.assigned(amount=amount, now=now)
        return self.qc.start_work(self.db, project_id=p.id, worker_id=self.people.worker, now=now)

    def qc_approved(self, amount=100_000, now=T0):
        p = self.in_progress(amount=amount, now=now)
        self.qc.submit_for_qc(
            self.db, project_id=p.id, worker_id=self.people.worker, deliverable_refs=["s3://drafts/v1.docx"], now=now
        )
        return self.qc.record_qc_decision(
            self.db,
            project_id=p.id,
            intermediary_id=self.people.intermediary,
            decision=QCDecision.approve,
            now=now,
        )

    def delivered(self, amount=100_000, now=T0):
        p = self.qc_approved(amount=amount, now=now)
        return self.qc.deliver(
            self.db,
            project_id=p.id,
            intermediary_id=self.people.intermediary,
            deliverable_refs=["s3://final/v1.pdf"],
            now=now,
        )


@pytest.fixture
def driver(db, people, gateway, timer_port, notifier):
    return Driver(db, people, gateway, timer_port, notifier)
