import uuid
from datetime import timedelta

import pytest

from conftest import T0, add_participant
from assignx.core.errors import ConcurrentModification, IllegalTransition, InvalidInput, NotFound, NotPermitted
from assignx.models.enums import ParticipantRole, ProjectStatus, ServiceType, StatusCategory
from assignx.policies.rbac import Principal
from assignx.services.lifecycle_service import LifecycleService
from assignx.services.projects_service import ProjectsService, format_project_number


def principal(pid, role):
    return Principal(participant_id=str(pid), role=role, display_name="t")


def test_create_project_is_submitted_and_routed(db, people, driver):
    p = driver.create()

    assert p.status == ProjectStatus.submitted.value
    assert p.project_number == "AX-00001"
    assert p.intermediary_id == people.intermediary
    assert p.worker_id is None
    assert p.is_paid is False
    assert p.client_quote is None

    hist = LifecycleService().history(db, project_id=p.id)
    assert [(h.seq, h.from_status, h.to_status, h.event) for h in hist] == [
        (1, None, "draft", "create"),
        (2, "draft", "submitted", "submit"),
    ]


def test_project_numbers_increase(driver):
    a = driver.create()
    b = driver.create()
    assert (a.project_number, b.project_number) == ("AX-00001", "AX-00002")
    assert format_project_number(42) == "AX-00042"


def test_number_collision_retries_with_next_number(driver, monkeypatch):
    first = driver.create()
    real = driver.projects._next_project_number
    calls = []

    def stale_then_real(db):
        # First read is what a concurrent creator saw before `first` committed.
        calls.append(1)
        return first.project_number if len(calls) == 1 else real(db)

    monkeypatch.setattr(driver.projects, "_next_project_number", stale_then_real)
    second = driver.create()

    assert second.project_number == "AX-00002"
    assert len(calls) == 2


def test_number_collision_gives_up_with_typed_error(db, driver, monkeypatch):
    first = driver.create()
    monkeypatch.setattr(driver.projects, "_next_project_number", lambda db: first.project_number)

    with pytest.raises(ConcurrentModification):
        driver.create()
    assert len(driver.projects.list_for_participant(db, principal=principal(driver.people.admin, ParticipantRole.ADMIN))) == 1


def test_creation_notifies_intermediary_once(people, driver, notifier):
    driver.create()
    assert notifier.events_for(people.intermediary) == ["project.submitted"]
    assert notifier.events_for(people.client) == []


def test_routing_prefers_least_loaded_intermediary(db, people, driver):
    driver.create()
    second = add_participant(db, ParticipantRole.INTERMEDIARY, "supervisor2")

    p = driver.create()
    assert p.intermediary_id == second


def test_create_requires_client_and_title(db, people):
    svc = ProjectsService()
    with pytest.raises(InvalidInput):
        svc.create_project(
            db,
            client_id=people.worker,
            title="Essay",
            service_type=ServiceType.proofreading,
            deadline=T0 + timedelta(days=2),
        )
    with pytest.raises(InvalidInput):
        svc.create_project(
            db,
            client_id=people.client,
            title="   ",
            service_type=ServiceType.proofreading,
            deadline=T0 + timedelta(days=2),
        )
    with pytest.raises(NotFound):
        svc.create_project(
            db,
            client_id=uuid.uuid4(),
            title="Essay",
            service_type=ServiceType.proofreading,
            deadline=T0 + timedelta(days=2),
        )


def test_visibility_is_per_participant(db, people, driver):
    p = driver.create()
    svc = ProjectsService()

    assert svc.get_for_participant(db, principal=principal(people.client, ParticipantRole.CLIENT), project_id=p.id)
    assert svc.get_for_participant(db, principal=principal(people.admin, ParticipantRole.ADMIN), project_id=p.id)
    with pytest.raises(NotFound):
        svc.get_for_participant(db, principal=principal(people.worker, ParticipantRole.WORKER), project_id=p.id)

    mine = svc.list_for_participant(db, principal=principal(people.client, ParticipantRole.CLIENT))
    assert [x.id for x in mine] == [p.id]
    assert svc.list_for_participant(db, principal=principal(people.worker, ParticipantRole.WORKER)) == []


def test_list_filters_by_category(db, people, driver):
    driver.create()
    driver.assigned()
    svc = ProjectsService()
    client = principal(people.client, ParticipantRole.CLIENT)

    pending = svc.list_for_participant(db, principal=client, category=StatusCategory.pending)
    active = svc.list_for_participant(db, principal=client, category=StatusCategory.active)
    assert [p.status for p in pending] == ["submitted"]
    assert [p.status for p in active] == ["assigned"]

    counts = svc.count_by_category(db, principal=client)
    assert counts["pending"] == 1 and counts["active"] == 1 and counts["completed"] == 0


def test_progress_only_while_working(db, people, driver):
    p = driver.assigned()
    svc = ProjectsService()

    with pytest.raises(IllegalTransition):
        svc.update_progress(db, project_id=p.id, worker_id=people.worker, percent=10)

    driver.qc.start_work(db, project_id=p.id, worker_id=people.worker, now=T0)
    p = svc.update_progress(db, project_id=p.id, worker_id=people.worker, percent=40)
    assert p.progress_percentage == 40
    assert p.status == ProjectStatus.in_progress.value

    with pytest.raises(InvalidInput):
        svc.update_progress(db, project_id=p.id, worker_id=people.worker, percent=101)
    with pytest.raises(NotPermitted):
        svc.update_progress(db, project_id=p.id, worker_id=people.worker2, percent=50)


def test_cancel_before_payment_is_illegal(db, people, driver):
    p, _q = driver.quoted()
    with pytest.raises(IllegalTransition):
        ProjectsService().cancel(db, project_id=p.id, principal=principal(people.client, ParticipantRole.CLIENT))
    assert ProjectsService().get(db, project_id=p.id).status == ProjectStatus.quoted.value


def test_illegal_event_leaves_row_untouched(db, people, driver):
    p = driver.paid()
    before = driver.projects.get(db, project_id=p.id)
    status, version, history = before.status, before.version, len(LifecycleService().history(db, project_id=p.id))

    with pytest.raises(IllegalTransition):
        driver.qc.deliver(db, project_id=p.id, intermediary_id=people.intermediary, deliverable_refs=["s3://x.pdf"])
    with pytest.raises(IllegalTransition):
        driver.qc.approve(db, project_id=p.id, client_id=people.client)

    db.expire_all()
    after = driver.projects.get(db, project_id=p.id)
    assert (after.status, after.version) == (status, version)
    assert len(LifecycleService().history(db, project_id=p.id)) == history


def test_cancel_after_assignment_frees_worker(db, people, driver):
    p = driver.assigned()
    assert driver.assignments.get_worker_profile(db, worker_id=people.worker).active_assignment_count == 1

    p = ProjectsService().cancel(
        db, project_id=p.id, principal=principal(people.client, ParticipantRole.CLIENT), reason="changed my mind"
    )
    assert p.status == ProjectStatus.cancelled.value
    assert p.cancelled_from_status == ProjectStatus.assigned.value
    assert p.cancellation_reason == "changed my mind"
    assert p.cancelled_at is not None
    assert driver.assignments.get_worker_profile(db, worker_id=people.worker).active_assignment_count == 0
    assert driver.assignments.active_assignment(db, project_id=p.id) is None


def test_worker_cannot_cancel(db, people, driver):
    p = driver.assigned()
    with pytest.raises(NotPermitted):
        ProjectsService().cancel(db, project_id=p.id, principal=principal(people.worker, ParticipantRole.WORKER))
