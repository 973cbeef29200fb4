import pytest

from conftest import T0
from assignx.core.errors import IllegalTransition, NoDeliverables, NotPermitted
from assignx.models.enums import DeliverableKind, ProjectStatus, QCDecision, TimerState


def test_submit_requires_deliverables(db, people, driver):
    p = driver.in_progress()
    with pytest.raises(NoDeliverables):
        driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker, deliverable_refs=["  "])
    assert driver.projects.get(db, project_id=p.id).status == ProjectStatus.in_progress.value


def test_submit_from_assigned_starts_work_implicitly(db, people, driver):
    p = driver.assigned()
    p = driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker, deliverable_refs=["draft.docx"])
    assert p.status == ProjectStatus.submitted_for_qc.value
    assert p.progress_percentage == 100
    events = [h.event for h in driver.projects.lifecycle.history(db, project_id=p.id)]
    assert events[-2:] == ["start_work", "submit_for_qc"]


def test_only_assigned_worker_submits(db, people, driver):
    p = driver.in_progress()
    with pytest.raises(NotPermitted):
        driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker2, deliverable_refs=["x.docx"])


def test_qc_reject_sends_work_back(db, people, driver):
    p = driver.in_progress()
    driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker, deliverable_refs=["v1.docx"])

    p = driver.qc.record_qc_decision(
        db, project_id=p.id, intermediary_id=people.intermediary, decision=QCDecision.reject, notes="citations missing"
    )
    assert p.status == ProjectStatus.in_progress.value
    assert p.qc_rejection_count == 1
    assert p.progress_percentage == 0

    events = [h.to_status for h in driver.projects.lifecycle.history(db, project_id=p.id)]
    assert events[-3:] == ["qc_in_progress", "qc_rejected", "in_progress"]

    # Second cycle replaces the current submission.
    driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker, deliverable_refs=["v2.docx"])
    current = driver.qc.list_deliverables(db, project_id=p.id, kind=DeliverableKind.submission, current_only=True)
    assert [(d.ref, d.cycle) for d in current] == [("v2.docx", 2)]

    reviews = driver.qc.list_reviews(db, project_id=p.id)
    assert [(r.decision, r.submission_cycle) for r in reviews] == [("reject", 1)]


def test_deliver_requires_qc_approval(db, people, driver):
    p = driver.in_progress()
    with pytest.raises(IllegalTransition):
        driver.qc.deliver(db, project_id=p.id, intermediary_id=people.intermediary, deliverable_refs=["final.pdf"])


def test_deliver_requires_files(db, people, driver):
    p = driver.qc_approved()
    with pytest.raises(NoDeliverables):
        driver.qc.deliver(db, project_id=p.id, intermediary_id=people.intermediary, deliverable_refs=[])
    assert driver.projects.get(db, project_id=p.id).status == ProjectStatus.qc_approved.value


def test_deliver_arms_timer_after_commit(db, people, driver, timer_port, notifier):
    p = driver.delivered()

    assert p.status == ProjectStatus.delivered.value
    assert p.delivered_at == T0

    timer = driver.timers.get_armed(db, project_id=p.id)
    assert timer is not None
    assert timer.fire_at == T0 + driver.timers.default_duration
    assert timer_port.scheduled == [(p.id, timer.id, timer.fire_at)]
    assert "project.delivered" in notifier.events_for(people.client)


def test_client_approval_completes_and_settles(db, people, driver, timer_port):
    p = driver.delivered()
    p = driver.qc.approve(db, project_id=p.id, client_id=people.client)

    assert p.status == ProjectStatus.completed.value
    assert p.completed_at is not None
    assert driver.settlement.get_record(db, project_id=p.id, kind="settlement") is not None

    timers = driver.timers.list_for_project(db, project_id=p.id)
    assert [t.state for t in timers] == [TimerState.disarmed.value]
    assert timers[0].disarm_reason == "client_approved"
    assert len(timer_port.cancelled) == 1

    assert driver.assignments.get_worker_profile(db, worker_id=people.worker).active_assignment_count == 0


def test_only_client_approves(db, people, driver):
    p = driver.delivered()
    with pytest.raises(NotPermitted):
        driver.qc.approve(db, project_id=p.id, client_id=people.intermediary)


def test_revision_request_disarms_and_counts(db, people, driver, timer_port):
    p = driver.delivered()
    rev = driver.qc.request_revision(db, project_id=p.id, requester_id=people.client, notes="Expand section 3")

    assert rev.revision_number == 1
    assert rev.requested_by_role == "CLIENT"
    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.revision_requested.value
    assert project.revision_count == 1
    assert driver.timers.get_armed(db, project_id=p.id) is None
    assert len(timer_port.cancelled) == 1


def test_worker_cannot_request_revision(db, people, driver):
    p = driver.delivered()
    with pytest.raises(NotPermitted):
        driver.qc.request_revision(db, project_id=p.id, requester_id=people.worker, notes="I want a redo")


def test_revision_round_trip_resolves_request(db, people, driver):
    p = driver.delivered()
    driver.qc.request_revision(db, project_id=p.id, requester_id=people.client, notes="More sources")
    driver.qc.start_revision(db, project_id=p.id, worker_id=people.worker)
    p = driver.qc.submit_for_qc(db, project_id=p.id, worker_id=people.worker, deliverable_refs=["v2.docx"])

    assert p.status == ProjectStatus.submitted_for_qc.value
    revisions = driver.qc.list_revisions(db, project_id=p.id)
    assert len(revisions) == 1 and revisions[0].resolved_at is not None
