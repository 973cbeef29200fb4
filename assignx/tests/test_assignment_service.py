import pytest

from conftest import T0, add_participant
from assignx.core.errors import (
    IllegalTransition,
    InvalidInput,
    NotPermitted,
    WorkerAtCapacity,
    WorkerBlacklisted,
    WorkerUnavailable,
)
from assignx.models.enums import AssignmentState, ParticipantRole, ProjectStatus


def _slots(driver, worker_id):
    return driver.assignments.get_worker_profile(driver.db, worker_id=worker_id).active_assignment_count


def test_assign_takes_a_slot(db, people, driver, notifier):
    p = driver.assigned()

    assert p.status == ProjectStatus.assigned.value
    assert p.worker_id == people.worker
    assert p.assigned_at == T0
    assert _slots(driver, people.worker) == 1

    a = driver.assignments.active_assignment(db, project_id=p.id)
    assert a.worker_id == people.worker
    assert a.assigned_by == people.intermediary
    assert "assignment.created" in notifier.events_for(people.worker)


def test_cannot_assign_unpaid_project(db, people, driver):
    p, _q = driver.quoted()
    with pytest.raises(IllegalTransition):
        driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.worker)
    assert _slots(driver, people.worker) == 0


def test_capacity_is_enforced(db, people, driver):
    busy = add_participant(db, ParticipantRole.WORKER, "busy", max_concurrent_projects=1)
    driver.assigned(worker=busy)

    p2 = driver.paid()
    with pytest.raises(WorkerAtCapacity):
        driver.assignments.assign(db, project_id=p2.id, intermediary_id=people.intermediary, worker_id=busy)

    # Failed assignment leaves the project where it was.
    assert driver.projects.get(db, project_id=p2.id).status == ProjectStatus.paid.value
    assert _slots(driver, busy) == 1


def test_unavailable_worker_rejected(db, people, driver):
    driver.assignments.set_availability(db, worker_id=people.worker, is_available=False)
    p = driver.paid()
    with pytest.raises(WorkerUnavailable):
        driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.worker)


def test_blacklisted_worker_rejected(db, people, driver):
    driver.assignments.blacklist_worker(
        db, intermediary_id=people.intermediary, worker_id=people.worker, reason="missed deadlines"
    )
    p = driver.paid()
    with pytest.raises(WorkerBlacklisted):
        driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.worker)

    assert driver.assignments.unblacklist_worker(db, intermediary_id=people.intermediary, worker_id=people.worker)
    a = driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.worker)
    assert a.state == AssignmentState.active.value


def test_blacklist_is_idempotent(db, people, driver):
    a = driver.assignments.blacklist_worker(db, intermediary_id=people.intermediary, worker_id=people.worker)
    b = driver.assignments.blacklist_worker(db, intermediary_id=people.intermediary, worker_id=people.worker)
    assert a.id == b.id
    assert len(driver.assignments.list_blacklist(db, intermediary_id=people.intermediary)) == 1


def test_cannot_assign_non_worker(db, people, driver):
    p = driver.paid()
    with pytest.raises(InvalidInput):
        driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.client)


def test_decline_returns_project_to_assigning(db, people, driver):
    p = driver.assigned()
    a = driver.assignments.active_assignment(db, project_id=p.id)

    with pytest.raises(NotPermitted):
        driver.assignments.decline(db, assignment_id=a.id, worker_id=people.worker2)

    declined = driver.assignments.decline(db, assignment_id=a.id, worker_id=people.worker, reason="too busy")
    assert declined.state == AssignmentState.declined.value

    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.assigning.value
    assert project.worker_id is None
    assert project.is_paid is True
    assert _slots(driver, people.worker) == 0

    again = driver.assignments.assign(db, project_id=p.id, intermediary_id=people.intermediary, worker_id=people.worker2)
    assert driver.projects.get(db, project_id=p.id).worker_id == people.worker2
    assert again.state == AssignmentState.active.value


def test_reassign_moves_slot_and_links_rows(db, people, driver, notifier):
    p = driver.in_progress()
    old = driver.assignments.active_assignment(db, project_id=p.id)

    new = driver.assignments.reassign(
        db,
        assignment_id=old.id,
        intermediary_id=people.intermediary,
        new_worker_id=people.worker2,
        reason="original doer unresponsive",
    )

    project = driver.projects.get(db, project_id=p.id)
    assert project.status == ProjectStatus.assigned.value
    assert project.worker_id == people.worker2
    assert project.progress_percentage == 0

    rows = {a.id: a for a in driver.assignments.list_for_project(db, project_id=p.id)}
    assert rows[old.id].state == AssignmentState.reassigned.value
    assert rows[old.id].replaced_by_id == new.id
    assert rows[new.id].state == AssignmentState.active.value

    assert _slots(driver, people.worker) == 0
    assert _slots(driver, people.worker2) == 1
    assert "assignment.reassigned_away" in notifier.events_for(people.worker)


def test_reassign_to_same_worker_rejected(db, people, driver):
    p = driver.assigned()
    a = driver.assignments.active_assignment(db, project_id=p.id)
    with pytest.raises(InvalidInput):
        driver.assignments.reassign(
            db, assignment_id=a.id, intermediary_id=people.intermediary, new_worker_id=people.worker
        )


def test_availability_update(db, people, driver):
    prof = driver.assignments.set_availability(
        db, worker_id=people.worker, is_available=True, max_concurrent_projects=5
    )
    assert prof.max_concurrent_projects == 5
    with pytest.raises(InvalidInput):
        driver.assignments.set_availability(db, worker_id=people.worker, is_available=True, max_concurrent_projects=-1)


def test_capacity_cannot_shrink_below_held_work(db, people, driver):
    driver.assigned()
    driver.assigned()
    assert _slots(driver, people.worker) == 2

    with pytest.raises(InvalidInput):
        driver.assignments.set_availability(db, worker_id=people.worker, is_available=True, max_concurrent_projects=1)

    prof = driver.assignments.get_worker_profile(db, worker_id=people.worker)
    assert prof.max_concurrent_projects == 3
    assert prof.active_assignment_count <= prof.max_concurrent_projects

    prof = driver.assignments.set_availability(
        db, worker_id=people.worker, is_available=False, max_concurrent_projects=2
    )
    assert (prof.max_concurrent_projects, prof.is_available) == (2, False)
