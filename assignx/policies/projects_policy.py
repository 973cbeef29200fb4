#/assignx/policies/projects_policy.py
from __future__ import annotations

import uuid
from typing import Optional

from assignx.core.errors import NotPermitted
from assignx.models.enums import ParticipantRole
from assignx.models.project import Project
from assignx.policies.rbac import Principal


def role_on_project(project: Project, participant_id: uuid.UUID) -> Optional[ParticipantRole]:
    if participant_id == project.client_id:
        return ParticipantRole.CLIENT
    if participant_id == project.intermediary_id:
        return ParticipantRole.INTERMEDIARY
    if project.worker_id is not None and participant_id == project.worker_id:
        return ParticipantRole.WORKER
    return None


def require_client(project: Project, participant_id: uuid.UUID) -> None:
    if participant_id != project.client_id:
        raise NotPermitted("Only the project's client may do this.")


def require_intermediary(project: Project, participant_id: uuid.UUID) -> None:
    if participant_id != project.intermediary_id:
        raise NotPermitted("Only the supervising intermediary may do this.")


def require_worker(project: Project, participant_id: uuid.UUID) -> None:
    if project.worker_id is None or participant_id != project.worker_id:
        raise NotPermitted("Only the assigned worker may do this.")


def can_view_project(principal: Principal, project: Project) -> bool:
    if principal.role == ParticipantRole.ADMIN:
        return True
    return role_on_project(project, principal.id) == principal.role


def can_cancel_project(principal: Principal, project: Project) -> bool:
    # Admins cancel anything; otherwise only the client or the intermediary on it.
    if principal.role == ParticipantRole.ADMIN:
        return True
    return role_on_project(project, principal.id) in {ParticipantRole.CLIENT, ParticipantRole.INTERMEDIARY}
