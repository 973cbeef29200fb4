# assignx/api/v1/timers.py
from __future__ import annotations

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from assignx.core.auth_deps import get_current_principal
from assignx.core.deps import notifier_dep, timer_port_dep
from assignx.db.session import get_db
from assignx.policies.rbac import ACTION_RUN_TIMERS, Principal, require_action
from assignx.services.audit_service import AuditAction, audit_event
from assignx.services.projects_service import ProjectsService
from assignx.services.timer_service import TimerService

router = APIRouter()


def _iso(dt):
    return dt.isoformat() if dt else None


@router.post("/timers/sweep")
def sweep_timers(
    request: Request,
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    timer_port=Depends(timer_port_dep),
    notifier=Depends(notifier_dep),
):
    """Fire every overdue auto-approval timer. Safe to call repeatedly."""
    require_action(principal, ACTION_RUN_TIMERS)
    fired = TimerService(port=timer_port, notifier=notifier).fire_due(db, limit=limit)

    audit_event(
        db,
        request=request,
        actor_participant_id=principal.participant_id,
        actor_role=principal.role.value,
        project_id=None,
        action=AuditAction.TIMER_SWEEP,
        payload_summary={"fired": len(fired)},
    )
    return {"fired": [str(pid) for pid in fired]}


@router.get("/projects/{project_id}/timers")
def list_project_timers(
    project_id: uuid.UUID,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_current_principal),
    timer_port=Depends(timer_port_dep),
):
    ProjectsService().get_for_participant(db, principal=principal, project_id=project_id)
    timers = TimerService(port=timer_port).list_for_project(db, project_id=project_id)
    return [
        {
            "timerId": str(t.id),
            "state": t.state,
            "armedAtIso": _iso(t.armed_at),
            "fireAtIso": _iso(t.fire_at),
            "durationSeconds": t.duration_seconds,
            "disarmReason": t.disarm_reason,
            "resolvedAtIso": _iso(t.resolved_at),
        }
        for t in timers
    ]
