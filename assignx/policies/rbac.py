#assignx/policies/rbac.py
from __future__ import annotations
import uuid
from dataclasses import dataclass
from typing import Set

from assignx.core.errors import NotPermitted
from assignx.models.enums import ParticipantRole


@dataclass(frozen=True)
class Principal:
    participant_id: str
    role: ParticipantRole
    display_name: str

    @property
    def id(self) -> uuid.UUID:
        return uuid.UUID(self.participant_id)


# --- Core action constants ---
ACTION_CREATE_PROJECT = "CREATE_PROJECT"
ACTION_CANCEL_PROJECT = "CANCEL_PROJECT"
ACTION_MANAGE_QUOTE = "MANAGE_QUOTE"
ACTION_RESPOND_QUOTE = "RESPOND_QUOTE"
ACTION_PAY = "PAY"
ACTION_ASSIGN = "ASSIGN"
ACTION_MANAGE_BLACKLIST = "MANAGE_BLACKLIST"
ACTION_RESPOND_ASSIGNMENT = "RESPOND_ASSIGNMENT"
ACTION_DO_WORK = "DO_WORK"
ACTION_QC = "QC"
ACTION_DELIVER = "DELIVER"
ACTION_APPROVE = "APPROVE"
ACTION_REQUEST_REVISION = "REQUEST_REVISION"
ACTION_SETTLE = "SETTLE"
ACTION_REFUND = "REFUND"
ACTION_RUN_TIMERS = "RUN_TIMERS"
ACTION_SET_AVAILABILITY = "SET_AVAILABILITY"
ACTION_VIEW_AUDIT = "VIEW_AUDIT"
ACTION_REQUEST_PAYOUT = "REQUEST_PAYOUT"
ACTION_REVIEW_PAYOUT = "REVIEW_PAYOUT"


def allowed_actions(role: ParticipantRole) -> Set[str]:
    """
    Pure RBAC: which actions a role may attempt.
    Project ownership is checked separately by the services.
    """

    if role == ParticipantRole.CLIENT:
        return {
            ACTION_CREATE_PROJECT,
            ACTION_CANCEL_PROJECT,
            ACTION_RESPOND_QUOTE,
            ACTION_PAY,
            ACTION_APPROVE,
            ACTION_REQUEST_REVISION,
        }

    if role == ParticipantRole.INTERMEDIARY:
        return {
            ACTION_CANCEL_PROJECT,
            ACTION_MANAGE_QUOTE,
            ACTION_ASSIGN,
            ACTION_MANAGE_BLACKLIST,
            ACTION_QC,
            ACTION_DELIVER,
            ACTION_REQUEST_REVISION,
            ACTION_REFUND,
            ACTION_VIEW_AUDIT,
            ACTION_REQUEST_PAYOUT,
        }

    if role == ParticipantRole.WORKER:
        return {ACTION_RESPOND_ASSIGNMENT, ACTION_DO_WORK, ACTION_SET_AVAILABILITY, ACTION_REQUEST_PAYOUT}

    if role == ParticipantRole.ADMIN:
        return {
            ACTION_CANCEL_PROJECT,
            ACTION_SETTLE,
            ACTION_REFUND,
            ACTION_RUN_TIMERS,
            ACTION_VIEW_AUDIT,
            ACTION_REVIEW_PAYOUT,
        }

    return set()


def require_action(principal: Principal, action: str) -> None:
    if action not in allowed_actions(principal.role):
        raise NotPermitted(
            f"Role {principal.role.value} not permitted for action {action}."
        )
