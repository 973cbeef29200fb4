#assignx/core/auth_deps.py
from __future__ import annotations

import uuid
from typing import Callable

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError

from assignx.core.security import decode_token
from assignx.models.enums import ParticipantRole
from assignx.policies.rbac import Principal

bearer = HTTPBearer(auto_error=True)


def get_current_principal(
    request: Request,
    creds: HTTPAuthorizationCredentials = Depends(bearer),
) -> Principal:
    """
    Canonical authentication dependency.

    Guarantees:
    - JWT is valid
    - role and participant_id are present
    - role is a valid ParticipantRole
    - participant_id is a UUID
    """

    try:
        payload = decode_token(creds.credentials)
    except JWTError:
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    role = payload.get("role")
    participant_id = payload.get("participant_id")
    display_name = payload.get("display_name") or "Unknown"

    if not role or not participant_id:
        raise HTTPException(status_code=401, detail="Token missing required claims.")

    try:
        role_enum = ParticipantRole(role)
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid role in token.")

    try:
        uuid.UUID(str(participant_id))
    except ValueError:
        raise HTTPException(status_code=401, detail="Invalid participant id in token.")

    principal = Principal(
        participant_id=str(participant_id),
        role=role_enum,
        display_name=str(display_name),
    )

    # Make principal available to downstream middleware / handlers
    request.state.principal = principal

    return principal


def require_roles(*roles: ParticipantRole) -> Callable[..., Principal]:
    allowed = set(roles)

    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed:
            raise HTTPException(
                status_code=403,
                detail=f"Role {principal.role.value} not permitted for this action.",
            )
        return principal

    return _dep
