"""
Request dependencies: services from app.state and the caller identity header.
"""
from typing import Optional

from fastapi import Header, HTTPException, Request

from app.services.access import AccessControl
from app.services.referrals import InviteService, is_none_identity

CALLER_HEADER = "X-Caller-Identity"


def get_invite_service(request: Request) -> InviteService:
    return request.app.state.invite_service


def get_access_control(request: Request) -> AccessControl:
    return request.app.state.access_control


def get_caller(
    x_caller_identity: Optional[str] = Header(default=None),
) -> str:
    """Every call acts on behalf of the identity in X-Caller-Identity."""
    caller = (x_caller_identity or "").strip()
    if is_none_identity(caller):
        raise HTTPException(status_code=401, detail=f"{CALLER_HEADER} header is required")
    return caller
