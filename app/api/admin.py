"""
Administrative endpoints (owner-only). Authorization is checked by AccessControl.
"""
from fastapi import APIRouter, Depends

from app.api.deps import get_access_control, get_caller
from app.api.schemas import (
    OperatorChangeResponse,
    OperatorRequest,
    RolesResponse,
    TransferOwnershipRequest,
)
from app.services.access import AccessControl

router = APIRouter(prefix="/admin", tags=["admin"])


async def _roles(access: AccessControl) -> RolesResponse:
    owner = await access.get_owner()
    operators = await access.get_operators()
    return RolesResponse(owner=owner, operators=sorted(operators))


@router.get("/roles", response_model=RolesResponse)
async def get_roles(access: AccessControl = Depends(get_access_control)):
    return await _roles(access)


@router.post("/ownership/transfer", response_model=RolesResponse)
async def transfer_ownership(
    body: TransferOwnershipRequest,
    caller: str = Depends(get_caller),
    access: AccessControl = Depends(get_access_control),
):
    await access.transfer_ownership(caller, body.new_owner)
    return await _roles(access)


@router.post("/ownership/renounce", response_model=RolesResponse)
async def renounce_ownership(
    caller: str = Depends(get_caller),
    access: AccessControl = Depends(get_access_control),
):
    await access.renounce_ownership(caller)
    return await _roles(access)


@router.post("/operators", response_model=OperatorChangeResponse)
async def grant_operator(
    body: OperatorRequest,
    caller: str = Depends(get_caller),
    access: AccessControl = Depends(get_access_control),
):
    changed = await access.grant_operator(caller, body.identity)
    return OperatorChangeResponse(identity=body.identity, changed=changed)


@router.delete("/operators/{identity}", response_model=OperatorChangeResponse)
async def revoke_operator(
    identity: str,
    caller: str = Depends(get_caller),
    access: AccessControl = Depends(get_access_control),
):
    changed = await access.revoke_operator(caller, identity)
    return OperatorChangeResponse(identity=identity, changed=changed)
