"""
Invite endpoints: get_user, check_bind, bind, paged records.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from app.api.deps import get_caller, get_invite_service
from app.api.schemas import (
    BindRequest,
    BindResponse,
    CheckBindResponse,
    RecordItem,
    RecordPageResponse,
    UserResponse,
)
from app.services.referrals import InviteService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/invites", tags=["invites"])


@router.get("/users/{identity}", response_model=UserResponse)
async def get_user(identity: str, service: InviteService = Depends(get_invite_service)):
    record = await service.get_user(identity)
    return UserResponse(identity=identity, **record.to_dict())


@router.get("/check-bind", response_model=CheckBindResponse)
async def check_bind(
    parent: str = Query(...),
    caller: str = Depends(get_caller),
    service: InviteService = Depends(get_invite_service),
):
    eligible = await service.check_bind(caller, parent)
    return CheckBindResponse(caller=caller, parent=parent, eligible=eligible)


@router.post("/bind", response_model=BindResponse)
async def bind(
    body: BindRequest,
    request: Request,
    caller: str = Depends(get_caller),
    service: InviteService = Depends(get_invite_service),
):
    result = await service.bind(
        caller,
        body.parent,
        correlation_id=request.headers.get("X-Request-Id"),
    )
    return BindResponse(child=result.child, parent=result.parent, bind_time=result.bind_time)


@router.get("/records/{parent}", response_model=RecordPageResponse)
async def page_records(
    parent: str,
    request: Request,
    page: int = Query(1),
    size: Optional[int] = Query(None),
    service: InviteService = Depends(get_invite_service),
):
    settings = request.app.state.settings
    if size is None:
        size = settings["default_page_size"]
    if size > settings["max_page_size"]:
        raise HTTPException(
            status_code=422,
            detail=f"size must be <= {settings['max_page_size']}",
        )

    record_page = await service.page_records(parent, page, size)
    return RecordPageResponse(
        parent=parent,
        page=page,
        size=size,
        total=record_page.total,
        items=[RecordItem(addr=item.addr, bind_time=item.bind_time) for item in record_page.items],
    )
