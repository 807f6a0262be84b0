"""
Request and response models for the HTTP API.
"""
from typing import List

from pydantic import BaseModel, Field


class BindRequest(BaseModel):
    parent: str = Field(..., description="Identity of the inviting participant")


class BindResponse(BaseModel):
    child: str
    parent: str
    bind_time: int


class UserResponse(BaseModel):
    identity: str
    parent: str
    first_num: int
    second_num: int
    bind_time: int


class CheckBindResponse(BaseModel):
    caller: str
    parent: str
    eligible: bool


class RecordItem(BaseModel):
    addr: str
    bind_time: int


class RecordPageResponse(BaseModel):
    parent: str
    page: int
    size: int
    total: int
    items: List[RecordItem]


class TransferOwnershipRequest(BaseModel):
    new_owner: str


class OperatorRequest(BaseModel):
    identity: str


class RolesResponse(BaseModel):
    owner: str
    operators: List[str]


class OperatorChangeResponse(BaseModel):
    identity: str
    changed: bool
