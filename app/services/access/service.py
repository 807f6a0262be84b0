"""
Access Control Service

Single authorization capability for administrative entry points:
- owner-only: transfer/renounce ownership, grant/revoke operator role
- operator checks via is_operator() for operator-gated entry points

Roles live in a RoleStore and are read on every check, so all instances
sharing the store see the same owner. Invite operations (bind and reads) are
open to any caller and never consult it.
"""

import logging
from enum import Enum
from typing import Iterable, Optional, Set

from app.core.events import EventBuilder, EventType
from app.services.access.exceptions import NotAuthorizedError
from app.services.access.store import InMemoryRoleStore, RoleStore
from app.services.notifications.service import EventSink, dispatch_event
from app.services.referrals.exceptions import InvalidIdentityError
from app.services.referrals.models import ZERO_ADDRESS, is_none_identity

logger = logging.getLogger(__name__)


class AccessAction(Enum):
    """Administrative actions (all owner-only)"""
    TRANSFER_OWNERSHIP = "transfer_ownership"
    RENOUNCE_OWNERSHIP = "renounce_ownership"
    GRANT_OPERATOR = "grant_operator"
    REVOKE_OPERATOR = "revoke_operator"


OWNER_ACTIONS = frozenset(AccessAction)


class AccessControl:
    """
    Owner + operator roles.

    Without a store, roles are held in process memory, seeded from `owner`
    and `operators`. The owner is not implicitly an operator. After
    renounce_ownership() no owner-only action can ever be authorized again.
    """

    def __init__(
        self,
        owner: Optional[str] = None,
        operators: Optional[Iterable[str]] = None,
        sink: Optional[EventSink] = None,
        store: Optional[RoleStore] = None,
    ):
        self.store = store or InMemoryRoleStore(owner, operators)
        self.sink = sink

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    async def get_owner(self) -> str:
        return await self.store.get_owner()

    async def get_operators(self) -> Set[str]:
        return await self.store.get_operators()

    async def is_owner(self, caller: Optional[str]) -> bool:
        if is_none_identity(caller):
            return False
        return caller == await self.store.get_owner()

    async def is_operator(self, caller: Optional[str]) -> bool:
        if is_none_identity(caller):
            return False
        return await self.store.is_operator(caller)

    async def is_authorized(self, caller: Optional[str], action: AccessAction) -> bool:
        """Is `caller` permitted to perform `action`?"""
        if action in OWNER_ACTIONS:
            return await self.is_owner(caller)
        return False

    async def require(self, caller: Optional[str], action: AccessAction) -> None:
        """
        Raises:
            NotAuthorizedError: caller may not perform action
        """
        if not await self.is_authorized(caller, action):
            logger.warning(f"ACCESS_DENIED [caller={caller}, action={action.value}]")
            raise NotAuthorizedError(f"{caller} is not allowed to {action.value}")

    # ------------------------------------------------------------------
    # Owner-only mutations
    # ------------------------------------------------------------------

    async def _replace_owner(self, caller: str, new_owner: str) -> None:
        if not await self.store.replace_owner(caller, new_owner):
            # Another instance changed the owner between the check and the write
            logger.warning(f"ACCESS_DENIED [caller={caller}, reason=ownership_changed]")
            raise NotAuthorizedError(f"{caller} is no longer the owner")

    async def transfer_ownership(self, caller: str, new_owner: str) -> None:
        await self.require(caller, AccessAction.TRANSFER_OWNERSHIP)
        if is_none_identity(new_owner):
            raise InvalidIdentityError("new owner identity is none")
        await self._replace_owner(caller, new_owner)
        logger.info(f"OWNERSHIP_TRANSFERRED [from={caller}, to={new_owner}]")
        await self._emit(EventType.OWNERSHIP_TRANSFERRED, new_owner, previous_owner=caller, new_owner=new_owner)

    async def renounce_ownership(self, caller: str) -> None:
        await self.require(caller, AccessAction.RENOUNCE_OWNERSHIP)
        await self._replace_owner(caller, ZERO_ADDRESS)
        logger.info(f"OWNERSHIP_RENOUNCED [from={caller}]")
        await self._emit(EventType.OWNERSHIP_TRANSFERRED, ZERO_ADDRESS, previous_owner=caller, new_owner=ZERO_ADDRESS)

    async def grant_operator(self, caller: str, identity: str) -> bool:
        """Returns True if the role was newly granted"""
        await self.require(caller, AccessAction.GRANT_OPERATOR)
        if is_none_identity(identity):
            raise InvalidIdentityError("operator identity is none")
        if not await self.store.add_operator(identity):
            return False
        logger.info(f"OPERATOR_GRANTED [identity={identity}, by={caller}]")
        await self._emit(EventType.OPERATOR_GRANTED, identity, granted_by=caller)
        return True

    async def revoke_operator(self, caller: str, identity: str) -> bool:
        """Returns True if the role was actually revoked"""
        await self.require(caller, AccessAction.REVOKE_OPERATOR)
        if not await self.store.remove_operator(identity):
            return False
        logger.info(f"OPERATOR_REVOKED [identity={identity}, by={caller}]")
        await self._emit(EventType.OPERATOR_REVOKED, identity, revoked_by=caller)
        return True

    async def _emit(self, event_type: EventType, entity_id: str, **metadata) -> None:
        await dispatch_event(
            self.sink,
            EventBuilder.create_event(event_type, entity_id=entity_id, metadata=metadata),
        )
