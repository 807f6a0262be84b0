"""
Role stores for access control.

Every check reads the current roles from the store, so instances sharing one
PostgreSQL database agree on the owner and the operator set.
"""

import logging
from typing import Iterable, Optional, Set

import database
from app.services.referrals.models import is_none_identity, normalize_identity

logger = logging.getLogger(__name__)


class RoleStore:
    """Owner slot + operator set."""

    async def get_owner(self) -> str:
        """Current owner, ZERO_ADDRESS when there is none"""
        raise NotImplementedError

    async def replace_owner(self, expected: str, new_owner: str) -> bool:
        """Compare-and-set the owner. Returns False if the owner is no longer `expected`."""
        raise NotImplementedError

    async def get_operators(self) -> Set[str]:
        raise NotImplementedError

    async def is_operator(self, identity: str) -> bool:
        raise NotImplementedError

    async def add_operator(self, identity: str) -> bool:
        """Returns True if the identity was not an operator before"""
        raise NotImplementedError

    async def remove_operator(self, identity: str) -> bool:
        """Returns True if the identity was an operator before"""
        raise NotImplementedError


class InMemoryRoleStore(RoleStore):
    """Process-local roles (tests, single-instance local runs)"""

    def __init__(self, owner: Optional[str] = None, operators: Optional[Iterable[str]] = None):
        self._owner = normalize_identity(owner)
        self._operators: Set[str] = {
            op for op in (operators or []) if not is_none_identity(op)
        }

    async def get_owner(self) -> str:
        return self._owner

    async def replace_owner(self, expected: str, new_owner: str) -> bool:
        if self._owner != expected:
            return False
        self._owner = normalize_identity(new_owner)
        return True

    async def get_operators(self) -> Set[str]:
        return set(self._operators)

    async def is_operator(self, identity: str) -> bool:
        return identity in self._operators

    async def add_operator(self, identity: str) -> bool:
        if identity in self._operators:
            return False
        self._operators.add(identity)
        return True

    async def remove_operator(self, identity: str) -> bool:
        if identity not in self._operators:
            return False
        self._operators.discard(identity)
        return True


class DatabaseRoleStore(RoleStore):
    """PostgreSQL-backed roles. Seeded once by database.seed_access_roles()."""

    async def get_owner(self) -> str:
        return normalize_identity(await database.get_access_owner())

    async def replace_owner(self, expected: str, new_owner: str) -> bool:
        new_value = None if is_none_identity(new_owner) else new_owner
        return await database.replace_access_owner(expected, new_value)

    async def get_operators(self) -> Set[str]:
        return set(await database.get_access_operators())

    async def is_operator(self, identity: str) -> bool:
        return identity in await self.get_operators()

    async def add_operator(self, identity: str) -> bool:
        return await database.add_access_operator(identity)

    async def remove_operator(self, identity: str) -> bool:
        return await database.remove_access_operator(identity)
