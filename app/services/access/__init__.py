"""
Access Control Service Layer

Owner/operator authorization for administrative entry points.
"""

from app.services.access.service import (
    AccessAction,
    AccessControl,
)

from app.services.access.store import (
    RoleStore,
    InMemoryRoleStore,
    DatabaseRoleStore,
)

from app.services.access.exceptions import (
    AccessControlError,
    NotAuthorizedError,
)

__all__ = [
    "AccessAction",
    "AccessControl",
    "RoleStore",
    "InMemoryRoleStore",
    "DatabaseRoleStore",
    "AccessControlError",
    "NotAuthorizedError",
]
