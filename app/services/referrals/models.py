"""
Invite data model: identities, user records, record entries.
"""

from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

# The "none" identity. Also used for parent of an unbound record.
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def is_none_identity(identity: Optional[str]) -> bool:
    """None, empty string and the zero address all mean "no identity"."""
    return identity is None or identity == "" or identity == ZERO_ADDRESS


def normalize_identity(identity: Optional[str]) -> str:
    """Map every spelling of "none" onto ZERO_ADDRESS; other identities pass through."""
    if is_none_identity(identity):
        return ZERO_ADDRESS
    return identity


@dataclass(frozen=True)
class UserRecord:
    """Referral record of a single identity. Zero-valued until first bind."""
    parent: str = ZERO_ADDRESS
    first_num: int = 0
    second_num: int = 0
    bind_time: int = 0

    @property
    def is_bound(self) -> bool:
        return not is_none_identity(self.parent)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RecordEntry:
    """One completed bind, stored under the parent's key"""
    addr: str
    bind_time: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class BindContext:
    """
    Snapshot of the records a bind decision depends on, read together.

    grandparent is the record of candidate.parent (zero-valued if the
    candidate is unbound).
    """
    caller: UserRecord
    candidate: UserRecord
    grandparent: UserRecord


@dataclass(frozen=True)
class RecordPage:
    """One reverse-chronological page of a parent's record ledger"""
    total: int
    items: List[RecordEntry]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "items": [item.to_dict() for item in self.items],
        }


@dataclass(frozen=True)
class BindResult:
    """Outcome of a successful bind"""
    child: str
    parent: str
    grandparent: Optional[str]
    bind_time: int
