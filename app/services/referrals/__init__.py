"""
Invite (Referral) Service Layer

Single-parent referral tree with first/second-level counters and a
per-parent, newest-first record ledger.
"""

from app.services.referrals.service import InviteService
from app.services.referrals.registry import ReferralRegistry, BindDecision, decide_bind
from app.services.referrals.ledger import RecordLedger, compute_page_window
from app.services.referrals.store import InviteStore, InMemoryInviteStore, DatabaseInviteStore
from app.services.referrals.models import (
    ZERO_ADDRESS,
    UserRecord,
    RecordEntry,
    RecordPage,
    BindResult,
    is_none_identity,
)
from app.services.referrals.exceptions import (
    InviteServiceError,
    InvalidIdentityError,
    SelfReferenceError,
    AlreadyBoundError,
    CycleDetectedError,
    InvalidPageError,
    BindLockTimeoutError,
)

__all__ = [
    "InviteService",
    "ReferralRegistry",
    "BindDecision",
    "decide_bind",
    "RecordLedger",
    "compute_page_window",
    "InviteStore",
    "InMemoryInviteStore",
    "DatabaseInviteStore",
    "ZERO_ADDRESS",
    "UserRecord",
    "RecordEntry",
    "RecordPage",
    "BindResult",
    "is_none_identity",
    "InviteServiceError",
    "InvalidIdentityError",
    "SelfReferenceError",
    "AlreadyBoundError",
    "CycleDetectedError",
    "InvalidPageError",
    "BindLockTimeoutError",
]
