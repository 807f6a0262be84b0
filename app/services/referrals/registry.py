"""
Referral Registry

Owns identity -> UserRecord. Decides whether a bind is allowed and applies it.

Rules:
- parent is IMMUTABLE (set once, never overwritten, never cleared)
- self-referral is blocked
- 2-cycles (candidate.parent == caller) are blocked
- 3-cycles (candidate.parent.parent == caller) are blocked

Because a parent can only be set once, checking the parent and grandparent
slots at bind time is sufficient; no deeper walk is needed.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Type

from app.services.referrals.exceptions import (
    AlreadyBoundError,
    CycleDetectedError,
    InvalidIdentityError,
    InviteServiceError,
    SelfReferenceError,
)
from app.services.referrals.models import (
    BindContext,
    BindResult,
    UserRecord,
    is_none_identity,
    normalize_identity,
)
from app.services.referrals.store import InviteStore, InviteTransaction

logger = logging.getLogger(__name__)

_EMPTY_CONTEXT = BindContext(caller=UserRecord(), candidate=UserRecord(), grandparent=UserRecord())


# ====================================================================================
# Bind Decision (pure)
# ====================================================================================

@dataclass(frozen=True)
class BindDecision:
    """Decision about whether caller may bind to parent"""
    allowed: bool
    error: Optional[Type[InviteServiceError]] = None
    reason: Optional[str] = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise self.error(self.reason)


ALLOWED = BindDecision(allowed=True)


def decide_bind(caller: str, parent: str, context: BindContext) -> BindDecision:
    """
    Decide a bind from a consistent snapshot of the involved records.

    Shared by check_bind and bind.

    Args:
        caller: Identity asking to be bound
        parent: Proposed parent identity
        context: caller, parent and parent's parent records read together

    Returns:
        BindDecision (error class and reason set when denied)
    """
    if is_none_identity(parent):
        return BindDecision(False, InvalidIdentityError, "parent identity is none")

    if is_none_identity(caller):
        return BindDecision(False, InvalidIdentityError, "caller identity is none")

    if caller == parent:
        return BindDecision(False, SelfReferenceError, f"{caller} cannot invite itself")

    if context.caller.is_bound:
        return BindDecision(
            False,
            AlreadyBoundError,
            f"{caller} is already bound to {context.caller.parent}",
        )

    if context.candidate.parent == caller:
        return BindDecision(
            False,
            CycleDetectedError,
            f"{caller} is the parent of {parent}",
        )

    if context.candidate.is_bound and context.grandparent.parent == caller:
        return BindDecision(
            False,
            CycleDetectedError,
            f"{caller} is the grandparent of {parent}",
        )

    return ALLOWED


# ====================================================================================
# Registry
# ====================================================================================

class ReferralRegistry:
    """Relationship state over an InviteStore. Callers serialize bind()."""

    def __init__(self, store: InviteStore):
        self.store = store

    async def get_user(self, identity: str) -> UserRecord:
        """Zero-valued record for identities never seen. Never raises."""
        return await self.store.get_user(normalize_identity(identity))

    async def evaluate(self, caller: str, parent: str) -> BindDecision:
        caller = normalize_identity(caller)
        parent = normalize_identity(parent)
        if is_none_identity(parent) or is_none_identity(caller):
            # No store read needed to reject none identities
            return decide_bind(caller, parent, _EMPTY_CONTEXT)
        context = await self.store.get_bind_context(caller, parent)
        return decide_bind(caller, parent, context)

    async def check_bind(self, caller: str, candidate_parent: str) -> bool:
        """Read-only eligibility check. Never raises for a denied bind."""
        decision = await self.evaluate(caller, candidate_parent)
        return decision.allowed

    async def bind(
        self,
        tx: InviteTransaction,
        caller: str,
        parent: str,
        bind_time: int,
    ) -> BindResult:
        """
        Validate and stage a bind inside `tx`. Must run under the writer lock.

        Stages: caller.parent/bind_time, parent.first_num + 1 and, when the
        parent is itself bound, grandparent.second_num + 1.

        Raises:
            InvalidIdentityError, SelfReferenceError, AlreadyBoundError,
            CycleDetectedError: bind rejected, nothing written
        """
        caller = normalize_identity(caller)
        parent = normalize_identity(parent)

        if is_none_identity(parent) or is_none_identity(caller):
            decide_bind(caller, parent, _EMPTY_CONTEXT).raise_if_denied()

        context = await tx.get_bind_context(caller, parent)
        decide_bind(caller, parent, context).raise_if_denied()

        grandparent = context.candidate.parent if context.candidate.is_bound else None

        await tx.set_parent(caller, parent, bind_time)
        await tx.increment_first_num(parent)
        if grandparent is not None:
            await tx.increment_second_num(grandparent)

        return BindResult(
            child=caller,
            parent=parent,
            grandparent=grandparent,
            bind_time=bind_time,
        )
