"""
Invite Service Domain Exceptions

All exceptions raised by the invite (referral) service layer.
Every one of them is a rejected request: no state was changed.
"""


class InviteServiceError(Exception):
    """Base exception for invite service errors"""
    code = "invite_error"


class InvalidIdentityError(InviteServiceError):
    """Raised when an identity is the none sentinel where a concrete one is required"""
    code = "invalid_identity"


class SelfReferenceError(InviteServiceError):
    """Raised when caller and target identity coincide"""
    code = "self_reference"


class AlreadyBoundError(InviteServiceError):
    """Raised when caller already has a parent (parent is immutable)"""
    code = "already_bound"


class CycleDetectedError(InviteServiceError):
    """Raised when the proposed parent link would close a 2- or 3-cycle"""
    code = "cycle_detected"


class InvalidPageError(InviteServiceError):
    """Raised when page number is less than 1 or page size is negative"""
    code = "invalid_page"


class BindLockTimeoutError(InviteServiceError):
    """Raised when the bind writer lock cannot be acquired in time"""
    code = "bind_lock_timeout"
