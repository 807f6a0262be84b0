"""
Access Control Domain Exceptions

All exceptions raised by the authorization layer.
"""


class AccessControlError(Exception):
    """Base exception for access control errors"""
    code = "access_error"


class NotAuthorizedError(AccessControlError):
    """Raised when caller is not permitted to perform the action"""
    code = "not_authorized"
