"""
API module: HTTP endpoints for invites, administration and health.

Every operation acts on behalf of the identity in the X-Caller-Identity header.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api import admin, invites
from app.services.access import AccessControl, AccessControlError, NotAuthorizedError
from app.services.referrals import (
    AlreadyBoundError,
    BindLockTimeoutError,
    CycleDetectedError,
    InvalidIdentityError,
    InvalidPageError,
    InviteService,
    InviteServiceError,
    SelfReferenceError,
)

logger = logging.getLogger(__name__)

# Rejected requests -> HTTP status
ERROR_STATUS = {
    InvalidIdentityError: 400,
    SelfReferenceError: 400,
    InvalidPageError: 400,
    AlreadyBoundError: 409,
    CycleDetectedError: 409,
    BindLockTimeoutError: 503,
    NotAuthorizedError: 403,
}


def error_status(exc: Exception) -> int:
    for exc_type, status in ERROR_STATUS.items():
        if isinstance(exc, exc_type):
            return status
    return 400


async def _domain_error_handler(request: Request, exc: Exception) -> JSONResponse:
    status = error_status(exc)
    if status >= 500:
        logger.warning(f"API_UNAVAILABLE [path={request.url.path}, error={exc}]")
    return JSONResponse(
        status_code=status,
        content={"error": getattr(exc, "code", "error"), "detail": str(exc)},
    )


def create_app(
    invite_service: InviteService,
    access_control: AccessControl,
    default_page_size: int = 20,
    max_page_size: int = 100,
) -> FastAPI:
    """
    Build the FastAPI application around already-constructed services.
    """
    app = FastAPI(title="Invite Registry")
    app.state.invite_service = invite_service
    app.state.access_control = access_control
    app.state.settings = {
        "default_page_size": default_page_size,
        "max_page_size": max_page_size,
    }

    app.add_exception_handler(InviteServiceError, _domain_error_handler)
    app.add_exception_handler(AccessControlError, _domain_error_handler)

    app.include_router(invites.router)
    app.include_router(admin.router)

    @app.get("/health")
    async def health():
        return JSONResponse({"status": "ok"})

    return app
