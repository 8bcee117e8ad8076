"""
Shared FastAPI dependencies.

Handlers get the per-process :class:`ServiceContainer` from application
state, so tests can install their own container through
``app.dependency_overrides``.
"""

import logging

from fastapi import Depends, Request

from origin_backend.core.errors import ConfigurationError, Unauthorized
from origin_backend.core.utils.logging_config import log_security_event
from origin_backend.services.container import ServiceContainer

logger = logging.getLogger(__name__)

API_KEY_HEADER = "Authorization"


def get_services(request: Request) -> ServiceContainer:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise ConfigurationError("Services are not initialised")
    return services


async def require_api_key(
    request: Request, services: ServiceContainer = Depends(get_services)
) -> None:
    """
    Reject the request unless it carries the shared API key.

    Raises:
        Unauthorized: If the ``Authorization`` header does not match.
    """
    if services.authenticator.check(request.headers.get(API_KEY_HEADER)):
        return
    log_security_event(
        "auth_failure",
        "Rejected request with missing or invalid API key",
        ip_address=request.client.host if request.client else None,
        extra_data={"path": request.url.path},
        level=logging.WARNING,
    )
    raise Unauthorized("Unauthorized: Invalid API Key")


async def require_rep_api_key(
    request: Request, services: ServiceContainer = Depends(get_services)
) -> None:
    """Apply :func:`require_api_key` only when ``rep_requires_api_key`` is set."""
    if services.settings.rep_requires_api_key:
        await require_api_key(request, services)
