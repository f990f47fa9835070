# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Rate limiting using slowapi.

Limits are applied per client: the authenticated user within its tenant,
or the remote IP address for anonymous calls. Auth endpoints use a
stricter limit keyed by IP only.

Example:
    @router.post("/login")
    @limiter.limit(AUTH_LIMIT, key_func=get_ip_only)
    async def login(request: Request, ...):
        ...
"""

import logging

from fastapi import Request, Response
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from campus.core.config import get_settings

logger = logging.getLogger(__name__)


def get_client_identifier(request: Request) -> str:
    """Get a unique identifier for the client.

    Uses tenant and user ID if authenticated, otherwise the IP address.

    Args:
        request: HTTP request.

    Returns:
        Client identifier string.
    """
    user = getattr(request.state, "user", None)
    tenant_id = getattr(request.state, "tenant_id", None)

    parts = []
    if tenant_id:
        parts.append(f"tenant:{tenant_id}")

    if user:
        parts.append(f"user:{user.id}")
    else:
        parts.append(f"ip:{get_remote_address(request)}")

    return ":".join(parts)


def get_ip_only(request: Request) -> str:
    """Get client IP address only.

    Used for auth endpoints where the user is not yet authenticated.
    """
    return get_remote_address(request)


# Create the limiter instance
settings = get_settings()
limiter = Limiter(
    key_func=get_client_identifier,
    default_limits=[f"{settings.rate_limit.requests_per_minute}/minute"],
    enabled=settings.rate_limit.enabled,
    storage_uri="memory://",
)

AUTH_LIMIT = f"{settings.rate_limit.auth_requests_per_minute}/minute"


async def rate_limit_exceeded_handler(
    request: Request,
    exc: RateLimitExceeded,
) -> Response:
    """Handle rate limit exceeded errors.

    Returns a 429 Too Many Requests response with retry information.
    """
    logger.warning(
        "Rate limit exceeded: %s for %s",
        exc.detail,
        get_client_identifier(request),
    )

    return Response(
        content='{"detail": "Too many requests. Please try again later.", "code": "rate_limited"}',
        status_code=429,
        media_type="application/json",
        headers={"Retry-After": "60"},
    )
