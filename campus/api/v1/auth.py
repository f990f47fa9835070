# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Authentication API endpoints.

This module provides endpoints for user authentication:
- POST /register-tenant - Register an institution and its admin
- POST /register - Join an existing institution
- POST /register-user - Create an account in the caller's institution (admin)
- POST /login - Email and password login
- POST /refresh - Refresh access token
- POST /logout - Revoke refresh tokens
- GET /me - Identity claims of the caller

Tenancy failures (duplicate tenant or email, malformed tenant id,
provisioning errors) propagate to the application exception handlers.

Example:
    POST /api/v1/auth/register-tenant
    {
        "tenantId": "acme",
        "institutionName": "Acme University",
        "adminEmail": "admin@acme.edu",
        "adminPassword": "secret123",
        "adminName": "Ada Admin"
    }
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from campus.api.dependencies import RequirePermission, get_auth_service, require_auth
from campus.api.middleware.auth import CurrentUser
from campus.api.middleware.rate_limit import AUTH_LIMIT, get_ip_only, limiter
from campus.domains.auth.service import (
    AccountInactiveError,
    AuthResult,
    AuthService,
    InvalidCredentialsError,
    RegistrationError,
    TokenRefreshError,
)
from campus.models.auth import (
    AuthResponse,
    CurrentUserResponse,
    InviteUserRequest,
    LoginRequest,
    LogoutRequest,
    RefreshTokenRequest,
    RegisterTenantRequest,
    RegisterUserRequest,
    TokenResponse,
    UserResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_response(result: AuthResult) -> AuthResponse:
    return AuthResponse(
        user=UserResponse.model_validate(result.user),
        tokens=TokenResponse(
            access_token=result.tokens.access_token,
            refresh_token=result.tokens.refresh_token,
            token_type=result.tokens.token_type,
            expires_in=result.tokens.expires_in,
        ),
        permissions=result.permissions,
    )


@router.post(
    "/register-tenant",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register an institution",
    description="Provision a new tenant schema and create its first administrator.",
)
@limiter.limit(AUTH_LIMIT, key_func=get_ip_only)
async def register_tenant(
    request: Request,
    data: RegisterTenantRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register an institution and its administrator.

    Returns:
        AuthResponse for the new administrator.
    """
    result = await auth_service.register_tenant(
        tenant_id=data.tenant_id,
        institution_name=data.institution_name,
        admin_email=data.admin_email,
        admin_password=data.admin_password,
        admin_name=data.admin_name,
    )
    return _to_response(result)


@router.post(
    "/register",
    response_model=AuthResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a user",
    description="Create a teacher or student account in an existing institution.",
)
@limiter.limit(AUTH_LIMIT, key_func=get_ip_only)
async def register_user(
    request: Request,
    data: RegisterUserRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Register a teacher or student.

    Raises:
        HTTPException: 400 if the institution code is invalid.
    """
    try:
        result = await auth_service.register_user(
            email=data.email,
            password=data.password,
            name=data.name,
            role=data.role,
            tenant_id=data.tenant_id,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return _to_response(result)


@router.post(
    "/register-user",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invite a user",
    description="Create a teacher or student account in the caller's institution.",
)
async def invite_user(
    data: InviteUserRequest,
    current_user: CurrentUser = Depends(RequirePermission("users:create")),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserResponse:
    """Create an account on behalf of the institution admin.

    The new user joins the caller's institution and logs in separately.
    """
    try:
        user = await auth_service.invite_user(
            email=data.email,
            password=data.password,
            name=data.name,
            role=data.role,
            tenant_id=current_user.tenant_id,
            invited_by=current_user.id,
        )
    except RegistrationError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
    return UserResponse.model_validate(user)


@router.post(
    "/login",
    response_model=AuthResponse,
    summary="Login",
)
@limiter.limit(AUTH_LIMIT, key_func=get_ip_only)
async def login(
    request: Request,
    data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Authenticate with email and password.

    Raises:
        HTTPException: 401 on bad credentials, 403 if deactivated.
    """
    try:
        result = await auth_service.login(data.email, data.password)
    except InvalidCredentialsError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except AccountInactiveError as e:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(e)) from e
    return _to_response(result)


@router.post(
    "/refresh",
    response_model=AuthResponse,
    summary="Refresh tokens",
)
@limiter.limit(AUTH_LIMIT, key_func=get_ip_only)
async def refresh(
    request: Request,
    data: RefreshTokenRequest,
    auth_service: AuthService = Depends(get_auth_service),
) -> AuthResponse:
    """Exchange a refresh token for a new token pair.

    Raises:
        HTTPException: 401 if the refresh token is not valid.
    """
    try:
        result = await auth_service.refresh_tokens(data.refresh_token)
    except TokenRefreshError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    return _to_response(result)


@router.post(
    "/logout",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Logout",
)
async def logout(
    data: LogoutRequest,
    current_user: CurrentUser = Depends(require_auth),
    auth_service: AuthService = Depends(get_auth_service),
) -> None:
    """Revoke the given refresh token, or all of the user's tokens."""
    await auth_service.logout(
        user_id=current_user.id,
        refresh_token=data.refresh_token,
        revoke_all=data.revoke_all,
    )


@router.get(
    "/me",
    response_model=CurrentUserResponse,
    summary="Get current user",
)
async def get_me(
    current_user: CurrentUser = Depends(require_auth),
) -> CurrentUserResponse:
    """Return the identity and permissions carried by the access token."""
    return CurrentUserResponse(
        id=current_user.id,
        email=current_user.email,
        role=current_user.role,
        tenant_id=current_user.tenant_id,
        permissions=current_user.permissions,
    )
