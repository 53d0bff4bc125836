from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Request, Response, status

from internboard.api.schemas import (
    AccessTokenResponse,
    BanRequest,
    CompanyResponse,
    Envelope,
    IdentityResponse,
    LoginRequest,
    SessionListResponse,
    SessionRecordResponse,
    SessionRevokeResponse,
)
from internboard.logging import get_correlation_id, get_logger
from internboard.service.authenticator import Identity
from internboard.service.errors import InvalidCredentialsError, NotFoundError
from internboard.service.guards import (
    CompanyOwnerGuard,
    PostOwnerGuard,
    RoleGuard,
    UserOwnerGuard,
)
from internboard.service.roles import Role
from internboard.service.runtime import get_runtime
from internboard.storage.models import Company

logger = get_logger(__name__)

router = APIRouter(prefix="/api")

require_user = RoleGuard([Role.USER])
require_admin = RoleGuard([Role.ADMIN])
require_company_owner = CompanyOwnerGuard()
require_user_owner = UserOwnerGuard()


async def require_post_owner(request: Request) -> Identity:
    runtime = get_runtime()
    guard = PostOwnerGuard(
        lambda post_id: runtime.store.get_post(post_id, include_deleted=True),
        allow_missing_resource=runtime.settings.post_owner_allow_missing,
    )
    return await guard(request)


def _ok(data: Any) -> Envelope:
    envelope = Envelope(status="ok", data=data)
    cid = get_correlation_id()
    if cid:
        envelope.request_id = cid
    return envelope


def _refresh_cookie(request: Request) -> str:
    settings = get_runtime().settings
    token: Optional[str] = request.cookies.get(settings.refresh_cookie_name)
    if not token:
        raise InvalidCredentialsError("Refresh token not found")
    return token


def _apply_refresh_cookie(response: Response, refresh_token: str) -> None:
    runtime = get_runtime()
    response.set_cookie(
        runtime.settings.refresh_cookie_name,
        refresh_token,
        httponly=True,
        secure=runtime.settings.refresh_cookie_secure,
        samesite="lax",
        max_age=runtime.token_config.refresh_lifespan_minutes * 60,
        path=runtime.settings.refresh_cookie_path,
    )


def _clear_refresh_cookie(response: Response) -> None:
    settings = get_runtime().settings
    response.delete_cookie(
        settings.refresh_cookie_name,
        path=settings.refresh_cookie_path,
        secure=settings.refresh_cookie_secure,
        httponly=True,
        samesite="lax",
    )


def _company_response(company: Company) -> CompanyResponse:
    return CompanyResponse(
        id=company.id,
        email=company.email,
        name=company.name,
        role=company.role,
        banned=company.is_banned,
        ban_reason=company.ban_reason,
        banned_at=company.banned_at,
    )


@router.post(
    "/auth/login",
    response_model=Envelope,
    status_code=status.HTTP_201_CREATED,
    tags=["auth"],
)
async def login(body: LoginRequest, response: Response):
    """Exchange company credentials for an access token and a refresh cookie.

    Raises:
        401: Invalid password or unsupported role
        403: Account is banned
        404: No account with that email
    """
    runtime = get_runtime()
    tokens = await runtime.auth.login(body.email, body.password, body.role)
    _apply_refresh_cookie(response, tokens.refresh)
    return _ok(AccessTokenResponse(access=tokens.access))


@router.post("/auth/refresh", response_model=Envelope, tags=["auth"])
async def refresh(request: Request):
    runtime = get_runtime()
    access = await runtime.auth.refresh_access_token(_refresh_cookie(request))
    return _ok(AccessTokenResponse(access=access))


@router.post("/auth/logout", status_code=status.HTTP_204_NO_CONTENT, tags=["auth"])
async def logout(request: Request):
    runtime = get_runtime()
    await runtime.auth.logout(_refresh_cookie(request))
    response = Response(status_code=status.HTTP_204_NO_CONTENT)
    _clear_refresh_cookie(response)
    return response


@router.get("/auth/me", response_model=Envelope, tags=["auth"])
async def me(identity: Optional[Identity] = Depends(require_user)):
    return _ok(IdentityResponse(**identity.as_dict()))


@router.delete("/users/{userId}/sessions", response_model=Envelope, tags=["sessions"])
async def revoke_user_sessions(
    userId: str, identity: Identity = Depends(require_user_owner)
):
    """Log a principal out everywhere by deleting all of its refresh records."""
    runtime = get_runtime()
    revoked = await runtime.auth.revoke_user_sessions(userId)
    return _ok(SessionRevokeResponse(user_id=userId, revoked=revoked))


@router.get("/companies/{id}/sessions", response_model=Envelope, tags=["sessions"])
async def list_company_sessions(id: str, identity: Identity = Depends(require_company_owner)):
    runtime = get_runtime()
    records = await runtime.auth.list_user_sessions(id)
    return _ok(
        SessionListResponse(
            user_id=id,
            sessions=[
                SessionRecordResponse(
                    id=record.id,
                    expires_at=record.expires_at,
                    created_at=record.created_at,
                )
                for record in records
            ],
        )
    )


@router.delete(
    "/companies/{id}", status_code=status.HTTP_204_NO_CONTENT, tags=["companies"]
)
async def remove_company(id: str, identity: Identity = Depends(require_company_owner)):
    """Remove a company account together with its sessions and posts."""
    runtime = get_runtime()
    await runtime.auth.remove_company(id)
    logger.info("company_deleted", company_id=id, user_id=identity.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/companies/{id}/ban", response_model=Envelope, tags=["admin"])
async def ban_company(
    id: str, body: BanRequest, identity: Optional[Identity] = Depends(require_admin)
):
    runtime = get_runtime()
    company = await runtime.auth.ban_company(id, body.reason)
    logger.info("admin_banned_company", admin_id=identity.id, company_id=company.id)
    return _ok(_company_response(company))


@router.delete(
    "/posts/{id}", status_code=status.HTTP_204_NO_CONTENT, tags=["posts"]
)
async def delete_post(id: str, identity: Identity = Depends(require_post_owner)):
    runtime = get_runtime()
    if not runtime.store.soft_delete_post(id):
        raise NotFoundError("Post not found")
    logger.info("post_deleted", post_id=id, user_id=identity.id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
