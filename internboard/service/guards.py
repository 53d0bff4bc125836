from __future__ import annotations

from typing import Any, Callable, Iterable, Optional

from fastapi import Request

from internboard.logging import get_logger
from internboard.service.authenticator import Identity
from internboard.service.errors import ForbiddenError
from internboard.service.roles import Role, parse_role, role_satisfies

logger = get_logger(__name__)


def request_identity(request: Request) -> Optional[Identity]:
    return getattr(request.state, "identity", None)


def check_roles(identity: Optional[Identity], required_roles: Iterable[Any]) -> None:
    required = [r for r in (parse_role(role) for role in required_roles) if r]
    if not required:
        return
    if identity is None or identity.role is None:
        raise ForbiddenError("User role not found")
    if not role_satisfies(identity.role, required):
        raise ForbiddenError("Access denied")


class RoleGuard:
    """FastAPI dependency admitting identities whose role implies any required role."""

    def __init__(self, required_roles: Iterable[Any] = ()) -> None:
        self.required_roles = tuple(required_roles)

    async def __call__(self, request: Request) -> Optional[Identity]:
        identity = request_identity(request)
        try:
            check_roles(identity, self.required_roles)
        except ForbiddenError as exc:
            logger.info(
                "role_guard_denied",
                path=request.url.path,
                reason=exc.message,
                user_id=identity.id if identity else None,
            )
            raise
        return identity


class OwnershipGuard:
    """Base for guards comparing the caller's id with a path parameter.

    Subclasses implement ``check``; ``__call__`` adapts it to a FastAPI
    dependency that returns the identity on success and raises
    ``ForbiddenError`` otherwise.
    """

    param_name = "id"

    async def __call__(self, request: Request) -> Identity:
        identity = request_identity(request)
        resource_id = request.path_params.get(self.param_name)
        try:
            await self.check(identity, resource_id)
        except ForbiddenError as exc:
            logger.info(
                "ownership_guard_denied",
                guard=type(self).__name__,
                path=request.url.path,
                reason=exc.message,
                user_id=identity.id if identity else None,
            )
            raise
        return identity  # type: ignore[return-value]

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        raise NotImplementedError

    @staticmethod
    def _require_identity(identity: Optional[Identity]) -> Identity:
        if identity is None:
            raise ForbiddenError("User not authenticated")
        return identity

    @staticmethod
    def _require_ids(identity: Identity, resource_id: Any) -> None:
        if not resource_id or not identity.id:
            raise ForbiddenError("Ownership cannot be verified")


class CompanyOwnerGuard(OwnershipGuard):
    param_name = "id"

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        identity = self._require_identity(identity)
        if identity.role is Role.ADMIN:
            return
        if identity.role is not Role.COMPANY:
            raise ForbiddenError("You can't access this resource")
        self._require_ids(identity, resource_id)
        if str(identity.id) != str(resource_id):
            raise ForbiddenError("You can only modify your own company")


class PostOwnerGuard(OwnershipGuard):
    """COMPANY callers may only touch posts they own.

    ``allow_missing_resource`` lets the request through when no post exists
    with that id, leaving the 404 to the handler.
    """

    param_name = "id"

    def __init__(
        self,
        post_lookup: Callable[[str], Any],
        *,
        allow_missing_resource: bool = True,
    ) -> None:
        self.post_lookup = post_lookup
        self.allow_missing_resource = allow_missing_resource

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        identity = self._require_identity(identity)
        if identity.role is Role.ADMIN:
            return
        if identity.role is not Role.COMPANY:
            raise ForbiddenError("You can't access this resource")
        self._require_ids(identity, resource_id)

        post = self.post_lookup(str(resource_id))
        if post is None:
            if self.allow_missing_resource:
                return
            raise ForbiddenError("Post not found or already deleted")
        if str(post.company_id) != str(identity.id):
            raise ForbiddenError("You can only modify your own post")
        if post.deleted_at is not None:
            raise ForbiddenError("Post not found or already deleted")


class StudentOwnerGuard(OwnershipGuard):
    param_name = "studentId"

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        identity = self._require_identity(identity)
        if identity.role in (Role.ADMIN, Role.COMPANY):
            return
        if identity.role is not Role.STUDENT:
            raise ForbiddenError("You can't access this resource")
        self._require_ids(identity, resource_id)
        if str(identity.id) != str(resource_id):
            raise ForbiddenError("You can only access your own student resource")


class StudentEditGuard(OwnershipGuard):
    param_name = "studentId"

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        identity = self._require_identity(identity)
        if identity.role is Role.ADMIN:
            return
        if identity.role is not Role.STUDENT:
            raise ForbiddenError("You can't edit this resource")
        self._require_ids(identity, resource_id)
        if str(identity.id) != str(resource_id):
            raise ForbiddenError("You can only edit your own student resource")


class UserOwnerGuard(OwnershipGuard):
    param_name = "userId"

    async def check(self, identity: Optional[Identity], resource_id: Any) -> None:
        identity = self._require_identity(identity)
        if identity.role is Role.ADMIN:
            return
        if identity.role not in (Role.STUDENT, Role.COMPANY):
            raise ForbiddenError("You can't access this resource")
        self._require_ids(identity, resource_id)
        if str(identity.id) != str(resource_id):
            raise ForbiddenError("You can only access your own resources")


__all__ = [
    "check_roles",
    "request_identity",
    "RoleGuard",
    "OwnershipGuard",
    "CompanyOwnerGuard",
    "PostOwnerGuard",
    "StudentOwnerGuard",
    "StudentEditGuard",
    "UserOwnerGuard",
]
