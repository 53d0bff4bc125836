from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional


class Role(str, Enum):
    """Principal roles known to the platform."""

    USER = "USER"
    STUDENT = "STUDENT"
    COMPANY = "COMPANY"
    ADMIN = "ADMIN"


# Reflexive implication map: a principal holding the key satisfies every role in the value.
ROLE_HIERARCHY: Mapping[Role, frozenset[Role]] = MappingProxyType(
    {
        Role.ADMIN: frozenset({Role.ADMIN, Role.COMPANY, Role.STUDENT, Role.USER}),
        Role.COMPANY: frozenset({Role.COMPANY, Role.USER}),
        Role.STUDENT: frozenset({Role.STUDENT, Role.USER}),
        Role.USER: frozenset({Role.USER}),
    }
)


def parse_role(value: Any) -> Optional[Role]:
    """Coerce a claim or stored value into a ``Role``; unknown values give None."""
    if isinstance(value, Role):
        return value
    if not isinstance(value, str) or not value:
        return None
    try:
        return Role(value.strip().upper())
    except ValueError:
        return None


def implied_roles(role: Any) -> frozenset[Role]:
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return ROLE_HIERARCHY[parsed]


def role_satisfies(role: Any, required: Iterable[Any]) -> bool:
    """True when ``role`` expands to at least one of ``required``."""
    wanted = {parsed for parsed in (parse_role(r) for r in required) if parsed}
    return bool(implied_roles(role) & wanted)


__all__ = ["Role", "ROLE_HIERARCHY", "parse_role", "implied_roles", "role_satisfies"]
