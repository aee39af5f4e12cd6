"""
Role-claim normalization.

The identity provider emits the roles claim in several shapes:
- "ADMINISTRADOR"                       (single string)
- "ADMINISTRADOR,FACTURISTA"            (comma-separated string)
- ["ADMINISTRADOR", "FACTURISTA"]       (list of strings)
- [{"name": "ADMINISTRADOR"}, {"code": "FACTURISTA"}]  (list of records)

classify_role_claim() turns the raw claim into a RoleClaim tagged with its
kind once; normalize_roles() is the single exhaustive function that resolves
every kind into an uppercased, de-duplicated, first-occurrence-ordered tuple.
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

# Keys tried, in order, when a role is given as a record
ROLE_RECORD_KEYS: tuple[str, ...] = ("name", "code", "role", "roleName", "role_name", "value", "label")


class RoleClaimKind(Enum):
    ABSENT = "absent"
    STRING = "string"
    STRING_LIST = "string_list"
    OBJECT_LIST = "object_list"


@dataclass(frozen=True)
class RoleClaim:
    """A roles claim tagged with the shape it arrived in."""

    kind: RoleClaimKind
    items: tuple[Any, ...] = ()


def classify_role_claim(raw: Any) -> RoleClaim:
    """
    Tag a raw roles claim with its shape.

    Scalars other than strings are wrapped as a one-element list; a single
    record is wrapped as a one-element record list. Any list holding at least
    one record is an OBJECT_LIST (its plain entries are still honoured).
    """
    if raw is None:
        return RoleClaim(RoleClaimKind.ABSENT)
    if isinstance(raw, str):
        return RoleClaim(RoleClaimKind.STRING, (raw,))
    if isinstance(raw, dict):
        return RoleClaim(RoleClaimKind.OBJECT_LIST, (raw,))
    if isinstance(raw, list | tuple):
        items = tuple(raw)
        if any(isinstance(item, dict) for item in items):
            return RoleClaim(RoleClaimKind.OBJECT_LIST, items)
        return RoleClaim(RoleClaimKind.STRING_LIST, items)
    return RoleClaim(RoleClaimKind.STRING_LIST, (raw,))


def _role_from_item(item: Any) -> str:
    if isinstance(item, str):
        return item.strip().upper()
    if isinstance(item, dict):
        for key in ROLE_RECORD_KEYS:
            candidate = item.get(key)
            if candidate:
                return str(candidate).strip().upper()
        # Unknown record shape: keep a stable textual form rather than dropping it
        return json.dumps(item, sort_keys=True, default=str)
    if item is None:
        return ""
    return str(item)


def normalize_roles(claim: RoleClaim) -> tuple[str, ...]:
    """
    Resolve a tagged claim into the canonical role tuple.

    Args:
        claim: Claim produced by classify_role_claim()

    Returns:
        Uppercased roles, duplicates removed, first occurrence kept
    """
    match claim.kind:
        case RoleClaimKind.ABSENT:
            candidates: list[str] = []
        case RoleClaimKind.STRING:
            candidates = [part.strip().upper() for part in claim.items[0].split(",")]
        case RoleClaimKind.STRING_LIST | RoleClaimKind.OBJECT_LIST:
            candidates = [_role_from_item(item) for item in claim.items]

    return tuple(dict.fromkeys(role for role in candidates if role))


def roles_from_claims(claims: dict[str, Any] | None) -> tuple[str, ...]:
    """Normalize the roles of a decoded claim set; `roles` wins over `role`."""
    if not claims:
        return ()
    raw = claims.get("roles")
    if raw is None:
        raw = claims.get("role")
    return normalize_roles(classify_role_claim(raw))
