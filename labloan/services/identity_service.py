# Overview: Bearer-token identity resolution; tokens are issued outside this service.

"""
Identity is owned by an external provider. This module only turns a bearer
token into an Identity(user_id, role, stock_access, name).

The default resolver verifies tokens signed with the app SECRET_KEY via
itsdangerous (the signing library Flask itself uses). Deployments with a
different provider pass their own resolver to create_app().
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol

from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from ..errors import ValidationError
from ..permissions import ROLE_IDS, ROLES


TOKEN_SALT = "labloan-identity"


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str
    stock_access: bool = False
    name: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role,
            "stock_access": self.stock_access,
            "name": self.name,
        }


def normalize_role(role) -> str:
    """Accept a role name or the provider's numeric role id."""
    if isinstance(role, int) and not isinstance(role, bool):
        if role in ROLE_IDS:
            return ROLE_IDS[role]
    elif isinstance(role, str):
        key = role.strip().lower()
        if key.isdigit() and int(key) in ROLE_IDS:
            return ROLE_IDS[int(key)]
        if key in ROLES:
            return key
    raise ValidationError(f"Unknown role '{role}'. Must be one of: {', '.join(ROLES)}")


def identity_from_claims(claims: dict) -> Identity:
    user_id = claims.get("id", claims.get("user_id"))
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        raise ValidationError("identity claims must carry an integer id")
    return Identity(
        user_id=user_id,
        role=normalize_role(claims.get("role")),
        stock_access=bool(claims.get("stock_access", False)),
        name=claims.get("name"),
    )


class IdentityResolver(Protocol):
    def resolve(self, token: str) -> Optional[Identity]:
        ...


class SignedTokenResolver:
    """Verifies tokens signed with the application secret."""

    def __init__(self, secret_key: str, *, max_age_seconds: int | None = None):
        self._serializer = URLSafeTimedSerializer(secret_key, salt=TOKEN_SALT)
        self._max_age = max_age_seconds

    def issue(self, identity: Identity) -> str:
        """Dev/test helper; production tokens come from the identity provider."""
        return self._serializer.dumps({
            "id": identity.user_id,
            "role": identity.role,
            "stock_access": identity.stock_access,
            "name": identity.name,
        })

    def resolve(self, token: str) -> Optional[Identity]:
        try:
            claims = self._serializer.loads(token, max_age=self._max_age)
        except (SignatureExpired, BadSignature):
            return None
        if not isinstance(claims, dict):
            return None
        try:
            return identity_from_claims(claims)
        except ValidationError:
            return None
