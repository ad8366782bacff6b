"""Signed, short-lived access tokens for the magic-link flow.

Tokens are stateless: an itsdangerous-signed ``{memberId, email, iat, exp}``
bundle. Nothing is stored server side, so a token stays valid until ``exp``.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from itsdangerous import BadSignature, URLSafeSerializer

from .errors import InvalidAccessToken

TOKEN_SALT = "community.magic-link"
DEFAULT_LIFETIME_SECONDS = 20 * 60


@dataclass(frozen=True)
class AccessClaims:
    member_id: str
    email: str
    issued_at: int
    expires_at: int

    def as_payload(self) -> dict[str, Any]:
        return {"memberId": self.member_id, "email": self.email, "iat": self.issued_at, "exp": self.expires_at}


def _serializer(secret: str) -> URLSafeSerializer:
    if not secret:
        raise ValueError("MAGIC_LINK_SECRET is not configured")
    return URLSafeSerializer(secret, salt=TOKEN_SALT)


def issue_access_token(
    secret: str,
    member_id: str,
    email: str,
    *,
    now: float | None = None,
    lifetime: int = DEFAULT_LIFETIME_SECONDS,
) -> tuple[str, AccessClaims]:
    issued_at = int(time.time() if now is None else now)
    claims = AccessClaims(
        member_id=member_id,
        email=email.strip().lower(),
        issued_at=issued_at,
        expires_at=issued_at + int(lifetime),
    )
    return _serializer(secret).dumps(claims.as_payload()), claims


def verify_access_token(secret: str, token: str | None, *, now: float | None = None) -> AccessClaims:
    if not token:
        raise InvalidAccessToken()
    try:
        payload = _serializer(secret).loads(token)
    except BadSignature as exc:
        raise InvalidAccessToken() from exc

    if not isinstance(payload, dict):
        raise InvalidAccessToken()
    member_id = payload.get("memberId")
    email = payload.get("email")
    issued_at = payload.get("iat")
    expires_at = payload.get("exp")
    if not (isinstance(member_id, str) and member_id and isinstance(email, str) and email):
        raise InvalidAccessToken()
    if not (isinstance(issued_at, int) and isinstance(expires_at, int)):
        raise InvalidAccessToken()

    current = time.time() if now is None else now
    if current >= expires_at:
        raise InvalidAccessToken()
    return AccessClaims(member_id=member_id, email=email, issued_at=issued_at, expires_at=expires_at)
