# community_app/routes/access.py
"""
Magic-link grants carried in the Flask session.

A verified link is exchanged for a session grant so the apply page and the
prefill/submit endpoints work without the token in every request. The grant
expires together with the token it came from.
"""

import time

from flask import current_app, request, session

from community_app.membership import (
    AccessClaims,
    InvalidAccessToken,
    MagicLinkNotConfigured,
    MagicLinkSettings,
    verify_access_token,
)

GRANT_SESSION_KEY = "membership_grant"


def magic_link_settings():
    """Settings for the current request; links fall back to the request origin."""
    return MagicLinkSettings.from_config(current_app.config, fallback_origin=request.host_url.rstrip("/"))


def verify_token(token):
    secret = current_app.config.get("MAGIC_LINK_SECRET")
    if not secret:
        raise MagicLinkNotConfigured()
    return verify_access_token(secret, token)


def store_grant(claims: AccessClaims):
    session[GRANT_SESSION_KEY] = {
        "memberId": claims.member_id,
        "email": claims.email,
        "exp": claims.expires_at,
    }


def current_grant():
    grant = session.get(GRANT_SESSION_KEY)
    if not isinstance(grant, dict) or not grant.get("memberId"):
        return None
    if float(grant.get("exp") or 0) <= time.time():
        session.pop(GRANT_SESSION_KEY, None)
        return None
    return grant


def resolve_member_access(token=None):
    """Member id unlocked by ``token`` or, failing that, by the session grant."""
    if token:
        return verify_token(token).member_id
    grant = current_grant()
    if grant is None:
        raise InvalidAccessToken()
    return grant["memberId"]
