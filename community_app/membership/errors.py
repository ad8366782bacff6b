"""Exceptions raised by the membership self-service flow.

Each carries the HTTP status the JSON API answers with, so route handlers can
translate them without a lookup table.
"""

from __future__ import annotations


class MembershipError(Exception):
    status_code = 400
    public_message = "Request could not be processed"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class MemberNotFound(MembershipError):
    status_code = 404
    public_message = "Institution not found"


class EmailNotOnRecord(MembershipError):
    status_code = 403
    public_message = "That email is not on record for this institution"


class InvalidAccessToken(MembershipError):
    """Any signature, payload or expiry failure; callers only ever see the generic message."""

    status_code = 401
    public_message = "Invalid or expired link"


class SelectionValidationError(MembershipError):
    status_code = 400
    public_message = "Invalid selection"

    def __init__(self, message: str | None = None, *, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or ([message] if message else []))


class LinkDeliveryError(MembershipError):
    status_code = 502
    public_message = "Could not send the access link, please try again later"


class InvalidSubmission(MembershipError):
    status_code = 400
    public_message = "Missing required fields"


class MagicLinkNotConfigured(MembershipError):
    status_code = 500
    public_message = "Missing MAGIC_LINK_SECRET"
