"""Magic-link access and priority-area membership management."""

from .errors import (
    EmailNotOnRecord,
    InvalidAccessToken,
    InvalidSubmission,
    LinkDeliveryError,
    MagicLinkNotConfigured,
    MemberNotFound,
    MembershipError,
    SelectionValidationError,
)
from .mailer import MailDeliveryError, MailMessage, ResendMailer
from .service import (
    LinkRequestResult,
    MagicLinkSettings,
    Selection,
    UpsertResult,
    apply_as_member,
    create_member_submission,
    prefill,
    request_access_link,
    submit_with_access,
    upsert_memberships,
    validate_selections,
)
from .tokens import AccessClaims, issue_access_token, verify_access_token

__all__ = [
    "AccessClaims",
    "EmailNotOnRecord",
    "InvalidAccessToken",
    "InvalidSubmission",
    "LinkDeliveryError",
    "LinkRequestResult",
    "MagicLinkNotConfigured",
    "MagicLinkSettings",
    "MailDeliveryError",
    "MailMessage",
    "MemberNotFound",
    "MembershipError",
    "ResendMailer",
    "Selection",
    "SelectionValidationError",
    "UpsertResult",
    "apply_as_member",
    "create_member_submission",
    "issue_access_token",
    "prefill",
    "request_access_link",
    "submit_with_access",
    "upsert_memberships",
    "validate_selections",
    "verify_access_token",
]
