"""
Membership self-service operations.

Every submission path (magic-link form, JSON API, admin apply endpoint,
``flask importer link-membership`` and the new-member join form) validates its
priority-area selections through :func:`validate_selections` and writes them
through :func:`upsert_memberships`, so the rules cannot drift apart.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Iterable, Mapping, Sequence
from urllib.parse import quote

from community_app.importer.normalize import fix_url, normalize_key, normalize_text, split_emails, to_iso_date
from community_app.store import ContentStore, StoreError
from community_app.store.documents import (
    COUNTRY_TYPE,
    DATE_JOINED_FIELD,
    MEMBER_TYPE,
    MEMBERSHIP_AREA_FIELD,
    MEMBERSHIP_MEMBER_FIELD,
    MEMBERSHIP_TYPE,
    MemberStatus,
    get_category_kind,
    reference,
)

from .errors import (
    EmailNotOnRecord,
    InvalidSubmission,
    LinkDeliveryError,
    MagicLinkNotConfigured,
    MemberNotFound,
    SelectionValidationError,
)
from .mailer import MailDeliveryError, ResendMailer, build_access_link_message
from .tokens import issue_access_token

logger = logging.getLogger(__name__)

MIN_CONTRIBUTION_LENGTH = 10
VERIFY_PATH = "/join/existing/verify"
PRIORITY_AREA = get_category_kind("priorityArea")


@dataclass(frozen=True)
class Selection:
    area_id: str
    contribution: str
    since: str | None = None
    website: str | None = None


@dataclass(frozen=True)
class UpsertResult:
    created: int = 0
    updated: int = 0
    membership_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class LinkRequestResult:
    sent: bool
    preview_url: str | None = None
    note: str | None = None

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"ok": True, "sent": self.sent}
        if self.preview_url:
            payload["previewUrl"] = self.preview_url
        if self.note:
            payload["note"] = self.note
        return payload


@dataclass
class MagicLinkSettings:
    secret: str | None
    base_url: str = ""
    lifetime_minutes: int = 20
    preview_enabled: bool = False
    mailer: ResendMailer | None = None

    @classmethod
    def from_config(cls, config: Mapping[str, Any], *, fallback_origin: str = "") -> "MagicLinkSettings":
        return cls(
            secret=config.get("MAGIC_LINK_SECRET") or None,
            base_url=config.get("PUBLIC_BASE_URL") or fallback_origin,
            lifetime_minutes=int(config.get("MAGIC_LINK_MAX_AGE_MINUTES") or 20),
            preview_enabled=bool(config.get("MAGIC_LINK_PREVIEW_ENABLED", False)),
            mailer=ResendMailer.from_config(config),
        )


@dataclass
class NewMemberSubmission:
    title: str
    country_id: str
    description: str = ""
    website: str = ""
    emails: list[str] = field(default_factory=list)
    focalpoint: str = ""
    selections: list[Selection] = field(default_factory=list)


# -- lookups -------------------------------------------------------------


def load_member(store: ContentStore, member_id: str) -> dict:
    """Fetch a member for a user-facing path; read failures look like not-found."""

    member_id = normalize_text(member_id)
    if not member_id:
        raise MemberNotFound()
    try:
        member = store.get_member(member_id)
    except StoreError:
        logger.exception("Member lookup failed for %s", member_id)
        raise MemberNotFound() from None
    if member is None:
        raise MemberNotFound()
    return member


def email_on_record(member: Mapping[str, Any], email: str) -> bool:
    needle = normalize_key(email)
    return bool(needle) and any(normalize_key(value) == needle for value in member.get("emails") or ())


def require_member_email(store: ContentStore, member_id: str, email: str) -> dict:
    member = load_member(store, member_id)
    if not email_on_record(member, email):
        raise EmailNotOnRecord()
    return member


# -- magic link ----------------------------------------------------------


def build_verify_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}{VERIFY_PATH}?token={quote(token, safe='')}"


def request_access_link(
    store: ContentStore,
    member_id: str,
    email: str,
    settings: MagicLinkSettings,
    *,
    now: float | None = None,
) -> LinkRequestResult:
    """
    Issue a magic link for ``member_id`` when ``email`` is on its record.

    With a mailer configured the link is only ever emailed; a delivery
    failure raises :class:`LinkDeliveryError` and the link is not returned.
    Without a mailer the link is returned as a preview only when previews
    are enabled.
    """

    if not settings.secret:
        raise MagicLinkNotConfigured()
    member = require_member_email(store, member_id, email)

    token, claims = issue_access_token(
        settings.secret,
        member["_id"],
        email,
        now=now,
        lifetime=settings.lifetime_minutes * 60,
    )
    url = build_verify_url(settings.base_url, token)

    if settings.mailer is not None:
        message = build_access_link_message(
            claims.email,
            member.get("title") or "",
            url,
            lifetime_minutes=settings.lifetime_minutes,
        )
        try:
            settings.mailer.send(message)
        except MailDeliveryError as exc:
            logger.error("Access link delivery failed for member %s: %s", member["_id"], exc)
            raise LinkDeliveryError() from exc
        return LinkRequestResult(sent=True)

    if settings.preview_enabled:
        return LinkRequestResult(
            sent=False,
            preview_url=url,
            note="Set RESEND_API_KEY and FROM_EMAIL to send the link by email.",
        )
    logger.warning("Access link requested but no mailer is configured and previews are disabled")
    raise LinkDeliveryError("Email delivery is not configured")


def prefill(store: ContentStore, member_id: str) -> dict[str, Any]:
    member = load_member(store, member_id)
    return {
        "memberId": member["_id"],
        "title": member.get("title"),
        "areas": store.list_categories(PRIORITY_AREA.doc_type),
        "existing": store.memberships_for(member["_id"]),
    }


# -- selections ----------------------------------------------------------


def validate_selections(raw: Iterable[Any] | None, *, require_any: bool = False) -> list[Selection]:
    """
    Validate raw ``{areaId, contribution, since?, website?}`` items.

    Contributions need at least ten characters after trimming, an area id is
    required and ``since`` must parse when given. Repeated area ids collapse
    to the last occurrence. All problems are collected before raising.
    """

    errors: list[str] = []
    by_area: dict[str, Selection] = {}
    for index, item in enumerate(raw or (), start=1):
        if not isinstance(item, Mapping):
            errors.append(f"Selection {index}: expected an object")
            continue
        area_id = normalize_text(item.get("areaId"))
        contribution = normalize_text(item.get("contribution"))
        raw_since = normalize_text(item.get("since"))
        since = to_iso_date(raw_since) if raw_since else None

        if not area_id:
            errors.append(f"Selection {index}: a priority area is required")
        if len(contribution) < MIN_CONTRIBUTION_LENGTH:
            errors.append(
                f"Selection {index}: contribution must be at least {MIN_CONTRIBUTION_LENGTH} characters"
            )
        if raw_since and since is None:
            errors.append(f"Selection {index}: unrecognised date {raw_since!r}")
        if area_id and len(contribution) >= MIN_CONTRIBUTION_LENGTH and not (raw_since and since is None):
            by_area[area_id] = Selection(
                area_id=area_id,
                contribution=contribution,
                since=since,
                website=fix_url(item.get("website")) or None,
            )

    if errors:
        raise SelectionValidationError(errors[0], errors=errors)
    if require_any and not by_area:
        raise SelectionValidationError("At least one selection is required")
    return list(by_area.values())


def _check_areas(store: ContentStore, selections: Sequence[Selection]) -> None:
    wanted = {selection.area_id for selection in selections}
    if not wanted:
        return
    found = {
        document["_id"]
        for document in store.get_documents(sorted(wanted))
        if document.get("_type") == PRIORITY_AREA.doc_type
    }
    unknown = sorted(wanted - found)
    if unknown:
        raise SelectionValidationError(f"Unknown priority area: {', '.join(unknown)}")


def _membership_fields(selection: Selection, status: str) -> dict[str, Any]:
    fields: dict[str, Any] = {"contribution": selection.contribution, "status": status}
    if selection.since:
        fields["since"] = selection.since
    if selection.website:
        fields["website"] = selection.website
    return fields


def upsert_memberships(
    store: ContentStore,
    member_id: str,
    selections: Sequence[Selection],
    *,
    status: str = MemberStatus.SUBMITTED.value,
    today: Callable[[], date] = date.today,
) -> UpsertResult:
    """
    Write one membership per (member, area) in a single transaction.

    An existing link is patched in place, otherwise a new one is created with
    ``since`` defaulting to today. Concurrent submissions for the same member
    are last-write-wins.
    """

    if not selections:
        return UpsertResult()
    _check_areas(store, selections)

    existing: dict[str, str] = {}
    for link in store.memberships_for(member_id):
        if link.get("areaId"):
            existing.setdefault(link["areaId"], link["_id"])

    tx = store.transaction()
    created = updated = 0
    ids: list[str] = []
    for selection in selections:
        fields = _membership_fields(selection, status)
        link_id = existing.get(selection.area_id)
        if link_id:
            tx.patch(link_id, set_values=fields)
            updated += 1
        else:
            link_id = uuid.uuid4().hex
            fields.setdefault("since", today().isoformat())
            tx.create(
                {
                    "_id": link_id,
                    "_type": MEMBERSHIP_TYPE,
                    MEMBERSHIP_MEMBER_FIELD: reference(member_id),
                    MEMBERSHIP_AREA_FIELD: reference(selection.area_id),
                    **fields,
                }
            )
            created += 1
        ids.append(link_id)
    tx.commit()
    logger.info("Upserted memberships for %s (created=%s, updated=%s)", member_id, created, updated)
    return UpsertResult(created=created, updated=updated, membership_ids=tuple(ids))


def apply_as_member(store: ContentStore, member_id: str, email: str, raw_selections: Any) -> UpsertResult:
    """Email-checked direct apply: the email must be on the member's record."""

    selections = validate_selections(_as_list(raw_selections), require_any=True)
    member = require_member_email(store, member_id, email)
    return upsert_memberships(store, member["_id"], selections)


def submit_with_access(
    store: ContentStore,
    member_id: str,
    raw_selections: Any,
    *,
    status: str = MemberStatus.SUBMITTED.value,
) -> UpsertResult:
    """Upsert for a member whose access was already proven (token, session grant or operator)."""

    selections = validate_selections(_as_list(raw_selections))
    member = load_member(store, member_id)
    return upsert_memberships(store, member["_id"], selections, status=status)


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if not isinstance(value, list):
        raise SelectionValidationError("selections must be a list")
    return value


# -- new member submissions ----------------------------------------------


def parse_priority_json(raw: Any) -> list[Selection]:
    """Parse the ``pa`` field of the join form; malformed JSON is a validation error."""

    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise SelectionValidationError("Priority area selections are not valid JSON") from exc
    return validate_selections(_as_list(raw))


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def parse_new_member(payload: Mapping[str, Any]) -> NewMemberSubmission:
    title = normalize_text(payload.get("title"))
    country_id = normalize_text(_first(payload, "country", "countryId"))
    missing = [name for name, value in (("title", title), ("country", country_id)) if not value]
    if missing:
        raise InvalidSubmission(f"Missing required fields ({', '.join(missing)})")

    return NewMemberSubmission(
        title=title,
        country_id=country_id,
        description=normalize_text(_first(payload, "description", "desc", "about")),
        website=fix_url(payload.get("website")),
        emails=split_emails(_first(payload, "emails", "email", "contactEmail")),
        focalpoint=normalize_text(payload.get("focalpoint")),
        selections=parse_priority_json(payload.get("pa")),
    )


def create_member_submission(
    store: ContentStore,
    payload: Mapping[str, Any] | NewMemberSubmission,
    *,
    today: Callable[[], date] = date.today,
) -> str:
    """Create a ``submitted`` member plus its initial memberships atomically; returns the member id."""

    submission = payload if isinstance(payload, NewMemberSubmission) else parse_new_member(payload)
    country = store.get_document(submission.country_id)
    if country is None or country.get("_type") != COUNTRY_TYPE:
        raise InvalidSubmission("Unknown country")
    _check_areas(store, submission.selections)

    member_id = uuid.uuid4().hex
    joined = today().isoformat()
    document: dict[str, Any] = {
        "_id": member_id,
        "_type": MEMBER_TYPE,
        "title": submission.title,
        DATE_JOINED_FIELD: joined,
        "country": reference(submission.country_id),
        "status": MemberStatus.SUBMITTED.value,
    }
    if submission.description:
        document["description"] = submission.description
    if submission.website:
        document["website"] = submission.website
    if submission.emails:
        document["emails"] = submission.emails
    if submission.focalpoint:
        document["focalpoint"] = submission.focalpoint

    tx = store.transaction().create(document)
    for selection in submission.selections:
        fields = _membership_fields(selection, MemberStatus.SUBMITTED.value)
        fields.setdefault("since", joined)
        tx.create(
            {
                "_type": MEMBERSHIP_TYPE,
                MEMBERSHIP_MEMBER_FIELD: reference(member_id),
                MEMBERSHIP_AREA_FIELD: reference(selection.area_id),
                **fields,
            }
        )
    tx.commit()
    logger.info("New member submission %s (%s) with %s membership(s)", member_id, submission.title, len(submission.selections))
    return member_id
