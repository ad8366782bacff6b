"""
Content store package.

The store is constructed once per process by :func:`init_store` from an
explicit :class:`StoreSettings` object and kept in ``app.extensions``;
handlers and commands fetch it with :func:`get_store` and pass it on
explicitly to the pipeline functions they call.
"""

from __future__ import annotations

import logging
from typing import Any, Mapping

from flask import Flask, current_app

from .base import (
    SORT_JOINED,
    SORT_TITLE,
    CommitResult,
    ContentStore,
    MemberListQuery,
    MemberPage,
    StoreConfigurationError,
    StoreError,
    StoreRequestError,
    StoreSettings,
    Transaction,
    TransactionCommitError,
)
from .memory import InMemoryContentStore
from .sanity import SanityContentStore, TokenProbe, pick_working_token, probe_tokens

logger = logging.getLogger(__name__)

STORE_EXTENSION_KEY = "content_store"
BACKEND_SANITY = "sanity"
BACKEND_MEMORY = "memory"

__all__ = [
    "BACKEND_MEMORY",
    "BACKEND_SANITY",
    "CommitResult",
    "ContentStore",
    "InMemoryContentStore",
    "MemberListQuery",
    "MemberPage",
    "SanityContentStore",
    "SORT_JOINED",
    "SORT_TITLE",
    "StoreConfigurationError",
    "StoreError",
    "StoreRequestError",
    "StoreSettings",
    "TokenProbe",
    "Transaction",
    "TransactionCommitError",
    "build_store",
    "get_store",
    "get_write_store",
    "init_store",
    "pick_working_token",
    "probe_tokens",
]


def build_store(config: Mapping[str, Any]) -> ContentStore:
    """Construct the configured store backend."""

    backend = (config.get("CONTENT_STORE_BACKEND") or BACKEND_SANITY).strip().lower()
    if backend == BACKEND_MEMORY:
        seed_path = config.get("CONTENT_STORE_SEED_PATH")
        if seed_path:
            return InMemoryContentStore.from_ndjson(seed_path)
        return InMemoryContentStore()
    if backend == BACKEND_SANITY:
        return SanityContentStore(StoreSettings.from_config(config))
    raise StoreConfigurationError(f"Unknown CONTENT_STORE_BACKEND {backend!r}")


def init_store(app: Flask) -> ContentStore | None:
    """Build the store once and register it on the app."""

    try:
        store = build_store(app.config)
    except StoreConfigurationError as exc:
        logger.warning("Content store unavailable: %s", exc)
        app.extensions[STORE_EXTENSION_KEY] = None
        return None

    app.extensions[STORE_EXTENSION_KEY] = store
    logger.info("Content store initialised (backend=%s)", store.name)
    return store


def get_store(app: Flask | None = None) -> ContentStore:
    app = app or current_app
    store = app.extensions.get(STORE_EXTENSION_KEY)
    if store is None:
        settings = StoreSettings.from_config(app.config)
        missing = ", ".join(settings.missing_settings()) or "see logs"
        raise StoreConfigurationError(f"Content store is not configured ({missing})")
    return store


def get_write_store(app: Flask | None = None) -> ContentStore:
    """
    Return a store suitable for batch writes.

    For the Sanity backend the configured tokens are probed and the first one
    that authenticates is used; no working token is a configuration error.
    """

    app = app or current_app
    store = get_store(app)
    if not isinstance(store, SanityContentStore):
        return store

    settings = store.settings
    if not settings.token:
        raise StoreConfigurationError("Writes require SANITY_WRITE_TOKEN or SANITY_API_TOKEN")
    token = pick_working_token(settings, session=store.session)
    if token is None:
        raise StoreConfigurationError("No configured content store token authenticated")
    return SanityContentStore(
        StoreSettings(
            project_id=settings.project_id,
            dataset=settings.dataset,
            api_version=settings.api_version,
            write_token=token,
            timeout=settings.timeout,
        ),
        session=store.session,
    )
