# community_app/routes/health.py

"""
Read-only diagnostics. These report whether secrets are configured, never their values.
"""

from flask import current_app, jsonify

from community_app.store import BACKEND_MEMORY, StoreError, StoreSettings, get_store, probe_tokens


def _present(key):
    return bool(current_app.config.get(key))


def _backend():
    return (current_app.config.get("CONTENT_STORE_BACKEND") or "sanity").lower()


def register_health_routes(app):
    """Register health and configuration check routes"""

    @app.route("/health", methods=["GET"])
    def health():
        try:
            documents = get_store().ping()
        except StoreError as exc:
            current_app.logger.warning("Health check failed: %s", exc)
            return jsonify({"ok": False, "error": "Content store unavailable"}), 503
        return jsonify({"ok": True, "backend": _backend(), "documents": documents})

    @app.route("/api/env-check", methods=["GET"])
    def api_env_check():
        config = current_app.config
        return jsonify(
            {
                "ok": True,
                "backend": _backend(),
                "projectId": config.get("SANITY_PROJECT_ID"),
                "dataset": config.get("SANITY_DATASET"),
                "hasWriteToken": _present("SANITY_WRITE_TOKEN"),
                "hasApiToken": _present("SANITY_API_TOKEN"),
                "hasMagicLinkSecret": _present("MAGIC_LINK_SECRET"),
                "hasResendApiKey": _present("RESEND_API_KEY"),
                "hasFromEmail": _present("FROM_EMAIL"),
                "hasPublicBaseUrl": _present("PUBLIC_BASE_URL"),
            }
        )

    @app.route("/api/submit-health", methods=["GET"])
    def api_submit_health():
        settings = StoreSettings.from_config(current_app.config)
        ready = _backend() == BACKEND_MEMORY or (settings.is_configured and bool(settings.token))
        body = {
            "ok": ready,
            "projectId": settings.project_id,
            "dataset": settings.dataset,
            "hasWriteToken": bool(settings.write_token),
            "hasApiToken": bool(settings.read_token),
        }
        if not ready:
            body["error"] = "Submissions need a project, a dataset and a write token"
        return jsonify(body)

    @app.route("/api/store-token-check", methods=["GET"])
    def api_store_token_check():
        if _backend() == BACKEND_MEMORY:
            return jsonify({"ok": True, "backend": BACKEND_MEMORY, "probes": []})

        settings = StoreSettings.from_config(current_app.config)
        if not settings.is_configured:
            presence = [
                {"name": "SANITY_WRITE_TOKEN", "present": bool(settings.write_token)},
                {"name": "SANITY_API_TOKEN", "present": bool(settings.read_token)},
            ]
            return jsonify(
                {
                    "ok": False,
                    "error": "Missing " + ", ".join(settings.missing_settings()),
                    "probes": presence,
                }
            )

        probes = probe_tokens(settings)
        return jsonify(
            {
                "ok": any(probe.ok for probe in probes),
                "apiVersion": settings.api_version,
                "probes": [probe.as_dict() for probe in probes],
            }
        )
