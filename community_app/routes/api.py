# community_app/routes/api.py

"""
JSON API routes. Every response body is ``{"ok": bool, "error"?: str, ...}``.
"""

from flask import current_app, jsonify, request

from community_app.membership import (
    MembershipError,
    SelectionValidationError,
    apply_as_member,
    create_member_submission,
    prefill,
    request_access_link,
    submit_with_access,
)
from community_app.store import StoreError, get_store

from .access import magic_link_settings, resolve_member_access


def api_error(message, status):
    return jsonify({"ok": False, "error": message}), status


def membership_error_response(exc: MembershipError):
    body = {"ok": False, "error": exc.message}
    if isinstance(exc, SelectionValidationError) and exc.errors:
        body["errors"] = exc.errors
    return jsonify(body), exc.status_code


def store_error_response(exc: StoreError, action: str):
    current_app.logger.error("Content store failure during %s: %s", action, exc, exc_info=True)
    return api_error(f"{action.capitalize()} failed", 500)


def _json_body():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else None


def _member_id_from(data):
    # Older clients still send the historic ``postId`` key
    return str(data.get("memberId") or data.get("postId") or "").strip()


def register_api_routes(app):
    """Register JSON API routes"""

    @app.route("/api/priority/request-link", methods=["POST"])
    def api_request_link():
        data = _json_body()
        if data is None:
            return api_error("Expected a JSON body", 400)

        member_id = _member_id_from(data)
        email = str(data.get("email") or "").strip()
        if not member_id or not email:
            return api_error("memberId and email are required", 400)

        try:
            result = request_access_link(get_store(), member_id, email, magic_link_settings())
        except MembershipError as exc:
            current_app.logger.info("Access link refused for member %s: %s", member_id, exc.message)
            return membership_error_response(exc)
        except StoreError as exc:
            return store_error_response(exc, "link request")

        current_app.logger.info("Access link issued for member %s (sent=%s)", member_id, result.sent)
        return jsonify(result.as_dict())

    @app.route("/api/existing/priority/prefill", methods=["GET"])
    def api_priority_prefill():
        try:
            member_id = resolve_member_access(request.args.get("token"))
            payload = prefill(get_store(), member_id)
        except MembershipError as exc:
            return membership_error_response(exc)
        except StoreError as exc:
            return store_error_response(exc, "prefill")
        return jsonify({"ok": True, **payload})

    @app.route("/api/existing/priority/submit", methods=["POST"])
    def api_priority_submit():
        if not request.is_json:
            return api_error("Expected application/json", 415)
        data = _json_body()
        if data is None:
            return api_error("Expected a JSON object", 400)

        try:
            member_id = resolve_member_access(data.get("token"))
            result = submit_with_access(get_store(), member_id, data.get("selections"))
        except MembershipError as exc:
            return membership_error_response(exc)
        except StoreError as exc:
            return store_error_response(exc, "submission")

        current_app.logger.info(
            "Priority memberships saved for %s: created=%d updated=%d", member_id, result.created, result.updated
        )
        return jsonify({"ok": True, "created": result.created, "updated": result.updated})

    @app.route("/api/priority/apply", methods=["POST"])
    def api_priority_apply():
        data = _json_body()
        if data is None:
            return api_error("Expected a JSON body", 400)

        member_id = _member_id_from(data)
        email = str(data.get("email") or "").strip()
        if not member_id or not email:
            return api_error("memberId and email are required", 400)

        try:
            result = apply_as_member(get_store(), member_id, email, data.get("selections"))
        except MembershipError as exc:
            return membership_error_response(exc)
        except StoreError as exc:
            return store_error_response(exc, "application")
        return jsonify({"ok": True, "created": result.created, "updated": result.updated})

    @app.route("/api/members/search", methods=["GET"])
    def api_members_search():
        query = request.args.get("q", "").strip()
        if not query:
            return jsonify({"ok": True, "matches": []})
        try:
            matches = get_store().search_members(query, limit=20)
        except StoreError as exc:
            return store_error_response(exc, "search")
        return jsonify({"ok": True, "matches": matches})

    @app.route("/api/members/lookup", methods=["GET"])
    def api_members_lookup():
        email = request.args.get("email", "").strip().lower()
        if not email:
            return api_error("Email required", 400)
        try:
            store = get_store()
            matches = store.find_members_by_email(email)
            areas = store.list_categories("priorityArea")
        except StoreError as exc:
            return store_error_response(exc, "lookup")
        return jsonify({"ok": True, "matches": matches, "areas": areas})

    @app.route("/api/submit", methods=["POST"])
    def api_submit():
        if request.is_json:
            payload = _json_body()
            if payload is None:
                return api_error("Expected a JSON object", 400)
        else:
            payload = request.form.to_dict()

        try:
            member_id = create_member_submission(get_store(), payload)
        except MembershipError as exc:
            return membership_error_response(exc)
        except StoreError as exc:
            return store_error_response(exc, "submission")
        current_app.logger.info("New member submitted: %s", member_id)
        return jsonify({"ok": True, "id": member_id})
