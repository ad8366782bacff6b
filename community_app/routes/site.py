# community_app/routes/site.py

from flask import abort, current_app, flash, redirect, render_template, request, url_for

from community_app.forms import JoinForm, PriorityAreasForm, RequestLinkForm
from community_app.membership import (
    MembershipError,
    create_member_submission,
    prefill,
    request_access_link,
    submit_with_access,
)
from community_app.services.directory import build_directory_view, parse_listing_args
from community_app.store import StoreError, get_store

from .access import current_grant, magic_link_settings, store_grant, verify_token


def _link_invalid(status=400):
    return render_template("join/link_invalid.html"), status


def register_site_routes(app):
    """Register server-rendered pages"""

    @app.route("/")
    def index():
        query = parse_listing_args(request.args, per_page=current_app.config.get("DIRECTORY_PAGE_SIZE", 12))
        try:
            view = build_directory_view(get_store(), query)
        except StoreError as exc:
            current_app.logger.error("Directory listing failed: %s", exc, exc_info=True)
            return render_template("index.html", view=None, query=query), 503
        return render_template("index.html", view=view, query=query)

    @app.route("/member/<member_id>")
    def member_detail(member_id):
        try:
            member = get_store().get_member(member_id)
        except StoreError as exc:
            current_app.logger.warning("Member %s could not be loaded: %s", member_id, exc)
            member = None
        if member is None:
            abort(404)
        return render_template("member.html", member=member)

    @app.route("/join", methods=["GET", "POST"])
    def join():
        form = JoinForm()
        try:
            store = get_store()
            form.set_country_choices(store.list_countries())
        except StoreError as exc:
            current_app.logger.error("Join form unavailable: %s", exc, exc_info=True)
            abort(500)

        if form.validate_on_submit():
            try:
                member_id = create_member_submission(store, form.as_payload())
            except MembershipError as exc:
                flash(exc.message, "danger")
                return render_template("join/new.html", form=form), exc.status_code
            except StoreError as exc:
                current_app.logger.error("Member submission failed: %s", exc, exc_info=True)
                flash("Your submission could not be saved, please try again later.", "danger")
                return render_template("join/new.html", form=form), 500
            current_app.logger.info("New member submitted via form: %s", member_id)
            return render_template("join/thanks.html", title=form.title.data)

        status = 400 if form.is_submitted() else 200
        return render_template("join/new.html", form=form), status

    @app.route("/join/existing", methods=["GET", "POST"])
    def join_existing():
        form = RequestLinkForm()
        term = request.args.get("q", "").strip()
        matches = []
        if term:
            try:
                matches = get_store().search_members(term, limit=20)
            except StoreError as exc:
                current_app.logger.warning("Institution search failed: %s", exc)
                flash("Search is unavailable right now.", "warning")

        if form.validate_on_submit():
            try:
                result = request_access_link(
                    get_store(), form.member_id.data, form.email.data, magic_link_settings()
                )
            except MembershipError as exc:
                flash(exc.message, "danger")
                return (
                    render_template("join/existing.html", form=form, term=term, matches=matches),
                    exc.status_code,
                )
            except StoreError as exc:
                current_app.logger.error("Link request failed: %s", exc, exc_info=True)
                flash("The link could not be issued, please try again later.", "danger")
                return render_template("join/existing.html", form=form, term=term, matches=matches), 500
            return render_template("join/link_sent.html", result=result)

        status = 400 if form.is_submitted() else 200
        return render_template("join/existing.html", form=form, term=term, matches=matches), status

    @app.route("/join/existing/verify")
    def join_existing_verify():
        token = request.args.get("token", "").strip()
        if not token:
            return _link_invalid()
        try:
            claims = verify_token(token)
        except MembershipError as exc:
            current_app.logger.info("Rejected access link: %s", exc.message)
            return _link_invalid()
        store_grant(claims)
        return redirect(url_for("join_existing_apply"))

    @app.route("/join/existing/apply", methods=["GET", "POST"])
    def join_existing_apply():
        grant = current_grant()
        if grant is None:
            return _link_invalid(401)
        member_id = grant["memberId"]
        store = get_store()

        try:
            data = prefill(store, member_id)
        except MembershipError:
            return _link_invalid()
        except StoreError as exc:
            current_app.logger.error("Prefill failed for %s: %s", member_id, exc, exc_info=True)
            abort(500)

        if request.method == "GET":
            form = PriorityAreasForm.from_prefill(data)
            return render_template("join/apply.html", form=form, member=data)

        form = PriorityAreasForm()
        if not form.validate_on_submit():
            return render_template("join/apply.html", form=form, member=data), 400
        try:
            result = submit_with_access(store, member_id, form.selections())
        except MembershipError as exc:
            flash(exc.message, "danger")
            return render_template("join/apply.html", form=form, member=data), exc.status_code
        except StoreError as exc:
            current_app.logger.error("Membership update failed for %s: %s", member_id, exc, exc_info=True)
            flash("Your changes could not be saved, please try again later.", "danger")
            return render_template("join/apply.html", form=form, member=data), 500

        flash(f"Saved: {result.created} added, {result.updated} updated.", "success")
        return redirect(url_for("join_existing_apply"))
