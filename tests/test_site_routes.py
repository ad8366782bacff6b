import time
from urllib.parse import parse_qs, urlparse

from community_app.membership import issue_access_token
from community_app.routes.access import GRANT_SESSION_KEY

CONTRIBUTION = "We run climate literacy workshops"


def _token(member_id="member.nairobi", email="info@nit.ac.ke", **kwargs):
    token, _ = issue_access_token("test-magic-secret", member_id, email, **kwargs)
    return token


def _grant(client, member_id="member.nairobi"):
    response = client.get(f"/join/existing/verify?token={_token(member_id)}")
    assert response.status_code == 302
    return response


class TestDirectoryListing:
    def test_lists_published_members(self, client, store):
        response = client.get("/")

        assert response.status_code == 200
        html = response.get_data(as_text=True)
        assert "Test University" in html
        assert "Nairobi Institute of Technology" in html
        assert "Pending Academy" not in html
        assert "3 results" in html
        assert "of 3 published members" in html

    def test_region_filter_marks_active_chip(self, client, store):
        response = client.get("/?region=region.africa")

        html = response.get_data(as_text=True)
        assert "Nairobi Institute of Technology" in html
        assert "Test University" not in html
        assert 'chip chip--active" href="/">Africa</a>' in html

    def test_search_without_results(self, client, store):
        html = client.get("/?q=zzzz").get_data(as_text=True)
        assert "No members match these filters." in html

    def test_pagination_links(self, app, client, store):
        app.config["DIRECTORY_PAGE_SIZE"] = 2

        first = client.get("/?sort=title").get_data(as_text=True)
        second = client.get("/?sort=title&page=2").get_data(as_text=True)

        assert "Page 1 of 2" in first
        assert 'href="/?sort=title&amp;page=2" rel="next"' in first
        assert "Test University" in second
        assert 'href="/?sort=title" rel="prev"' in second

    def test_store_unavailable(self, app, client):
        app.extensions["content_store"] = None

        response = client.get("/")

        assert response.status_code == 503
        assert "The directory is unavailable right now." in response.get_data(as_text=True)


class TestMemberDetail:
    def test_shows_member(self, client, store):
        response = client.get("/member/member.test-university")

        html = response.get_data(as_text=True)
        assert response.status_code == 200
        assert "Test University" in html
        assert "United States of America" in html
        assert "Member since 2024-03-05" in html

    def test_missing_member_is_404(self, client, store):
        response = client.get("/member/member.missing")

        assert response.status_code == 404
        assert "Page not found" in response.get_data(as_text=True)


class TestJoin:
    def test_form_lists_countries(self, client, store):
        html = client.get("/join").get_data(as_text=True)
        assert 'value="country.kenya"' in html

    def test_submission_creates_submitted_member(self, client, store):
        response = client.post(
            "/join",
            data={
                "title": "Lagos Open University",
                "country": "country.kenya",
                "emails": "info@lou.edu.ng",
                "pa": '[{"areaId": "area.climate", "contribution": "We run climate literacy workshops"}]',
            },
        )

        assert response.status_code == 200
        assert "Lagos Open University" in response.get_data(as_text=True)
        [member] = [doc for doc in store.documents("post") if doc["title"] == "Lagos Open University"]
        assert member["status"] == "submitted"
        assert len(store.memberships_for(member["_id"])) == 1

    def test_invalid_submission_rerenders_form(self, client, store):
        response = client.post("/join", data={"title": "", "country": "country.kenya"})

        assert response.status_code == 400
        assert "Institution name is required." in response.get_data(as_text=True)
        assert store.count_of_type("post") == 4


class TestExistingMemberFlow:
    def test_search_lists_matches(self, client, store):
        html = client.get("/join/existing?q=nai").get_data(as_text=True)

        assert 'value="member.nairobi"' in html
        assert "Nairobi Institute of Technology (Kenya)" in html

    def test_request_link_shows_preview(self, client, store):
        response = client.post("/join/existing", data={"member_id": "member.nairobi", "email": "info@nit.ac.ke"})

        html = response.get_data(as_text=True)
        assert response.status_code == 200
        assert "Link ready" in html
        assert "http://localhost/join/existing/verify?token=" in html

    def test_request_link_with_wrong_email(self, client, store):
        response = client.post("/join/existing", data={"member_id": "member.nairobi", "email": "who@example.org"})

        assert response.status_code == 403
        assert "That email is not on record for this institution" in response.get_data(as_text=True)

    def test_verify_stores_grant_and_redirects(self, client, store):
        response = _grant(client)

        assert urlparse(response.headers["Location"]).path == "/join/existing/apply"
        with client.session_transaction() as sess:
            grant = sess[GRANT_SESSION_KEY]
        assert grant["memberId"] == "member.nairobi"
        assert grant["email"] == "info@nit.ac.ke"

    def test_verify_rejects_bad_tokens(self, client, store):
        missing = client.get("/join/existing/verify")
        forged = client.get("/join/existing/verify?token=forged.token")
        expired = client.get(f"/join/existing/verify?token={_token(now=time.time() - 3600)}")

        for response in (missing, forged, expired):
            assert response.status_code == 400
            assert "Link invalid or expired" in response.get_data(as_text=True)

    def test_apply_requires_grant(self, client, store):
        response = client.get("/join/existing/apply")
        assert response.status_code == 401

    def test_expired_grant_is_dropped(self, client, store):
        with client.session_transaction() as sess:
            sess[GRANT_SESSION_KEY] = {"memberId": "member.nairobi", "email": "info@nit.ac.ke", "exp": time.time() - 1}

        assert client.get("/join/existing/apply").status_code == 401
        with client.session_transaction() as sess:
            assert GRANT_SESSION_KEY not in sess

    def test_apply_form_is_prefilled(self, client, store):
        _grant(client)

        html = client.get("/join/existing/apply").get_data(as_text=True)

        assert "Priority areas for Nairobi Institute of Technology" in html
        assert "Community health outreach programme" in html
        assert "Climate Action" in html

    def test_apply_saves_memberships(self, client, store):
        _grant(client)

        response = client.post(
            "/join/existing/apply",
            data={
                "areas-0-area_id": "area.climate",
                "areas-0-area_title": "Climate Action",
                "areas-0-selected": "y",
                "areas-0-contribution": CONTRIBUTION,
                "areas-0-since": "2024-01-15",
                "areas-1-area_id": "area.health",
                "areas-1-area_title": "Health and Well-being",
                "areas-1-selected": "y",
                "areas-1-contribution": "Community health outreach programme",
            },
            follow_redirects=True,
        )

        assert response.status_code == 200
        assert "Saved: 1 added, 1 updated." in response.get_data(as_text=True)
        links = {link["areaId"]: link for link in store.memberships_for("member.nairobi")}
        assert links["area.climate"]["since"] == "2024-01-15"
        assert links["area.climate"]["status"] == "submitted"

    def test_apply_rejects_short_contribution(self, client, store):
        _grant(client)

        response = client.post(
            "/join/existing/apply",
            data={
                "areas-0-area_id": "area.climate",
                "areas-0-area_title": "Climate Action",
                "areas-0-selected": "y",
                "areas-0-contribution": "short",
            },
        )

        assert response.status_code == 400
        assert "at least 10 characters" in response.get_data(as_text=True)
        assert len(store.memberships_for("member.nairobi")) == 1

    def test_session_grant_unlocks_json_prefill(self, client, store):
        _grant(client)

        response = client.get("/api/existing/priority/prefill")

        assert response.status_code == 200
        assert response.get_json()["memberId"] == "member.nairobi"


class TestHealthRoutes:
    def test_health(self, client, store):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "backend": "memory", "documents": store.ping()}

    def test_health_without_store(self, app, client):
        app.extensions["content_store"] = None

        response = client.get("/health")

        assert response.status_code == 503
        assert response.get_json()["ok"] is False

    def test_env_check_reports_presence_only(self, app, client):
        app.config["SANITY_WRITE_TOKEN"] = "sk-super-secret"

        data = client.get("/api/env-check").get_json()

        assert data["hasWriteToken"] is True
        assert data["hasMagicLinkSecret"] is True
        assert data["hasResendApiKey"] is False
        assert "sk-super-secret" not in str(data)

    def test_submit_health_memory_backend(self, client):
        assert client.get("/api/submit-health").get_json()["ok"] is True

    def test_store_token_check_memory_backend(self, client):
        assert client.get("/api/store-token-check").get_json() == {"ok": True, "backend": "memory", "probes": []}

    def test_store_token_check_unconfigured_sanity(self, app, client):
        app.config.update({"CONTENT_STORE_BACKEND": "sanity", "SANITY_PROJECT_ID": None, "SANITY_DATASET": None})

        data = client.get("/api/store-token-check").get_json()

        assert data["ok"] is False
        assert "SANITY_PROJECT_ID" in data["error"]
