from unittest.mock import Mock
from urllib.parse import parse_qs, urlparse

from community_app.store import StoreRequestError

CONTRIBUTION = "We run climate literacy workshops"


def _request_link(client, member_id="member.nairobi", email="info@nit.ac.ke"):
    return client.post("/api/priority/request-link", json={"memberId": member_id, "email": email})


def _issue_token(client, member_id="member.nairobi", email="info@nit.ac.ke"):
    response = _request_link(client, member_id, email)
    assert response.status_code == 200, response.get_json()
    return parse_qs(urlparse(response.get_json()["previewUrl"]).query)["token"][0]


class TestRequestLink:
    def test_preview_link_when_mail_is_not_configured(self, client, store):
        response = _request_link(client)

        assert response.status_code == 200
        data = response.get_json()
        assert data["ok"] is True
        assert data["sent"] is False
        assert data["previewUrl"].startswith("http://localhost/join/existing/verify?token=")
        assert "RESEND_API_KEY" in data["note"]

    def test_accepts_legacy_post_id(self, client, store):
        response = client.post("/api/priority/request-link", json={"postId": "member.nairobi", "email": "INFO@nit.ac.ke"})
        assert response.status_code == 200

    def test_requires_json_and_fields(self, client, store):
        assert client.post("/api/priority/request-link", data="x").status_code == 400
        response = client.post("/api/priority/request-link", json={"memberId": "member.nairobi"})
        assert response.status_code == 400
        assert response.get_json() == {"ok": False, "error": "memberId and email are required"}

    def test_rejects_email_not_on_record(self, client, store):
        response = _request_link(client, email="someone@else.org")

        assert response.status_code == 403
        assert response.get_json()["ok"] is False

    def test_unknown_member(self, client, store):
        response = _request_link(client, member_id="member.missing")

        assert response.status_code == 404
        assert response.get_json()["error"] == "Institution not found"

    def test_missing_secret(self, app, client, store):
        app.config["MAGIC_LINK_SECRET"] = None

        response = _request_link(client)

        assert response.status_code == 500
        assert response.get_json()["error"] == "Missing MAGIC_LINK_SECRET"

    def test_no_preview_and_no_mailer(self, app, client, store):
        app.config["MAGIC_LINK_PREVIEW_ENABLED"] = False

        response = _request_link(client)

        assert response.status_code == 502
        assert "previewUrl" not in response.get_json()


class TestPrefillAndSubmit:
    def test_prefill_with_token(self, client, store):
        token = _issue_token(client)

        response = client.get(f"/api/existing/priority/prefill?token={token}")

        assert response.status_code == 200
        data = response.get_json()
        assert data["ok"] is True
        assert data["memberId"] == "member.nairobi"
        assert [area["_id"] for area in data["areas"]] == ["area.climate", "area.health"]
        assert data["existing"][0]["_id"] == "membership.existing"

    def test_prefill_rejects_missing_or_bad_token(self, client, store):
        missing = client.get("/api/existing/priority/prefill")
        bad = client.get("/api/existing/priority/prefill?token=forged.token")

        assert missing.status_code == 401
        assert bad.status_code == 401
        assert bad.get_json() == {"ok": False, "error": "Invalid or expired link"}

    def test_submit_creates_and_updates(self, client, store):
        token = _issue_token(client)

        response = client.post(
            "/api/existing/priority/submit",
            json={
                "token": token,
                "selections": [
                    {"areaId": "area.climate", "contribution": CONTRIBUTION},
                    {"areaId": "area.health", "contribution": "Mobile clinics in rural counties"},
                ],
            },
        )

        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "created": 1, "updated": 1}
        assert len(store.memberships_for("member.nairobi")) == 2

    def test_submit_requires_json(self, client, store):
        response = client.post("/api/existing/priority/submit", data={"token": "x"})
        assert response.status_code == 415

    def test_submit_validation_errors(self, client, store):
        token = _issue_token(client)

        response = client.post(
            "/api/existing/priority/submit",
            json={"token": token, "selections": [{"areaId": "area.climate", "contribution": "short"}]},
        )

        assert response.status_code == 400
        data = response.get_json()
        assert data["ok"] is False
        assert len(data["errors"]) == 1
        assert store.memberships_for("member.nairobi")[0]["_id"] == "membership.existing"


class TestApply:
    def test_apply_with_matching_email(self, client, store):
        response = client.post(
            "/api/priority/apply",
            json={
                "memberId": "member.test-university",
                "email": "dean@testu.edu",
                "selections": [{"areaId": "area.climate", "contribution": CONTRIBUTION}],
            },
        )

        assert response.status_code == 200
        assert response.get_json() == {"ok": True, "created": 1, "updated": 0}

    def test_apply_with_wrong_email(self, client, store):
        response = client.post(
            "/api/priority/apply",
            json={
                "memberId": "member.test-university",
                "email": "intruder@example.org",
                "selections": [{"areaId": "area.climate", "contribution": CONTRIBUTION}],
            },
        )

        assert response.status_code == 403
        assert store.memberships_for("member.test-university") == []

    def test_apply_requires_selections(self, client, store):
        response = client.post(
            "/api/priority/apply",
            json={"memberId": "member.test-university", "email": "dean@testu.edu", "selections": []},
        )
        assert response.status_code == 400


class TestLookups:
    def test_search(self, client, store):
        response = client.get("/api/members/search?q=nai")

        assert response.get_json() == {
            "ok": True,
            "matches": [
                {"_id": "member.nairobi", "title": "Nairobi Institute of Technology", "countryTitle": "Kenya"}
            ],
        }
        assert client.get("/api/members/search?q=").get_json() == {"ok": True, "matches": []}

    def test_lookup_by_email(self, client, store):
        response = client.get("/api/members/lookup?email=Contact@TestU.edu")

        data = response.get_json()
        assert [match["_id"] for match in data["matches"]] == ["member.test-university"]
        assert [area["title"] for area in data["areas"]] == ["Climate Action", "Health and Well-being"]

    def test_lookup_requires_email(self, client, store):
        response = client.get("/api/members/lookup")
        assert response.status_code == 400
        assert response.get_json()["error"] == "Email required"

    def test_store_failure_is_reported(self, app, client):
        broken = Mock()
        broken.search_members.side_effect = StoreRequestError("down", status_code=503)
        app.extensions["content_store"] = broken

        response = client.get("/api/members/search?q=nai")

        assert response.status_code == 500
        assert response.get_json() == {"ok": False, "error": "Search failed"}


class TestNewMemberSubmit:
    def test_json_submission(self, client, store):
        response = client.post(
            "/api/submit",
            json={
                "title": "Lagos Open University",
                "country": "country.kenya",
                "email": "info@lou.edu.ng",
                "pa": [{"areaId": "area.climate", "contribution": CONTRIBUTION}],
            },
        )

        assert response.status_code == 200
        member_id = response.get_json()["id"]
        member = store.get_document(member_id)
        assert member["status"] == "submitted"
        assert member["emails"] == ["info@lou.edu.ng"]
        assert len(store.memberships_for(member_id)) == 1

    def test_form_submission(self, client, store):
        response = client.post("/api/submit", data={"title": "Form College", "countryId": "country.france"})

        assert response.status_code == 200
        assert store.get_document(response.get_json()["id"])["country"]["_ref"] == "country.france"

    def test_missing_fields(self, client, store):
        response = client.post("/api/submit", json={"title": ""})

        assert response.status_code == 400
        assert response.get_json() == {"ok": False, "error": "Missing required fields (title, country)"}


def test_unknown_api_route_returns_json(client):
    response = client.get("/api/nope")

    assert response.status_code == 404
    assert response.get_json() == {"ok": False, "error": "Not found"}


def test_api_method_not_allowed_returns_json(client):
    response = client.get("/api/submit")

    assert response.status_code == 405
    assert response.get_json()["ok"] is False
