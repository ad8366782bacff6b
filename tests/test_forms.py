from types import SimpleNamespace

import pytest

from community_app.forms import JoinForm, PriorityAreasForm

COUNTRIES = [
    SimpleNamespace(id="country.kenya", title="Kenya"),
    SimpleNamespace(id="country.france", title="France"),
]


def _join_form(app, **data):
    payload = {"title": "Lakeside College", "country": "country.kenya", **data}
    with app.test_request_context("/join", method="POST", data=payload):
        form = JoinForm()
        form.set_country_choices(COUNTRIES)
        valid = form.validate()
    return form, valid


class TestJoinForm:
    def test_country_choices_are_sorted_with_placeholder(self, app):
        form, _ = _join_form(app)

        assert form.country.choices == [
            ("", "Select a country"),
            ("country.france", "France"),
            ("country.kenya", "Kenya"),
        ]

    def test_valid_submission_payload(self, app):
        form, valid = _join_form(app, emails="a@x.org; b@x.org", pa='[{"areaId": "area.climate"}]')

        assert valid, form.errors
        payload = form.as_payload()
        assert payload["title"] == "Lakeside College"
        assert payload["emails"] == "a@x.org; b@x.org"
        assert payload["pa"] == '[{"areaId": "area.climate"}]'

    def test_missing_title(self, app):
        form, valid = _join_form(app, title="")

        assert not valid
        assert form.errors["title"] == ["Institution name is required."]

    def test_malformed_priority_areas(self, app):
        form, valid = _join_form(app, pa="{not json")

        assert not valid
        assert form.errors["pa"] == ["Priority area selections are not valid JSON."]

    def test_empty_priority_areas_become_none(self, app):
        form, valid = _join_form(app)

        assert valid
        assert form.as_payload()["pa"] is None


PREFILL = {
    "member": {"_id": "member.nairobi", "title": "Nairobi Institute of Technology"},
    "areas": [
        {"_id": "area.climate", "title": "Climate Action"},
        {"_id": "area.health", "title": "Health and Well-being"},
    ],
    "existing": [
        {
            "areaId": "area.health",
            "contribution": "Community health outreach programme",
            "since": "2023-02-01",
            "website": None,
        }
    ],
}


class TestPriorityAreasForm:
    def test_from_prefill_marks_existing_links(self, app):
        with app.test_request_context("/join/existing/apply"):
            form = PriorityAreasForm.from_prefill(PREFILL)

            entries = list(form.areas)
            assert [entry.area_id.data for entry in entries] == ["area.climate", "area.health"]
            assert [entry.selected.data for entry in entries] == [False, True]
            assert entries[1].contribution.data == "Community health outreach programme"
            assert form.selections() == [
                {
                    "areaId": "area.health",
                    "contribution": "Community health outreach programme",
                    "since": "2023-02-01",
                    "website": None,
                }
            ]

    def test_posted_selections(self, app):
        data = {
            "areas-0-area_id": "area.climate",
            "areas-0-selected": "y",
            "areas-0-contribution": "Campus solar programme",
            "areas-0-since": "",
            "areas-1-area_id": "area.health",
            "areas-1-contribution": "",
        }
        with app.test_request_context("/join/existing/apply", method="POST", data=data):
            form = PriorityAreasForm()

            assert form.validate(), form.errors
            assert form.selections() == [
                {"areaId": "area.climate", "contribution": "Campus solar programme", "since": None, "website": None}
            ]

    @pytest.mark.parametrize(
        "field, value, message",
        [
            ("contribution", "short", "at least 10 characters"),
            ("since", "31/31/2024", "Enter a valid date."),
        ],
    )
    def test_selected_row_is_validated(self, app, field, value, message):
        data = {
            "areas-0-area_id": "area.climate",
            "areas-0-selected": "y",
            "areas-0-contribution": "Campus solar programme",
            f"areas-0-{field}": value,
        }
        with app.test_request_context("/join/existing/apply", method="POST", data=data):
            form = PriorityAreasForm()

            assert not form.validate()
            assert message in str(form.errors)
