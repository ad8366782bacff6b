# community_app/forms/membership.py
"""
Forms for the join and update-membership pages
"""

import json

from flask_wtf import FlaskForm
from wtforms import (
    BooleanField,
    FieldList,
    Form,
    FormField,
    HiddenField,
    SelectField,
    StringField,
    SubmitField,
    TextAreaField,
)
from wtforms.validators import DataRequired, Email, Length, Optional, ValidationError

from community_app.importer.normalize import to_iso_date
from community_app.membership.service import MIN_CONTRIBUTION_LENGTH


class JoinForm(FlaskForm):
    """New institution submission"""

    title = StringField(
        "Institution name",
        validators=[
            DataRequired(message="Institution name is required."),
            Length(max=300, message="Institution name must be less than 300 characters."),
        ],
        render_kw={"placeholder": "Enter the institution name"},
    )
    country = SelectField(
        "Country",
        validators=[DataRequired(message="Country is required.")],
        choices=[],  # Populated from the content store by the view
    )
    description = TextAreaField(
        "About",
        validators=[Length(max=5000, message="Description must be less than 5000 characters.")],
        render_kw={"rows": 4},
    )
    website = StringField("Website", render_kw={"placeholder": "https://example.org"})
    emails = StringField(
        "Contact email(s)",
        render_kw={"placeholder": "name@example.org; other@example.org"},
    )
    focalpoint = StringField("Focal point", validators=[Length(max=300)])
    pa = HiddenField("Priority areas")
    submit = SubmitField("Submit")

    def set_country_choices(self, countries):
        self.country.choices = [("", "Select a country")] + [
            (country.id, country.title) for country in sorted(countries, key=lambda c: c.title)
        ]

    def validate_pa(self, field):
        if field.data:
            try:
                json.loads(field.data)
            except ValueError:
                raise ValidationError("Priority area selections are not valid JSON.")

    def as_payload(self):
        return {
            "title": self.title.data,
            "country": self.country.data,
            "description": self.description.data,
            "website": self.website.data,
            "emails": self.emails.data,
            "focalpoint": self.focalpoint.data,
            "pa": self.pa.data or None,
        }


class RequestLinkForm(FlaskForm):
    """Find-your-institution step: ask for a magic link"""

    member_id = HiddenField("Institution", validators=[DataRequired(message="Choose your institution.")])
    email = StringField(
        "Email on record",
        validators=[
            DataRequired(message="Email is required."),
            Email(message="Enter a valid email address.", check_deliverability=False),
        ],
    )
    submit = SubmitField("Send me a link")


class AreaSelectionForm(Form):
    area_id = HiddenField()
    area_title = HiddenField()
    selected = BooleanField("Member of this priority area")
    contribution = TextAreaField("Contribution", render_kw={"rows": 3})
    since = StringField("Since", validators=[Optional()], render_kw={"placeholder": "YYYY-MM-DD"})
    website = StringField("Website", validators=[Optional()])

    def validate_contribution(self, field):
        if self.selected.data and len((field.data or "").strip()) < MIN_CONTRIBUTION_LENGTH:
            raise ValidationError(f"Describe your contribution in at least {MIN_CONTRIBUTION_LENGTH} characters.")

    def validate_since(self, field):
        if field.data and not to_iso_date(field.data):
            raise ValidationError("Enter a valid date.")


class PriorityAreasForm(FlaskForm):
    """Edit priority-area memberships for one institution"""

    areas = FieldList(FormField(AreaSelectionForm))
    submit = SubmitField("Save")

    @classmethod
    def from_prefill(cls, prefill):
        existing = {link["areaId"]: link for link in prefill.get("existing", [])}
        entries = []
        for area in prefill.get("areas", []):
            link = existing.get(area["_id"], {})
            entries.append(
                {
                    "area_id": area["_id"],
                    "area_title": area.get("title") or area["_id"],
                    "selected": bool(link),
                    "contribution": link.get("contribution") or "",
                    "since": link.get("since") or "",
                    "website": link.get("website") or "",
                }
            )
        return cls(formdata=None, data={"areas": entries})

    def selections(self):
        """Selected rows in the shape the membership service validates."""
        return [
            {
                "areaId": entry.area_id.data,
                "contribution": entry.contribution.data,
                "since": entry.since.data or None,
                "website": entry.website.data or None,
            }
            for entry in self.areas
            if entry.selected.data
        ]
