from unittest.mock import Mock

import pytest
import requests

from community_app.membership import MailDeliveryError, ResendMailer
from community_app.membership.mailer import RESEND_API_URL, build_access_link_message


def _message():
    return build_access_link_message(
        "info@nit.ac.ke",
        "Nairobi <Institute>",
        "http://localhost/join/existing/verify?token=abc",
        lifetime_minutes=20,
    )


def test_build_access_link_message_escapes_html():
    message = _message()

    assert message.to == "info@nit.ac.ke"
    assert "20 minutes" in message.text
    assert "http://localhost/join/existing/verify?token=abc" in message.text
    assert "Nairobi &lt;Institute&gt;" in message.html


def test_from_config_requires_api_key():
    assert ResendMailer.from_config({"RESEND_API_KEY": None}) is None

    mailer = ResendMailer.from_config({"RESEND_API_KEY": "re_123", "FROM_EMAIL": "hello@example.org"})
    assert mailer.from_email == "hello@example.org"


def test_send_posts_to_provider():
    session = Mock()
    session.post.return_value = Mock(ok=True, status_code=200, json=Mock(return_value={"id": "email-1"}))
    mailer = ResendMailer("re_123", "hello@example.org", session=session)

    assert mailer.send(_message()) == "email-1"

    args, kwargs = session.post.call_args
    assert args[0] == RESEND_API_URL
    assert kwargs["json"]["to"] == ["info@nit.ac.ke"]
    assert kwargs["json"]["from"] == "hello@example.org"
    assert kwargs["headers"]["Authorization"] == "Bearer re_123"


def test_send_raises_on_rejection():
    session = Mock()
    session.post.return_value = Mock(ok=False, status_code=422)
    mailer = ResendMailer("re_123", "hello@example.org", session=session)

    with pytest.raises(MailDeliveryError, match="422"):
        mailer.send(_message())


def test_send_raises_when_unreachable():
    session = Mock()
    session.post.side_effect = requests.Timeout("slow")
    mailer = ResendMailer("re_123", "hello@example.org", session=session)

    with pytest.raises(MailDeliveryError):
        mailer.send(_message())
