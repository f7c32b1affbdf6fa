import pytest
import requests

from alchemist.errors import ExternalServiceError, ValidationError
from alchemist.services.email import RESEND_URL, send_support_email, validate_email
from tests.conftest import FakeHttp, FakeHttpResponse


def test_support_email_is_escaped_and_sent():
    http = FakeHttp(FakeHttpResponse(200, {"id": "em_1"}))
    resp = send_support_email("re_key", "Support <s@example.com>", "inbox@example.com",
                              "user@example.com", "<script>alert(1)</script>", http=http)

    assert resp == {"id": "em_1"}
    url, payload, kwargs = http.posts[0]
    assert url == RESEND_URL
    assert payload["to"] == ["inbox@example.com"]
    assert payload["subject"] == "Support Request from Resume Alchemist"
    assert "<script>" not in payload["html"]
    assert "&lt;script&gt;" in payload["html"]
    assert kwargs["headers"]["Authorization"] == "Bearer re_key"


@pytest.mark.parametrize("email", ["", "nope", "a@b", "a b@c.d"])
def test_invalid_email_is_rejected(email):
    with pytest.raises(ValidationError):
        validate_email(email)


def test_empty_message_is_rejected():
    http = FakeHttp()
    with pytest.raises(ValidationError):
        send_support_email("k", "s", "i", "user@example.com", "   ", http=http)
    assert http.posts == []


def test_provider_errors_are_external():
    with pytest.raises(ExternalServiceError):
        send_support_email("k", "s", "i", "user@example.com", "hi", http=FakeHttp(FakeHttpResponse(422, text="bad from")))

    class Down:
        def post(self, *a, **kw):
            raise requests.Timeout("slow")

    with pytest.raises(ExternalServiceError):
        send_support_email("k", "s", "i", "user@example.com", "hi", http=Down())


def test_missing_api_key():
    with pytest.raises(ExternalServiceError):
        send_support_email("", "s", "i", "user@example.com", "hi", http=FakeHttp())
