"""Tests for the media and notification collaborators."""

import json
from unittest.mock import MagicMock

import httpx
import pytest

from gigboard.media import (
    InMemoryMediaStore,
    MediaError,
    SupabaseMediaStore,
    is_document_upload,
    is_image_upload,
)
from gigboard.notify import HttpNotifier, LoggingNotifier, _mask, format_phone, otp_email, otp_sms


class TestUploadChecks:
    @pytest.mark.parametrize(
        "filename,content_type,expected",
        [
            ("tap.jpg", "image/jpeg", True),
            ("TAP.PNG", "image/png", True),
            ("tap.webp", "image/webp", True),
            ("tap.exe", "image/png", False),
            ("tap.png", "application/octet-stream", False),
            ("tap", "image/png", False),
            (None, "image/png", False),
            ("tap.png", None, False),
        ],
    )
    def test_images(self, filename, content_type, expected):
        assert is_image_upload(filename, content_type) is expected

    def test_documents_accept_pdf(self):
        assert is_document_upload("aadhaar.pdf", "application/pdf")
        assert is_document_upload("aadhaar.jpg", "image/jpeg")
        assert not is_document_upload("aadhaar.docx", "application/pdf")
        assert not is_image_upload("aadhaar.pdf", "application/pdf")


class TestInMemoryMediaStore:
    def test_upload_and_delete(self):
        store = InMemoryMediaStore()
        ref = store.upload(b"bytes", "photo.PNG", "job_images")

        assert ref.handle.startswith("job_images/")
        assert ref.handle.endswith(".png")
        assert ref.url == f"memory://media/{ref.handle}"
        assert store.objects[ref.handle] == b"bytes"

        assert store.delete(ref.handle) is True
        assert store.delete(ref.handle) is False


class TestSupabaseMediaStore:
    def test_upload(self):
        client = MagicMock()
        bucket = client.storage.from_.return_value
        bucket.get_public_url.return_value = "https://cdn.example.com/x.jpg"

        ref = SupabaseMediaStore(client, "media").upload(b"data", "x.jpg", "job_images")

        client.storage.from_.assert_called_with("media")
        path, data = bucket.upload.call_args.args
        assert path == ref.handle
        assert data == b"data"
        assert bucket.upload.call_args.kwargs["file_options"] == {"content-type": "image/jpeg"}
        assert ref.url == "https://cdn.example.com/x.jpg"

    def test_upload_failure_raises_media_error(self):
        client = MagicMock()
        client.storage.from_.return_value.upload.side_effect = RuntimeError("quota")
        with pytest.raises(MediaError):
            SupabaseMediaStore(client, "media").upload(b"data", "x.jpg", "job_images")

    def test_delete_never_raises(self):
        client = MagicMock()
        client.storage.from_.return_value.remove.side_effect = RuntimeError("gone")
        assert SupabaseMediaStore(client, "media").delete("job_images/x.jpg") is False


class TestHttpNotifier:
    def test_email(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(200, json={"id": "msg_1"})

        notifier = HttpNotifier(
            email_api_key="re_key",
            email_from="noreply@gigboard.test",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        assert notifier.send_email("asha@example.com", "Hi", "Body") is True

        request = sent[0]
        assert request.headers["Authorization"] == "Bearer re_key"
        assert json.loads(request.content) == {
            "from": "noreply@gigboard.test",
            "to": ["asha@example.com"],
            "subject": "Hi",
            "text": "Body",
        }

    def test_sms_uses_e164(self):
        sent = []

        def handler(request):
            sent.append(request)
            return httpx.Response(201, json={"sid": "SM1"})

        notifier = HttpNotifier(
            twilio_account_sid="AC123",
            twilio_auth_token="token",
            twilio_from_number="+15550001111",
            client=httpx.Client(transport=httpx.MockTransport(handler)),
        )
        assert notifier.send_sms("09876543210", "code") is True
        assert sent[0].url.path == "/2010-04-01/Accounts/AC123/Messages.json"
        assert b"To=%2B919876543210" in sent[0].content

    def test_failures_return_false(self):
        notifier = HttpNotifier(
            email_api_key="re_key",
            email_from="noreply@gigboard.test",
            client=httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(503))),
        )
        assert notifier.send_email("asha@example.com", "Hi", "Body") is False

    def test_unconfigured_drops_messages(self):
        notifier = HttpNotifier()
        assert notifier.send_email("asha@example.com", "Hi", "Body") is False
        assert notifier.send_sms("9876543210", "Body") is False


class TestHelpers:
    def test_logging_notifier_records(self):
        notifier = LoggingNotifier()
        notifier.send_email("a@example.com", "s", "b")
        notifier.send_sms("9876543210", "b")
        assert notifier.emails == [("a@example.com", "s", "b")]
        assert notifier.sms == [("9876543210", "b")]

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9876543210", "+919876543210"),
            ("98765 43210", "+919876543210"),
            ("+14155550100", "+14155550100"),
        ],
    )
    def test_format_phone(self, raw, expected):
        assert format_phone(raw) == expected

    def test_mask(self):
        assert _mask("asha@example.com") == "as***@example.com"
        assert _mask("9876543210") == "***3210"
        assert _mask("123") == "***"

    def test_otp_messages(self):
        subject, body = otp_email("482913", "email-update")
        assert "verification code" in subject
        assert "email update is 482913." in body
        assert "482913" in otp_sms("482913")
