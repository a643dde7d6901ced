"""Tests for the email adapter."""

from email.message import EmailMessage
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import aiosmtplib
import pytest

from app.models import MessageType
from app.services.platforms.email import (
    EmailAdapter,
    fetch_unseen_messages,
    message_to_payload,
    parse_email_date,
    render_template,
)
from app.services.platforms.errors import (
    InvalidOutgoingMessageError,
    MalformedEventError,
    PlatformAPIError,
)
from app.services.platforms.types import OutgoingMessage


pytestmark = pytest.mark.asyncio


class TestDecoding:
    async def test_sender_address_is_normalized(self, settings):
        adapter = EmailAdapter(settings)
        event = adapter.parse_event(
            {
                "from": "Ana Lopez <Ana.Lopez@Example.com>",
                "to": "support@example.com",
                "subject": "Pricing",
                "text": "How much is it?",
                "html": "<p>How much is it?</p>",
                "messageId": "<abc@example.com>",
                "date": "Tue, 14 Nov 2023 22:13:20 +0000",
            }
        )

        assert event.platform_id == "ana.lopez@example.com"
        assert event.customer.lookup == {"email": "ana.lopez@example.com", "source": "email"}
        assert (event.customer.first_name, event.customer.last_name) == ("Ana", "Lopez")
        assert event.content.text == "How much is it?"
        assert event.platform_message_id == "<abc@example.com>"
        assert event.message_metadata["subject"] == "Pricing"
        assert event.message_metadata["format"] == "text"
        assert event.sent_at.timestamp() == 1700000000

    async def test_html_only_body(self, settings):
        event = EmailAdapter(settings).parse_event({"from": "x@example.com", "html": "<b>hi</b>"})

        assert event.content.text == "<b>hi</b>"
        assert event.message_metadata["format"] == "html"
        assert (event.customer.first_name, event.customer.last_name) == ("Email", "User")

    async def test_empty_body_is_unsupported(self, settings):
        event = EmailAdapter(settings).parse_event({"from": "x@example.com", "subject": "blank"})
        assert event.content.message_type == MessageType.UNSUPPORTED

    async def test_missing_sender_is_malformed(self, settings):
        with pytest.raises(MalformedEventError):
            EmailAdapter(settings).parse_event({"from": "undisclosed-recipients", "text": "hi"})

    async def test_rfc822_message_to_payload(self):
        message = EmailMessage()
        message["From"] = "Ana <ana@example.com>"
        message["To"] = "support@example.com"
        message["Subject"] = "Hello"
        message["Message-ID"] = "<m1@example.com>"
        message.set_content("plain body")
        message.add_alternative("<p>html body</p>", subtype="html")

        payload = message_to_payload(message)

        assert payload["from"] == "Ana <ana@example.com>"
        assert payload["text"].strip() == "plain body"
        assert payload["html"].strip() == "<p>html body</p>"
        assert payload["messageId"] == "<m1@example.com>"


class TestHelpers:
    async def test_parse_email_date_formats(self):
        assert parse_email_date("2023-11-14T22:13:20Z").timestamp() == 1700000000
        assert parse_email_date("not a date").tzinfo is not None
        assert parse_email_date(None).tzinfo is not None

    async def test_render_template_leaves_unknown_names(self):
        assert render_template("Hi {{ first_name }} {{other}}", {"first_name": "Ana"}) == "Hi Ana {{other}}"


class TestEncoding:
    async def test_text_is_escaped_into_html(self, settings):
        payload = EmailAdapter(settings).build_payload(
            OutgoingMessage(to="ana@example.com", content="1 < 2", options={"subject": "Re: Pricing"})
        )

        assert payload["subject"] == "Re: Pricing"
        assert payload["text"] == "1 < 2"
        assert payload["html"] == "<p>1 &lt; 2</p>"

    async def test_template_rendering(self, settings):
        payload = EmailAdapter(settings).build_payload(
            OutgoingMessage(
                to="ana@example.com",
                content="Your quote is attached.",
                type="template",
                options={"template_name": "follow_up", "variables": {"first_name": "Ana"}},
            )
        )

        assert payload["subject"] == "Following up on your request"
        assert "<p>Hi Ana,</p>" in payload["html"]
        assert "Your quote is attached." in payload["html"]

    async def test_unknown_template(self, settings):
        with pytest.raises(InvalidOutgoingMessageError):
            EmailAdapter(settings).build_payload(
                OutgoingMessage(to="a@example.com", content="x", type="template", options={"template_name": "nope"})
            )


class TestSending:
    async def test_sends_through_smtp(self, settings):
        adapter = EmailAdapter(settings)

        with patch("app.services.platforms.email.aiosmtplib.send", new_callable=AsyncMock) as send:
            send.return_value = ({}, "250 OK")
            ack = await adapter.send_message(OutgoingMessage(to="ana@example.com", content="Hello"))
        await adapter.close()

        mime = send.call_args.args[0]
        assert mime["To"] == "ana@example.com"
        assert mime["From"] == "support@example.com"
        assert send.call_args.kwargs["hostname"] == "smtp.example.com"
        assert send.call_args.kwargs["use_tls"] is False
        assert ack["message_id"] == mime["Message-ID"]

    async def test_smtp_failure_becomes_platform_error(self, settings):
        adapter = EmailAdapter(settings)

        with patch(
            "app.services.platforms.email.aiosmtplib.send",
            new_callable=AsyncMock,
            side_effect=aiosmtplib.SMTPConnectError("refused"),
        ):
            with pytest.raises(PlatformAPIError):
                await adapter.send_message(OutgoingMessage(to="ana@example.com", content="Hello"))
        await adapter.close()


def imap_client(login_result: str = "OK", unseen: bytes = b"") -> AsyncMock:
    client = AsyncMock()
    client.login.return_value = SimpleNamespace(result=login_result, lines=[])
    client.search.return_value = SimpleNamespace(result="OK", lines=[unseen])
    raw = b"From: Ana <ana@example.com>\r\nSubject: Quote\r\n\r\nPrice please\r\n"
    client.fetch.return_value = SimpleNamespace(result="OK", lines=[b"1 FETCH (RFC822 {64}", bytearray(raw)])
    return client


class TestImapFetch:
    async def test_unseen_messages_are_parsed(self, settings):
        client = imap_client(unseen=b"1")

        with patch("app.services.platforms.email.aioimaplib.IMAP4_SSL", return_value=client):
            payloads = await fetch_unseen_messages(settings)

        assert [p["subject"] for p in payloads] == ["Quote"]
        client.fetch.assert_awaited_once_with("1", "(RFC822)")
        client.logout.assert_awaited_once()

    async def test_rejected_login_still_logs_out(self, settings):
        client = imap_client(login_result="NO")

        with patch("app.services.platforms.email.aioimaplib.IMAP4_SSL", return_value=client):
            with pytest.raises(PlatformAPIError, match="IMAP login failed"):
                await fetch_unseen_messages(settings)

        client.select.assert_not_awaited()
        client.logout.assert_awaited_once()

    async def test_login_error_still_logs_out(self, settings):
        client = imap_client()
        client.login.side_effect = OSError("connection reset")

        with patch("app.services.platforms.email.aioimaplib.IMAP4_SSL", return_value=client):
            with pytest.raises(OSError):
                await fetch_unseen_messages(settings)

        client.logout.assert_awaited_once()
