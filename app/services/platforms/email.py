"""Email adapter: SMTP for replies, parsed messages (webhook or IMAP) for intake."""

import html
import logging
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from email import message_from_bytes
from email.message import EmailMessage
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.policy import default as default_policy
from email.utils import make_msgid, parseaddr, parsedate_to_datetime

import aioimaplib
import aiosmtplib

from app.config import Settings
from app.models.conversation import Platform
from app.services.platforms.base import PlatformAdapter, split_name
from app.services.platforms.errors import (
    InvalidOutgoingMessageError,
    MalformedEventError,
    PlatformAPIError,
    UnsupportedMessageTypeError,
)
from app.services.platforms.types import (
    ContentKind,
    CustomerIdentity,
    DecodedContent,
    InboundEvent,
    OutgoingMessage,
    ParsedEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "Message from support"
_TEMPLATE_VAR = re.compile(r"{{\s*(\w+)\s*}}")


@dataclass(frozen=True)
class EmailTemplate:
    name: str
    subject: str
    body: str


EMAIL_TEMPLATES: dict[str, EmailTemplate] = {
    "welcome": EmailTemplate(
        name="welcome",
        subject="Welcome, {{first_name}}",
        body="<p>Hi {{first_name}},</p><p>Thanks for reaching out. An agent will reply shortly.</p>",
    ),
    "follow_up": EmailTemplate(
        name="follow_up",
        subject="Following up on your request",
        body="<p>Hi {{first_name}},</p><p>{{message}}</p>",
    ),
}


def render_template(text: str, variables: dict) -> str:
    """Substitute ``{{name}}`` placeholders; unknown names are left as-is."""

    def _replace(match: re.Match) -> str:
        key = match.group(1)
        return str(variables[key]) if key in variables else match.group(0)

    return _TEMPLATE_VAR.sub(_replace, text)


def parse_email_date(value: str | None) -> datetime:
    """Parse an RFC 2822 or ISO 8601 date; fall back to now."""
    if value:
        try:
            parsed = parsedate_to_datetime(value)
        except (TypeError, ValueError):
            try:
                parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
            except ValueError:
                parsed = None
        if parsed is not None:
            return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return datetime.now(timezone.utc)


def message_to_payload(message: EmailMessage) -> dict:
    """Convert an RFC 822 message into the inbound email webhook shape."""
    text_part = message.get_body(preferencelist=("plain",))
    html_part = message.get_body(preferencelist=("html",))
    return {
        "from": str(message["from"] or ""),
        "to": str(message["to"] or ""),
        "subject": str(message["subject"] or ""),
        "text": text_part.get_content() if text_part is not None else "",
        "html": html_part.get_content() if html_part is not None else "",
        "messageId": str(message["message-id"] or "") or None,
        "date": str(message["date"] or "") or None,
    }


async def fetch_unseen_messages(settings: Settings) -> list[dict]:
    """Fetch UNSEEN messages from the configured IMAP folder.

    Fetching the full RFC822 body marks each message as seen.
    """
    client = aioimaplib.IMAP4_SSL(host=settings.imap_host, port=settings.imap_port)
    await client.wait_hello_from_server()
    payloads: list[dict] = []
    try:
        login = await client.login(settings.imap_user, settings.imap_password)
        if login.result != "OK":
            raise PlatformAPIError(f"IMAP login failed for {settings.imap_user}: {login.result}")
        await client.select(settings.imap_folder)
        search = await client.search("UNSEEN")
        if search.result != "OK" or not search.lines or not search.lines[0]:
            return payloads

        for number in search.lines[0].decode().split():
            fetched = await client.fetch(number, "(RFC822)")
            if fetched.result != "OK" or len(fetched.lines) < 2:
                logger.warning(f"Could not fetch IMAP message {number}: {fetched.result}")
                continue
            raw = message_from_bytes(bytes(fetched.lines[1]), policy=default_policy)
            payloads.append(message_to_payload(raw))
    finally:
        await client.logout()

    logger.info(f"Fetched {len(payloads)} unseen emails from {settings.imap_folder}")
    return payloads


class EmailAdapter(PlatformAdapter):
    """Email conversations, keyed by sender address."""

    platform = Platform.EMAIL

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.smtp_host and self.settings.from_email)

    # Decoding

    def iter_events(self, payload: dict) -> Iterator[dict]:
        yield payload

    def parse_event(self, mail: dict) -> ParsedEvent | None:
        original_from = mail.get("from") or ""
        display_name, address = parseaddr(original_from)
        if not address or "@" not in address:
            raise MalformedEventError(f"Email without a usable sender address: {original_from!r}")

        address = address.lower()
        first_name, last_name = split_name(display_name, "Email")
        subject = mail.get("subject") or ""

        return InboundEvent(
            platform=self.platform,
            platform_id=address,
            content=self.classify(mail),
            sent_at=parse_email_date(mail.get("date")),
            platform_message_id=mail.get("messageId") or mail.get("message_id"),
            customer=CustomerIdentity(
                source=self.platform.value,
                lookup={"email": address, "source": self.platform.value},
                first_name=first_name,
                last_name=last_name,
                email=address,
            ),
            conversation_metadata={"email_address": address, "original_from": original_from, "subject": subject},
            message_metadata={
                "subject": subject,
                "to": mail.get("to"),
                "format": "text" if mail.get("text") else "html" if mail.get("html") else None,
            },
        )

    def classify(self, mail: dict) -> DecodedContent:
        if mail.get("text"):
            return DecodedContent(ContentKind.TEXT, mail["text"])
        if mail.get("html"):
            return DecodedContent(ContentKind.TEXT, mail["html"])
        return DecodedContent.unsupported()

    # Encoding

    def build_payload(self, outgoing: OutgoingMessage) -> dict:
        options = outgoing.options
        subject = options.get("subject") or DEFAULT_SUBJECT

        if outgoing.type == "text":
            body = f"<p>{html.escape(outgoing.content)}</p>"
            return {"to": outgoing.to, "subject": subject, "text": outgoing.content, "html": body}

        if outgoing.type == "html":
            return {"to": outgoing.to, "subject": subject, "text": None, "html": outgoing.content}

        if outgoing.type == "template":
            template = EMAIL_TEMPLATES.get(options.get("template_name") or "")
            if template is None:
                raise InvalidOutgoingMessageError(f"Unknown email template: {options.get('template_name')}")
            variables = {"message": outgoing.content, **(options.get("variables") or {})}
            return {
                "to": outgoing.to,
                "subject": render_template(template.subject, variables),
                "text": None,
                "html": render_template(template.body, variables),
            }

        raise UnsupportedMessageTypeError(self.platform.value, outgoing.type)

    def _build_mime(self, payload: dict, message_id: str) -> MIMEMultipart:
        mime = MIMEMultipart("alternative")
        mime["Subject"] = payload["subject"]
        mime["From"] = self.settings.from_email
        mime["To"] = payload["to"]
        mime["Message-ID"] = message_id
        if payload["text"]:
            mime.attach(MIMEText(payload["text"], "plain"))
        mime.attach(MIMEText(payload["html"], "html"))
        return mime

    async def _deliver(self, outgoing: OutgoingMessage, payload: dict) -> dict:
        message_id = make_msgid()
        try:
            _, response = await aiosmtplib.send(
                self._build_mime(payload, message_id),
                hostname=self.settings.smtp_host,
                port=self.settings.smtp_port,
                username=self.settings.smtp_user or None,
                password=self.settings.smtp_password or None,
                use_tls=self.settings.smtp_port == 465,
            )
        except aiosmtplib.SMTPException as e:
            logger.error(f"Failed to send email to {outgoing.to}: {e}")
            raise PlatformAPIError(f"SMTP error: {e}") from e

        logger.info(f"Sent email to {outgoing.to} ({message_id})")
        return {"message_id": message_id, "response": response}

    def mock_ack(self, outgoing: OutgoingMessage, message_id: str) -> dict:
        return {"message_id": f"<{message_id}@mock>", "response": "250 OK (mock)"}

    def extract_message_id(self, ack: dict) -> str | None:
        return ack.get("message_id")
