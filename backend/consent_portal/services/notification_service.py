import logging
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from consent_portal.config import Settings
from consent_portal.errors import DispatchError
from consent_portal.services.events import (
    ConsentRecordsResent,
    ConsentRequestCreated,
    EventBus,
    NotificationTarget,
)
from consent_portal.services.recipient_service import RecipientResolver

logger = logging.getLogger("consent_portal.notifications")


@dataclass(frozen=True)
class EmailContent:
    subject: str
    html: str
    text: str


class Dispatcher(Protocol):
    def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        ...


class SmtpDispatcher:
    def __init__(self, settings: Settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.use_tls = settings.smtp_use_tls
        self.timeout = settings.smtp_timeout_seconds
        self.from_email = settings.default_from_email

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        msg = EmailMessage()
        msg["From"] = self.from_email
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(text_body)
        msg.add_alternative(html_body, subtype="html")

        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.user and self.password:
                    server.login(self.user, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(f"SMTP delivery to {to} failed: {exc}") from exc


class ConsoleDispatcher:
    """Logs recipient and subject instead of sending (local development).

    Bodies carry the consent link, so they are never written to the log.
    """

    def send(self, to: str, subject: str, html_body: str, text_body: str) -> None:
        logger.info("Email to %s | %s", to, subject)


def build_dispatcher(settings: Settings) -> Dispatcher:
    if settings.email_backend == "smtp":
        return SmtpDispatcher(settings)
    if settings.email_backend == "console":
        return ConsoleDispatcher()
    raise ValueError(f"Unknown email backend: {settings.email_backend!r}")


def consent_url(client_url: str, token: str) -> str:
    return f"{client_url.rstrip('/')}/consent?{urlencode({'token': token})}"


class ConsentEmailRenderer:
    def __init__(self, settings: Settings):
        self.sender_name = settings.sender_name
        self.env = Environment(
            loader=FileSystemLoader(str(settings.templates_dir)),
            autoescape=select_autoescape(enabled_extensions=("html",), default_for_string=False),
        )

    def render(self, recipient_name: str, document_name: str, url: str) -> EmailContent:
        context = {
            "recipient_name": recipient_name,
            "document_name": document_name,
            "consent_url": url,
            "sender_name": self.sender_name,
        }
        return EmailContent(
            subject=f"Digital Consent Request: {document_name}",
            html=self.env.get_template("consent_email.html").render(**context),
            text=self.env.get_template("consent_email.txt").render(**context),
        )


class ConsentNotifier:
    """Sends one consent email per record, isolating failures per recipient."""

    def __init__(self, resolver: RecipientResolver, dispatcher: Dispatcher, settings: Settings):
        self.resolver = resolver
        self.dispatcher = dispatcher
        self.client_url = settings.client_url
        self.renderer = ConsentEmailRenderer(settings)

    def register(self, bus: EventBus) -> None:
        bus.subscribe(ConsentRequestCreated, self.on_request_created)
        bus.subscribe(ConsentRecordsResent, self.on_records_resent)

    def on_request_created(self, event: ConsentRequestCreated) -> None:
        sent = self.notify_all(event.targets)
        logger.info("Consent request %s: %d of %d emails sent", event.document_id, sent, len(event.targets))

    def on_records_resent(self, event: ConsentRecordsResent) -> None:
        sent = self.notify_all(event.targets)
        logger.info("Consent resend: %d of %d emails sent", sent, len(event.targets))

    def notify_all(self, targets) -> int:
        sent = 0
        for target in targets:
            if self.notify(target):
                sent += 1
        return sent

    def notify(self, target: NotificationTarget) -> bool:
        try:
            recipient = self.resolver.resolve(target.recipient_type, target.recipient_id)
        except Exception:
            logger.exception(
                "Could not resolve %s %s for consent record %s",
                target.recipient_type, target.recipient_id, target.record_id,
            )
            return False

        if recipient is None or not recipient.contact_address:
            logger.warning(
                "No contact address for %s %s (record %s); skipping email",
                target.recipient_type, target.recipient_id, target.record_id,
            )
            return False

        content = self.renderer.render(
            recipient.display_name,
            target.document_name,
            consent_url(self.client_url, target.token),
        )
        try:
            self.dispatcher.send(recipient.contact_address, content.subject, content.html, content.text)
        except DispatchError as exc:
            logger.error("Consent email for record %s not sent: %s", target.record_id, exc)
            return False
        except Exception:
            logger.exception("Unexpected dispatch failure for record %s", target.record_id)
            return False
        return True
