import smtplib
from dataclasses import dataclass, field
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import List, Optional

import requests

from .config import Config
from .errors import NotConfigured, TransportFailure
from .logger import get_logger

logger = get_logger(__name__)

PREAMBLE = "Hey, this is an automated message from the Lab Inventory Management System."

# Non-ASCII credentials or addresses surface as UnicodeError/ValueError from smtplib.
SEND_ERRORS = (smtplib.SMTPException, OSError, UnicodeError, ValueError)


@dataclass
class DispatchResult:
    accepted: List[str] = field(default_factory=list)
    rejected: List[str] = field(default_factory=list)
    transport_id: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "accepted": self.accepted,
            "rejected": self.rejected,
            "transport_id": self.transport_id,
        }


def item_reference(item_id: str, item_name: Optional[str] = None) -> str:
    return item_name or str(item_id)


def compose_message(item_id: str, item_name: Optional[str] = None,
                    note: Optional[str] = None, link: Optional[str] = None,
                    purchase_link: Optional[str] = None) -> str:
    lines = [
        PREAMBLE,
        f"It's been notified that {item_reference(item_id, item_name)} should be replenished.",
        f"Item link: {link}" if link else "",
        f"Note: {note}" if note else "",
        f"Buy: {purchase_link}" if purchase_link else "",
    ]
    return "\n".join(line for line in lines if line)


class EmailDispatcher:
    """Sends the replenish request through SMTP, one connection per dispatch."""

    def __init__(self, config: Config):
        self.config = config

    def check_configured(self):
        c = self.config
        missing = [name for name, value in (
            ("SMTP_HOST", c.smtp_host),
            ("SMTP_USER", c.smtp_user),
            ("SMTP_PASS", c.smtp_pass),
            ("NOTIFY_TO", c.notify_to),
        ) if not value]
        if missing:
            raise NotConfigured(f"Email not configured (missing {', '.join(missing)})")

    def _connect(self):
        c = self.config
        if c.smtp_use_ssl:
            return smtplib.SMTP_SSL(c.smtp_host, c.smtp_port, timeout=c.notify_timeout)
        return smtplib.SMTP(c.smtp_host, c.smtp_port, timeout=c.notify_timeout)

    def dispatch(self, item_id: str, item_name: Optional[str] = None,
                 note: Optional[str] = None, link: Optional[str] = None,
                 purchase_link: Optional[str] = None) -> DispatchResult:
        self.check_configured()
        c = self.config
        subject = f"Replenish request: {item_reference(item_id, item_name)}"
        msg = MIMEText(compose_message(item_id, item_name, note, link, purchase_link), "plain", "utf-8")
        msg["From"] = c.notify_from or c.smtp_user
        msg["To"] = ", ".join(c.notify_to)
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid(domain="lab-inventory")

        try:
            server = self._connect()
        except SEND_ERRORS as e:
            logger.exception("SMTP connection to %s failed", c.smtp_host)
            raise TransportFailure("Failed to send email") from e

        try:
            if not c.smtp_use_ssl:
                server.starttls()
            server.login(c.smtp_user, c.smtp_pass)
            refused = server.sendmail(msg["From"], c.notify_to, msg.as_string())
        except smtplib.SMTPRecipientsRefused as e:
            logger.error("All recipients refused for '%s': %s", subject, e.recipients)
            raise TransportFailure("Failed to send email") from e
        except SEND_ERRORS as e:
            logger.exception("Sending '%s' failed", subject)
            raise TransportFailure("Failed to send email") from e
        finally:
            try:
                server.quit()
            except (smtplib.SMTPException, OSError):
                pass

        rejected = sorted(refused or {})
        accepted = [r for r in c.notify_to if r not in (refused or {})]
        logger.info("Email sent to %s: %s", accepted, subject)
        return DispatchResult(accepted, rejected, msg["Message-ID"])


class WebhookDispatcher:
    """Posts the message to a Slack-compatible incoming webhook."""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    def check_configured(self):
        if not self.config.webhook_url:
            raise NotConfigured("Webhook not configured (missing WEBHOOK_URL)")

    def dispatch(self, item_id: str, item_name: Optional[str] = None,
                 note: Optional[str] = None, link: Optional[str] = None,
                 purchase_link: Optional[str] = None) -> DispatchResult:
        self.check_configured()
        lines = [
            "*Inventory Notification*",
            f"• Item: {item_name}" if item_name else f"• Item ID: {item_id}",
            f"• Note: {note}" if note else None,
            f"• Link: {link}" if link else None,
            f"• Buy: {purchase_link}" if purchase_link else None,
        ]
        text = "\n".join(line for line in lines if line)
        try:
            resp = self.session.post(
                self.config.webhook_url,
                json={"text": text},
                timeout=self.config.notify_timeout,
            )
            resp.raise_for_status()
        except requests.RequestException as e:
            logger.exception("Webhook notification for item %s failed", item_id)
            raise TransportFailure("Failed to send notification") from e

        logger.info("Webhook notification sent for item %s", item_id)
        return DispatchResult(
            accepted=["webhook"],
            transport_id=resp.headers.get("x-slack-req-id"),
        )


def build_dispatcher(config: Config):
    if config.notify_transport == "webhook":
        return WebhookDispatcher(config)
    if config.notify_transport == "email":
        return EmailDispatcher(config)
    raise NotConfigured(f"Unknown NOTIFY_TRANSPORT: {config.notify_transport}")
