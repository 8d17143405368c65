"""Outgoing email delivery.

Two senders are available:
- LoggingEmailSender (default): records the message in the application log.
- GraphEmailSender: Microsoft Graph ``sendMail`` using client-credential tokens.

Callers send only after their database transaction has committed; a failed
send never rolls back ledger state.
"""

from __future__ import annotations

import json
import logging
import time
import urllib.parse
import urllib.request
from dataclasses import dataclass
from typing import Optional, Protocol

from carbon_ledger.config import settings

logger = logging.getLogger("carbon_ledger.email")


class EmailDeliveryError(Exception):
    pass


@dataclass(frozen=True)
class EmailMessage:
    to: str
    subject: str
    html: str


class EmailSender(Protocol):
    def send(self, message: EmailMessage) -> None: ...


class LoggingEmailSender:
    def send(self, message: EmailMessage) -> None:
        logger.info("email_logged", extra={"to": message.to, "subject": message.subject})


class GraphEmailSender:
    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        sender_address: str,
        timeout_seconds: float = 10.0,
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.sender_address = sender_address
        self.timeout_seconds = float(timeout_seconds)
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    def _access_token(self) -> str:
        now = time.time()
        if self._token and now < self._token_expires_at - 60:
            return self._token

        body = urllib.parse.urlencode(
            {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": "https://graph.microsoft.com/.default",
                "grant_type": "client_credentials",
            }
        ).encode("utf-8")
        req = urllib.request.Request(
            f"https://login.microsoftonline.com/{self.tenant_id}/oauth2/v2.0/token",
            data=body,
            headers={"Content-Type": "application/x-www-form-urlencoded"},
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                doc = json.loads(resp.read().decode("utf-8"))
        except (OSError, ValueError) as exc:
            raise EmailDeliveryError(f"token request failed: {exc}") from exc

        token = doc.get("access_token") if isinstance(doc, dict) else None
        if not token:
            raise EmailDeliveryError("token response has no access_token")
        self._token = str(token)
        self._token_expires_at = now + float(doc.get("expires_in") or 3600)
        return self._token

    def send(self, message: EmailMessage) -> None:
        payload = {
            "message": {
                "subject": message.subject,
                "body": {"contentType": "HTML", "content": message.html},
                "toRecipients": [{"emailAddress": {"address": message.to}}],
            },
            "saveToSentItems": False,
        }
        sender = urllib.parse.quote(self.sender_address)
        req = urllib.request.Request(
            f"https://graph.microsoft.com/v1.0/users/{sender}/sendMail",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._access_token()}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                status = getattr(resp, "status", 202)
        except OSError as exc:
            raise EmailDeliveryError(f"sendMail failed: {exc}") from exc
        if status >= 300:
            raise EmailDeliveryError(f"sendMail returned HTTP {status}")
        logger.info("email_sent", extra={"to": message.to, "subject": message.subject})


_sender: EmailSender | None = None


def get_email_sender() -> EmailSender:
    global _sender
    if _sender is not None:
        return _sender

    if settings.email_backend == "graph":
        missing = [
            name
            for name, value in (
                ("MS_TENANT_ID", settings.ms_tenant_id),
                ("MS_CLIENT_ID", settings.ms_client_id),
                ("MS_CLIENT_SECRET", settings.ms_client_secret),
                ("EMAIL_SENDER_ADDRESS", settings.email_sender_address),
            )
            if not value
        ]
        if missing:
            logger.warning("email_graph_not_configured", extra={"missing": missing})
            _sender = LoggingEmailSender()
        else:
            _sender = GraphEmailSender(
                tenant_id=str(settings.ms_tenant_id),
                client_id=str(settings.ms_client_id),
                client_secret=str(settings.ms_client_secret),
                sender_address=str(settings.email_sender_address),
                timeout_seconds=settings.email_timeout_seconds,
            )
    else:
        _sender = LoggingEmailSender()
    return _sender


def set_email_sender(sender: EmailSender | None) -> None:
    """Swap the process-wide sender (tests install fakes here)."""

    global _sender
    _sender = sender


def send_email_safely(sender: EmailSender, message: EmailMessage, **context) -> bool:
    """Send and log the outcome; delivery errors are reported, not raised."""

    if not message.to:
        logger.info("email_skipped_no_recipient", extra={"subject": message.subject, **context})
        return False
    try:
        sender.send(message)
        return True
    except Exception as exc:
        logger.exception(
            "email_send_failed",
            extra={"to": message.to, "subject": message.subject, "error": str(exc), **context},
        )
        return False
