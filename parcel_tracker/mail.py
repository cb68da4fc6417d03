"""Mail transport port and its adapters.

``MailSender.send`` never raises for delivery problems; it reports them in
the returned dict:

    {"ok": True, "message_id": "<...>"}
    {"ok": False, "reason": "..."}
"""

import re
import smtplib
from abc import ABC, abstractmethod
from email.message import EmailMessage
from email.utils import make_msgid
from uuid import uuid4

import structlog

logger = structlog.get_logger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class MailSender(ABC):
    @abstractmethod
    def send(self, to: str, subject: str, body: str, is_html: bool = True) -> dict:
        ...


def _check_message(to: str, subject: str, body: str):
    if not to or not subject or not body:
        return "Missing required fields: to, subject, and body are required"
    if not EMAIL_RE.match(to):
        return "Invalid recipient email format"
    return None


class SmtpMailSender(MailSender):
    def __init__(
        self,
        host: str,
        port: int = 465,
        username: str = "",
        password: str = "",
        sender: str = "",
        use_ssl: bool = True,
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.sender = sender
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        if self.use_ssl:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout)
        conn = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        conn.starttls()
        return conn

    def send(self, to: str, subject: str, body: str, is_html: bool = True) -> dict:
        problem = _check_message(to, subject, body)
        if problem:
            return {"ok": False, "reason": problem}

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg["Message-ID"] = make_msgid()
        msg.set_content(body, subtype="html" if is_html else "plain")

        try:
            with self._connect() as conn:
                if self.username:
                    conn.login(self.username, self.password)
                conn.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error("smtp send failed", to=to, host=self.host, error=str(e))
            return {"ok": False, "reason": str(e)}

        logger.info("email sent", to=to, message_id=msg["Message-ID"])
        return {"ok": True, "message_id": msg["Message-ID"]}


class FakeMailSender(MailSender):
    """Records messages in memory; used when no SMTP backend is configured."""

    def __init__(self):
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Email delivery failed"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def send(self, to: str, subject: str, body: str, is_html: bool = True) -> dict:
        problem = _check_message(to, subject, body)
        if problem:
            return {"ok": False, "reason": problem}
        if not self.should_succeed:
            return {"ok": False, "reason": self.failure_reason}

        message_id = f"email-{uuid4().hex[:12]}"
        self.sent.append({
            "message_id": message_id,
            "to": to,
            "subject": subject,
            "body": body,
            "is_html": is_html,
        })
        return {"ok": True, "message_id": message_id}

    def reset(self):
        self.sent.clear()
        self.should_succeed = True
        self.failure_reason = "Email delivery failed"
