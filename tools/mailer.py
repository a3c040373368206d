"""
SMTP mailer for the send_email tool. Configured from SMTP_HOST / SMTP_PORT / SMTP_USER / SMTP_PASS /
SMTP_FROM; the blocking smtplib session runs in a worker thread.
"""

import asyncio
import os
import re
import smtplib
import uuid
from dataclasses import dataclass
from email.header import Header
from email.mime.text import MIMEText
from email.utils import make_msgid
from typing import Optional

from loguru import logger

from base.errors import ToolExecutionError, ValidationError

_EMAIL_RE = re.compile(r"[^@\s]+@[^@\s]+\.[^@\s]+")


@dataclass
class SmtpSettings:
    host: str
    port: int
    user: str
    password: str
    sender: str
    timeout: float = 30.0

    @classmethod
    def from_env(cls, timeout: float = 30.0) -> Optional["SmtpSettings"]:
        """None when SMTP_HOST, SMTP_USER or SMTP_PASS is missing."""
        host = os.environ.get("SMTP_HOST", "").strip()
        user = os.environ.get("SMTP_USER", "").strip()
        password = os.environ.get("SMTP_PASS", "")
        if not host or not user or not password:
            return None
        try:
            port = int(os.environ.get("SMTP_PORT", "587"))
        except ValueError:
            port = 587
        sender = os.environ.get("SMTP_FROM", "").strip() or user
        return cls(host=host, port=port, user=user, password=password, sender=sender, timeout=timeout)


class SmtpMailer:

    def __init__(self, settings: Optional[SmtpSettings] = None):
        self.settings = settings

    def is_configured(self) -> bool:
        return self.settings is not None

    def send(self, send_to: str, subject: str, body: str) -> str:
        """Send a plain-text email. Returns the Message-ID."""
        if self.settings is None:
            raise ToolExecutionError("Email not configured. Set SMTP_HOST, SMTP_USER, and SMTP_PASS environment variables.")
        if not _EMAIL_RE.fullmatch((send_to or "").strip()):
            raise ValidationError("Invalid email address: %s" % send_to)
        s = self.settings
        message = MIMEText(body, 'plain', 'utf-8')
        message['Subject'] = Header(subject, 'utf-8')
        message['From'] = s.sender
        message['To'] = send_to
        message_id = make_msgid(idstring=uuid.uuid4().hex[:12])
        message['Message-ID'] = message_id
        try:
            if s.port == 465:
                smtp_server = smtplib.SMTP_SSL(s.host, s.port, timeout=s.timeout)
            else:
                smtp_server = smtplib.SMTP(s.host, s.port, timeout=s.timeout)
            with smtp_server:
                smtp_server.ehlo()
                if s.port != 465 and smtp_server.has_extn("starttls"):
                    smtp_server.starttls()
                    smtp_server.ehlo()
                smtp_server.login(s.user, s.password)
                smtp_server.sendmail(s.sender, [send_to], message.as_string())
        except (smtplib.SMTPException, OSError) as e:
            logger.error("Failed to send email to {}: {}", send_to, e)
            raise ToolExecutionError(f"Failed to send email: {e}") from e
        logger.debug("Email sent to {}", send_to)
        return message_id

    async def send_async(self, send_to: str, subject: str, body: str) -> str:
        return await asyncio.to_thread(self.send, send_to, subject, body)
