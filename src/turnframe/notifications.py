"""Session summary notifications."""

from __future__ import annotations

import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Optional, Protocol

from .config import NotifyConfig
from .errors import DispatchError
from .models import Session

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NotificationStatus:
    ok: bool = False
    skipped: bool = False
    provider: str = ""
    error: Optional[str] = None

    @classmethod
    def skip(cls, reason: str = "") -> "NotificationStatus":
        return cls(ok=False, skipped=True, error=reason or None)


class Notifier(Protocol):
    def send(self, to: str, subject: str, body: str) -> NotificationStatus:
        ...


class SmtpNotifier:
    provider = "smtp"

    def __init__(self, cfg: NotifyConfig, timeout: float = 10.0) -> None:
        self.cfg = cfg
        self.timeout = timeout

    def send(self, to: str, subject: str, body: str) -> NotificationStatus:
        message = EmailMessage()
        message["From"] = self.cfg.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(body)

        try:
            with smtplib.SMTP(self.cfg.smtp_host, self.cfg.smtp_port, timeout=self.timeout) as smtp:
                if self.cfg.use_tls:
                    smtp.starttls(context=ssl.create_default_context())
                if self.cfg.smtp_user and self.cfg.smtp_password:
                    smtp.login(self.cfg.smtp_user, self.cfg.smtp_password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(f"email delivery to {to} failed: {exc}") from exc
        logger.info("Summary email sent to %s", to)
        return NotificationStatus(ok=True, provider=self.provider)


def build_notifier(cfg: NotifyConfig) -> Optional[Notifier]:
    if not cfg.enabled:
        return None
    return SmtpNotifier(cfg)


def build_summary_body(
    session: Session,
    manifest_url: Optional[str],
    transcript_txt_url: Optional[str] = None,
    transcript_json_url: Optional[str] = None,
) -> str:
    parts = [
        "Your session is finalized. Here are your links.",
        f"Session manifest: {manifest_url or 'unavailable'}",
    ]
    if transcript_txt_url:
        parts.append(f"Transcript (txt): {transcript_txt_url}")
    if transcript_json_url:
        parts.append(f"Transcript (json): {transcript_json_url}")
    lines = [
        f"Turn {turn.turn_number}: {turn.transcript or '[no transcript]'}\n"
        f"Assistant: {turn.reply_text or '[no reply]'}\n"
        f"Audio: {turn.audio_ref or 'unavailable'}\n"
        f"Manifest: {turn.manifest_ref or 'unavailable'}"
        for turn in session.turns
    ]
    if lines:
        parts.append("")
        parts.append("\n\n".join(lines))
    return "\n".join(parts)
