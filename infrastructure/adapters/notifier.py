# infrastructure/adapters/notifier.py
from email.message import EmailMessage
from typing import Optional
import asyncio
import smtplib

import httpx

from shared.logging import logger

PUSHOVER_URL = "https://api.pushover.net/1/messages.json"

class Notifier:
    """Best-effort push and email notifications to the human operator.

    Delivery failures are logged and reported as ``False``; they never raise.
    """

    def __init__(self,
                 pushover_token: Optional[str] = None,
                 pushover_user: Optional[str] = None,
                 smtp_host: Optional[str] = None,
                 smtp_port: int = 587,
                 smtp_user: Optional[str] = None,
                 smtp_password: Optional[str] = None,
                 recipient: Optional[str] = None,
                 title_prefix: str = "[OPS-AGENT]",
                 http_client: Optional[httpx.AsyncClient] = None):
        self.pushover_token = pushover_token
        self.pushover_user = pushover_user
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.recipient = recipient
        self.title_prefix = title_prefix
        self.http_client = http_client or httpx.AsyncClient(timeout=10.0)

    @property
    def push_enabled(self) -> bool:
        return bool(self.pushover_token and self.pushover_user)

    @property
    def email_enabled(self) -> bool:
        return bool(self.smtp_host and self.recipient)

    async def notify(self, title: str, message: str, priority: int = 0) -> bool:
        """Push notification; high priority alerts are mirrored by email"""
        delivered = await self.push(title, message, priority)
        if priority > 0 or not self.push_enabled:
            delivered = await self.send_email(title, message) or delivered
        return delivered

    async def push(self, title: str, message: str, priority: int = 0) -> bool:
        if not self.push_enabled:
            logger.debug("Push notifications not configured", title=title)
            return False
        try:
            response = await self.http_client.post(PUSHOVER_URL, json={
                "token": self.pushover_token,
                "user": self.pushover_user,
                "title": f"{self.title_prefix} {title}",
                "message": message,
                "priority": priority
            })
            if response.status_code != 200:
                logger.warning("Push notification rejected",
                              title=title, status_code=response.status_code)
                return False
            return True
        except httpx.HTTPError as e:
            logger.warning("Push notification failed", title=title, error=str(e))
            return False

    async def send_email(self, subject: str, body: str, to: Optional[str] = None) -> bool:
        recipient = to or self.recipient
        if not (self.smtp_host and recipient):
            logger.debug("Email notifications not configured", subject=subject)
            return False

        email = EmailMessage()
        email["From"] = self.smtp_user or recipient
        email["To"] = recipient
        email["Subject"] = f"{self.title_prefix} {subject}"
        email.set_content(body)

        try:
            await asyncio.to_thread(self._deliver, email)
            logger.info("Email sent", to=recipient, subject=subject)
            return True
        except (smtplib.SMTPException, OSError) as e:
            logger.warning("Email delivery failed", to=recipient, subject=subject, error=str(e))
            return False

    def _deliver(self, email: EmailMessage) -> None:
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=15) as smtp:
            smtp.starttls()
            if self.smtp_user and self.smtp_password:
                smtp.login(self.smtp_user, self.smtp_password)
            smtp.send_message(email)

    async def close(self):
        await self.http_client.aclose()
