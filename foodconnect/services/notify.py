"""
Outbound email for the reservation flow.

Delivery is fire-and-forget: notify() schedules a background task and returns.
Failures are logged and never reach the caller, so a state transition is never
undone because a mail server was down.
"""

import asyncio
import logging
import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from html import escape
from typing import Optional, Set

logger = logging.getLogger(__name__)


class EmailNotifier:
    def __init__(self, settings):
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.from_name = settings.email_from_name
        self._pending: Set[asyncio.Task] = set()

    @property
    def configured(self) -> bool:
        return bool(self.user and self.password)

    def notify(self, to: Optional[str], subject: str, html_body: str) -> None:
        if not to:
            logger.warning(f"Skipping email '{subject}': recipient has no address")
            return
        task = asyncio.create_task(self._deliver(to, subject, html_body))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, to: str, subject: str, html_body: str) -> None:
        try:
            await self.send(to, subject, html_body)
            logger.info(f"Email '{subject}' sent to {to}")
        except Exception as e:
            logger.error(f"Email '{subject}' to {to} failed: {e}")

    async def send(self, to: str, subject: str, html_body: str) -> None:
        if not self.configured:
            logger.error("Missing SMTP credentials: set SMTP_USER and SMTP_PASSWORD. Email not sent.")
            return

        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.from_name} <{self.user}>"
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        def send_sync():
            with smtplib.SMTP_SSL(self.host, self.port, timeout=15) as server:
                server.login(self.user, self.password)
                server.send_message(msg)

        await asyncio.to_thread(send_sync)

    async def drain(self) -> None:
        """Wait for scheduled deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# --------------------------------------------------
# Message bodies
# --------------------------------------------------
def _contact_rows(card: dict) -> str:
    rows = []
    for label, key in (("Name", "name"), ("Email", "email"), ("Phone", "phone"),
                       ("City", "city"), ("District", "district"), ("State", "state")):
        value = card.get(key)
        if value:
            rows.append(f"<tr><td><b>{label}</b></td><td>{escape(str(value))}</td></tr>")
    return "<table>" + "".join(rows) + "</table>"

def _items_line(donation: dict) -> str:
    parts = [f"{escape(str(i.get('name')))} ({i.get('quantity')} {escape(str(i.get('unit') or ''))})"
             for i in donation.get("items", [])]
    return ", ".join(parts)

def approval_email(donation: dict, organization: dict):
    """Sent to the donor once they approve an organization."""
    subject = "Donation reserved - organization contact details"
    html_body = (
        "<h3>Your donation has been reserved</h3>"
        f"<p>Items: {_items_line(donation)}</p>"
        "<p>Please coordinate the pickup with the organization below:</p>"
        f"{_contact_rows(organization)}"
    )
    return subject, html_body

def completion_email(donation: dict, donor: dict):
    """Sent to the organization once it marks the pickup complete."""
    subject = "Donation completed - donor contact details"
    html_body = (
        "<h3>Thank you for completing this donation</h3>"
        f"<p>Items: {_items_line(donation)}</p>"
        "<p>Donor details for your records:</p>"
        f"{_contact_rows(donor)}"
    )
    return subject, html_body
