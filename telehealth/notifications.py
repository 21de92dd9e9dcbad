"""Emailed booking confirmations via Resend.

Sending is best effort: a failed email is logged and never fails the
booking that triggered it.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from html import escape
from typing import Any

import resend

log = logging.getLogger("telehealth.notifications")


@dataclass
class ConfirmationEmail:
    to: str
    patient_name: str
    service_name: str
    date: str
    time: str
    price: str
    video_link: str = ""
    access_code: str = ""


class Notifier:
    """Sends nothing. Used when no email provider is configured."""

    async def send_confirmation(self, email: ConfirmationEmail) -> bool:
        log.info("Email confirmations disabled, skipping")
        return False


class ResendNotifier(Notifier):
    def __init__(self, api_key: str, sender: str) -> None:
        resend.api_key = api_key
        self._sender = sender

    @staticmethod
    def render_html(email: ConfirmationEmail) -> str:
        rows = [
            ("Service", email.service_name),
            ("Date", email.date),
            ("Time", email.time),
            ("Price", f"${email.price}"),
        ]
        if email.access_code:
            rows.append(("Access code", email.access_code))
        table = "".join(
            f"<tr><td><strong>{escape(k)}</strong></td><td>{escape(v)}</td></tr>"
            for k, v in rows
        )
        video = (
            f'<p>Join your video visit here: <a href="{escape(email.video_link)}">'
            f"{escape(email.video_link)}</a></p>"
            if email.video_link
            else "<p>Your video visit link will be sent before the appointment.</p>"
        )
        return (
            f"<p>Hi {escape(email.patient_name)},</p>"
            f"<p>Your telehealth appointment is confirmed.</p>"
            f"<table>{table}</table>{video}"
        )

    async def send_confirmation(self, email: ConfirmationEmail) -> bool:
        params: dict[str, Any] = {
            "from": self._sender,
            "to": [email.to],
            "subject": f"Appointment confirmed: {email.service_name} on {email.date}",
            "html": self.render_html(email),
        }
        loop = asyncio.get_running_loop()
        try:
            response = await loop.run_in_executor(None, partial(resend.Emails.send, params))
        except Exception:
            log.exception("Failed to send confirmation email")
            return False
        log.info("Confirmation email sent: %s", response)
        return True


def build_notifier(api_key: str, sender: str) -> Notifier:
    if api_key:
        return ResendNotifier(api_key, sender)
    return Notifier()
