"""Transactional mail over SMTP, dispatched fire-and-forget.

``Mailer.dispatch`` returns as soon as the send is queued on a small
thread pool.  Send failures are logged and never reach the caller:
an order that was created stays created whether or not the mail went
out.
"""

from __future__ import annotations

import logging
import smtplib
from concurrent.futures import Future, ThreadPoolExecutor
from email.mime.text import MIMEText
from typing import Any

from orderhub.config import Settings

logger = logging.getLogger(__name__)

# template name -> (subject, body)
TEMPLATES: dict[str, tuple[str, str]] = {
    "order_confirmation": (
        "Order {order_number} confirmed",
        "Hi {customer_name},\n\n"
        "Thanks for your order {order_number}.\n"
        "Items: {item_count}\n"
        "Total: Rs. {total:.2f}\n"
        "{delivery_line}\n\n"
        "We will email you again when it ships.\n",
    ),
    "order_cancelled": (
        "Order {order_number} cancelled",
        "Hi {customer_name},\n\n"
        "Your order {order_number} has been cancelled.\n"
        "Reason: {reason}\n",
    ),
}


def render(template: str, context: dict[str, Any]) -> tuple[str, str]:
    """Return (subject, body) for ``template``.  KeyError if unknown."""
    subject, body = TEMPLATES[template]
    return subject.format(**context), body.format(**context)


class Mailer:

    def __init__(self, settings: Settings, max_workers: int = 2):
        self._settings = settings
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="mail")

    def send(self, to: str, subject: str, body: str) -> bool:
        """Send one message synchronously.  Returns False if mail is not configured."""
        if not self._settings.smtp_host:
            logger.info("SMTP_HOST not configured, skipping mail to %s: %s", to, subject)
            return False

        msg = MIMEText(body)
        msg["Subject"] = subject
        msg["From"] = self._settings.mail_from
        msg["To"] = to

        with smtplib.SMTP(self._settings.smtp_host, self._settings.smtp_port, timeout=30) as server:
            server.starttls()
            if self._settings.smtp_user:
                server.login(self._settings.smtp_user, self._settings.smtp_password)
            server.send_message(msg)
        logger.info("Mail sent to %s: %s", to, subject)
        return True

    def _send_template(self, template: str, to: str, context: dict[str, Any]) -> bool:
        try:
            subject, body = render(template, context)
            return self.send(to, subject, body)
        except Exception:
            logger.exception("Failed to send %s mail to %s", template, to)
            return False

    def dispatch(self, template: str, to: str, context: dict[str, Any]) -> Future | None:
        """Queue a template send and return immediately."""
        if not to:
            logger.info("No recipient for %s mail, skipping", template)
            return None
        return self._executor.submit(self._send_template, template, to, context)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False)
