# Overview: Service-layer operations for outbound email; best-effort, never fails the caller.

"""
Outbound notifications

Senders accept (recipient, subject, html) and return True on success. The
business code never calls a sender directly: it goes through send_async(),
which runs the send on a small worker pool and returns a Future. A failing
send is logged on the application logger and resolves the Future to False;
it never raises into the request that triggered it.

Without RESEND_API_KEY the LogEmailSender is used, which only logs.
Tests install their own sender with set_sender().
"""

from __future__ import annotations

from concurrent.futures import Future, ThreadPoolExecutor

import httpx
from flask import current_app
from markupsafe import escape


RESEND_API_URL = "https://api.resend.com/emails"

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="mail")


class LogEmailSender:
    def __init__(self, logger):
        self.logger = logger

    def send(self, recipient: str, subject: str, html: str) -> bool:
        self.logger.info("Email not configured; would send %r to %s", subject, recipient)
        return True


class ResendEmailSender:
    """Resend HTTP API client."""

    def __init__(self, api_key: str, sender: str, *, timeout: float = 10.0, client: httpx.Client | None = None):
        self.api_key = api_key
        self.sender = sender
        self.timeout = timeout
        self._client = client

    def send(self, recipient: str, subject: str, html: str) -> bool:
        payload = {"from": self.sender, "to": [recipient], "subject": subject, "html": html}
        headers = {"Authorization": f"Bearer {self.api_key}"}
        if self._client is not None:
            response = self._client.post(RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout)
        else:
            response = httpx.post(RESEND_API_URL, json=payload, headers=headers, timeout=self.timeout)
        response.raise_for_status()
        return True


def set_sender(app, sender) -> None:
    app.extensions["email_sender"] = sender


def get_sender(app):
    sender = app.extensions.get("email_sender")
    if sender is None:
        api_key = app.config.get("RESEND_API_KEY")
        if api_key:
            sender = ResendEmailSender(api_key, app.config["MAIL_FROM"])
        else:
            sender = LogEmailSender(app.logger)
        app.extensions["email_sender"] = sender
    return sender


def _deliver(app, sender, recipient: str, subject: str, html: str) -> bool:
    try:
        ok = bool(sender.send(recipient, subject, html))
    except Exception:
        app.logger.warning("Email to %s failed (%s)", recipient, subject, exc_info=True)
        return False
    if not ok:
        app.logger.warning("Email to %s was not accepted (%s)", recipient, subject)
    return ok


def send_async(recipient: str, subject: str, html: str) -> Future:
    """Fire-and-forget send; the Future resolves to True/False, never raises."""
    app = current_app._get_current_object()
    sender = get_sender(app)
    return _executor.submit(_deliver, app, sender, recipient, subject, html)


# =============================================================================
# MESSAGES
# =============================================================================

def _layout(body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto; padding: 20px;">'
        f"{body}"
        '<hr style="border: none; border-top: 1px solid #e0e0e0; margin: 20px 0;">'
        '<p style="color: #999; font-size: 11px;">EazzyMart - Your Trusted Online Grocery Store</p>'
        "</div>"
    )


def notify_order_accepted(order) -> Future | None:
    """Tell the customer their order was accepted. Guest orders have nobody to tell."""
    user = order.user
    if user is None or not user.email:
        return None

    if order.order_type == "Pickup":
        expectation = "We will let you know when it is ready for pick up."
    else:
        expectation = "You can expect delivery soon."

    html = _layout(
        f'<h2 style="color: #333;">Hi {escape(user.display_name)},</h2>'
        f"<p>Good news! Your order <strong>{order.order_id}</strong> has been accepted and is being prepared.</p>"
        f"<p>{expectation} Thank you for shopping with us!</p>"
        '<p style="margin-top: 30px;">Best regards,<br><strong>EAZZY MART</strong></p>'
    )
    return send_async(user.email, "Your order has been Accepted - EazzyMart", html)


def send_otp_email(email: str, code: str, ttl_minutes: int) -> Future:
    html = _layout(
        '<h2 style="color: #333;">Your OTP Code</h2>'
        "<p>Your OTP code is:</p>"
        '<div style="background: #f0f0f0; padding: 20px; text-align: center; border-radius: 8px; margin: 20px 0;">'
        f'<h1 style="color: #007bff; font-size: 36px; letter-spacing: 5px; margin: 0;">{code}</h1>'
        "</div>"
        f'<p style="color: #666; font-size: 14px;">This code will expire in {ttl_minutes} minutes.</p>'
        "<p style=\"color: #999; font-size: 12px;\">If you didn't request this code, please ignore this email.</p>"
    )
    return send_async(email, "Your OTP Code - EazzyMart", html)
