"""邮件发送实现：控制台输出 / Resend API"""

import html
import logging

import httpx

from shelfswap.config import Settings

from .base import EmailDeliveryError, EmailSender

logger = logging.getLogger(__name__)


def reset_link(frontend_url: str, token: str) -> str:
    return f"{frontend_url.rstrip('/')}/reset-password?token={token}"


def request_notification_text(owner_name: str, book_title: str, requester_email: str) -> str:
    return (
        f"Hi {owner_name},\n\n"
        f"You have a new request for your book '{book_title}' from {requester_email}.\n\n"
        f"If you're interested in swapping, please reach out to them directly at "
        f"{requester_email} to arrange a meeting place and time for the exchange.\n\n"
        f"Cheers,\nThe ShelfSwap Team"
    )


class ConsoleEmailSender(EmailSender):
    """开发环境：只写日志，不真正发信"""

    def __init__(self, frontend_url: str, contact_inbox: str):
        self.frontend_url = frontend_url
        self.contact_inbox = contact_inbox

    async def send_password_reset(self, to: str, token: str) -> None:
        logger.info(
            f"[console email] To: {to} | Subject: Password Reset Request | "
            f"Body: Click here to reset your password: {reset_link(self.frontend_url, token)}"
        )

    async def send_request_notification(
        self, to: str, owner_name: str, book_title: str, requester_email: str
    ) -> None:
        body = request_notification_text(owner_name, book_title, requester_email)
        logger.info(
            f"[console email] To: {to} | Subject: New Book Request: {book_title} | Body: {body!r}"
        )

    async def send_contact_message(
        self, name: str, from_email: str, subject: str, message: str
    ) -> None:
        logger.info(
            f"[console email] To: {self.contact_inbox} | From: {name} <{from_email}> | "
            f"Subject: Contact Form: {subject} | Body: {message!r}"
        )


class ResendEmailSender(EmailSender):
    """通过 Resend HTTP API 发信"""

    def __init__(
        self,
        api_key: str,
        sender: str,
        frontend_url: str,
        contact_inbox: str,
        api_url: str = "https://api.resend.com",
        timeout: float = 10,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.api_key = api_key
        self.sender = sender
        self.frontend_url = frontend_url
        self.contact_inbox = contact_inbox
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    async def _send(self, to: str, subject: str, html_body: str, reply_to: str | None = None) -> None:
        payload = {
            "from": self.sender,
            "to": [to],
            "subject": subject,
            "html": html_body,
        }
        if reply_to:
            payload["reply_to"] = reply_to

        async with httpx.AsyncClient(
            base_url=self.api_url, timeout=self.timeout, transport=self.transport
        ) as client:
            try:
                response = await client.post(
                    "/emails",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
            except httpx.HTTPError as exc:
                logger.error(f"Error communicating with Resend: {exc}")
                raise EmailDeliveryError("Email service unavailable") from exc

        if response.status_code >= 400:
            logger.error(f"Error sending email ({response.status_code}): {response.text}")
            raise EmailDeliveryError("Failed to send email")

    async def send_password_reset(self, to: str, token: str) -> None:
        link = html.escape(reset_link(self.frontend_url, token))
        await self._send(
            to,
            "Password Reset Request",
            f'<p>Click here to reset your password: <a href="{link}">Reset Password</a></p>',
        )

    async def send_request_notification(
        self, to: str, owner_name: str, book_title: str, requester_email: str
    ) -> None:
        owner = html.escape(owner_name)
        title = html.escape(book_title)
        requester = html.escape(requester_email)
        body = (
            f"<p>Hi {owner},</p>"
            f"<p>You have a new request for your book <strong><em>{title}</em></strong> "
            f"from <strong>{requester}</strong>.</p>"
            f"<p>If you're interested in swapping, please reach out to them directly at "
            f'<a href="mailto:{requester}">{requester}</a> to arrange a convenient meeting '
            f"place and time for the exchange.</p>"
            f"<p>Cheers,<br>The ShelfSwap Team</p>"
        )
        await self._send(to, f"New Book Request: {book_title}", body, reply_to=requester_email)

    async def send_contact_message(
        self, name: str, from_email: str, subject: str, message: str
    ) -> None:
        body = (
            f"<p>Feedback from: {html.escape(name)} &lt;{html.escape(from_email)}&gt;</p>"
            f"<p>{html.escape(message)}</p>"
        )
        await self._send(self.contact_inbox, f"Contact Form: {subject}", body, reply_to=from_email)


def build_email_sender(settings: Settings) -> EmailSender:
    if settings.RESEND_API_KEY:
        logger.info("Using Resend email service")
        return ResendEmailSender(
            api_key=settings.RESEND_API_KEY,
            sender=settings.EMAIL_FROM,
            frontend_url=settings.FRONTEND_URL,
            contact_inbox=settings.CONTACT_INBOX,
            api_url=settings.RESEND_API_URL,
        )
    logger.warning("Using console email service (set RESEND_API_KEY to use Resend)")
    return ConsoleEmailSender(settings.FRONTEND_URL, settings.CONTACT_INBOX)
