# marketplace/mailer.py
import logging
import smtplib
from email.message import EmailMessage

from marketplace import settings

logger = logging.getLogger("adspace_backend")


class Mailer:
    def __init__(
        self,
        host: str = settings.SMTP_HOST,
        port: int = settings.SMTP_PORT,
        username: str = settings.SMTP_USERNAME,
        password: str = settings.SMTP_PASSWORD,
        from_addr: str = settings.SMTP_FROM,
        use_tls: bool = settings.SMTP_USE_TLS,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_addr = from_addr or username
        self.use_tls = use_tls

    def send(self, to_email: str, subject: str, body: str) -> bool:
        """
        Best effort: returns False (and logs) instead of raising, a failed
        notification never fails the request that triggered it.
        """
        if not self.host or not self.from_addr:
            logger.warning("SMTP not configured; skipping email '%s' to %s", subject, to_email)
            return False
        if not to_email:
            return False

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.from_addr
        msg["To"] = to_email
        msg.set_content(body)
        try:
            if self.port == 465:
                with smtplib.SMTP_SSL(self.host, self.port, timeout=10) as server:
                    self._login(server)
                    server.send_message(msg)
            else:
                with smtplib.SMTP(self.host, self.port, timeout=10) as server:
                    if self.use_tls:
                        server.starttls()
                    self._login(server)
                    server.send_message(msg)
            return True
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send email '%s' to %s", subject, to_email)
            return False

    def _login(self, server: smtplib.SMTP) -> None:
        if self.username and self.password:
            server.login(self.username, self.password)


# ---- message templates ----

def verification_email(frontend_url: str, token: str, otp: str) -> tuple[str, str]:
    return (
        "Verify your email",
        f"Your verification code is {otp}. It expires in 10 minutes.\n\n"
        f"Or verify with this link: {frontend_url}/verify-email/{token}",
    )


def new_request_email(ad_title: str, sender_name: str) -> tuple[str, str]:
    return (
        f'New Request for "{ad_title}"',
        f'You have a new request for your AdSpace "{ad_title}" from {sender_name}.',
    )


def request_status_email(ad_title: str, status: str) -> tuple[str, str]:
    return (
        f'Request {status} for "{ad_title}"',
        f'Your request for "{ad_title}" has been {status.lower()}.',
    )


def new_message_email(frontend_url: str, sender_name: str, content: str,
                      conversation_id: str) -> tuple[str, str]:
    return (
        f"New Message from {sender_name}",
        f"You have a new message:\n\n{content}\n\n"
        f"Log in to reply: {frontend_url}/chat/{conversation_id}",
    )
