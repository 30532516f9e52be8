"""Notification service: verification email over Mailgun (or the log, in development)."""
import logging

import httpx

from app.config import Settings, get_settings
from app.errors import DeliveryError

logger = logging.getLogger("uvicorn.error")

MAILGUN_US_BASE = "https://api.mailgun.net"
MAILGUN_EU_BASE = "https://api.eu.mailgun.net"


class MailgunMailer:
    """Sends through the Mailgun HTTP API. Raises DeliveryError on any failure."""

    def __init__(self, settings: Settings, timeout: float = 10.0):
        self.settings = settings
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return bool(self.settings.mailgun_api_key and self.settings.mailgun_domain)

    def _from_header(self) -> str:
        domain = (self.settings.mailgun_domain or "").strip().lower()
        from_addr = (self.settings.mailgun_from_email or "").strip()
        from_domain = from_addr.split("@")[-1].lower() if "@" in from_addr else ""
        if domain and from_domain != domain:
            from_addr = f"noreply@{domain}"
            logger.info("[Mailgun] Using from=%s (must match domain %s for delivery)", from_addr, domain)
        return f"{self.settings.mailgun_from_name} <{from_addr}>"

    def send(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> None:
        if not self.configured:
            raise DeliveryError("Mailgun is not configured: set MAILGUN_API_KEY and MAILGUN_DOMAIN")
        base = (self.settings.mailgun_base_url or MAILGUN_US_BASE).strip().rstrip("/")
        domain = self.settings.mailgun_domain.strip().lower()
        data = {
            "from": self._from_header(),
            "to": to_email,
            "subject": subject,
            "text": text_content or "",
            "html": html_content or "",
        }
        auth = ("api", self.settings.mailgun_api_key)
        try:
            with httpx.Client(timeout=self.timeout) as client:
                r = client.post(f"{base}/v3/{domain}/messages", auth=auth, data=data)
                if r.status_code == 401 and base == MAILGUN_US_BASE:
                    # Keys issued for EU-hosted domains are rejected by the US endpoint
                    logger.info("[Mailgun] 401 with US endpoint. Retrying with EU endpoint...")
                    r = client.post(f"{MAILGUN_EU_BASE}/v3/{domain}/messages", auth=auth, data=data)
        except httpx.HTTPError as e:
            raise DeliveryError(f"Mailgun request to {to_email} failed: {type(e).__name__}: {e}") from e
        if not 200 <= r.status_code < 300:
            raise DeliveryError(f"Mailgun API failed: status={r.status_code} to={to_email} body={r.text[:500]}")
        logger.info("[Mailgun] API success: to=%s status=%s", to_email, r.status_code)


class ConsoleMailer:
    """Development backend: writes the message to the log instead of sending it."""

    def send(self, to_email: str, subject: str, html_content: str, text_content: str | None = None) -> None:
        logger.warning("[Email] Console backend, NOT SENT: to=%s subject=%s\n%s", to_email, subject, text_content or html_content)


def build_mailer(settings: Settings | None = None):
    settings = settings or get_settings()
    if settings.mail_backend == "console":
        return ConsoleMailer()
    return MailgunMailer(settings)


def _describe_window(seconds: int) -> str:
    if seconds % 60:
        return f"{seconds} seconds"
    minutes = seconds // 60
    return "1 minute" if minutes == 1 else f"{minutes} minutes"


def send_verification_email(mailer, to_email: str, code: str, ttl_seconds: int) -> None:
    """Send the verification code for a pending registration."""
    window = _describe_window(ttl_seconds)
    subject = "Welcome! Please Verify Your Email"
    text_content = f"Your verification code is: {code}. It expires in {window}."
    html_content = f"""
    <div style="font-family: sans-serif; text-align: center; color: #333;">
      <h1 style="color: #007bff;">Welcome to Our Community!</h1>
      <p>To complete your registration, please verify your email address using the code below.</p>
      <p style="font-size: 24px; font-weight: bold; color: #28a745;">{code}</p>
      <p>This code will expire in <strong>{window}</strong>.</p>
      <p>If you did not create an account, please disregard this email.</p>
    </div>
    """
    logger.info("[Verification] Sending code to %s", to_email)
    mailer.send(to_email, subject, html_content, text_content=text_content)
