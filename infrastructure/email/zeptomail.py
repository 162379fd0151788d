"""ZeptoMail implementation of OtpSender.

Renders the signup / reset templates with Jinja2 and posts them to the
ZeptoMail HTTP API through the shared HttpClient. Failures are raised as
typed EmailDeliveryError subclasses so the caller can tell a misconfigured
sender from a flaky upstream from a rejected recipient.
"""

import os
from typing import Optional

import httpx
from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import EmailSettings
from infrastructure.email.protocol import (
    DeliveryResult,
    EmailAuthError,
    EmailConnectionError,
    EmailRejectedError,
)
from infrastructure.http_client import HttpClient
from schemas.models.otp import OTP_TTL_SECONDS, OTP_TYPE_RESET, OTP_TYPE_SIGNUP
from shared.logging import get_logger

log = get_logger(__name__)

_ZEPTO_API_URL = "https://api.zeptomail.in/v1.1/email"
_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.dirname(__file__))),
    "templates",
    "emails",
)

_MESSAGES = {
    OTP_TYPE_SIGNUP: ("Verify your email - {app}", "otp_signup.html", "verification"),
    OTP_TYPE_RESET: ("Reset your password - {app}", "otp_reset.html", "password reset"),
}


class ZeptoMailSender:
    provider = "zeptomail"

    def __init__(
        self,
        settings: EmailSettings,
        http_client: HttpClient,
        app_name: str = "Blog-Web-App",
        client_url: str = "http://localhost:5173",
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._settings = settings
        self._http = http_client
        self._app_name = app_name
        self._client_url = client_url
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def _render(self, code: str, otp_type: str, ip_address: Optional[str]):
        subject_fmt, template_name, purpose = _MESSAGES[otp_type]
        minutes = OTP_TTL_SECONDS // 60
        html_body = self._jinja.get_template(template_name).render(
            otp_code=code,
            app_name=self._app_name,
            app_url=self._client_url,
            expires_minutes=minutes,
            ip_address=ip_address,
        )
        text_body = (
            f"{self._app_name}\n\n"
            f"Your {purpose} code is: {code}\n\n"
            f"This code expires in {minutes} minutes.\n"
        )
        if ip_address:
            text_body += f"Requested from IP address {ip_address}.\n"
        return subject_fmt.format(app=self._app_name), html_body, text_body

    async def send(
        self, address: str, code: str, otp_type: str, ip_address: Optional[str]
    ) -> DeliveryResult:
        if otp_type not in _MESSAGES:
            raise ValueError(f"unknown otp_type: {otp_type!r}")
        if not self._settings.zepto_api_token:
            log.error("otp_email_send_failed", reason="token_not_configured")
            raise EmailAuthError("Email sender is not configured")

        subject, html_body, text_body = self._render(code, otp_type, ip_address)
        payload: dict = {
            "from": {
                "address": self._settings.zepto_from_email,
                "name": self._settings.zepto_from_name,
            },
            "to": [{"email_address": {"address": address, "name": address}}],
            "subject": subject,
            "htmlbody": html_body,
            "textbody": text_body,
        }

        token = self._settings.zepto_api_token
        if not token.startswith("Zoho-enczapikey "):
            token = f"Zoho-enczapikey {token}"
        headers = {"Authorization": token, "Content-Type": "application/json"}

        try:
            response = await self._http.post(
                _ZEPTO_API_URL, json=payload, headers=headers
            )
        except (httpx.TimeoutException, httpx.TransportError) as e:
            log.error(
                "otp_email_send_error",
                otp_type=otp_type,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise EmailConnectionError("Email service unreachable") from e

        status = response.status_code
        if status in (200, 201, 202):
            try:
                message_id = response.json().get("request_id")
            except ValueError:
                message_id = None
            log.info("otp_email_sent", otp_type=otp_type)
            return DeliveryResult(
                accepted=True, provider=self.provider, message_id=message_id
            )

        log.error(
            "otp_email_send_failed",
            otp_type=otp_type,
            status_code=status,
            response=response.text[:200],
        )
        if status in (401, 403):
            raise EmailAuthError("Email sender rejected credentials", status_code=status)
        if status >= 500 or status == 429:
            raise EmailConnectionError(
                "Email service temporarily unavailable", status_code=status
            )
        raise EmailRejectedError("Email address was rejected", status_code=status)
