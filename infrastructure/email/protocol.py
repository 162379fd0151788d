"""OtpSender protocol — services depend on this, not the concrete implementation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass(frozen=True)
class DeliveryResult:
    accepted: bool
    provider: str
    message_id: Optional[str] = None


class EmailDeliveryError(Exception):
    """Base class for OTP delivery failures."""

    retryable: bool = False

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmailAuthError(EmailDeliveryError):
    """The sender is misconfigured (missing or rejected API token)."""


class EmailConnectionError(EmailDeliveryError):
    """Upstream unreachable, timed out or failing with a 5xx."""

    retryable = True


class EmailRejectedError(EmailDeliveryError):
    """The provider refused the message or recipient; retrying will not help."""


class OtpSender(Protocol):
    async def send(
        self, address: str, code: str, otp_type: str, ip_address: Optional[str]
    ) -> DeliveryResult: ...
