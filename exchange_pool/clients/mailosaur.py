"""Mailosaur OTP client.

Opt-in helper for creators whose flow requires confirming an e-mail
address: hands out unique inbox addresses and waits for the verification
code sent to them. The SimpleSwap flow does not ask for an e-mail, so the
service never builds one itself; a creator that needs it constructs
``MailosaurClient(settings.mailosaur)``.
"""

from __future__ import annotations

import re
import secrets
import time
from datetime import timedelta
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from exchange_pool.errors import CreationError, CreationTimeoutError
from exchange_pool.utils.datetime import utcnow

if TYPE_CHECKING:
    from exchange_pool.config import MailosaurConfig

logger = structlog.get_logger()

_SUBJECT_PATTERNS = (
    re.compile(r"code\s+is\s+(\d{5,6})", re.IGNORECASE),
    re.compile(r"(\d{5,6})"),
)
_BODY_PATTERNS = (
    re.compile(r"email\s*address[:\s]*(\d{5,6})", re.IGNORECASE),
    re.compile(r"Here's your code[^:]*:\s*(\d{5,6})", re.IGNORECASE),
    re.compile(r"code[:\s]+(\d{5,6})", re.IGNORECASE),
    re.compile(r"\b(\d{6})\b"),
)


def extract_otp(message: dict[str, Any]) -> str | None:
    """Pull a 5-6 digit code out of a Mailosaur message.

    Tries the subject first, then Mailosaur's own extracted codes, then
    the plain-text body.
    """
    subject = message.get("subject") or ""
    for pattern in _SUBJECT_PATTERNS:
        match = pattern.search(subject)
        if match:
            return match.group(1)

    text = message.get("text") or {}
    codes = text.get("codes") or []
    if codes and codes[0].get("value"):
        return str(codes[0]["value"])

    body = text.get("body") or ""
    for pattern in _BODY_PATTERNS:
        match = pattern.search(body)
        if match:
            return match.group(1)

    return None


class MailosaurClient:
    """HTTP client for the Mailosaur messages API."""

    def __init__(
        self,
        config: "MailosaurConfig",
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        if not config.api_key or not config.server_id:
            raise ValueError("Mailosaur api_key and server_id are required")
        self._config = config
        self._transport = transport
        self._log = logger.bind(client="mailosaur", server_id=config.server_id)

    def create_email(self, prefix: str = "exchange") -> str:
        """Unique address like ``prefix-<ms>-<rand>@<server>.mailosaur.net``."""
        timestamp = int(time.time() * 1000)
        return f"{prefix}-{timestamp}-{secrets.token_hex(3)}@{self._config.server_id}.mailosaur.net"

    async def wait_for_message(self, email: str, *, timeout: float | None = None) -> dict[str, Any]:
        """Block until a message addressed to ``email`` arrives.

        Raises:
            CreationTimeoutError: Nothing arrived in time
            CreationError: Any other API failure
        """
        wait_seconds = timeout or self._config.timeout_seconds
        received_after = (utcnow() - timedelta(seconds=5)).isoformat()
        url = f"{self._config.base_url.rstrip('/')}/api/messages/await"

        self._log.info("mailosaur.waiting", email=email, timeout=wait_seconds)
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.post(
                    url,
                    params={
                        "server": self._config.server_id,
                        "receivedAfter": received_after,
                        "timeout": int(wait_seconds * 1000),
                    },
                    json={"sentTo": email},
                    auth=(self._config.api_key, ""),
                    timeout=wait_seconds + 10,
                )
        except httpx.TimeoutException:
            raise CreationTimeoutError(f"No e-mail received for {email}") from None
        except httpx.RequestError as exc:
            raise CreationError(f"Mailosaur request error: {exc}") from exc

        if response.status_code >= 400:
            self._log.error(
                "mailosaur.request_failed",
                status=response.status_code,
                body=response.text,
            )
            raise CreationError(f"Mailosaur request failed: {response.status_code}")

        return response.json()

    async def wait_for_otp(self, email: str, *, timeout: float | None = None) -> str | None:
        """Wait for the verification mail and return its code, or None if it has none."""
        message = await self.wait_for_message(email, timeout=timeout)
        otp = extract_otp(message)
        self._log.info(
            "mailosaur.received",
            email=email,
            subject=message.get("subject"),
            found_code=otp is not None,
        )
        return otp
