"""
SMS Delivery Gateway.

All outbound SMS goes through an ``SmsGateway``.  Two implementations:

  - ``LoggingSmsGateway``: logs the message, returns no provider id.
    Default for development and tests (SMS_PROVIDER=mock).
  - ``TwilioSmsGateway``: POSTs to the Twilio Messages REST resource with
    ``requests`` (SMS_PROVIDER=twilio).

Every provider problem (non-2xx answer, network error, timeout, malformed
body) surfaces as ``DeliveryFailure``.  The dispatch job treats all of them
the same way, so no finer error taxonomy is exposed.

``get_sms_gateway(config)`` picks the implementation once; the result is
injected into the dispatch job rather than consulted as a global.

Testability: pass a mock ``session`` to TwilioSmsGateway() instead of
letting it create a real requests.Session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import requests

from microcoach.core.exceptions import ConfigurationError, DeliveryFailure

logger = logging.getLogger(__name__)

_DEFAULT_TIMEOUT = 15
_DEFAULT_API_BASE = "https://api.twilio.com/2010-04-01"

SMS_PROVIDERS = ("mock", "twilio")


@dataclass(frozen=True)
class SmsSendResult:
    """Outcome of a successful hand-off. ``message_id`` is None for gateways without ids."""

    message_id: str | None


class SmsGateway:
    """Interface: send one text to one destination."""

    name = "base"

    def send(self, destination: str, body: str) -> SmsSendResult:
        raise NotImplementedError


class LoggingSmsGateway(SmsGateway):
    """No-op gateway that writes the message to the log."""

    name = "mock"

    def send(self, destination: str, body: str) -> SmsSendResult:
        logger.info("SMS (mock mode): to=%s\n%s", destination, body)
        return SmsSendResult(message_id=None)


class TwilioSmsGateway(SmsGateway):
    """Twilio Programmable Messaging over its REST API."""

    name = "twilio"

    def __init__(
        self,
        account_sid: str | None,
        auth_token: str | None,
        from_number: str | None,
        *,
        api_base: str = _DEFAULT_API_BASE,
        timeout: float = _DEFAULT_TIMEOUT,
        session: requests.Session | None = None,
    ) -> None:
        missing = [
            name for name, value in (
                ("TWILIO_ACCOUNT_SID", account_sid),
                ("TWILIO_AUTH_TOKEN", auth_token),
                ("TWILIO_NUMBER", from_number),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(
                f"SMS_PROVIDER=twilio but missing settings: {', '.join(missing)}"
            )

        self.account_sid = account_sid
        self._auth_token = auth_token
        self.from_number = from_number
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._session = session

    @property
    def session(self) -> requests.Session:
        """Return (or lazily create) the requests.Session."""
        if self._session is None:
            self._session = requests.Session()
        return self._session

    @property
    def messages_url(self) -> str:
        return f"{self.api_base}/Accounts/{self.account_sid}/Messages.json"

    def send(self, destination: str, body: str) -> SmsSendResult:
        try:
            resp = self.session.post(
                self.messages_url,
                data={"From": self.from_number, "To": destination, "Body": body},
                auth=(self.account_sid, self._auth_token),
                timeout=self.timeout,
            )
        except requests.Timeout as exc:
            raise DeliveryFailure(
                f"Twilio request timed out after {self.timeout}s", destination=destination,
            ) from exc
        except requests.RequestException as exc:
            raise DeliveryFailure(
                f"Twilio request failed: {exc}", destination=destination,
            ) from exc

        if not 200 <= resp.status_code < 300:
            raise DeliveryFailure(
                f"Twilio rejected message: HTTP {resp.status_code} {_error_message(resp)}",
                destination=destination,
                status_code=resp.status_code,
            )

        try:
            data = resp.json()
        except ValueError as exc:
            raise DeliveryFailure(
                "Twilio returned a non-JSON body", destination=destination,
                status_code=resp.status_code,
            ) from exc

        sid = data.get("sid") if isinstance(data, dict) else None
        logger.debug("Twilio accepted message to=%s sid=%s", destination, sid)
        return SmsSendResult(message_id=sid)


def _error_message(resp: Any) -> str:
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "")[:200]
    if isinstance(data, dict):
        return str(data.get("message") or data.get("code") or "")
    return ""


def get_sms_gateway(config: Mapping[str, Any]) -> SmsGateway:
    """Build the gateway selected by ``SMS_PROVIDER`` in ``config``."""
    provider = (config.get("SMS_PROVIDER") or "mock").lower()
    if provider == "mock":
        return LoggingSmsGateway()
    if provider == "twilio":
        return TwilioSmsGateway(
            config.get("TWILIO_ACCOUNT_SID"),
            config.get("TWILIO_AUTH_TOKEN"),
            config.get("TWILIO_NUMBER"),
            api_base=config.get("TWILIO_API_BASE") or _DEFAULT_API_BASE,
            timeout=config.get("SMS_SEND_TIMEOUT") or _DEFAULT_TIMEOUT,
        )
    raise ConfigurationError(
        f"Unknown SMS_PROVIDER {provider!r}; expected one of {', '.join(SMS_PROVIDERS)}"
    )
