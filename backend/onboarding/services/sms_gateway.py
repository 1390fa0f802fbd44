"""
SMS Gateway
Delivers OTP messages through an HTTP SMS API (bearer token, JSON payload)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional, Protocol

import requests

from ..exceptions import SmsDeliveryError
from ..utils.validators import mask_phone

logger = logging.getLogger(__name__)


@dataclass
class DeliveryReceipt:
    to_number: str
    status: str
    message_id: Optional[str] = None
    response: dict = field(default_factory=dict)


class SmsGateway(Protocol):
    async def send(self, to_number: str, body: str) -> DeliveryReceipt:
        ...

    async def check_configuration(self) -> dict:
        ...

    def close(self) -> None:
        ...


class HttpSmsGateway:
    """Client for the HTTP SMS API used in production"""

    def __init__(self, api_url: str, api_key: str, sender_id: str, timeout: float = 10.0):
        self.api_url = api_url
        self.api_key = api_key
        self.sender_id = sender_id
        self.timeout = timeout
        self._session = requests.Session()
        self._session.headers.update({
            "Accept": "application/json",
            "Content-Type": "application/json",
        })

    def _post(self, payload: dict) -> requests.Response:
        headers = {"Authorization": f"Bearer {self.api_key}"}
        return self._session.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)

    async def send(self, to_number: str, body: str) -> DeliveryReceipt:
        """
        Send a text message

        Args:
            to_number: E.164 formatted recipient (+91XXXXXXXXXX)
            body: Message text

        Raises:
            SmsDeliveryError: on timeout, transport error or a non-success reply
        """
        if not self.api_url or not self.api_key:
            raise SmsDeliveryError("SMS gateway not configured. Please set SMS_API_URL and SMS_API_KEY")

        payload = {
            # API expects the number without the leading +
            "recipient": to_number.lstrip("+"),
            "sender_id": self.sender_id,
            "message": body
        }

        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(None, lambda: self._post(payload)),
                timeout=self.timeout + 1
            )
        except (asyncio.TimeoutError, requests.Timeout):
            logger.warning(f"SMS gateway timed out after {self.timeout}s for {mask_phone(to_number)}")
            raise SmsDeliveryError("SMS gateway timed out", timed_out=True)
        except requests.RequestException as e:
            logger.error(f"SMS gateway request failed: {e}")
            raise SmsDeliveryError(f"SMS delivery failed: {e}")

        logger.debug(f"SMS API Response Status: {response.status_code}")

        if response.status_code != 200:
            raise SmsDeliveryError(
                f"Failed to send SMS: HTTP {response.status_code}",
                status_code=response.status_code
            )

        try:
            result = response.json()
        except ValueError:
            raise SmsDeliveryError("SMS API returned a non-JSON response", status_code=response.status_code)

        if result.get("status") != "success":
            raise SmsDeliveryError(f"SMS API error: {result.get('message', 'Unknown error')}")

        data = result.get("data") or {}
        return DeliveryReceipt(
            to_number=to_number,
            status="sent",
            message_id=data.get("uid") or data.get("message_id"),
            response=result
        )

    async def check_configuration(self) -> dict:
        missing = [
            name for name, value in (
                ("SMS_API_URL", self.api_url),
                ("SMS_API_KEY", self.api_key),
                ("SMS_SENDER_ID", self.sender_id),
            ) if not value
        ]
        if missing:
            return {
                "success": False,
                "message": f"SMS configuration incomplete. Please set {', '.join(missing)}"
            }

        return {
            "success": True,
            "message": "SMS gateway configuration is complete",
            "gateway": {
                "api_url": self.api_url,
                "sender_id": self.sender_id,
                "timeout": self.timeout
            }
        }

    def close(self) -> None:
        self._session.close()


class LoggingSmsGateway:
    """Gateway used when SMS is disabled; messages only go to the log"""

    async def send(self, to_number: str, body: str) -> DeliveryReceipt:
        logger.debug(f"SMS disabled - message for {to_number}: {body}")
        return DeliveryReceipt(to_number=to_number, status="logged")

    async def check_configuration(self) -> dict:
        return {
            "success": True,
            "message": "SMS delivery disabled (quiet mode); messages are logged only"
        }

    def close(self) -> None:
        pass


def build_sms_gateway(settings) -> SmsGateway:
    if not settings.sms_enabled:
        return LoggingSmsGateway()
    return HttpSmsGateway(
        api_url=settings.SMS_API_URL,
        api_key=settings.SMS_API_KEY,
        sender_id=settings.SMS_SENDER_ID,
        timeout=settings.SMS_TIMEOUT_SECONDS
    )
