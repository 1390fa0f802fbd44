import pytest
import requests

from onboarding.config import Settings
from onboarding.exceptions import SmsDeliveryError
from onboarding.services.sms_gateway import HttpSmsGateway, LoggingSmsGateway, build_sms_gateway

pytestmark = pytest.mark.anyio


class FakeResponse:
    def __init__(self, status_code=200, payload=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.text = text or ""

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON")
        return self._payload


@pytest.fixture
def http_gateway():
    gateway = HttpSmsGateway(
        api_url="https://sms.example.test/api/v3/sms/send",
        api_key="secret-token",
        sender_id="VendorHub",
        timeout=2
    )
    yield gateway
    gateway.close()


def stub_post(monkeypatch, gateway, response=None, error=None):
    calls = []

    def post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(gateway._session, "post", post)
    return calls


async def test_send_success(monkeypatch, http_gateway):
    calls = stub_post(monkeypatch, http_gateway, FakeResponse(200, {"status": "success", "data": {"uid": "abc"}}))

    receipt = await http_gateway.send("+919876543210", "Your code is 123456")

    assert receipt.status == "sent"
    assert receipt.message_id == "abc"
    assert calls[0]["json"] == {
        "recipient": "919876543210",
        "sender_id": "VendorHub",
        "message": "Your code is 123456"
    }
    assert calls[0]["headers"]["Authorization"] == "Bearer secret-token"
    assert calls[0]["timeout"] == 2


async def test_send_http_error(monkeypatch, http_gateway):
    stub_post(monkeypatch, http_gateway, FakeResponse(500, text="boom"))

    with pytest.raises(SmsDeliveryError) as exc_info:
        await http_gateway.send("+919876543210", "hi")

    assert exc_info.value.status_code == 500
    assert exc_info.value.timed_out is False


async def test_send_api_error(monkeypatch, http_gateway):
    stub_post(monkeypatch, http_gateway, FakeResponse(200, {"status": "error", "message": "Invalid sender"}))

    with pytest.raises(SmsDeliveryError, match="Invalid sender"):
        await http_gateway.send("+919876543210", "hi")


async def test_send_non_json(monkeypatch, http_gateway):
    stub_post(monkeypatch, http_gateway, FakeResponse(200, None, text="<html>"))

    with pytest.raises(SmsDeliveryError):
        await http_gateway.send("+919876543210", "hi")


async def test_send_timeout(monkeypatch, http_gateway):
    stub_post(monkeypatch, http_gateway, error=requests.Timeout("read timed out"))

    with pytest.raises(SmsDeliveryError) as exc_info:
        await http_gateway.send("+919876543210", "hi")

    assert exc_info.value.timed_out is True


async def test_send_connection_error(monkeypatch, http_gateway):
    stub_post(monkeypatch, http_gateway, error=requests.ConnectionError("refused"))

    with pytest.raises(SmsDeliveryError) as exc_info:
        await http_gateway.send("+919876543210", "hi")

    assert exc_info.value.timed_out is False


async def test_send_without_api_key():
    gateway = HttpSmsGateway(api_url="https://sms.example.test", api_key="", sender_id="VendorHub")

    with pytest.raises(SmsDeliveryError, match="not configured"):
        await gateway.send("+919876543210", "hi")

    result = await gateway.check_configuration()
    assert result["success"] is False
    assert "SMS_API_KEY" in result["message"]
    gateway.close()


async def test_check_configuration_complete(http_gateway):
    result = await http_gateway.check_configuration()

    assert result["success"] is True
    assert result["gateway"]["sender_id"] == "VendorHub"
    assert "secret-token" not in str(result)


async def test_logging_gateway():
    gateway = LoggingSmsGateway()

    receipt = await gateway.send("+919876543210", "hi")
    assert receipt.status == "logged"
    assert (await gateway.check_configuration())["success"] is True


def test_build_sms_gateway_follows_environment():
    assert isinstance(build_sms_gateway(Settings(APP_ENV="development")), LoggingSmsGateway)

    gateway = build_sms_gateway(Settings(APP_ENV="development", SEND_SMS_IN_DEV=True, SMS_API_KEY="k"))
    assert isinstance(gateway, HttpSmsGateway)
    gateway.close()

    gateway = build_sms_gateway(Settings(APP_ENV="production", SMS_API_KEY="k"))
    assert isinstance(gateway, HttpSmsGateway)
    assert gateway.api_key == "k"
    gateway.close()


async def test_default_settings_report_missing_url():
    gateway = build_sms_gateway(Settings(APP_ENV="production", SMS_API_URL="", SMS_API_KEY="k"))

    result = await gateway.check_configuration()
    assert result["success"] is False
    assert "SMS_API_URL" in result["message"]

    with pytest.raises(SmsDeliveryError, match="not configured"):
        await gateway.send("+919876543210", "hi")
    gateway.close()


def test_sms_api_url_has_no_default():
    assert Settings.model_fields["SMS_API_URL"].default == ""
