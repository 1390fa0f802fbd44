import pytest
from fastapi.testclient import TestClient

from onboarding.config import settings
from onboarding.limiter import limiter
from onboarding.main import create_app

PHONE = "9876543210"


@pytest.fixture
def client(gateway, clock):
    limiter.reset()
    app = create_app(database_url="sqlite://", gateway=gateway, clock=clock, run_cleanup=False)
    with TestClient(app) as test_client:
        yield test_client
    assert gateway.closed is True


def send(client, phone=PHONE, purpose="login"):
    return client.post("/api/auth/send-otp", json={"phone": phone, "purpose": purpose})


def verify(client, otp, phone=PHONE, purpose="login"):
    return client.post("/api/auth/verify-otp", json={"phone": phone, "otp": otp, "purpose": purpose})


def test_send_and_verify(client, gateway):
    response = send(client)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"] == {
        "phone": PHONE,
        "purpose": "login",
        "expires_at": "2026-01-15T09:10:00"
    }
    assert response.headers["Cache-Control"] == "no-store"
    assert response.headers["X-Content-Type-Options"] == "nosniff"

    response = verify(client, gateway.last_code)
    assert response.status_code == 200
    assert response.json()["data"]["phone"] == PHONE

    response = verify(client, gateway.last_code)
    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "NO_ACTIVE_CODE"


def test_send_defaults_to_registration(client, gateway):
    response = client.post("/api/auth/send-otp", json={"phone": PHONE})

    assert response.status_code == 200
    assert response.json()["data"]["purpose"] == "registration"


def test_wrong_code_then_exhausted(client, gateway):
    send(client)
    code = gateway.last_code
    bad = "111111" if code != "111111" else "222222"

    for _ in range(3):
        response = verify(client, bad)
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "INVALID_OTP"

    response = verify(client, code)
    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "ATTEMPTS_EXHAUSTED"


def test_expired_code(client, gateway, clock):
    send(client)
    clock.advance(minutes=11)

    response = verify(client, gateway.last_code)
    assert response.status_code == 410
    assert response.json()["detail"]["code"] == "OTP_EXPIRED"


def test_rate_limit(client):
    for _ in range(3):
        assert send(client).status_code == 200

    response = send(client)
    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "RATE_LIMIT_EXCEEDED"


def test_resend_too_soon(client, clock):
    send(client)

    response = client.post("/api/auth/resend-otp", json={"phone": PHONE, "purpose": "login"})
    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "TOO_SOON"

    clock.advance(seconds=61)
    response = client.post("/api/auth/resend-otp", json={"phone": PHONE, "purpose": "login"})
    assert response.status_code == 200
    assert response.json()["message"] == "OTP resent successfully"


def test_invalid_input(client):
    response = send(client, phone="12345")
    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_PHONE"

    response = send(client, purpose="signup")
    assert response.status_code == 422

    response = verify(client, "12ab56")
    assert response.status_code == 422


def test_delivery_failure(client, gateway):
    gateway.fail_with("HTTP 503")

    response = send(client)
    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "DELIVERY_FAILED"


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_sms_routes_require_api_key(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "operator-key")

    assert client.get("/api/sms/config").status_code == 401
    assert client.get("/api/sms/config", headers={"X-API-Key": "nope"}).status_code == 401

    response = client.get("/api/sms/config", headers={"X-API-Key": "operator-key"})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_sms_routes_disabled_without_key(client, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "")

    assert client.get("/api/sms/config", headers={"X-API-Key": "anything"}).status_code == 503


def test_sms_test_message(client, gateway, monkeypatch):
    monkeypatch.setattr(settings, "ADMIN_API_KEY", "operator-key")
    headers = {"X-API-Key": "operator-key"}

    response = client.post("/api/sms/test", json={"phone": PHONE}, headers=headers)
    assert response.status_code == 200
    assert response.json()["message"] == "Test SMS sent successfully to +919876543210"

    gateway.fail_with("HTTP 500")
    response = client.post("/api/sms/test", json={"phone": PHONE}, headers=headers)
    assert response.status_code == 502


def test_configured_code_length(gateway, clock, monkeypatch):
    monkeypatch.setattr(settings, "OTP_LENGTH", 8)
    limiter.reset()
    app = create_app(database_url="sqlite://", gateway=gateway, clock=clock, run_cleanup=False)

    with TestClient(app) as client:
        assert send(client).status_code == 200
        code = gateway.last_code
        assert len(code) == 8

        response = verify(client, code[:6])
        assert response.status_code == 422

        response = verify(client, code)
        assert response.status_code == 200
        assert response.json()["data"]["phone"] == PHONE


def test_default_rate_limit_middleware_installed(client):
    from slowapi.middleware import SlowAPIMiddleware

    assert any(m.cls is SlowAPIMiddleware for m in client.app.user_middleware)
    assert client.app.state.limiter is limiter
    assert client.get("/api/health").status_code == 200
