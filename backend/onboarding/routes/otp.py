"""
OTP API Routes
Public endpoints for phone verification during vendor registration and login
"""

from fastapi import APIRouter, Depends, HTTPException, Request, status

from ..config import settings
from ..exceptions import (
    OtpError, InvalidPhoneNumber, InvalidPurpose, RateLimitExceeded, TooSoon,
    DeliveryFailed, NoActiveCode, Expired, AttemptsExhausted, CodeMismatch
)
from ..limiter import limiter
from ..schemas.otp import OTPRequest, OTPVerify, OTPSentResponse, OTPVerifiedResponse
from ..services.otp_manager import OtpManager

router = APIRouter(prefix="/auth", tags=["OTP"])

ERROR_STATUS = {
    InvalidPhoneNumber: status.HTTP_400_BAD_REQUEST,
    InvalidPurpose: status.HTTP_400_BAD_REQUEST,
    CodeMismatch: status.HTTP_400_BAD_REQUEST,
    NoActiveCode: status.HTTP_404_NOT_FOUND,
    Expired: status.HTTP_410_GONE,
    AttemptsExhausted: status.HTTP_429_TOO_MANY_REQUESTS,
    RateLimitExceeded: status.HTTP_429_TOO_MANY_REQUESTS,
    TooSoon: status.HTTP_429_TOO_MANY_REQUESTS,
    DeliveryFailed: status.HTTP_502_BAD_GATEWAY,
}


def otp_http_error(error: OtpError) -> HTTPException:
    return HTTPException(
        status_code=ERROR_STATUS.get(type(error), status.HTTP_400_BAD_REQUEST),
        detail=error.to_dict()
    )


def get_otp_manager(request: Request) -> OtpManager:
    return request.app.state.otp_manager


def _client_meta(request: Request) -> dict:
    ip = request.headers.get("X-Forwarded-For", request.client.host if request.client else None)
    return {
        "ip_address": ip.split(",")[0].strip() if ip else None,
        "user_agent": request.headers.get("User-Agent"),
    }


@router.post("/send-otp", response_model=OTPSentResponse)
@limiter.limit(settings.RATELIMIT_OTP)
async def send_otp(
    request: Request,
    data: OTPRequest,
    manager: OtpManager = Depends(get_otp_manager)
):
    """Send OTP to a phone number"""
    try:
        issued = await manager.issue(data.phone, data.purpose, **_client_meta(request))
    except OtpError as e:
        raise otp_http_error(e)

    return {
        "success": True,
        "message": "OTP sent successfully",
        "data": {"phone": issued.phone, "purpose": issued.purpose, "expires_at": issued.expires_at}
    }


@router.post("/verify-otp", response_model=OTPVerifiedResponse)
async def verify_otp(data: OTPVerify, manager: OtpManager = Depends(get_otp_manager)):
    """Verify OTP code"""
    try:
        verified = await manager.verify(data.phone, data.otp, data.purpose)
    except OtpError as e:
        raise otp_http_error(e)

    return {
        "success": True,
        "message": "OTP verified successfully",
        "data": {"phone": verified.phone, "purpose": verified.purpose, "verified_at": verified.verified_at}
    }


@router.post("/resend-otp", response_model=OTPSentResponse)
@limiter.limit(settings.RATELIMIT_OTP)
async def resend_otp(
    request: Request,
    data: OTPRequest,
    manager: OtpManager = Depends(get_otp_manager)
):
    """Invalidate the current OTP and send a new one"""
    try:
        issued = await manager.resend(data.phone, data.purpose, **_client_meta(request))
    except OtpError as e:
        raise otp_http_error(e)

    return {
        "success": True,
        "message": "OTP resent successfully",
        "data": {"phone": issued.phone, "purpose": issued.purpose, "expires_at": issued.expires_at}
    }
