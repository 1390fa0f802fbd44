from pydantic import BaseModel, field_validator
from datetime import datetime

from ..config import settings
from ..models.otp import OtpPurpose
from ..utils.validators import validate_otp_code


# OTP Request (send / resend)
class OTPRequest(BaseModel):
    phone: str
    purpose: OtpPurpose = OtpPurpose.REGISTRATION

    @field_validator('phone')
    @classmethod
    def validate_phone(cls, v):
        # Full normalization happens in the OTP manager
        if not v or not v.strip():
            raise ValueError('Phone number is required')
        return v.strip()


# OTP Verify
class OTPVerify(BaseModel):
    phone: str
    otp: str
    purpose: OtpPurpose = OtpPurpose.REGISTRATION

    @field_validator('otp')
    @classmethod
    def validate_otp(cls, v):
        return validate_otp_code(v, settings.OTP_LENGTH)


class OTPSentData(BaseModel):
    phone: str
    purpose: OtpPurpose
    expires_at: datetime


class OTPSentResponse(BaseModel):
    success: bool = True
    message: str
    data: OTPSentData


class OTPVerifiedData(BaseModel):
    phone: str
    purpose: OtpPurpose
    verified_at: datetime


class OTPVerifiedResponse(BaseModel):
    success: bool = True
    message: str
    data: OTPVerifiedData


class SMSTestRequest(BaseModel):
    phone: str
