"""
OTP error taxonomy

Every failure is terminal for the current call. Callers map the stable
``code`` to a user-facing response; ``message`` is safe to show as-is.
"""


class OtpError(Exception):
    """Base class for all OTP lifecycle failures"""

    code = "OTP_ERROR"
    message = "OTP request failed"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message}


class InvalidPhoneNumber(OtpError):
    code = "INVALID_PHONE"
    message = "Phone number must be a valid 10 digit mobile number"


class InvalidPurpose(OtpError):
    code = "INVALID_PURPOSE"
    message = "Unknown OTP purpose"


class RateLimitExceeded(OtpError):
    code = "RATE_LIMIT_EXCEEDED"
    message = "Too many OTP requests. Please wait 5 minutes before requesting another OTP."


class TooSoon(OtpError):
    code = "TOO_SOON"
    message = "Please wait 1 minute before requesting another OTP"


class DeliveryFailed(OtpError):
    code = "DELIVERY_FAILED"
    message = "SMS delivery failed. Please try again later."


class VerificationError(OtpError):
    """Raised by verify(); the subclass tells which check failed"""

    code = "VERIFICATION_FAILED"


class NoActiveCode(VerificationError):
    code = "NO_ACTIVE_CODE"
    message = "No valid OTP found. Please request a new one."


class Expired(VerificationError):
    code = "OTP_EXPIRED"
    message = "OTP has expired. Please request a new one."


class AttemptsExhausted(VerificationError):
    code = "ATTEMPTS_EXHAUSTED"
    message = "Maximum OTP attempts exceeded. Please request a new one."


class CodeMismatch(VerificationError):
    code = "INVALID_OTP"
    message = "Invalid OTP code"


class SmsDeliveryError(Exception):
    """Raised by SMS gateways; converted to DeliveryFailed by the OTP manager"""

    def __init__(self, message: str, status_code: int = None, timed_out: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.timed_out = timed_out
