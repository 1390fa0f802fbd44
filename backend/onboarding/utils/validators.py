import re

from ..exceptions import InvalidPhoneNumber, InvalidPurpose
from ..models.otp import OtpPurpose


def normalize_phone(phone: str, country_code: str = "91", national_length: int = 10) -> str:
    """
    Convert any mobile number format to the national subscriber number.

    Handles formats like:
    - 9876543210 -> 9876543210
    - +91 98765 43210 -> 9876543210
    - 919876543210 -> 9876543210
    - 09876543210 -> 9876543210

    Raises InvalidPhoneNumber when the result is not a mobile number.
    """
    if not phone or not isinstance(phone, str):
        raise InvalidPhoneNumber()

    # Remove all non-digit characters
    digits = re.sub(r'\D', '', phone)

    if len(digits) == len(country_code) + national_length and digits.startswith(country_code):
        digits = digits[len(country_code):]
    elif len(digits) == national_length + 1 and digits.startswith('0'):
        digits = digits[1:]

    if len(digits) != national_length:
        raise InvalidPhoneNumber(f"Phone number must be exactly {national_length} digits")

    # Mobile numbers start with 6-9
    if digits[0] not in "6789":
        raise InvalidPhoneNumber()

    return digits


def to_e164(national: str, country_code: str = "91") -> str:
    """Format a normalized national number for SMS delivery"""
    return f"+{country_code}{national}"


def mask_phone(phone: str) -> str:
    """Keep the last 4 digits for log lines"""
    if not phone or len(phone) <= 4:
        return "****"
    return f"{'*' * (len(phone) - 4)}{phone[-4:]}"


def parse_purpose(purpose) -> OtpPurpose:
    if isinstance(purpose, OtpPurpose):
        return purpose
    try:
        return OtpPurpose(str(purpose).strip().lower())
    except ValueError:
        allowed = ", ".join(p.value for p in OtpPurpose)
        raise InvalidPurpose(f"Purpose must be one of: {allowed}")


def validate_otp_code(code: str, length: int = 6) -> str:
    """Strip whitespace and check the code is exactly `length` digits"""
    cleaned = (code or "").strip()
    if not re.fullmatch(rf"\d{{{length}}}", cleaned):
        raise ValueError(f"OTP must be exactly {length} digits")
    return cleaned
