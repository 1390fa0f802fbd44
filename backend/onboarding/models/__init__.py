"""
Models package - Import all SQLAlchemy models here
"""

from .otp import OtpRecord, OtpPurpose

__all__ = [
    "OtpRecord",
    "OtpPurpose"
]
