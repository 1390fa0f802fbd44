"""Vendor onboarding backend: phone OTP lifecycle service."""

__version__ = "1.0.0"
