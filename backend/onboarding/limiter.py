"""
Shared Rate Limiter Instance

Per-IP request limits for the public OTP endpoints. The per-phone limits live
in the OTP manager; this only blunts floods from a single client.
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from .config import settings

# Create limiter instance that can be imported anywhere
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[settings.RATELIMIT_DEFAULT],
    storage_uri=settings.RATELIMIT_STORAGE_URI
)
