"""
OTP Lifecycle Manager
Issues, delivers, verifies and expires one-time codes scoped to a phone number
and a purpose.

A record moves from pending (unused, unexpired, attempts < max) to exactly one
terminal state: verified, expired or exhausted. The store is the only shared
state; every transition is a conditional update that succeeds for one caller.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Protocol

from ..exceptions import (
    RateLimitExceeded, TooSoon, DeliveryFailed, NoActiveCode, Expired,
    AttemptsExhausted, CodeMismatch, SmsDeliveryError
)
from ..models.otp import OtpPurpose, OtpRecord
from ..utils.validators import normalize_phone, to_e164, mask_phone, parse_purpose
from .otp_store import OtpStore
from .sms_gateway import SmsGateway, DeliveryReceipt

logger = logging.getLogger(__name__)


class Clock(Protocol):
    def now(self) -> datetime:
        ...


@dataclass(frozen=True)
class OtpPolicy:
    code_length: int = 6
    ttl: timedelta = timedelta(minutes=10)
    max_attempts: int = 3
    rate_limit_count: int = 3
    rate_limit_window: timedelta = timedelta(minutes=5)
    resend_cooldown: timedelta = timedelta(seconds=60)
    revoke_on_delivery_failure: bool = False
    country_code: str = "91"
    national_length: int = 10
    brand_name: str = "Vendor Onboarding"

    @classmethod
    def from_settings(cls, settings) -> "OtpPolicy":
        return cls(
            code_length=settings.OTP_LENGTH,
            ttl=timedelta(minutes=settings.OTP_TTL_MINUTES),
            max_attempts=settings.OTP_MAX_ATTEMPTS,
            rate_limit_count=settings.OTP_RATE_LIMIT_COUNT,
            rate_limit_window=timedelta(minutes=settings.OTP_RATE_LIMIT_WINDOW_MINUTES),
            resend_cooldown=timedelta(seconds=settings.OTP_RESEND_COOLDOWN_SECONDS),
            revoke_on_delivery_failure=settings.OTP_REVOKE_ON_DELIVERY_FAILURE,
            country_code=settings.SMS_COUNTRY_CODE,
            national_length=settings.SMS_NATIONAL_LENGTH,
            brand_name=settings.APP_NAME
        )


@dataclass(frozen=True)
class IssuedOtp:
    phone: str
    purpose: OtpPurpose
    expires_at: datetime
    delivered: bool


@dataclass(frozen=True)
class VerifiedOtp:
    phone: str
    purpose: OtpPurpose
    verified_at: datetime


def generate_code(length: int = 6) -> str:
    """Uniform numeric code without a leading zero, from the OS CSPRNG"""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


class OtpManager:
    """Owns the OTP lifecycle. Collaborators are injected by the entry point."""

    def __init__(
        self,
        store: OtpStore,
        gateway: SmsGateway,
        clock: Clock,
        policy: OtpPolicy = None,
        quiet: bool = False
    ):
        self.store = store
        self.gateway = gateway
        self.clock = clock
        self.policy = policy or OtpPolicy()
        self.quiet = quiet

    def _normalize(self, phone: str) -> str:
        return normalize_phone(phone, self.policy.country_code, self.policy.national_length)

    def _message(self, code: str) -> str:
        minutes = int(self.policy.ttl.total_seconds() // 60)
        return (
            f"Your {self.policy.brand_name} verification code is: {code}. "
            f"Valid for {minutes} minutes. Do not share this code with anyone."
        )

    async def issue(
        self,
        phone: str,
        purpose=OtpPurpose.REGISTRATION,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> IssuedOtp:
        """
        Generate, persist and deliver a new code

        Raises:
            InvalidPhoneNumber, InvalidPurpose, RateLimitExceeded, DeliveryFailed
        """
        return await self._issue(phone, purpose, ip_address=ip_address, user_agent=user_agent)

    async def resend(
        self,
        phone: str,
        purpose=OtpPurpose.REGISTRATION,
        *,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> IssuedOtp:
        """
        Replace the active code for (phone, purpose) with a fresh one.
        Refused while the last code for the pair is younger than the cooldown.

        Raises:
            TooSoon, plus everything issue() raises
        """
        return await self._issue(
            phone, purpose, ip_address=ip_address, user_agent=user_agent, enforce_cooldown=True
        )

    async def _issue(
        self,
        phone: str,
        purpose,
        *,
        ip_address: Optional[str],
        user_agent: Optional[str],
        enforce_cooldown: bool = False
    ) -> IssuedOtp:
        national = self._normalize(phone)
        purpose = parse_purpose(purpose)
        now = self.clock.now()

        code = generate_code(self.policy.code_length)
        expires_at = now + self.policy.ttl
        rate_window_start = now - self.policy.rate_limit_window
        cooldown_start = now - self.policy.resend_cooldown if enforce_cooldown else None

        record_id = self.store.insert_if_allowed(
            phone=national,
            purpose=purpose,
            code=code,
            now=now,
            expires_at=expires_at,
            max_attempts=self.policy.max_attempts,
            rate_window_start=rate_window_start,
            rate_limit=self.policy.rate_limit_count,
            cooldown_start=cooldown_start,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None
        )

        if record_id is None:
            if enforce_cooldown and self.store.has_recent(national, purpose, cooldown_start):
                logger.info(f"OTP resend refused (cooldown) for {mask_phone(national)} purpose={purpose.value}")
                raise TooSoon()
            logger.warning(f"OTP rate limit hit for {mask_phone(national)}")
            raise RateLimitExceeded()

        logger.info(f"OTP issued for {mask_phone(national)} purpose={purpose.value} id={record_id}")

        if self.quiet:
            logger.debug(f"DEV MODE - OTP for {to_e164(national, self.policy.country_code)}: {code}")
            return IssuedOtp(phone=national, purpose=purpose, expires_at=expires_at, delivered=False)

        try:
            await self.gateway.send(to_e164(national, self.policy.country_code), self._message(code))
        except SmsDeliveryError as e:
            logger.error(f"OTP delivery failed for {mask_phone(national)}: {e}")
            if self.policy.revoke_on_delivery_failure:
                self.store.mark_used(record_id, self.clock.now())
                logger.info(f"OTP id={record_id} revoked after delivery failure")
            if e.timed_out:
                raise DeliveryFailed("SMS service timed out. Please try again later.")
            raise DeliveryFailed()

        return IssuedOtp(phone=national, purpose=purpose, expires_at=expires_at, delivered=True)

    async def verify(self, phone: str, code: str, purpose=OtpPurpose.REGISTRATION) -> VerifiedOtp:
        """
        Check a code against the latest active record for (phone, purpose)

        Raises:
            NoActiveCode, Expired, AttemptsExhausted, CodeMismatch
        """
        national = self._normalize(phone)
        purpose = parse_purpose(purpose)
        now = self.clock.now()

        record = self.store.latest_active(national, purpose)
        if record is None:
            raise NoActiveCode()

        if record.is_expired(now):
            self.store.mark_used(record.id, now)
            logger.info(f"OTP id={record.id} expired")
            raise Expired()

        if record.is_exhausted:
            self.store.mark_used(record.id, now)
            logger.info(f"OTP id={record.id} exhausted")
            raise AttemptsExhausted()

        submitted = (code or "").strip()
        if not secrets.compare_digest(record.code.encode(), submitted.encode()):
            # A code superseded by resend or already verified is not a guess
            if submitted and self.store.matches_inactive(national, purpose, submitted, now - self.policy.ttl):
                raise NoActiveCode("This code is no longer valid. Please use the latest code sent to you.")
            if not self.store.register_failed_attempt(record.id):
                # Lost a race: another request exhausted or consumed the record
                raise self._state_error(record.id, now)
            logger.warning(f"OTP mismatch for {mask_phone(national)} id={record.id}")
            raise CodeMismatch()

        if not self.store.consume(record.id, now):
            raise self._state_error(record.id, now)

        logger.info(f"OTP verified for {mask_phone(national)} purpose={purpose.value}")
        return VerifiedOtp(phone=national, purpose=purpose, verified_at=now)

    def _state_error(self, record_id: int, now: datetime):
        """Pick the error matching a record's current state after a failed update"""
        current: Optional[OtpRecord] = self.store.get(record_id)
        if current is None or current.used:
            return NoActiveCode()
        if current.is_expired(now):
            self.store.mark_used(record_id, now)
            return Expired()
        self.store.mark_used(record_id, now)
        return AttemptsExhausted()

    async def check_gateway(self) -> dict:
        return await self.gateway.check_configuration()

    async def send_test_message(self, phone: str) -> DeliveryReceipt:
        """Send a fixed test SMS to check delivery end to end"""
        national = self._normalize(phone)
        to_number = to_e164(national, self.policy.country_code)
        try:
            return await self.gateway.send(
                to_number, f"Test message from {self.policy.brand_name} - SMS service is working!"
            )
        except SmsDeliveryError as e:
            logger.error(f"Test SMS to {mask_phone(national)} failed: {e}")
            raise DeliveryFailed(f"Test SMS failed: {e}")
