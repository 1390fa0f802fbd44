"""
OTP Store - persistence for OtpRecord rows

Every check-then-mutate sequence on an existing row is a single conditional
statement whose affected row count tells the caller whether its precondition
still held. Issuing a code first takes a per-phone transaction lock, so the
rate-limit count and the one-active-code invalidation see every code committed
before it. No method holds a session open across calls.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import select, update, delete, insert, func, literal, or_, and_, text
from sqlalchemy.orm import Session, sessionmaker

from ..models.otp import OtpRecord, OtpPurpose

logger = logging.getLogger(__name__)

_INSERT_COLUMNS = [
    "phone", "code", "purpose", "created_at", "expires_at",
    "attempts", "max_attempts", "used", "ip_address", "user_agent",
]


def lock_phone(db: Session, phone: str) -> None:
    """
    Serialize code issuing for one phone until the transaction ends.

    PostgreSQL takes a transaction-scoped advisory lock keyed on the phone.
    SQLite needs nothing extra: the invalidating UPDATE takes the database
    write lock before the rate-limit count runs.
    """
    if db.get_bind().dialect.name == "postgresql":
        db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:phone))"), {"phone": phone})


class OtpStore:
    """SQLAlchemy-backed store for issued OTP codes"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def insert_if_allowed(
        self,
        *,
        phone: str,
        purpose: OtpPurpose,
        code: str,
        now: datetime,
        expires_at: datetime,
        max_attempts: int,
        rate_window_start: datetime,
        rate_limit: int,
        cooldown_start: Optional[datetime] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Optional[int]:
        """
        Insert a new code unless the phone hit its rate limit (or, when
        `cooldown_start` is given, unless (phone, purpose) was issued a code
        after it). Prior unused codes for (phone, purpose) are invalidated in
        the same transaction.

        Returns:
            The new record id, or None when a guard rejected the insert
        """
        db = self.session_factory()
        try:
            lock_phone(db, phone)

            db.execute(
                update(OtpRecord)
                .where(
                    OtpRecord.phone == phone,
                    OtpRecord.purpose == purpose,
                    OtpRecord.used == False  # noqa: E712
                )
                .values(used=True, used_at=now)
                .execution_options(synchronize_session=False)
            )

            recent = (
                select(func.count(OtpRecord.id))
                .where(OtpRecord.phone == phone, OtpRecord.created_at > rate_window_start)
                .correlate(None)
                .scalar_subquery()
            )
            guards = [recent < rate_limit]

            if cooldown_start is not None:
                cooldown = (
                    select(func.count(OtpRecord.id))
                    .where(
                        OtpRecord.phone == phone,
                        OtpRecord.purpose == purpose,
                        OtpRecord.created_at > cooldown_start
                    )
                    .correlate(None)
                    .scalar_subquery()
                )
                guards.append(cooldown == 0)

            table = OtpRecord.__table__
            values = {
                "phone": phone,
                "code": code,
                "purpose": purpose,
                "created_at": now,
                "expires_at": expires_at,
                "attempts": 0,
                "max_attempts": max_attempts,
                "used": False,
                "ip_address": ip_address,
                "user_agent": user_agent,
            }
            source = select(
                *[literal(values[name], table.c[name].type) for name in _INSERT_COLUMNS]
            ).where(*guards)

            result = db.execute(
                insert(OtpRecord).from_select([table.c[name] for name in _INSERT_COLUMNS], source)
            )

            if result.rowcount != 1:
                logger.debug(f"OTP insert rejected by rate guards for purpose={purpose.value}")
                db.rollback()
                return None

            record_id = db.execute(
                select(OtpRecord.id)
                .where(
                    OtpRecord.phone == phone,
                    OtpRecord.purpose == purpose,
                    OtpRecord.code == code,
                    OtpRecord.created_at == now,
                    OtpRecord.used == False  # noqa: E712
                )
                .order_by(OtpRecord.id.desc())
                .limit(1)
            ).scalar_one()

            db.commit()
            return record_id
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def latest_active(self, phone: str, purpose: OtpPurpose) -> Optional[OtpRecord]:
        """Most recently issued, not-yet-used record for (phone, purpose)"""
        db = self.session_factory()
        try:
            row = db.execute(
                select(OtpRecord)
                .where(
                    OtpRecord.phone == phone,
                    OtpRecord.purpose == purpose,
                    OtpRecord.used == False  # noqa: E712
                )
                .order_by(OtpRecord.created_at.desc(), OtpRecord.id.desc())
                .limit(1)
            ).scalar_one_or_none()
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def get(self, record_id: int) -> Optional[OtpRecord]:
        db = self.session_factory()
        try:
            row = db.get(OtpRecord, record_id)
            if row is not None:
                db.expunge(row)
            return row
        finally:
            db.close()

    def mark_used(self, record_id: int, now: datetime) -> bool:
        """Flip `used` on a still-unused record"""
        return self._update_one(
            update(OtpRecord)
            .where(OtpRecord.id == record_id, OtpRecord.used == False)  # noqa: E712
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )

    def register_failed_attempt(self, record_id: int) -> bool:
        """Charge one attempt, never past max_attempts"""
        return self._update_one(
            update(OtpRecord)
            .where(
                OtpRecord.id == record_id,
                OtpRecord.used == False,  # noqa: E712
                OtpRecord.attempts < OtpRecord.max_attempts
            )
            .values(attempts=OtpRecord.attempts + 1)
            .execution_options(synchronize_session=False)
        )

    def consume(self, record_id: int, now: datetime) -> bool:
        """Mark a correct code used if it is still pending; one caller wins"""
        return self._update_one(
            update(OtpRecord)
            .where(
                OtpRecord.id == record_id,
                OtpRecord.used == False,  # noqa: E712
                OtpRecord.attempts < OtpRecord.max_attempts,
                OtpRecord.expires_at >= now
            )
            .values(used=True, used_at=now)
            .execution_options(synchronize_session=False)
        )

    def has_recent(self, phone: str, purpose: OtpPurpose, since: datetime) -> bool:
        db = self.session_factory()
        try:
            count = db.execute(
                select(func.count(OtpRecord.id))
                .where(
                    OtpRecord.phone == phone,
                    OtpRecord.purpose == purpose,
                    OtpRecord.created_at > since
                )
            ).scalar_one()
            return count > 0
        finally:
            db.close()

    def matches_inactive(self, phone: str, purpose: OtpPurpose, code: str, since: datetime) -> bool:
        """True when `code` belongs to a used record for (phone, purpose) issued after `since`"""
        db = self.session_factory()
        try:
            count = db.execute(
                select(func.count(OtpRecord.id))
                .where(
                    OtpRecord.phone == phone,
                    OtpRecord.purpose == purpose,
                    OtpRecord.code == code,
                    OtpRecord.used == True,  # noqa: E712
                    OtpRecord.created_at > since
                )
            ).scalar_one()
            return count > 0
        finally:
            db.close()

    def delete_stale(self, now: datetime, cutoff: datetime) -> int:
        """Delete used or expired records created before `cutoff`"""
        db = self.session_factory()
        try:
            result = db.execute(
                delete(OtpRecord)
                .where(
                    and_(
                        OtpRecord.created_at < cutoff,
                        or_(OtpRecord.used == True, OtpRecord.expires_at < now)  # noqa: E712
                    )
                )
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _update_one(self, statement) -> bool:
        db = self.session_factory()
        try:
            result = db.execute(statement)
            db.commit()
            return result.rowcount == 1
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
