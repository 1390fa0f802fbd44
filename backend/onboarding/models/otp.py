import enum

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, Enum, CheckConstraint, Index

from ..database import Base


class OtpPurpose(str, enum.Enum):
    REGISTRATION = "registration"
    LOGIN = "login"
    VERIFICATION = "verification"
    PASSWORD_RESET = "password_reset"


class OtpRecord(Base):
    __tablename__ = "otps"
    __table_args__ = (
        CheckConstraint("attempts >= 0", name="chk_otp_attempts_positive"),
        CheckConstraint("attempts <= max_attempts", name="chk_otp_attempts_ceiling"),
        CheckConstraint("max_attempts > 0", name="chk_otp_max_attempts_positive"),
        CheckConstraint("expires_at > created_at", name="chk_otp_expires_future"),
        Index("idx_otps_phone_purpose", "phone", "purpose"),
        Index("idx_otps_cleanup", "expires_at", "used"),
    )

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(15), nullable=False, index=True)  # national number, digits only
    code = Column(String(10), nullable=False)
    purpose = Column(
        Enum(OtpPurpose, name="otp_purpose", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OtpPurpose.REGISTRATION
    )
    # Naive UTC timestamps, written from the manager's clock
    created_at = Column(DateTime, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    max_attempts = Column(Integer, nullable=False, default=3)
    used = Column(Boolean, nullable=False, default=False)
    used_at = Column(DateTime, nullable=True)
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    @property
    def is_exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def is_expired(self, now) -> bool:
        return now > self.expires_at

    def __repr__(self):
        return f"<OtpRecord id={self.id} phone={self.phone} purpose={self.purpose} used={self.used}>"
