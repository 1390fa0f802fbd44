from pydantic_settings import BaseSettings
from pydantic import field_validator, model_validator
from typing import List


class Settings(BaseSettings):
    # Application
    APP_NAME: str = "Vendor Onboarding API"
    APP_ENV: str = "development"
    DEBUG: bool = True
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    ENABLE_API_DOCS: bool = True

    # Database
    DATABASE_URL: str = "sqlite:///./onboarding.db"

    # Operator endpoints (SMS diagnostics)
    ADMIN_API_KEY: str = ""

    # Rate limiting (per client IP, on top of the per-phone OTP limits)
    RATELIMIT_STORAGE_URI: str = "memory://"
    RATELIMIT_DEFAULT: str = "1000/hour"
    RATELIMIT_OTP: str = "10/5minute"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    @property
    def origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]

    # SMS gateway
    SMS_API_URL: str = ""
    SMS_API_KEY: str = ""
    SMS_SENDER_ID: str = "VendorHub"
    SMS_COUNTRY_CODE: str = "91"
    SMS_NATIONAL_LENGTH: int = 10
    SMS_TIMEOUT_SECONDS: float = 10.0
    SEND_SMS_IN_DEV: bool = False

    @property
    def sms_enabled(self) -> bool:
        """Real SMS only goes out in production unless explicitly enabled."""
        return self.APP_ENV == "production" or self.SEND_SMS_IN_DEV

    # OTP policy
    OTP_LENGTH: int = 6
    OTP_TTL_MINUTES: int = 10
    OTP_MAX_ATTEMPTS: int = 3
    OTP_RATE_LIMIT_COUNT: int = 3
    OTP_RATE_LIMIT_WINDOW_MINUTES: int = 5
    OTP_RESEND_COOLDOWN_SECONDS: int = 60
    OTP_REVOKE_ON_DELIVERY_FAILURE: bool = False

    # OTP cleanup sweep
    OTP_RETENTION_MINUTES: int = 24 * 60
    OTP_CLEANUP_INTERVAL_SECONDS: int = 6 * 60 * 60

    # Logging
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level: {v}")
        return level

    @field_validator("OTP_LENGTH")
    @classmethod
    def validate_otp_length(cls, v: int) -> int:
        if v < 4 or v > 10:
            raise ValueError("OTP_LENGTH must be between 4 and 10")
        return v

    @model_validator(mode="after")
    def validate_retention(self):
        # Rows younger than the rate limit window still count toward the limit
        if self.OTP_RETENTION_MINUTES < max(self.OTP_RATE_LIMIT_WINDOW_MINUTES, self.OTP_TTL_MINUTES):
            raise ValueError("OTP_RETENTION_MINUTES must cover the rate limit window and the OTP lifetime")
        return self

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "allow"


# Create settings instance
settings = Settings()
