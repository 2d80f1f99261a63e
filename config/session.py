import os
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict

load_dotenv()


class SessionConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    session_ttl_seconds: int = 2 * 60 * 60
    idle_timeout_seconds: int = 2 * 60 * 60
    verification_cooldown_seconds: int = 60
    max_verification_attempts: int = 5
    storage_key: str = "doctor_registration_session"
    cleanup_interval_seconds: int = 5 * 60

    phone_pattern: str = r"^\+58\d{10}$"
    min_password_length: int = 8
    min_document_length: int = 9
    min_bio_length: int = 50

    @classmethod
    def from_env(cls) -> "SessionConfig":
        defaults = cls()
        return cls(
            session_ttl_seconds=int(os.getenv("REG_SESSION_TTL_SECONDS", defaults.session_ttl_seconds)),
            idle_timeout_seconds=int(os.getenv("REG_IDLE_TIMEOUT_SECONDS", defaults.idle_timeout_seconds)),
            verification_cooldown_seconds=int(
                os.getenv("REG_VERIFICATION_COOLDOWN_SECONDS", defaults.verification_cooldown_seconds)
            ),
            max_verification_attempts=int(
                os.getenv("REG_MAX_VERIFICATION_ATTEMPTS", defaults.max_verification_attempts)
            ),
            storage_key=os.getenv("REG_STORAGE_KEY", defaults.storage_key),
            cleanup_interval_seconds=int(
                os.getenv("REG_CLEANUP_INTERVAL_SECONDS", defaults.cleanup_interval_seconds)
            ),
            phone_pattern=os.getenv("REG_PHONE_PATTERN", defaults.phone_pattern),
        )

    @property
    def session_ttl_ms(self) -> int:
        return self.session_ttl_seconds * 1000

    @property
    def verification_cooldown_ms(self) -> int:
        return self.verification_cooldown_seconds * 1000
