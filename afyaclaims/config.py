import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from afyaclaims.core.states import EnrollmentConflict

load_dotenv()


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


@dataclass
class Settings:
    """Runtime settings resolved from the environment (and a .env file)."""

    SECRET_KEY: str = field(default_factory=lambda: os.getenv("SECRET_KEY", "development-secret-key"))
    JWT_ALGORITHM: str = field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    JWT_ACCESS_EXPIRES_SECONDS: int = field(
        default_factory=lambda: int(os.getenv("JWT_ACCESS_EXPIRES_SECONDS", "900"))
    )
    JWT_REFRESH_EXPIRES_SECONDS: int = field(
        default_factory=lambda: int(os.getenv("JWT_REFRESH_EXPIRES_SECONDS", str(7 * 24 * 3600)))
    )
    API_BASE_URL: str = field(default_factory=lambda: os.getenv("AFYA_API_BASE_URL", "http://localhost:8000"))
    API_TIMEOUT_SECONDS: float = field(default_factory=lambda: _env_float("AFYA_API_TIMEOUT_SECONDS", "30"))
    NOTIFICATION_POLL_SECONDS: float = field(
        default_factory=lambda: _env_float("NOTIFICATION_POLL_SECONDS", "30")
    )
    ENROLLMENT_CONFLICT: EnrollmentConflict = field(
        default_factory=lambda: EnrollmentConflict(os.getenv("ENROLLMENT_CONFLICT", "reject"))
    )
    LEDGER_DELAY_SECONDS: float = field(default_factory=lambda: _env_float("LEDGER_DELAY_SECONDS", "0"))
    CORS_ORIGINS: str = field(default_factory=lambda: os.getenv("CORS_ORIGINS", "*"))


def get_settings(**overrides) -> Settings:
    """Build settings from the environment, replacing any given fields."""
    return Settings(**overrides)
