"""
Engine Configuration

Centralized settings and feature flags for the assessment engine.
All values are loaded from environment variables (a local .env file is
honoured through python-dotenv).
"""
import os

from dotenv import load_dotenv

load_dotenv()


def get_bool_env(key: str, default: bool = False) -> bool:
    """Get a boolean value from environment variable."""
    value = os.getenv(key, str(default)).lower()
    return value in ('true', '1', 'yes', 'on', 'enabled')


def get_int_env(key: str, default: int) -> int:
    """Get an integer value from environment variable."""
    value = os.getenv(key)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Settings:
    """
    Runtime settings.

    Read at call time by the services, so tests may override attributes on
    the shared instance.
    """

    def __init__(self):
        self.DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./assessment.db")
        self.ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

        # Principal extraction
        self.JWT_SECRET_KEY: str = os.getenv("JWT_SECRET_KEY", "dev-secret-key-change-in-production")
        self.JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")

        # Timer authority
        self.EXPIRY_SWEEP_INTERVAL_SECONDS: int = get_int_env("EXPIRY_SWEEP_INTERVAL_SECONDS", 30)
        self.DEADLINE_GRACE_SECONDS: int = get_int_env("DEADLINE_GRACE_SECONDS", 0)

        # Time accounting: ceiling for a single reported delta
        self.MAX_TIME_DELTA_SECONDS: int = get_int_env("MAX_TIME_DELTA_SECONDS", 600)

        # Scoring
        self.DEFAULT_SCORING_POLICY: str = os.getenv("DEFAULT_SCORING_POLICY", "flat")
        self.NEGATIVE_MARKING_CORRECT: int = get_int_env("NEGATIVE_MARKING_CORRECT", 4)
        self.NEGATIVE_MARKING_WRONG: int = get_int_env("NEGATIVE_MARKING_WRONG", -1)

        # Finalizer compare-and-set attempts before ConcurrencyConflict
        self.FINALIZE_MAX_ATTEMPTS: int = get_int_env("FINALIZE_MAX_ATTEMPTS", 3)

        # Session history page size cap
        self.HISTORY_MAX_LIMIT: int = get_int_env("HISTORY_MAX_LIMIT", 50)

        # slowapi limit string for POST /api/sessions
        self.SESSION_START_RATE_LIMIT: str = os.getenv("SESSION_START_RATE_LIMIT", "30/minute")

        self.ALLOWED_ORIGINS: list = [
            origin.strip()
            for origin in os.getenv("ALLOWED_ORIGINS", "").split(",")
            if origin.strip()
        ]


class FeatureFlags:
    """
    Feature flags for the engine.

    To add a new feature flag:
    1. Add it here as a class property
    2. Load it from environment variable
    3. Use it in your code
    """

    # Background expiry sweep (disable only when another instance runs it)
    FEATURE_EXPIRY_SWEEP: bool = get_bool_env('FEATURE_EXPIRY_SWEEP', True)

    # Expose /docs and /redoc
    FEATURE_API_DOCS: bool = get_bool_env('FEATURE_API_DOCS', True)

    @classmethod
    def get_all_flags(cls) -> dict:
        """Get all feature flags as a dictionary."""
        return {
            key: value
            for key, value in cls.__dict__.items()
            if not key.startswith('_') and isinstance(value, bool)
        }


# Singleton instances for easy importing
settings = Settings()
feature_flags = FeatureFlags()
