"""
Configuration module for the quick-entry service.

Loads environment variables and validates required settings.
"""
import os
from typing import List
from dotenv import load_dotenv

# Load .env file
load_dotenv()


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


class Settings:
    """Application settings loaded from environment variables."""

    # Supabase Configuration
    SUPABASE_URL: str = os.getenv("SUPABASE_URL", "")
    SUPABASE_PUBLISHABLE_KEY: str = os.getenv("SUPABASE_PUBLISHABLE_KEY", "")

    @property
    def SUPABASE_JWKS_URL(self) -> str:
        """Get the JWKS URL for JWT verification."""
        if not self.SUPABASE_URL:
            return ""
        return f"{self.SUPABASE_URL}/auth/v1/.well-known/jwks.json"

    # Application Settings
    ENVIRONMENT: str = os.getenv("ENVIRONMENT", "development")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # CORS Settings
    CORS_ORIGINS: List[str] = os.getenv(
        "CORS_ORIGINS",
        "http://localhost:3000,http://localhost:8080"
    ).split(",")

    # Offline mutation queue
    OFFLINE_QUEUE_DIR: str = os.getenv("OFFLINE_QUEUE_DIR", ".offline-queue")
    OFFLINE_QUEUE_MAX_SIZE: int = _int_env("OFFLINE_QUEUE_MAX_SIZE", 100)
    OFFLINE_QUEUE_MAX_RETRIES: int = _int_env("OFFLINE_QUEUE_MAX_RETRIES", 5)
    CONNECTIVITY_CHECK_INTERVAL_MS: int = _int_env("CONNECTIVITY_CHECK_INTERVAL_MS", 1000)

    # Most-used details inference
    INFERENCE_DEBOUNCE_MS: int = _int_env("INFERENCE_DEBOUNCE_MS", 300)
    INFERENCE_LOOKBACK_DAYS: int = _int_env("INFERENCE_LOOKBACK_DAYS", 90)

    # In-process sessions
    SESSION_IDLE_TTL_SECONDS: int = _int_env("SESSION_IDLE_TTL_SECONDS", 1800)
    SESSION_SWEEP_INTERVAL_SECONDS: int = _int_env("SESSION_SWEEP_INTERVAL_SECONDS", 60)

    @classmethod
    def validate(cls) -> None:
        """
        Validate that all required settings are configured.

        Raises:
            ValueError: If any required setting is missing or out of range.
        """
        required_settings = {
            "SUPABASE_URL": cls.SUPABASE_URL,
        }

        missing = [key for key, value in required_settings.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}. "
                "Please check your .env file."
            )

        if cls.OFFLINE_QUEUE_MAX_RETRIES < 1:
            raise ValueError("OFFLINE_QUEUE_MAX_RETRIES must be at least 1")

    @classmethod
    def is_production(cls) -> bool:
        """Check if running in production environment."""
        return cls.ENVIRONMENT.lower() == "production"

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development environment."""
        return cls.ENVIRONMENT.lower() == "development"


# Create a singleton instance
settings = Settings()

# Validate settings on module import (will fail fast if misconfigured)
# Skip validation during tests or when importing for introspection
if os.getenv("VALIDATE_CONFIG", "true").lower() == "true":
    try:
        settings.validate()
    except ValueError as e:
        # In development, warn but don't crash
        if settings.is_development():
            print(f"⚠️  Warning: {e}")
            print("   The app may not work correctly until you configure your .env file.")
        else:
            raise
