"""
Configuration module for the Icebreaker discovery service.

Loads environment variables and provides the default configuration instance.
Uses pydantic for validation.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional
import os


class Config(BaseSettings):
    """
    Application configuration loaded from environment variables.

    All values come from .env file or system environment.
    Type hints provide validation (pydantic converts types automatically).
    """

    model_config = SettingsConfigDict(
        env_file=".env",  # Read from .env file
        case_sensitive=True,  # Variable names are case-sensitive
        extra="ignore",  # Ignore extra env vars not defined above
    )

    # ============================================================
    # FIREBASE CONFIGURATION (REQUIRED)
    # ============================================================
    FIREBASE_PROJECT_ID: str
    """Firebase project ID. Find in Firebase Console → Project Settings."""

    GOOGLE_APPLICATION_CREDENTIALS: str = "/config/serviceAccountKey.json"
    """Path to Firebase service account JSON file."""

    USERS_COLLECTION: str = "users"
    """Firestore collection holding one document per user."""

    # ============================================================
    # RETRIEVAL CONFIGURATION
    # ============================================================
    MAX_CANDIDATES: int = 100
    """Maximum candidate documents fetched from Firestore per query. Default: 100."""

    DISCOVERY_RADIUS_KM: float = 50.0
    """Search radius around the subject, in kilometers."""

    ACTIVE_WINDOW_MINUTES: int = 5
    """A candidate seen within this many minutes is flagged active."""

    # ============================================================
    # SCORING CONFIGURATION
    # ============================================================
    BASE_COMPATIBILITY: float = 0.4
    """Starting score before any interest/answer signal is blended in."""

    INTEREST_WEIGHT: float = 0.3
    ANSWER_WEIGHT: float = 0.7

    SHARED_SIGNAL_BONUS: float = 0.1
    """Flat bonus when the pair shares at least one interest or answer."""

    SCORE_FLOOR: float = 0.35
    """Lowest compatibility ever reported."""

    STRONG_MATCH_SCORE: float = 0.7
    GOOD_MATCH_SCORE: float = 0.5

    SCORING_WORKERS: int = 4
    """Threads used to score candidates in parallel."""

    # ============================================================
    # RANKING CONFIGURATION
    # ============================================================
    MIN_MATCH_SCORE: float = 0.3
    """Matches scoring below this are dropped."""

    MAX_MATCHES: int = 20
    """Maximum matches published per discovery run."""

    # ============================================================
    # REFRESH CONFIGURATION
    # ============================================================
    LOCATION_DEBOUNCE_SECONDS: float = 5.0
    """Location changes inside this window collapse into one discovery run."""

    REFRESH_INTERVAL_SECONDS: float = 30.0
    """Periodic refresh interval while a session is started."""

    MIN_LOCATION_CHANGE_METERS: float = 10.0
    """Moves shorter than this are not treated as a location change."""

    # ============================================================
    # SECURITY CONFIGURATION
    # ============================================================
    AI_SERVICE_TOKEN: str = os.getenv("AI_SERVICE_TOKEN", "")
    """Shared secret for authenticating requests from the app backend."""

    # ============================================================
    # SERVER CONFIGURATION
    # ============================================================
    PORT: int = 8000
    """Port to run FastAPI server on. Default: 8000."""

    HOST: str = "0.0.0.0"
    """Host to bind to. 0.0.0.0 = accessible from network."""

    DEBUG: bool = False
    """Enable debug logging. Set True for development, False for production."""


# ============================================================
# DEFAULT INSTANCE
# ============================================================
# Loaded once at startup and passed to services that don't get their own
config = Config()


# ============================================================
# VALIDATION AT STARTUP
# ============================================================
def validate_config() -> dict:
    """
    Validate that required config values are set and consistent.

    Called at app startup to fail fast if config is incomplete.

    Returns:
        dict: Status of each checked area

    Raises:
        ValueError: If required config is missing or inconsistent
    """
    errors = []

    # Firebase is always required
    if not config.FIREBASE_PROJECT_ID:
        errors.append("FIREBASE_PROJECT_ID is required")

    if config.DISCOVERY_RADIUS_KM <= 0:
        errors.append("DISCOVERY_RADIUS_KM must be positive")

    if not 0.0 <= config.SCORE_FLOOR <= 1.0:
        errors.append("SCORE_FLOOR must be between 0 and 1")

    if config.MAX_MATCHES < 1 or config.MAX_CANDIDATES < 1:
        errors.append("MAX_MATCHES and MAX_CANDIDATES must be at least 1")

    if config.INTEREST_WEIGHT < 0 or config.ANSWER_WEIGHT < 0:
        errors.append("INTEREST_WEIGHT and ANSWER_WEIGHT must not be negative")

    if errors:
        raise ValueError(f"Configuration errors:\n" + "\n".join([f"  - {e}" for e in errors]))

    return {
        "firebase": "✓ Configured" if config.FIREBASE_PROJECT_ID else "✗ Missing",
        "radius": f"✓ {config.DISCOVERY_RADIUS_KM:g} km",
        "ranking": f"✓ top {config.MAX_MATCHES} above {config.MIN_MATCH_SCORE:g}",
        "auth": "✓ Token required" if config.AI_SERVICE_TOKEN else "✗ Open",
    }


if __name__ == "__main__":
    """Allow testing config by running: python -m icebreaker.config"""
    try:
        status = validate_config()
        print("✅ Configuration is valid!")
        print("\nConfiguration Status:")
        for key, value in status.items():
            print(f"  {key}: {value}")
    except ValueError as e:
        print(f"❌ Configuration error:\n{e}")
        exit(1)
