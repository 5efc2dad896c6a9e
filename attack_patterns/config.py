from pathlib import Path
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve .env relative to the repository root (one level up from the package)
_ENV_FILE = Path(__file__).resolve().parent.parent / ".env"


class Settings(BaseSettings):
    """
    Attack Pattern Engine Configuration.
    Reads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(env_file=str(_ENV_FILE), env_file_encoding="utf-8", case_sensitive=False, extra="ignore")

    # Functionality
    ENVIRONMENT: Literal["development", "production", "testing"] = "development"
    LOG_LEVEL: str = "INFO"
    ANALYSIS_ENABLED: bool = True

    # API
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000
    API_CORS_ORIGINS: List[str] = ["*"]

    # Message Bus (NATS); an empty URL disables violation publishing
    NATS_URL: str = ""
    NATS_CLIENT_ID: str = "attack-patterns-1"
    VIOLATION_SUBJECT: str = "security.violations"

    # Key for one-way password fingerprints (HMAC-SHA256)
    FINGERPRINT_SECRET: str = "change-me"

    # Brute force
    BRUTE_FORCE_FAILED_ATTEMPTS: int = 10
    BRUTE_FORCE_WINDOW_SECONDS: int = 900  # 15 minutes
    BRUTE_FORCE_UNIQUE_USERNAMES: int = 3
    BRUTE_FORCE_PASSWORD_VARIATIONS: int = 10
    BRUTE_FORCE_LOCKOUT_SECONDS: int = 3600  # 1 hour

    # Credential stuffing
    CREDENTIAL_STUFFING_MIN_ATTEMPTS: int = 50
    CREDENTIAL_STUFFING_WINDOW_SECONDS: int = 3600  # 1 hour
    CREDENTIAL_STUFFING_UNIQUE_PAIRS: int = 20
    CREDENTIAL_STUFFING_SUCCESS_RATE: float = 0.05
    CREDENTIAL_STUFFING_RELATED_IPS: int = 2

    # Cross session
    CROSS_SESSION_MAX_SESSIONS: int = 10
    CROSS_SESSION_MAX_USERS: int = 5
    CROSS_SESSION_MAX_TENANTS: int = 3

    # Coordinated attacks
    COORDINATED_MIN_IPS: int = 3
    COORDINATED_MIN_TARGETS: int = 5
    COORDINATED_MIN_SYNC_EVENTS: int = 3
    COORDINATED_SIMILARITY_THRESHOLD: float = 0.7

    # Retention and periodic analysis
    RETENTION_MAX_AGE_SECONDS: int = 86400  # 24 hours
    RETENTION_INTERVAL_SECONDS: int = 3600
    GLOBAL_ANALYSIS_INTERVAL_SECONDS: int = 300
    GLOBAL_ANALYSIS_WINDOW_SECONDS: int = 3600
    THREAT_INTEL_INTERVAL_SECONDS: int = 900

    # Violation dispatch and state
    DISPATCH_QUEUE_SIZE: int = 1000
    STATE_LOCK_SHARDS: int = 64


settings = Settings()
