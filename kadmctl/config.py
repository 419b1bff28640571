"""Configuration management for the kadmctl application."""
import os
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # Timeouts (in seconds)
    SSH_TIMEOUT: int = int(os.getenv("KADM_SSH_TIMEOUT", "10"))
    SSH_READY_ATTEMPTS: int = int(os.getenv("KADM_SSH_READY_ATTEMPTS", "6"))
    SSH_READY_INTERVAL: float = float(os.getenv("KADM_SSH_READY_INTERVAL", "5.0"))

    # Fan-out (0 means one worker per host)
    MAX_WORKERS: int = int(os.getenv("KADM_MAX_WORKERS", "0"))

    # Logging
    LOG_LEVEL: str = os.getenv("KADM_LOG_LEVEL", "INFO").upper()
    LOG_FILE: str = os.getenv("KADM_LOG_FILE", "")
    LOG_FORMAT: str = os.getenv(
        "KADM_LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # API
    API_KEY: str = os.getenv("KADM_API_KEY", "")

    # Security
    REDACT_KEYS: tuple = ("password", "secret", "token", "key")

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration for the HTTP API."""
        required = {
            "KADM_API_KEY": cls.API_KEY,
        }
        missing = [k for k, v in required.items() if not v]
        if missing:
            raise ValueError(f"Missing required configuration: {', '.join(missing)}")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
