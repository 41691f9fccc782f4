"""Configuration management for hashdrop."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from ``HASHDROP_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="HASHDROP_",
        env_file=".env",
        extra="ignore",
    )

    CONTENT_DIRECTORY: str = "data"
    DEBUG: bool = False

    # Size limits
    MAX_BYTES_PER_FILE: int = 100_000_000
    MAX_BYTES_TOTAL: int = 10_000_000_000

    # Retention
    MINUTES_PER_GIGABYTE: float = 30.0
    SWEEP_INTERVAL_MINUTES: float = 30.0
    MAX_TRIM_PASSES: int = 30

    # Chunked uploads
    MAX_WAIT_SECONDS: float = 60 * 60

    # Identifiers
    HASH_ALGORITHM: str = "sha256"
    ID_LENGTH: int = 6

    @property
    def sweep_interval_seconds(self) -> float:
        """Convert SWEEP_INTERVAL_MINUTES to seconds."""
        return self.SWEEP_INTERVAL_MINUTES * 60

    @property
    def log_level(self) -> str:
        return "DEBUG" if self.DEBUG else "INFO"
