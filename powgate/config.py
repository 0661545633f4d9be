from pydantic import ConfigDict, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Key material (base64, raw 32-byte Ed25519 or a wrapped PGP blob)
    challenge_private_key: str | None = None
    challenge_public_key: str | None = None

    # Proof of Work
    challenge_difficulty: int = 200_000_000  # expected attempts

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # "console" or "json"

    @field_validator("challenge_difficulty")
    @classmethod
    def check_difficulty(cls, v):
        """Difficulty is an expected attempt count and must be positive."""
        if v < 1:
            raise ValueError("challenge_difficulty must be at least 1")
        return v

    @field_validator("challenge_private_key", "challenge_public_key", mode="before")
    @classmethod
    def blank_key_is_unset(cls, v):
        """Treat an empty or whitespace-only key value as not configured."""
        if isinstance(v, str) and not v.strip():
            return None
        return v


settings = Settings()
