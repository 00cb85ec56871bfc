import secrets

from pydantic import ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
    )

    # Database
    database_url: str = "sqlite:///./sealed.db"

    # Token signing (shared by every replica; random per process when unset)
    signing_key: str = Field(default_factory=lambda: secrets.token_urlsafe(32))
    token_ttl_seconds: int = 300  # 5 minutes

    # Proof of Work
    pow_difficulty: int = 18  # ~1-2 sec on modern CPU
    pow_prefix: str = "sealed:"
    pow_challenge_ttl_seconds: int = 300  # 5 minutes

    # Limits
    max_ciphertext_size: int = 68 * 1024  # 50KB plaintext + overhead
    min_ttl_seconds: int = 900  # 15 minutes
    max_ttl_seconds: int = 7_776_000  # 90 days
    default_ttl_seconds: int = 86_400  # 1 day
    max_views_limit: int = 5

    # Burn responses are padded to at least this duration
    burn_response_floor_ms: int = 50

    # Rate Limiting
    rate_limit_tokens: str = "10/minute"
    rate_limit_creates: str = "5/minute"
    rate_limit_retrieves: str = "30/minute"
    rate_limit_burns: str = "30/minute"
    trust_forwarded_for: bool = True

    # CORS
    cors_origins: list[str] | str = ["http://localhost:5173", "http://127.0.0.1:5173"]

    # Logging
    log_level: str = "info"
    log_format: str = "console"  # "json" in production

    # Cleanup
    cleanup_interval_hours: int = 1

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from comma-separated string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        return v


settings = Settings()
