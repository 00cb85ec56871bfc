import base64
import re
from datetime import datetime

from pydantic import Field, field_validator

from sealed.config import settings
from sealed.schemas.base import ApiModel


def strict_base64_decode(value: str, field_name: str) -> bytes:
    """
    Strictly validate and decode base64 string.

    Rejects strings with invalid characters, incorrect padding, or whitespace.
    """
    # Check for valid base64 characters only (no whitespace allowed)
    if not re.match(r"^[A-Za-z0-9+/]*={0,2}$", value):
        raise ValueError(f"{field_name}: Invalid base64 characters")
    # Check length is multiple of 4
    if len(value) % 4 != 0:
        raise ValueError(f"{field_name}: Invalid base64 length (must be multiple of 4)")
    try:
        return base64.b64decode(value, validate=True)
    except ValueError:
        raise ValueError(f"{field_name}: Invalid base64 encoding")


class SecretCreate(ApiModel):
    ciphertext: str = Field(..., description="Base64 encoded ciphertext")
    iv: str = Field(..., description="Base64 encoded 12-byte IV")
    auth_tag: str = Field(..., description="Base64 encoded 16-byte auth tag")
    ttl: int = Field(default_factory=lambda: settings.default_ttl_seconds)
    max_views: int = 1
    passphrase_protected: bool = False

    @field_validator("ciphertext")
    @classmethod
    def validate_ciphertext_base64(cls, v: str) -> str:
        decoded = strict_base64_decode(v, "ciphertext")
        if len(decoded) > settings.max_ciphertext_size:
            raise ValueError(f"Ciphertext exceeds {settings.max_ciphertext_size} bytes")
        if len(decoded) < 1:
            raise ValueError("Ciphertext cannot be empty")
        return v

    @field_validator("iv")
    @classmethod
    def validate_iv(cls, v: str) -> str:
        decoded = strict_base64_decode(v, "iv")
        if len(decoded) != 12:
            raise ValueError("IV must be exactly 12 bytes")
        return v

    @field_validator("auth_tag")
    @classmethod
    def validate_auth_tag(cls, v: str) -> str:
        decoded = strict_base64_decode(v, "auth_tag")
        if len(decoded) != 16:
            raise ValueError("Auth tag must be exactly 16 bytes")
        return v

    @field_validator("ttl")
    @classmethod
    def validate_ttl(cls, v: int) -> int:
        if v < settings.min_ttl_seconds:
            raise ValueError(f"TTL must be at least {settings.min_ttl_seconds} seconds")
        if v > settings.max_ttl_seconds:
            raise ValueError(f"TTL cannot exceed {settings.max_ttl_seconds} seconds")
        return v

    @field_validator("max_views")
    @classmethod
    def validate_max_views(cls, v: int) -> int:
        if not 1 <= v <= settings.max_views_limit:
            raise ValueError(f"maxViews must be between 1 and {settings.max_views_limit}")
        return v


class SecretCreateResponse(ApiModel):
    id: str
    burn_token: str
    expires_at: datetime


class SecretRetrieveResponse(ApiModel):
    ciphertext: str
    iv: str
    auth_tag: str
    passphrase_protected: bool
