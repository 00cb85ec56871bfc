from typing import Any

from pydantic import Field

from sealed.schemas.base import ApiModel


class ChallengeResponse(ApiModel):
    nonce: str
    difficulty: int
    prefix: str
    expires_at: int = Field(..., description="Unix seconds")
    stamp: str = Field(..., description="Server signature binding the challenge fields")
    algorithm: str = "sha256"


class ChallengeIn(ApiModel):
    nonce: str = Field(..., max_length=64)
    difficulty: int
    prefix: str = Field(..., max_length=64)
    expires_at: int
    stamp: str = Field(..., max_length=1024)


class TokenRedeemRequest(ApiModel):
    challenge: ChallengeIn
    # Untyped: malformed solutions take the same rejection path as wrong ones.
    solution: Any = None


class TokenResponse(ApiModel):
    token: str
    expires_at: int = Field(..., description="Unix seconds")
