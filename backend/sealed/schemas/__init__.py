from sealed.schemas.base import ApiModel, ErrorResponse
from sealed.schemas.challenge import (
    ChallengeIn,
    ChallengeResponse,
    TokenRedeemRequest,
    TokenResponse,
)
from sealed.schemas.secret import (
    SecretCreate,
    SecretCreateResponse,
    SecretRetrieveResponse,
)

__all__ = [
    "ApiModel",
    "ChallengeIn",
    "ChallengeResponse",
    "ErrorResponse",
    "SecretCreate",
    "SecretCreateResponse",
    "SecretRetrieveResponse",
    "TokenRedeemRequest",
    "TokenResponse",
]
