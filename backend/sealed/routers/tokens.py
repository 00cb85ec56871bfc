from datetime import UTC

import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from sealed.config import settings
from sealed.exceptions import InvalidProofOfWork
from sealed.middleware.rate_limit import limiter
from sealed.schemas.challenge import ChallengeResponse, TokenRedeemRequest, TokenResponse
from sealed.services import token_service
from sealed.services.pow_service import PowChallenge

router = APIRouter()
logger = structlog.get_logger()


def invalid_pow() -> JSONResponse:
    return JSONResponse(status_code=403, content={"error": "invalid_pow"})


@router.post(
    "/token",
    response_model=ChallengeResponse | TokenResponse,
    responses={403: {"description": "Proof of work rejected"}},
)
@limiter.limit(settings.rate_limit_tokens)
async def token(request: Request):
    """
    Two-step creation token issuance.

    Without a body: returns a fresh proof-of-work challenge.
    With ``{challenge, solution}``: verifies the solution and returns a
    short-lived creation token. Every rejection is the same 403, including
    bodies that fail to parse.
    """
    body = await request.body()
    if not body.strip():
        challenge = token_service.issue_challenge()
        logger.info("challenge_issued", difficulty=challenge.difficulty)
        return ChallengeResponse(
            nonce=challenge.nonce,
            difficulty=challenge.difficulty,
            prefix=challenge.prefix,
            expires_at=challenge.expires_at,
            stamp=challenge.stamp,
        )

    try:
        redeem_data = TokenRedeemRequest.model_validate_json(body)
    except ValueError:
        logger.info("pow_rejected")
        return invalid_pow()

    challenge = PowChallenge(
        prefix=redeem_data.challenge.prefix,
        nonce=redeem_data.challenge.nonce,
        difficulty=redeem_data.challenge.difficulty,
        expires_at=redeem_data.challenge.expires_at,
        stamp=redeem_data.challenge.stamp,
    )

    try:
        creation_token = token_service.redeem(challenge, redeem_data.solution)
    except InvalidProofOfWork:
        logger.info("pow_rejected")
        return invalid_pow()

    logger.info("creation_token_issued", jti=creation_token.jti)

    return TokenResponse(
        token=creation_token.token,
        expires_at=int(creation_token.expires_at.replace(tzinfo=UTC).timestamp()),
    )
