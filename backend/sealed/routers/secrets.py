import asyncio
import base64
import time

import structlog
from fastapi import APIRouter, Body, Depends, Header, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from sealed.config import settings
from sealed.database import get_db
from sealed.exceptions import NotAvailable, TokenInvalid
from sealed.middleware.rate_limit import limiter
from sealed.schemas.secret import (
    SecretCreate,
    SecretCreateResponse,
    SecretRetrieveResponse,
    strict_base64_decode,
)
from sealed.services.crypto_utils import generate_burn_token
from sealed.services.secret_service import burn_secret, consume_secret, create_secret
from sealed.services.token_service import CreationToken, verify_creation_token

router = APIRouter()
logger = structlog.get_logger()


def extract_bearer_token(authorization: str | None) -> str:
    """Extract token from Authorization header."""
    if not authorization or not authorization.startswith("Bearer "):
        raise TokenInvalid()
    return authorization[7:]


def require_creation_token(authorization: str | None = Header(None)) -> CreationToken:
    """
    Dependency: a valid creation token, checked before the body is validated.

    Raises TokenInvalid (TokenExpired included), rendered as the uniform 401.
    """
    return verify_creation_token(extract_bearer_token(authorization))


def not_available() -> JSONResponse:
    """The one response for missing, expired, consumed, burned and malformed."""
    return JSONResponse(status_code=404, content={"error": "not_available"})


async def pad_response(started: float, floor_ms: int) -> None:
    """Sleep until at least ``floor_ms`` has passed since ``started``."""
    remaining = floor_ms / 1000 - (time.perf_counter() - started)
    if remaining > 0:
        await asyncio.sleep(remaining)


@router.post(
    "/secrets",
    response_model=SecretCreateResponse,
    status_code=201,
    responses={401: {"description": "Missing, invalid or expired creation token"}},
)
@limiter.limit(settings.rate_limit_creates)
async def create_new_secret(
    request: Request,
    _token: CreationToken = Depends(require_creation_token),
    secret_data: SecretCreate = Body(...),
    db: Session = Depends(get_db),
):
    """
    Store a client-encrypted secret.

    Requires a creation token from POST /token as a Bearer credential. The
    burn token is generated here and returned exactly once.
    """
    burn_token = generate_burn_token()

    secret = create_secret(
        db=db,
        ciphertext=strict_base64_decode(secret_data.ciphertext, "ciphertext"),
        iv=strict_base64_decode(secret_data.iv, "iv"),
        auth_tag=strict_base64_decode(secret_data.auth_tag, "auth_tag"),
        burn_token=burn_token,
        ttl=secret_data.ttl,
        max_views=secret_data.max_views,
        passphrase_protected=secret_data.passphrase_protected,
    )

    logger.info(
        "secret_created",
        ttl=secret_data.ttl,
        max_views=secret_data.max_views,
        ciphertext_size=len(secret.ciphertext),
        passphrase_protected=secret.passphrase_protected,
    )

    return SecretCreateResponse(
        id=secret.id,
        burn_token=burn_token,
        expires_at=secret.expires_at,
    )


@router.get(
    "/secrets/{secret_id:path}",
    response_model=SecretRetrieveResponse,
    responses={404: {"description": "Not available"}},
)
@limiter.limit(settings.rate_limit_retrieves)
async def retrieve_secret(
    request: Request,
    secret_id: str,
    db: Session = Depends(get_db),
):
    """
    Fetch a secret's ciphertext, consuming one view.

    The id is the capability. Unknown, expired and consumed secrets all
    produce the same 404.
    """
    try:
        payload = consume_secret(db, secret_id)
    except NotAvailable:
        return not_available()

    logger.info("secret_retrieved")

    return SecretRetrieveResponse(
        ciphertext=base64.b64encode(payload.ciphertext).decode(),
        iv=base64.b64encode(payload.iv).decode(),
        auth_tag=base64.b64encode(payload.auth_tag).decode(),
        passphrase_protected=payload.passphrase_protected,
    )


@router.delete("/secrets/{secret_id:path}", status_code=204)
@limiter.limit(settings.rate_limit_burns)
async def burn(
    request: Request,
    secret_id: str,
    x_burn_token: str | None = Header(None, alias="X-Burn-Token"),
    db: Session = Depends(get_db),
):
    """
    Delete a secret early.

    Always 204 with an empty body, padded to a fixed minimum latency, whether
    or not anything was deleted.
    """
    started = time.perf_counter()
    burn_secret(db, secret_id, x_burn_token)
    await pad_response(started, settings.burn_response_floor_ms)
    return Response(status_code=204)
