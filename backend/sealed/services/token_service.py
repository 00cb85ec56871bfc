"""
Stateless challenge and creation-token issuance.

Both the challenge stamp and the creation token are HS256 JWTs signed with the
process-wide signing key. Nothing is stored server side: a challenge is
trusted because its stamp verifies, a creation token because its signature
and expiry verify.
"""

import time
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime

import jwt

from sealed.config import settings
from sealed.exceptions import InvalidProofOfWork, TokenExpired, TokenInvalid
from sealed.services import pow_service
from sealed.services.crypto_utils import generate_nonce
from sealed.services.pow_service import PowChallenge

ALGORITHM = "HS256"
OP_CHALLENGE = "challenge"
OP_CREATE = "create"


@dataclass(frozen=True, slots=True)
class CreationToken:
    token: str
    nonce: str
    jti: str
    issued_at: datetime
    expires_at: datetime


def _utc(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp, UTC).replace(tzinfo=None)


def issue_challenge() -> PowChallenge:
    """Generate a fresh, signed proof-of-work challenge."""
    now = int(time.time())
    expires_at = now + settings.pow_challenge_ttl_seconds
    nonce = generate_nonce()

    stamp = jwt.encode(
        {
            "op": OP_CHALLENGE,
            "iat": now,
            "exp": expires_at,
            "nonce": nonce,
            "pow_difficulty": settings.pow_difficulty,
            "pow_prefix": settings.pow_prefix,
        },
        settings.signing_key,
        algorithm=ALGORITHM,
    )

    return PowChallenge(
        prefix=settings.pow_prefix,
        nonce=nonce,
        difficulty=settings.pow_difficulty,
        expires_at=expires_at,
        stamp=stamp,
    )


def _stamp_matches(challenge: PowChallenge) -> bool:
    try:
        claims = jwt.decode(
            challenge.stamp or "",
            settings.signing_key,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat"]},
        )
    except jwt.PyJWTError:
        return False

    return (
        claims.get("op") == OP_CHALLENGE
        and claims.get("nonce") == challenge.nonce
        and claims.get("pow_prefix") == challenge.prefix
        and claims.get("pow_difficulty") == challenge.difficulty
        and claims.get("exp") == challenge.expires_at
        and challenge.difficulty >= settings.pow_difficulty
    )


def redeem(challenge: PowChallenge, solution) -> CreationToken:
    """
    Exchange a solved challenge for a creation token.

    Every check runs on every call and the outcomes are combined at the end,
    so a rejection looks the same whichever check failed.
    """
    work_ok = pow_service.verify(challenge, solution)
    stamp_ok = _stamp_matches(challenge)

    if not (work_ok and stamp_ok):
        raise InvalidProofOfWork()

    return issue_creation_token(challenge.nonce)


def issue_creation_token(nonce: str) -> CreationToken:
    now = int(time.time())
    expires_at = now + settings.token_ttl_seconds
    jti = str(uuid.uuid4())

    token = jwt.encode(
        {
            "jti": jti,
            "iat": now,
            "exp": expires_at,
            "op": OP_CREATE,
            "nonce": nonce,
        },
        settings.signing_key,
        algorithm=ALGORITHM,
    )

    return CreationToken(
        token=token,
        nonce=nonce,
        jti=jti,
        issued_at=_utc(now),
        expires_at=_utc(expires_at),
    )


def verify_creation_token(token: str) -> CreationToken:
    """Check signature and expiry. No lookup, no revocation list."""
    try:
        claims = jwt.decode(
            token,
            settings.signing_key,
            algorithms=[ALGORITHM],
            options={"require": ["exp", "iat", "jti"]},
        )
    except jwt.ExpiredSignatureError:
        raise TokenExpired()
    except jwt.PyJWTError:
        raise TokenInvalid()

    if claims.get("op") != OP_CREATE or not claims.get("nonce"):
        raise TokenInvalid()

    return CreationToken(
        token=token,
        nonce=claims["nonce"],
        jti=claims["jti"],
        issued_at=_utc(claims["iat"]),
        expires_at=_utc(claims["exp"]),
    )
