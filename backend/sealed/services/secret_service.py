from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

import structlog
from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from sealed.exceptions import NotAvailable
from sealed.models.secret import Secret
from sealed.services.crypto_utils import generate_secret_id, hash_token

ID_ATTEMPTS = 3

logger = structlog.get_logger()


@dataclass(frozen=True, slots=True)
class SecretPayload:
    ciphertext: bytes
    iv: bytes
    auth_tag: bytes
    passphrase_protected: bool


def utcnow() -> datetime:
    return datetime.now(UTC).replace(tzinfo=None)


def create_secret(
    db: Session,
    ciphertext: bytes,
    iv: bytes,
    auth_tag: bytes,
    burn_token: str,
    ttl: int,
    max_views: int = 1,
    passphrase_protected: bool = False,
) -> Secret:
    """
    Store a new secret under a fresh random id.

    Only the hash of the burn token is kept. On the (astronomically rare) id
    collision the insert is retried with a new id.
    """
    now = utcnow()

    for attempt in range(1, ID_ATTEMPTS + 1):
        secret = Secret(
            id=generate_secret_id(),
            burn_token_hash=hash_token(burn_token),
            ciphertext=ciphertext,
            iv=iv,
            auth_tag=auth_tag,
            passphrase_protected=passphrase_protected,
            remaining_views=max_views,
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        db.add(secret)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.warning("secret_id_collision", attempt=attempt)
            continue
        db.refresh(secret)
        return secret

    raise RuntimeError("Could not allocate a secret id")


def consume_secret(db: Session, secret_id: str) -> SecretPayload:
    """
    Atomically claim one view of a secret and return its payload.

    The claim is a single conditional UPDATE; the payload read and, on the
    last view, the delete happen in the same transaction. Of two concurrent
    callers racing for the last view exactly one wins.
    """
    now = utcnow()

    claimed = db.execute(
        update(Secret)
        .where(
            Secret.id == secret_id,
            Secret.remaining_views > 0,
            Secret.expires_at > now,
        )
        .values(remaining_views=Secret.remaining_views - 1)
        .execution_options(synchronize_session=False)
    )

    if claimed.rowcount != 1:
        db.rollback()
        raise NotAvailable()

    row = db.execute(
        select(
            Secret.ciphertext,
            Secret.iv,
            Secret.auth_tag,
            Secret.passphrase_protected,
            Secret.remaining_views,
        ).where(Secret.id == secret_id)
    ).one()

    if row.remaining_views <= 0:
        db.execute(
            delete(Secret)
            .where(Secret.id == secret_id)
            .execution_options(synchronize_session=False)
        )

    db.commit()

    return SecretPayload(
        ciphertext=row.ciphertext,
        iv=row.iv,
        auth_tag=row.auth_tag,
        passphrase_protected=row.passphrase_protected,
    )


def burn_secret(db: Session, secret_id: str, burn_token: str | None) -> None:
    """
    Delete a secret if and only if the burn token matches.

    Returns nothing in every case: match, mismatch, unknown id, missing token.
    The same statement runs on every path.
    """
    token_hash = hash_token(burn_token or "")

    db.execute(
        delete(Secret)
        .where(Secret.id == secret_id, Secret.burn_token_hash == token_hash)
        .execution_options(synchronize_session=False)
    )
    db.commit()


def purge_unavailable_secrets(db: Session) -> int:
    """
    Hard delete rows that are expired or have no views left.

    Best effort housekeeping; reads already treat such rows as absent.
    Returns the count of deleted rows.
    """
    result = db.execute(
        delete(Secret)
        .where(or_(Secret.expires_at <= utcnow(), Secret.remaining_views <= 0))
        .execution_options(synchronize_session=False)
    )
    db.commit()
    return result.rowcount
