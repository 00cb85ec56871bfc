import hashlib
import secrets

SECRET_ID_BYTES = 16  # 22 base64url chars
BURN_TOKEN_BYTES = 16  # 32 hex chars
NONCE_BYTES = 16  # 32 hex chars


def generate_secret_id() -> str:
    """128-bit random identifier, base64url without padding."""
    return secrets.token_urlsafe(SECRET_ID_BYTES)


def generate_burn_token() -> str:
    return secrets.token_hex(BURN_TOKEN_BYTES)


def generate_nonce() -> str:
    return secrets.token_hex(NONCE_BYTES)


def hash_token(token: str) -> str:
    """
    Hash a bearer token for storage.

    Unsalted SHA-256: the store compares it inside a single conditional
    statement. Tokens carry 128 bits of entropy.
    """
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
