"""
Client-side envelope encryption.

Every secret gets a fresh random 256-bit content key and is sealed with
AES-256-GCM under a fresh 96-bit IV. The server receives the ciphertext, IV
and tag; the key travels only in the URL fragment.

With a passphrase the content key is *wrapped*: a PBKDF2-derived key
AES-GCM-encrypts it and the fragment carries ``wrap_iv || wrapped || tag``
plus the salt. Without the passphrase the content key cannot be recovered
from the link.

Link fragment::

    #<id>:<base64url(key)>                   no passphrase
    #<id>:<base64url(wrapped)>:<base64url(salt)>  passphrase-wrapped
"""

import base64
import os
import re
from typing import NamedTuple
from urllib.parse import urldefrag

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from sealed.exceptions import AuthenticationFailure, PassphraseRequired

KEY_SIZE = 32  # 256 bits
IV_SIZE = 12  # 96 bits, AES-GCM standard
TAG_SIZE = 16  # 128 bits
SALT_SIZE = 16  # 128 bits
PBKDF2_ITERATIONS = 100_000

_BASE64URL = re.compile(r"^[A-Za-z0-9_-]+$")


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def b64url_decode(value: str) -> bytes:
    if not _BASE64URL.match(value):
        raise ValueError("Invalid base64url")
    return base64.urlsafe_b64decode(value + "=" * (-len(value) % 4))


class TransportKey(NamedTuple):
    """Key material carried in the link fragment, never sent to the server."""

    key: bytes
    salt: bytes | None = None

    @property
    def passphrase_protected(self) -> bool:
        return self.salt is not None

    def encode(self) -> str:
        encoded = b64url_encode(self.key)
        if self.salt is not None:
            encoded += ":" + b64url_encode(self.salt)
        return encoded

    @classmethod
    def decode(cls, value: str) -> "TransportKey":
        parts = value.split(":")
        if len(parts) == 1:
            return cls(key=b64url_decode(parts[0]))
        if len(parts) == 2:
            salt = b64url_decode(parts[1])
            if len(salt) != SALT_SIZE:
                raise ValueError("Invalid salt length")
            return cls(key=b64url_decode(parts[0]), salt=salt)
        raise ValueError("Malformed transport key")


class Envelope(NamedTuple):
    ciphertext: bytes
    iv: bytes
    auth_tag: bytes
    transport_key: TransportKey


def derive_key(passphrase: str, salt: bytes) -> bytes:
    """PBKDF2-HMAC-SHA256, 100,000 iterations, 256-bit output."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _seal(key: bytes, data: bytes) -> tuple[bytes, bytes, bytes]:
    iv = os.urandom(IV_SIZE)
    sealed = AESGCM(key).encrypt(iv, data, None)
    return sealed[:-TAG_SIZE], iv, sealed[-TAG_SIZE:]


def _open(key: bytes, iv: bytes, ciphertext: bytes, auth_tag: bytes) -> bytes:
    if len(key) != KEY_SIZE or len(iv) != IV_SIZE or len(auth_tag) != TAG_SIZE:
        raise AuthenticationFailure()
    try:
        return AESGCM(key).decrypt(iv, ciphertext + auth_tag, None)
    except InvalidTag:
        raise AuthenticationFailure()


def encrypt(plaintext: bytes | str, passphrase: str | None = None) -> Envelope:
    """Encrypt under a fresh content key. Returns (ciphertext, iv, auth_tag, transport_key)."""
    if isinstance(plaintext, str):
        plaintext = plaintext.encode("utf-8")

    content_key = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
    ciphertext, iv, auth_tag = _seal(content_key, plaintext)

    if not passphrase:
        return Envelope(ciphertext, iv, auth_tag, TransportKey(key=content_key))

    salt = os.urandom(SALT_SIZE)
    wrapped, wrap_iv, wrap_tag = _seal(derive_key(passphrase, salt), content_key)
    transport_key = TransportKey(key=wrap_iv + wrapped + wrap_tag, salt=salt)

    return Envelope(ciphertext, iv, auth_tag, transport_key)


def unwrap_content_key(transport_key: TransportKey, passphrase: str | None = None) -> bytes:
    if not transport_key.passphrase_protected:
        return transport_key.key
    if not passphrase:
        raise PassphraseRequired()

    blob = transport_key.key
    wrap_iv, wrapped, wrap_tag = blob[:IV_SIZE], blob[IV_SIZE:-TAG_SIZE], blob[-TAG_SIZE:]
    return _open(derive_key(passphrase, transport_key.salt), wrap_iv, wrapped, wrap_tag)


def decrypt(
    ciphertext: bytes,
    iv: bytes,
    auth_tag: bytes,
    transport_key: TransportKey,
    passphrase: str | None = None,
) -> bytes:
    """
    Authenticate and decrypt.

    Raises AuthenticationFailure on any tag mismatch (wrong key, wrong
    passphrase, tampered ciphertext, IV or tag). Never returns partial output.
    """
    content_key = unwrap_content_key(transport_key, passphrase)
    return _open(content_key, iv, ciphertext, auth_tag)


def build_fragment(secret_id: str, transport_key: TransportKey) -> str:
    return f"{secret_id}:{transport_key.encode()}"


def share_url(base_url: str, secret_id: str, transport_key: TransportKey) -> str:
    return f"{base_url}#{build_fragment(secret_id, transport_key)}"


def parse_fragment(link: str) -> tuple[str, TransportKey]:
    """Split a share link (or bare fragment) into secret id and transport key."""
    _, fragment = urldefrag(link)
    if not fragment:
        fragment = link.lstrip("#") if ":" in link and "://" not in link else ""

    secret_id, sep, encoded_key = fragment.partition(":")
    if not sep or not secret_id or not encoded_key or not _BASE64URL.match(secret_id):
        raise ValueError("Malformed link")

    return secret_id, TransportKey.decode(encoded_key)
