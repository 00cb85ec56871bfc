"""
HTTP client for the sealed API.

Wraps the four operations of the HTTP surface and the two end-to-end flows:
``seal`` (challenge, solve, redeem, encrypt, create, build link) and ``open``
(parse link, fetch, decrypt). The transport key is only ever placed in the
returned link's fragment; no request built here contains it.
"""

import base64
from dataclasses import dataclass

import httpx
import structlog

from sealed.client import envelope
from sealed.exceptions import (
    AuthenticationFailure,
    InvalidProofOfWork,
    NotAvailable,
    PassphraseRequired,
    SealedError,
    TokenInvalid,
)
from sealed.services import pow_service
from sealed.services.pow_service import PowChallenge

logger = structlog.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0


class ApiError(SealedError):
    def __init__(self, status_code: int, body: str):
        super().__init__(f"API error {status_code}: {body}")
        self.status_code = status_code
        self.body = body


@dataclass(frozen=True, slots=True)
class CreatedSecret:
    id: str
    burn_token: str
    expires_at: str


@dataclass(frozen=True, slots=True)
class RetrievedSecret:
    ciphertext: bytes
    iv: bytes
    auth_tag: bytes
    passphrase_protected: bool


@dataclass(frozen=True, slots=True)
class FetchedSecret:
    """A retrieved secret together with the link key that opens it."""

    secret_id: str
    transport_key: envelope.TransportKey
    retrieved: RetrievedSecret


@dataclass(frozen=True, slots=True)
class SealedLink:
    url: str
    secret_id: str
    burn_token: str
    expires_at: str


class SealedClient:
    def __init__(
        self,
        base_url: str = "",
        *,
        http: httpx.Client | None = None,
        api_prefix: str = "/api/v1",
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._owns_http = http is None
        self._http = http or httpx.Client(base_url=base_url, timeout=timeout)
        self._api_prefix = api_prefix.rstrip("/")
        # Fetched secrets whose decryption failed, by secret id. The view is
        # already spent, so a retry must not fetch again.
        self._undecrypted: dict[str, FetchedSecret] = {}

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def __enter__(self) -> "SealedClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        response = self._http.request(method, f"{self._api_prefix}{path}", **kwargs)

        if response.status_code == 401:
            raise TokenInvalid()
        if response.status_code == 403:
            raise InvalidProofOfWork()
        if response.status_code == 404:
            raise NotAvailable()
        if response.status_code >= 400:
            raise ApiError(response.status_code, response.text)

        return response

    def get_challenge(self) -> PowChallenge:
        data = self._request("POST", "/token").json()
        return PowChallenge(
            prefix=data["prefix"],
            nonce=data["nonce"],
            difficulty=data["difficulty"],
            expires_at=data["expiresAt"],
            stamp=data["stamp"],
        )

    def redeem(self, challenge: PowChallenge, solution: int) -> str:
        """Exchange a solved challenge for a creation token."""
        data = self._request(
            "POST",
            "/token",
            json={
                "challenge": {
                    "prefix": challenge.prefix,
                    "nonce": challenge.nonce,
                    "difficulty": challenge.difficulty,
                    "expiresAt": challenge.expires_at,
                    "stamp": challenge.stamp,
                },
                "solution": solution,
            },
        ).json()
        return data["token"]

    def create_secret(
        self,
        token: str,
        sealed: envelope.Envelope,
        *,
        ttl: int | None = None,
        max_views: int = 1,
    ) -> CreatedSecret:
        body = {
            "ciphertext": base64.b64encode(sealed.ciphertext).decode(),
            "iv": base64.b64encode(sealed.iv).decode(),
            "authTag": base64.b64encode(sealed.auth_tag).decode(),
            "maxViews": max_views,
            "passphraseProtected": sealed.transport_key.passphrase_protected,
        }
        if ttl is not None:
            body["ttl"] = ttl

        data = self._request(
            "POST",
            "/secrets",
            json=body,
            headers={"Authorization": f"Bearer {token}"},
        ).json()
        return CreatedSecret(id=data["id"], burn_token=data["burnToken"], expires_at=data["expiresAt"])

    def get_secret(self, secret_id: str) -> RetrievedSecret:
        """Fetch ciphertext. Consumes a view on the server."""
        data = self._request("GET", f"/secrets/{secret_id}").json()
        return RetrievedSecret(
            ciphertext=base64.b64decode(data["ciphertext"]),
            iv=base64.b64decode(data["iv"]),
            auth_tag=base64.b64decode(data["authTag"]),
            passphrase_protected=data["passphraseProtected"],
        )

    def burn_secret(self, secret_id: str, burn_token: str) -> None:
        self._request("DELETE", f"/secrets/{secret_id}", headers={"X-Burn-Token": burn_token})

    def seal(
        self,
        plaintext: bytes | str,
        passphrase: str | None = None,
        *,
        ttl: int | None = None,
        max_views: int = 1,
        share_base: str | None = None,
    ) -> SealedLink:
        """Run the whole creation flow and return the share link."""
        challenge = self.get_challenge()
        solution = pow_service.solve(challenge)
        logger.debug("pow_solved", difficulty=challenge.difficulty, iterations=solution + 1)

        token = self.redeem(challenge, solution)
        sealed = envelope.encrypt(plaintext, passphrase)
        created = self.create_secret(token, sealed, ttl=ttl, max_views=max_views)

        base = share_base if share_base is not None else str(self._http.base_url).rstrip("/") + "/"
        return SealedLink(
            url=envelope.share_url(base, created.id, sealed.transport_key),
            secret_id=created.id,
            burn_token=created.burn_token,
            expires_at=created.expires_at,
        )

    def fetch(self, link: str, passphrase: str | None = None) -> FetchedSecret:
        """
        Parse a share link and retrieve its ciphertext, consuming one view.

        A passphrase-wrapped key with no passphrase raises PassphraseRequired
        before anything is fetched.
        """
        secret_id, transport_key = envelope.parse_fragment(link)
        if transport_key.passphrase_protected and not passphrase:
            raise PassphraseRequired()

        return FetchedSecret(
            secret_id=secret_id,
            transport_key=transport_key,
            retrieved=self.get_secret(secret_id),
        )

    @staticmethod
    def decrypt_fetched(fetched: FetchedSecret, passphrase: str | None = None) -> bytes:
        retrieved = fetched.retrieved
        return envelope.decrypt(
            retrieved.ciphertext,
            retrieved.iv,
            retrieved.auth_tag,
            fetched.transport_key,
            passphrase,
        )

    def open(self, link: str, passphrase: str | None = None) -> bytes:
        """
        Fetch and decrypt the secret a share link points at.

        When decryption fails (a mistyped passphrase) the fetched ciphertext
        is kept, and opening the same link again decrypts it without spending
        another view.
        """
        secret_id, transport_key = envelope.parse_fragment(link)

        fetched = self._undecrypted.get(secret_id)
        if fetched is None or fetched.transport_key != transport_key:
            fetched = self.fetch(link, passphrase)

        try:
            plaintext = self.decrypt_fetched(fetched, passphrase)
        except (AuthenticationFailure, PassphraseRequired):
            self._undecrypted[secret_id] = fetched
            raise

        self._undecrypted.pop(secret_id, None)
        return plaintext
