"""Error taxonomy shared by the server and the client library.

Every error here is terminal where it is detected; nothing retries them.
"""


class SealedError(Exception):
    pass


class InvalidProofOfWork(SealedError):
    """A redeem attempt failed. Carries no detail about which check failed."""

    def __init__(self) -> None:
        super().__init__("invalid")


class TokenInvalid(SealedError):
    """A creation token is missing, malformed, forged, or expired."""

    def __init__(self, message: str = "invalid token") -> None:
        super().__init__(message)


class TokenExpired(TokenInvalid):
    def __init__(self) -> None:
        super().__init__("token expired")


class NotAvailable(SealedError):
    """The secret does not exist, has expired, or has been consumed."""

    def __init__(self) -> None:
        super().__init__("not available")


class AuthenticationFailure(SealedError):
    """AEAD tag mismatch on decrypt. No plaintext is ever returned."""

    def __init__(self) -> None:
        super().__init__("authentication failed")


class PassphraseRequired(SealedError):
    """The transport key is passphrase-wrapped and no passphrase was given."""

    def __init__(self) -> None:
        super().__init__("passphrase required")
