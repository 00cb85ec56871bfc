"""Client side of the protocol: envelope encryption and the API client."""

from sealed.client.api import ApiError, FetchedSecret, SealedClient, SealedLink
from sealed.client.envelope import Envelope, TransportKey, decrypt, encrypt

__all__ = [
    "ApiError",
    "Envelope",
    "FetchedSecret",
    "SealedClient",
    "SealedLink",
    "TransportKey",
    "decrypt",
    "encrypt",
]
