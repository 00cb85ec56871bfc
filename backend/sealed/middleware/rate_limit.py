from slowapi import Limiter
from starlette.requests import Request

from sealed.config import settings


def client_ip_key(request: Request) -> str:
    """Rate-limit key: the originating client address.

    Behind the edge proxy the client is the first X-Forwarded-For hop. When
    the service is exposed directly that header is client-controlled, so it is
    only honoured with ``trust_forwarded_for`` enabled.
    """
    if settings.trust_forwarded_for:
        forwarded = request.headers.get("X-Forwarded-For")
        if forwarded:
            return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=client_ip_key)
