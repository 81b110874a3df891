"""Request throttling for the public API.

``limiter`` is attached to ``app.state`` in :mod:`marketplace.main`; endpoints
that need a tighter budget than ``RATE_LIMIT_DEFAULT`` decorate themselves
with one of the named limits below.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from starlette.requests import Request

from marketplace.core.config import settings

LOGIN_LIMIT = settings.RATE_LIMIT_LOGIN
REGISTER_LIMIT = settings.RATE_LIMIT_REGISTER


def client_address(request: Request) -> str:
    """Key requests by caller address.

    Proxy headers are only honoured with ``BEHIND_PROXY`` set; otherwise a
    client could pick its own bucket by sending a forged header.
    """
    if not settings.BEHIND_PROXY:
        return get_remote_address(request)
    for header in ("X-Forwarded-For", "X-Real-IP"):
        value = request.headers.get(header)
        if value:
            return value.split(",")[0].strip()
    return get_remote_address(request)


limiter = Limiter(
    key_func=client_address,
    default_limits=[settings.RATE_LIMIT_DEFAULT],
    enabled=settings.RATE_LIMIT_ENABLED,
)
