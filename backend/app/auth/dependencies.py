"""FastAPI dependencies for authenticated routes."""
from typing import Optional

from fastapi import Depends, Header, Request

from .schemas import Identity
from .service import TokenIdentityResolver


def get_identity_resolver(request: Request) -> TokenIdentityResolver:
    return request.app.state.identity_resolver


async def require_identity(
    authorization: Optional[str] = Header(default=None),
    resolver: TokenIdentityResolver = Depends(get_identity_resolver),
) -> Identity:
    """Resolve the caller from ``Authorization: Bearer ...``.

    Raises the auth errors from :mod:`app.errors`; the app-level handler
    renders them as 401 JSON bodies.
    """
    return resolver.resolve(authorization)
