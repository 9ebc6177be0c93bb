"""Identity resolution for bearer-token callers.

Login itself lives outside this service. Tokens issued by the login flow
have the shape ``mock_token_{userId}_{timestamp}``; this package turns such a
token into an :class:`Identity` by looking the user up in the
:class:`UserDirectory`.

Services:
    - UserDirectory: DuckDB-backed lookup of known users.
    - TokenIdentityResolver: bearer token -> Identity.
"""
from .schemas import Identity
from .service import TokenIdentityResolver, UserDirectory

__all__ = ["Identity", "TokenIdentityResolver", "UserDirectory"]
