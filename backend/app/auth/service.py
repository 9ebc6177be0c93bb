"""Bearer-token identity resolution backed by a DuckDB user directory.

Token format (issued by the external login flow):
    {token_prefix}_{userId}_{timestamp}

``userId`` may itself contain underscores, so everything between the
prefix and the last segment is the user id.
"""
import logging
import threading
from datetime import datetime
from typing import Optional

import duckdb

from app.errors import AuthInvalidFormatError, AuthMissingError, UserNotFoundError

from .schemas import Identity

logger = logging.getLogger(__name__)

_CREATE_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    id          VARCHAR PRIMARY KEY,
    username    VARCHAR NOT NULL UNIQUE,
    role        VARCHAR NOT NULL DEFAULT 'user',
    account_id  VARCHAR,
    created_at  TIMESTAMP NOT NULL
)
"""


class UserDirectory:
    """Read-mostly lookup of the users known to this deployment.

    The user records are owned by the login/admin pages; this class only
    needs to answer "who is user X" for token resolution. ``add_user`` exists
    for seeding and tests.
    """

    def __init__(self, connection: duckdb.DuckDBPyConnection) -> None:
        self._conn = connection
        self._lock = threading.Lock()
        self._conn.execute(_CREATE_TABLE)

    def add_user(
        self,
        user_id: str,
        username: str,
        role: str = "user",
        account_id: Optional[str] = None,
    ) -> Identity:
        """Insert or replace a user record."""
        with self._lock:
            self._conn.execute("DELETE FROM users WHERE id = ? OR username = ?", [user_id, username])
            self._conn.execute(
                """
                INSERT INTO users (id, username, role, account_id, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                [user_id, username, role, account_id, datetime.utcnow()],
            )
        return Identity(id=user_id, username=username, role=role, account_id=account_id)

    def find(self, user_ref: str) -> Optional[Identity]:
        """Find a user by id, falling back to username."""
        with self._lock:
            row = self._conn.execute(
                "SELECT id, username, role, account_id FROM users WHERE id = ?",
                [user_ref],
            ).fetchone()
            if row is None:
                row = self._conn.execute(
                    "SELECT id, username, role, account_id FROM users WHERE username = ?",
                    [user_ref],
                ).fetchone()
        if row is None:
            return None
        # The token's user reference is the owner identity, even when it
        # matched on username.
        return Identity(id=user_ref, username=row[1], role=row[2] or "user", account_id=row[3])


class TokenIdentityResolver:
    """Turns an ``Authorization`` header value into an :class:`Identity`."""

    def __init__(self, directory: UserDirectory, token_prefix: str = "mock_token") -> None:
        self._directory = directory
        self._token_prefix = token_prefix

    def parse_token(self, token: str) -> str:
        """Extract the user id from a bearer token.

        Raises:
            AuthInvalidFormatError: If the prefix is wrong or a segment is missing.
        """
        marker = f"{self._token_prefix}_"
        if not token.startswith(marker):
            raise AuthInvalidFormatError()

        parts = token[len(marker):].split("_")
        if len(parts) < 2:
            raise AuthInvalidFormatError()

        user_id = "_".join(parts[:-1])
        if not user_id:
            raise AuthInvalidFormatError("Invalid token")
        return user_id

    def resolve(self, authorization: Optional[str]) -> Identity:
        """Resolve a full ``Authorization`` header value.

        Raises:
            AuthMissingError: No header, or not a Bearer header.
            AuthInvalidFormatError: Token does not parse.
            UserNotFoundError: Token names an unknown user.
        """
        if not authorization or not authorization.startswith("Bearer "):
            raise AuthMissingError()
        return self.resolve_token(authorization[len("Bearer "):].strip())

    def resolve_token(self, token: str) -> Identity:
        user_id = self.parse_token(token)
        identity = self._directory.find(user_id)
        if identity is None:
            logger.info("Token names unknown user %s", user_id)
            raise UserNotFoundError()
        return identity

    def resolve_optional(
        self,
        authorization: Optional[str] = None,
        token: Optional[str] = None,
    ) -> Optional[Identity]:
        """Best-effort resolution used by the WebSocket endpoint.

        Returns None instead of raising so the caller can fall back to the
        anonymous owner.
        """
        try:
            if authorization:
                return self.resolve(authorization)
            if token:
                return self.resolve_token(token)
        except (AuthMissingError, AuthInvalidFormatError, UserNotFoundError) as e:
            logger.debug("Identity resolution failed: %s", e.message)
        return None
