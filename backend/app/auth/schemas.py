"""Pydantic schemas for resolved caller identities."""
from typing import Iterable, Optional

from pydantic import BaseModel, Field

ANONYMOUS_OWNER = "anonymous"


class Identity(BaseModel):
    """A caller resolved from a bearer token.

    Attributes:
        id: Owner identity used to scope realtime fan-out and media records.
        username: Login name from the user directory.
        role: Directory role, e.g. "user" or "admin".
        account_id: Optional tenant/account the user belongs to.
    """
    id: str = Field(..., description="Owner identity")
    username: str = Field(default="", description="Login name")
    role: str = Field(default="user", description="Directory role")
    account_id: Optional[str] = Field(default=None, description="Account the user belongs to")

    def is_elevated(self, elevated_roles: Iterable[str]) -> bool:
        """True if this identity may act on behalf of other owners."""
        return self.role in set(elevated_roles)
