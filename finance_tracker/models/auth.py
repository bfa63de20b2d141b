"""
Authentication Models

Shapes of the identity and session data exchanged with the hosted
authentication service.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class AuthChangeEvent(str, Enum):
    """Why the authenticated identity changed."""
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    SIGNED_OUT = "SIGNED_OUT"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"


class Identity(BaseModel):
    """The authenticated user on whose behalf every record is scoped."""

    id: str = Field(..., min_length=1)
    email: Optional[str] = None
    full_name: Optional[str] = None
    avatar_url: Optional[str] = None
    created_at: Optional[datetime] = None
    last_sign_in_at: Optional[datetime] = None
    email_confirmed_at: Optional[datetime] = None

    @classmethod
    def from_user_payload(cls, payload: dict[str, Any]) -> "Identity":
        """Build from the auth service's user object."""
        metadata = payload.get("user_metadata") or {}
        return cls(
            id=payload["id"],
            email=payload.get("email"),
            full_name=metadata.get("full_name") or metadata.get("name"),
            avatar_url=metadata.get("avatar_url"),
            created_at=payload.get("created_at"),
            last_sign_in_at=payload.get("last_sign_in_at"),
            email_confirmed_at=payload.get("email_confirmed_at"),
        )

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "User"

    @property
    def is_verified(self) -> bool:
        return self.email_confirmed_at is not None


class AuthSession(BaseModel):
    """Tokens bound to an identity. The access token goes on every data request."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_at: Optional[datetime] = None
    user: Identity

    @classmethod
    def from_token_payload(cls, payload: dict[str, Any]) -> "AuthSession":
        """Build from the auth service's token response."""
        expires_at = None
        if payload.get("expires_at"):
            expires_at = datetime.fromtimestamp(int(payload["expires_at"]), tz=timezone.utc)
        elif payload.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(payload["expires_in"]))

        return cls(
            access_token=payload["access_token"],
            refresh_token=payload["refresh_token"],
            token_type=payload.get("token_type", "bearer"),
            expires_at=expires_at,
            user=Identity.from_user_payload(payload["user"]),
        )

    def is_expired(self, now: Optional[datetime] = None, leeway_seconds: int = 60) -> bool:
        """Whether the access token is expired (or about to be)."""
        if self.expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        return now + timedelta(seconds=leeway_seconds) >= self.expires_at


class OAuthRequest(BaseModel):
    """A pending OAuth redirect sign-in."""

    provider: str
    url: str = Field(..., description="Where to send the user's browser")
    code_verifier: str = Field(..., description="PKCE secret kept until the code exchange")
    redirect_to: Optional[str] = None
