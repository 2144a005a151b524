"""Identity, session phase and token models."""

from enum import Enum
from typing import Any, Optional
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class Role(str, Enum):
    """Marketplace roles."""
    BUYER = "buyer"
    AGENT = "agent"
    ADMIN = "admin"


# The backend still reports buyers with its legacy role name
_ROLE_ALIASES = {"user": Role.BUYER}


def parse_role(value: Any) -> Role:
    """Coerce a wire role value to Role, defaulting to buyer when absent."""
    if isinstance(value, Role):
        return value
    if not value:
        return Role.BUYER
    value = str(value).lower()
    return _ROLE_ALIASES.get(value) or Role(value)


class Identity(BaseModel):
    """The authenticated user's profile and role as understood by the client."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    provider_id: str = Field(
        ...,
        validation_alias=AliasChoices("uid", "providerId", "provider_id"),
        serialization_alias="uid",
        description="Opaque identity provider user ID"
    )
    email: str = Field(..., description="Email address")
    display_name: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("displayName", "display_name"),
        serialization_alias="displayName"
    )
    photo_url: Optional[str] = Field(
        None,
        validation_alias=AliasChoices("photoURL", "photo_url"),
        serialization_alias="photoURL"
    )
    role: Role = Field(default=Role.BUYER, description="buyer, agent or admin")
    verified: bool = False
    flagged: bool = Field(
        False,
        validation_alias=AliasChoices("isFraud", "flagged"),
        serialization_alias="isFraud",
        description="Fraud marker set by an admin"
    )

    @field_validator("role", mode="before")
    @classmethod
    def normalize_role(cls, value: Any) -> Role:
        return parse_role(value)

    @field_validator("verified", "flagged", mode="before")
    @classmethod
    def none_is_false(cls, value: Any) -> bool:
        return bool(value)

    @classmethod
    def from_provider(
        cls,
        provider_id: str,
        email: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None
    ) -> "Identity":
        """Provisional identity built purely from provider-supplied fields."""
        return cls(
            provider_id=provider_id,
            email=email,
            display_name=display_name or email.split("@")[0],
            photo_url=photo_url,
        )

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles

    def to_storage(self) -> dict:
        """Serialize with the wire aliases used in durable storage."""
        return self.model_dump(mode="json", by_alias=True)


def merge_backend_identity(current: Identity, backend: dict, role_fallback: Role = Role.BUYER) -> Identity:
    """
    Merge an authoritative backend user record into the current identity.

    Backend values win; blanks fall back to the current identity, except role which
    falls back to ``role_fallback`` and the verified/fraud flags which fall back to False.
    """
    def pick(*keys: str) -> Any:
        for key in keys:
            value = backend.get(key)
            if value:
                return value
        return None

    role = pick("role")
    return Identity(
        provider_id=pick("uid", "providerId") or current.provider_id,
        email=pick("email") or current.email,
        display_name=pick("displayName") or current.display_name,
        photo_url=pick("photoURL") or current.photo_url,
        role=parse_role(role) if role else role_fallback,
        verified=bool(backend.get("verified")),
        flagged=bool(backend.get("isFraud")),
    )


class SessionPhase(str, Enum):
    """Where the session stands between provider sign-in and backend reconciliation."""
    SIGNED_OUT = "signed_out"
    OPTIMISTIC = "optimistic"
    RECONCILED = "reconciled"


class SessionState(BaseModel):
    """Immutable snapshot of the current session."""
    model_config = ConfigDict(frozen=True)

    phase: SessionPhase = SessionPhase.SIGNED_OUT
    identity: Optional[Identity] = None

    @classmethod
    def signed_out(cls) -> "SessionState":
        return cls()

    @classmethod
    def optimistic(cls, identity: Identity) -> "SessionState":
        return cls(phase=SessionPhase.OPTIMISTIC, identity=identity)

    @classmethod
    def reconciled(cls, identity: Identity) -> "SessionState":
        return cls(phase=SessionPhase.RECONCILED, identity=identity)

    @property
    def is_authenticated(self) -> bool:
        return self.phase != SessionPhase.SIGNED_OUT and self.identity is not None


class TokenPair(BaseModel):
    """Provider and backend credentials, read together from durable storage."""
    model_config = ConfigDict(frozen=True)

    provider_token: Optional[str] = None
    backend_token: Optional[str] = None

    @property
    def bearer(self) -> Optional[str]:
        """Backend token when present, else provider token, else None."""
        return self.backend_token or self.provider_token or None


class UserRecord(Identity):
    """Backend user document as listed to admins."""
    id: Optional[str] = Field(None, validation_alias=AliasChoices("_id", "id"), description="Backend user ID")
