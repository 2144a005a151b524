"""Role guards shared by the marketplace services."""

from typing import Optional

from src.models.identity import Identity, Role
from src.utils.errors import RoleError

ACCESS_DENIED = "You don't have permission to perform this action."


def require_role(identity: Optional[Identity], *roles: Role, message: Optional[str] = None) -> Identity:
    """Return ``identity`` when it holds one of ``roles``; raise RoleError otherwise."""
    if identity is None:
        raise RoleError("You must be signed in to perform this action.")
    if not identity.has_role(*roles):
        raise RoleError(message or ACCESS_DENIED)
    return identity
