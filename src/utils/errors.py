"""Error handling utilities."""

from typing import Optional


class MarketplaceError(Exception):
    """Base exception for the marketplace client."""
    pass


class ConfigurationError(MarketplaceError):
    """Client configuration is missing or invalid."""
    pass


class AuthDegraded(MarketplaceError):
    """Backend reconciliation failed; session continues with provider-only trust.

    Raised and caught inside the session manager only. Never surfaced to callers.
    """
    pass


class IdentityProviderError(MarketplaceError):
    """Identity provider operation failed."""
    pass


class ValidationError(MarketplaceError):
    """Input rejected before or by the backend (bounds, missing fields)."""
    pass


class DuplicateOfferError(ValidationError):
    """Buyer already has an active offer on this property."""

    cascade_note = (
        "If the agent accepts an offer for a specific property, "
        "other offers for that property will be rejected automatically."
    )

    def __init__(self, message: Optional[str] = None, status: str = "active"):
        article = "an" if status[:1] in "aeiou" else "a"
        super().__init__(
            message or f"You already have {article} {status} offer for this property. {self.cascade_note}"
        )


class RoleError(MarketplaceError):
    """Action attempted by a role that may not perform it."""
    pass


class OfferStateError(MarketplaceError):
    """Offer is not in a status that allows the requested transition."""
    pass


class PaymentError(MarketplaceError):
    """Payment processor reported a failure. The offer stays payable."""
    pass


class NetworkError(MarketplaceError):
    """Backend unreachable or timed out. Retryable by the caller."""
    pass


class ApiError(MarketplaceError):
    """Backend answered with a non-2xx status."""

    def __init__(self, message: str, status_code: int, code: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthenticationError(ApiError):
    """Backend rejected the bearer credential (401)."""
    pass


class NotFoundError(ApiError):
    """Requested resource does not exist (404)."""
    pass
