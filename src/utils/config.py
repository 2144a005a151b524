"""Environment-aware configuration for the marketplace client."""

import os
from typing import Optional
from pydantic import BaseModel, Field, field_validator

from src.utils.errors import ConfigurationError

DEFAULT_API_URL = "http://localhost:5000/api"
_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")


def _env(*names: str) -> Optional[str]:
    """Return the first non-empty environment variable among ``names``."""
    for name in names:
        value = os.environ.get(name, "").strip()
        if value:
            return value
    return None


class ClientConfig(BaseModel):
    """Settings shared by every component of a MarketplaceClient."""
    api_base_url: str = Field(DEFAULT_API_URL, description="Backend REST base URL")
    request_timeout_seconds: float = Field(15.0, gt=0, description="Default timeout for backend calls")
    reconcile_timeout_seconds: float = Field(
        3.0,
        gt=0,
        description="Upper bound on backend reconciliation during sign-in"
    )
    session_file: Optional[str] = Field(None, description="Durable session file; None keeps the session in memory")
    supabase_url: Optional[str] = None
    supabase_anon_key: Optional[str] = None
    stripe_publishable_key: Optional[str] = None

    @field_validator("api_base_url")
    @classmethod
    def validate_api_url(cls, url: str) -> str:
        """Strip trailing slash; remote hosts must use HTTPS."""
        url = url.strip().rstrip("/")
        if not url:
            raise ValueError("API base URL cannot be empty")
        if not url.startswith(("http://", "https://")):
            raise ValueError(f"API base URL must be http(s): {url}")
        if url.startswith("http://") and not any(host in url for host in _LOCAL_HOSTS):
            raise ValueError(f"Non-local API base URL must use HTTPS. Got: {url}")
        return url

    @classmethod
    def from_env(cls) -> "ClientConfig":
        """
        Build configuration from environment variables.

        Priority for the API URL: MARKETPLACE_API_URL, then API_BASE_URL, then the local default.
        """
        values = {
            "api_base_url": _env("MARKETPLACE_API_URL", "API_BASE_URL") or DEFAULT_API_URL,
            "session_file": _env("MARKETPLACE_SESSION_FILE"),
            "supabase_url": _env("SUPABASE_URL"),
            "supabase_anon_key": _env("SUPABASE_ANON_KEY"),
            "stripe_publishable_key": _env("STRIPE_PUBLISHABLE_KEY", "STRIPE_PUBLIC_KEY"),
        }
        request_timeout = _env("MARKETPLACE_REQUEST_TIMEOUT_SECONDS")
        if request_timeout:
            values["request_timeout_seconds"] = request_timeout
        reconcile_timeout = _env("MARKETPLACE_RECONCILE_TIMEOUT_SECONDS")
        if reconcile_timeout:
            values["reconcile_timeout_seconds"] = reconcile_timeout

        try:
            return cls(**values)
        except ValueError as e:
            raise ConfigurationError(f"Invalid marketplace client configuration: {e}") from e
