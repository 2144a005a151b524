"""
Async HTTP client for the marketplace backend.

Every request goes through BearerTokenAuth, which reads the session store on each
request and attaches the backend token, else the provider token, else nothing.
Non-2xx responses and transport failures are mapped onto the client error taxonomy.
"""

from typing import Any, Generator, Optional

import httpx

from src.services.session_store import SessionStore
from src.utils.config import ClientConfig
from src.utils.errors import (
    ApiError,
    AuthenticationError,
    DuplicateOfferError,
    NetworkError,
    NotFoundError,
    RoleError,
    ValidationError,
)
from src.utils.logging import get_correlation_id, get_structured_logger, log_timing
from src.utils.logging_config import LoggingConfig

logger = get_structured_logger(__name__)

DUPLICATE_OFFER_CODE = "DUPLICATE_OFFER"


def authorization_header(store: SessionStore) -> dict[str, str]:
    """
    Authorization header for the credentials currently in ``store``.

    Returns {"Authorization": "Bearer <token>"} or {} when no token is stored.
    """
    token = store.tokens().bearer
    if token:
        return {"Authorization": f"Bearer {token}"}
    return {}


class BearerTokenAuth(httpx.Auth):
    """httpx auth flow applying the session token precedence to each request."""

    def __init__(self, store: SessionStore):
        self.store = store

    def auth_flow(self, request: httpx.Request) -> Generator[httpx.Request, httpx.Response, None]:
        request.headers.update(authorization_header(self.store))
        yield request


def _error_message(response: httpx.Response) -> tuple[str, Optional[str]]:
    """Pull a human readable message and machine code out of an error body."""
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        message = body.get("error") or body.get("message") or response.reason_phrase
        return str(message), body.get("code")
    return response.reason_phrase or f"HTTP {response.status_code}", None


def raise_for_api_error(response: httpx.Response) -> None:
    """Raise the taxonomy error matching a non-2xx response."""
    if response.is_success:
        return

    status = response.status_code
    message, code = _error_message(response)

    if code == DUPLICATE_OFFER_CODE:
        raise DuplicateOfferError()
    if status == 401:
        raise AuthenticationError(message, status, code)
    if status == 403:
        raise RoleError(message)
    if status == 404:
        raise NotFoundError(message, status, code)
    if status in (400, 422):
        raise ValidationError(message)
    raise ApiError(message, status, code)


class ApiClient:
    """Thin JSON client bound to one session store."""

    def __init__(
        self,
        config: ClientConfig,
        store: SessionStore,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config
        self.store = store
        self._client = httpx.AsyncClient(
            base_url=config.api_base_url,
            timeout=config.request_timeout_seconds,
            auth=BearerTokenAuth(store),
            headers={"Accept": "application/json", "Content-Type": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def request(
        self,
        method: str,
        path: str,
        json: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Send a request and return the decoded JSON body (None for empty bodies).

        Raises:
            NetworkError: timeout or transport failure
            ApiError and subclasses, DuplicateOfferError, RoleError, ValidationError: non-2xx
        """
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        correlation_id = get_correlation_id()
        if correlation_id:
            extra["headers"] = {LoggingConfig.LOG_CORRELATION_ID_HEADER: correlation_id}

        try:
            with log_timing("backend_request", logger=logger, method=method, path=path):
                response = await self._client.request(method, path, json=json, params=params, **extra)
        except httpx.TimeoutException as e:
            logger.warning("Backend request timed out", method=method, path=path)
            raise NetworkError(f"Request to {path} timed out. Please try again.") from e
        except httpx.RequestError as e:
            logger.warning("Backend request failed", method=method, path=path, error=type(e).__name__)
            raise NetworkError(f"Cannot reach the marketplace backend ({type(e).__name__}).") from e

        if not response.is_success:
            logger.info("Backend returned error status", method=method, path=path, status_code=response.status_code)
        raise_for_api_error(response)

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

    async def get(self, path: str, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def patch(self, path: str, json: Optional[Any] = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)
