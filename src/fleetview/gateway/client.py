"""
Backend gateway for calls to the backend data API.

Every outbound call takes the same path: build the URL with query parameters,
attach auth and no-cache headers, issue the request, check the status, parse
the body, or raise a classified GatewayError. There is no retry or backoff
here; retry policy belongs to the caller.
"""

import logging
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from fleetview import __version__
from fleetview.core.config import BackendConfig
from fleetview.core.errors import ConfigurationError, NotFound, UpstreamUnavailable


logger = logging.getLogger(__name__)

SECRET_HEADER = "X-Internal-Secret"
PRINCIPAL_HEADER = "X-MS-CLIENT-PRINCIPAL-ID"


class NotFoundPolicy(str, Enum):
    """How a caller wants an upstream 404 reported."""

    RAISE = "raise"  # NotFound
    EMPTY = "empty"  # None, i.e. "no data"


class BackendGateway:
    """
    Uniform outbound call wrapper around httpx.AsyncClient.

    Usage:
        gateway = BackendGateway(base_url="http://api:8000", internal_secret="s3cret")
        devices = await gateway.call("/api/devices")
        module = await gateway.call(
            "/api/device/ABC123/modules/hardware",
            not_found=NotFoundPolicy.EMPTY,
        )
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        internal_secret: Optional[str] = None,
        client_principal_id: Optional[str] = None,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the gateway.

        A missing base URL is not an error here so the service can start;
        every call made without one raises ConfigurationError.

        Args:
            base_url: Backend data API base URL (e.g. "http://localhost:8000")
            internal_secret: Shared secret header value (takes precedence)
            client_principal_id: Platform identity header value
            timeout: Per-call timeout in seconds
            transport: Optional httpx transport (tests inject a MockTransport)
        """
        self.base_url = base_url.rstrip("/") if base_url else None
        self.internal_secret = internal_secret
        self.client_principal_id = client_principal_id
        self.timeout = timeout
        self.calls = 0

        # Create async HTTP client (will be reused)
        self.client = httpx.AsyncClient(timeout=self.timeout, transport=transport)

    @classmethod
    def from_config(
        cls,
        config: BackendConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "BackendGateway":
        """Build a gateway from the backend configuration group."""
        return cls(
            base_url=config.base_url,
            internal_secret=config.internal_secret,
            client_principal_id=config.client_principal_id,
            timeout=config.timeout,
            transport=transport,
        )

    @property
    def configured(self) -> bool:
        return bool(self.base_url)

    def auth_headers(self) -> Dict[str, str]:
        """Shared secret or platform identity, never both."""
        if self.internal_secret:
            return {SECRET_HEADER: self.internal_secret}
        if self.client_principal_id:
            return {PRINCIPAL_HEADER: self.client_principal_id}
        return {}

    def build_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {
            "Cache-Control": "no-cache",
            "Pragma": "no-cache",
            "User-Agent": f"FleetView-Gateway/{__version__}",
        }
        if extra:
            headers.update(extra)
        # Auth last so a caller cannot override it
        headers.update(self.auth_headers())
        return headers

    async def call(
        self,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        not_found: NotFoundPolicy = NotFoundPolicy.RAISE,
    ) -> Any:
        """
        GET an endpoint of the backend data API.

        Args:
            endpoint: Path relative to the base URL (e.g. "/api/devices")
            params: Query parameters; None values are dropped
            headers: Extra request headers
            not_found: Whether a 404 raises NotFound or returns None

        Returns:
            Parsed JSON payload (None for a 404 under NotFoundPolicy.EMPTY)

        Raises:
            ConfigurationError: API base URL is not configured
            NotFound: Upstream 404 under NotFoundPolicy.RAISE
            UpstreamUnavailable: Network failure, timeout, non-2xx, bad body
        """
        if not self.base_url:
            logger.error("API_BASE_URL environment variable not configured")
            raise ConfigurationError(
                "API configuration error",
                details="API_BASE_URL environment variable not configured",
                endpoint=endpoint,
            )

        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        query = {k: v for k, v in (params or {}).items() if v is not None}

        self.calls += 1
        try:
            response = await self.client.get(
                url,
                params=query,
                headers=self.build_headers(headers),
            )
        except httpx.TimeoutException as e:
            logger.warning(f"Backend call to {endpoint} timed out after {self.timeout}s")
            raise UpstreamUnavailable(
                f"Backend request timed out: {endpoint}",
                details=str(e) or type(e).__name__,
                endpoint=endpoint,
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"Backend call to {endpoint} failed: {e}")
            raise UpstreamUnavailable(
                f"Backend request failed: {endpoint}",
                details=str(e) or type(e).__name__,
                endpoint=endpoint,
            ) from e

        if response.status_code == 404:
            logger.debug(f"Backend returned 404 for {endpoint}")
            if not_found == NotFoundPolicy.EMPTY:
                return None
            raise NotFound(f"Not found: {endpoint}", endpoint=endpoint, status=404)

        if response.status_code >= 400:
            logger.warning(
                f"Backend returned status {response.status_code} for {endpoint}"
            )
            raise UpstreamUnavailable(
                f"Backend returned {response.status_code}: {endpoint}",
                details=response.reason_phrase or None,
                endpoint=endpoint,
                status=response.status_code,
            )

        try:
            payload = response.json()
        except ValueError as e:
            logger.warning(f"Backend returned an undecodable body for {endpoint}")
            raise UpstreamUnavailable(
                f"Backend returned invalid JSON: {endpoint}",
                endpoint=endpoint,
                status=response.status_code,
            ) from e

        logger.debug(f"Backend call to {endpoint} succeeded ({response.status_code})")
        return payload

    async def close(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self):
        """Context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        await self.close()


def create_gateway(
    config: Optional[BackendConfig] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> BackendGateway:
    """
    Factory function to create a BackendGateway.

    Args:
        config: Backend configuration (defaults to the global config)
        transport: Optional httpx transport

    Returns:
        Configured BackendGateway instance
    """
    if config is None:
        from fleetview.core.config import get_config

        config = get_config().backend
    return BackendGateway.from_config(config, transport=transport)
