"""
API Client Framework
--------------------
Per-service async HTTP client with secret isolation.
API keys come from the environment and never reach a model prompt.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional, Tuple
import os
import time

import httpx

from infra.logging import get_logger


class APIStatus(Enum):
    """Outcome class of an API call."""
    SUCCESS = auto()
    RATE_LIMITED = auto()
    AUTH_ERROR = auto()
    BAD_REQUEST = auto()
    NOT_FOUND = auto()
    SERVER_ERROR = auto()
    TIMEOUT = auto()
    NETWORK_ERROR = auto()


@dataclass
class APIConfig:
    """Connection settings for one remote service."""
    name: str
    base_url: str
    api_key_env: str  # Name of the environment variable, never the key
    api_key_header: str = "Authorization"
    timeout_seconds: float = 30.0
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class APIResponse:
    """Response from an API call."""
    status: APIStatus
    data: Optional[Any] = None
    error: Optional[str] = None
    status_code: int = 0
    response_time_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status is APIStatus.SUCCESS


_STATUS_BY_CODE = {
    400: (APIStatus.BAD_REQUEST, "Bad request"),
    401: (APIStatus.AUTH_ERROR, "Authentication failed"),
    403: (APIStatus.AUTH_ERROR, "Authentication failed"),
    404: (APIStatus.NOT_FOUND, "Resource not found"),
    429: (APIStatus.RATE_LIMITED, "Rate limit exceeded"),
}


def classify_status(code: int) -> Tuple[APIStatus, Optional[str]]:
    """Map an HTTP status code to (APIStatus, error message)."""
    if 200 <= code < 300:
        return APIStatus.SUCCESS, None
    if code in _STATUS_BY_CODE:
        return _STATUS_BY_CODE[code]
    if code >= 500:
        return APIStatus.SERVER_ERROR, f"Server error: {code}"
    return APIStatus.SERVER_ERROR, f"Unexpected status: {code}"


class APIClient:
    """
    Base API client with error handling.

    Rules:
    - Keys are read from the environment at construction
    - Non-2xx answers and transport failures become an APIResponse,
      callers decide what is retryable
    """

    def __init__(self, config: APIConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._transport = transport
        self._logger = get_logger(f"api.{config.name}")

        self._api_key = os.getenv(config.api_key_env) or None
        if self._api_key is None:
            self._logger.info(f"API key not set: {config.api_key_env}")

    @property
    def is_configured(self) -> bool:
        return self._api_key is not None

    def _auth_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "User-Agent": "Sentinel/1.0"}
        headers.update(self.config.headers)
        if self.config.api_key_header == "Authorization":
            headers["Authorization"] = f"Bearer {self._api_key}"
        else:
            headers[self.config.api_key_header] = self._api_key
        return headers

    async def post(self, endpoint: str, data: Optional[Dict] = None) -> APIResponse:
        """POST a JSON body to base_url/endpoint."""
        if not self.is_configured:
            return APIResponse(
                status=APIStatus.AUTH_ERROR,
                error=f"API key not configured: {self.config.api_key_env}",
            )

        url = f"{self.config.base_url.rstrip('/')}/{endpoint.lstrip('/')}"
        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.config.timeout_seconds, transport=self._transport
            ) as client:
                response = await client.post(url, json=data, headers=self._auth_headers())
        except httpx.TimeoutException:
            return APIResponse(status=APIStatus.TIMEOUT, error="Request timed out")
        except httpx.HTTPError as e:
            return APIResponse(status=APIStatus.NETWORK_ERROR, error=f"Network error: {e}")

        elapsed_ms = (time.perf_counter() - start) * 1000
        status, error = classify_status(response.status_code)
        payload = None

        if status is APIStatus.SUCCESS and response.content:
            try:
                payload = response.json()
            except ValueError:
                status, error = APIStatus.SERVER_ERROR, "Response body is not JSON"

        if error:
            self._logger.warning(f"POST {endpoint}: {error}")

        return APIResponse(
            status=status,
            data=payload,
            error=error,
            status_code=response.status_code,
            response_time_ms=elapsed_ms,
        )
