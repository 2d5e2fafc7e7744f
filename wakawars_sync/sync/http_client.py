"""Base HTTP client for the WakaTime API."""

import base64
import logging
from typing import Optional

import requests

from ..config import DEFAULT_API_URL

__all__ = [
    "BaseApiClient",
    "WakaTimeClientError",
    "ProviderNetworkError",
]

logger = logging.getLogger(__name__)


class WakaTimeClientError(Exception):
    """WakaTime client error."""

    pass


class ProviderNetworkError(WakaTimeClientError):
    """The request could not complete (DNS, connect, timeout, ...)."""

    pass


class BaseApiClient:
    """Base HTTP client.

    Handles:
    - Session management
    - Basic auth headers (API key as username, empty password)
    - Turning transport failures into ProviderNetworkError

    Response interpretation is left to subclasses; any HTTP status comes
    back as a response, only transport failures raise.
    """

    USER_AGENT = "WakaWars-Sync/1.0.0"

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        timeout: int = 30,
        session: Optional[requests.Session] = None,
        user_agent: Optional[str] = None,
    ):
        """Initialize base API client.

        Args:
            api_url: WakaTime API base URL
            timeout: Request timeout in seconds
            session: Optional requests session (for dependency injection/testing)
            user_agent: Override for the User-Agent header
        """
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.user_agent = user_agent or self.USER_AGENT
        self._session = session or requests.Session()
        self._owns_session = session is None  # Track if we created the session

    def _get_headers(self, api_key: str) -> dict:
        """Get request headers with basic authentication."""
        token = base64.b64encode(f"{api_key}:".encode("utf-8")).decode("ascii")
        return {
            "Accept": "application/json",
            "User-Agent": self.user_agent,
            "Authorization": f"Basic {token}",
        }

    def _url(self, endpoint: str) -> str:
        return f"{self.api_url}/{endpoint.lstrip('/')}"

    def _get(self, endpoint: str, api_key: str) -> requests.Response:
        """GET an endpoint authenticated with ``api_key``.

        Returns:
            The raw response, whatever its status code

        Raises:
            ProviderNetworkError: If no response was received
        """
        url = self._url(endpoint)
        try:
            response = self._session.get(
                url, headers=self._get_headers(api_key), timeout=self.timeout
            )
        except requests.exceptions.ConnectionError as e:
            raise ProviderNetworkError("Cannot connect to WakaTime API") from e
        except requests.exceptions.Timeout as e:
            raise ProviderNetworkError("Request timed out") from e
        except requests.exceptions.RequestException as e:
            raise ProviderNetworkError(str(e) or "Network error") from e

        logger.debug(f"GET {endpoint} -> {response.status_code}")
        return response

    def close(self) -> None:
        """Close the session if we own it."""
        if self._owns_session and self._session is not None:
            self._session.close()
            self._session = None

    def __del__(self) -> None:
        try:
            self.close()
        except Exception:
            pass

    def __enter__(self) -> "BaseApiClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
