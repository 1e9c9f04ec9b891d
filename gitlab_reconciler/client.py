"""GitLab REST API client with retry logic, error handling, and rate limiting."""

import time
from typing import Any

import httpx
import structlog
from asyncio_throttle import Throttler
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from gitlab_reconciler.config import ClientConfig, GitLabConfig
from gitlab_reconciler.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ClientError,
    ConflictError,
    NetworkError,
    RateLimitError,
    RemoteRequestError,
    ResourceNotFoundError,
    ServerError,
)
from gitlab_reconciler.pagination import Page, PageRequest

logger = structlog.get_logger(__name__)

RETRYABLE_ERRORS = (ServerError, NetworkError, RateLimitError)


class GitLabClient:
    """Async client for the GitLab REST API v4.

    Provides:
    - Token authentication
    - Retry logic with exponential backoff for network, 5xx and 429 failures
    - Client-side rate limiting
    - Typed failures carrying the HTTP status
    - Structured logging

    One instance is shared by every reconciliation cycle; it holds no
    per-resource state.
    """

    def __init__(
        self,
        gitlab_config: GitLabConfig,
        client_config: ClientConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitLab client.

        Args:
            gitlab_config: Base URL and token.
            client_config: Timeouts, retry and rate limit settings.
            transport: Optional httpx transport, used by tests.
        """
        self.gitlab_config = gitlab_config
        self.client_config = client_config or ClientConfig()
        self.base_url = str(gitlab_config.base_url).rstrip("/")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.client_config.timeout_seconds),
            headers={
                "User-Agent": self._get_default_user_agent(),
                "Accept": "application/json",
            },
            limits=httpx.Limits(max_connections=20, max_keepalive_connections=5),
            follow_redirects=True,
            transport=transport,
        )
        self._throttler = Throttler(
            rate_limit=self.client_config.rate_limit_per_minute, period=60
        )

        # Request tracking for logging and debugging
        self._request_count = 0
        self._error_count = 0
        self._last_request_time: float | None = None

        self._logger = logger.bind(base_url=self.base_url)

    async def __aenter__(self) -> "GitLabClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client and cleanup resources."""
        await self._client.aclose()
        self._logger.debug("Closed GitLab client")

    @property
    def page_size(self) -> int:
        return self.client_config.page_size

    def _get_auth_headers(self) -> dict[str, str]:
        return {"PRIVATE-TOKEN": self.gitlab_config.token.get_secret_value()}

    def _get_default_user_agent(self) -> str:
        from gitlab_reconciler import __version__

        return f"gitlab-reconciler/{__version__}"

    async def _make_request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make a single HTTP request with rate limiting and error mapping.

        Raises:
            RemoteRequestError: Subclass matching the failure.
        """
        async with self._throttler:
            url = f"/{path.lstrip('/')}"
            self._request_count += 1
            self._last_request_time = time.time()
            request_id = f"req_{self._request_count}"

            self._logger.debug(
                "Making API request",
                request_id=request_id,
                method=method,
                path=url,
                params=params,
                has_json_data=json_data is not None,
            )

            try:
                response = await self._client.request(
                    method=method,
                    url=url,
                    params=params,
                    json=json_data,
                    headers=self._get_auth_headers(),
                )
            except httpx.RequestError as e:
                self._error_count += 1
                self._logger.error(
                    "Network error during API request",
                    request_id=request_id,
                    error=str(e),
                )
                raise NetworkError(f"Network error: {e}") from e

            self._logger.debug(
                "API request completed",
                request_id=request_id,
                status_code=response.status_code,
                response_size=len(response.content),
            )

            if response.is_success:
                return response

            self._error_count += 1
            raise self._error_for_response(method, url, response)

    def _error_for_response(
        self, method: str, path: str, response: httpx.Response
    ) -> RemoteRequestError:
        status = response.status_code
        text = response.text
        message = f"{method} {path} failed"

        if status == 401:
            return AuthenticationError("Authentication failed", status, text)
        if status == 403:
            return AuthorizationError(f"{message}: forbidden", status, text)
        if status == 404:
            return ResourceNotFoundError(f"{message}: not found", status, text)
        if status == 409:
            return ConflictError(f"{message}: conflict", status, text)
        if status == 429:
            return RateLimitError(
                "Rate limit exceeded",
                status,
                text,
                retry_after=self._get_retry_after(response),
            )
        if 400 <= status < 500:
            return ClientError(f"Client error: {status}", status, text)
        if 500 <= status < 600:
            return ServerError(f"Server error: {status}", status, text)
        return RemoteRequestError(f"Unexpected status code: {status}", status, text)

    def _get_retry_after(self, response: httpx.Response) -> int | None:
        """Extract retry-after value from response headers."""
        retry_after = response.headers.get("Retry-After")
        if retry_after:
            try:
                return int(retry_after)
            except ValueError:
                pass
        return None

    async def request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request, retrying transient failures.

        Network errors, 5xx responses and rate limiting are retried with
        exponential backoff. Everything else is raised on the first attempt.
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.client_config.retry_attempts + 1),
            wait=wait_exponential(
                multiplier=self.client_config.retry_delay,
                max=30.0,
            ),
            retry=retry_if_exception_type(RETRYABLE_ERRORS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    self._logger.warning(
                        "Retrying API request",
                        method=method,
                        path=path,
                        attempt=attempt.retry_state.attempt_number,
                    )
                return await self._make_request(method, path, params, json_data)

        raise AssertionError("unreachable")  # pragma: no cover

    def _decode(self, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteRequestError(
                f"Failed to parse JSON response: {e}",
                status_code=response.status_code,
                response_text=response.text,
            ) from e

    async def get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make a GET request and return the decoded JSON body."""
        return self._decode(await self.request("GET", path, params=params))

    async def post_json(
        self, path: str, json_data: dict[str, Any] | None = None
    ) -> Any:
        """Make a POST request and return the decoded JSON body."""
        return self._decode(await self.request("POST", path, json_data=json_data))

    async def put_json(
        self, path: str, json_data: dict[str, Any] | None = None
    ) -> Any:
        """Make a PUT request and return the decoded JSON body."""
        return self._decode(await self.request("PUT", path, json_data=json_data))

    async def delete(self, path: str, params: dict[str, Any] | None = None) -> None:
        """Make a DELETE request."""
        await self.request("DELETE", path, params=params)

    async def get_page(
        self,
        path: str,
        page_request: PageRequest,
        params: dict[str, Any] | None = None,
    ) -> Page[dict[str, Any]]:
        """Fetch one page of a listing.

        GitLab reports the next page in the ``X-Next-Page`` header, which is
        empty on the last page. Endpoints that omit the header leave
        ``next_page`` unset so the collector falls back to page length.
        """
        query = dict(params or {})
        query.update(page_request.as_params())
        response = await self.request("GET", path, params=query)

        items = self._decode(response)
        if not isinstance(items, list):
            raise RemoteRequestError(
                f"Expected list response from {path}, got {type(items).__name__}",
                status_code=response.status_code,
            )

        next_page: int | None = None
        if "X-Next-Page" in response.headers:
            raw = response.headers["X-Next-Page"].strip()
            next_page = int(raw) if raw.isdigit() else 0

        return Page(items=items, next_page=next_page)

    async def health_check(self) -> dict[str, Any]:
        """Check that the API is reachable and the token is accepted.

        Returns:
            The instance version information.
        """
        version = await self.get_json("/version")
        self._logger.debug("Health check passed", version=version.get("version"))
        return version

    def get_stats(self) -> dict[str, Any]:
        """Get client statistics for monitoring."""
        return {
            "request_count": self._request_count,
            "error_count": self._error_count,
            "error_rate": self._error_count / max(self._request_count, 1),
            "last_request_time": self._last_request_time,
            "rate_limit_per_minute": self.client_config.rate_limit_per_minute,
            "base_url": self.base_url,
        }
