"""Authenticated, rate-limited HTTP access to one Azure DevOps project."""

import logging
import math
import uuid
from typing import Any

import requests
from opentelemetry import trace
from requests.adapters import HTTPAdapter

from .auth import AuthManager
from .config import AdoSyncConfig
from .errors import (
    AdoApiError,
    AdoAuthenticationError,
    AdoConcurrencyError,
    AdoConfigurationError,
    AdoNetworkError,
    AdoRateLimitError,
    AdoTimeoutError,
)
from .rate_limiter import RateLimiter
from .retry import RetryManager
from .telemetry import get_telemetry_manager, initialize_telemetry

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

JSON_PATCH_CONTENT_TYPE = "application/json-patch+json"


def _parse_retry_after(value: str | None, default: int) -> int:
    """Seconds to wait from a Retry-After header, rounded up to whole seconds."""
    if not value:
        return default
    try:
        seconds = float(value)
    except ValueError:
        return default
    if not math.isfinite(seconds) or seconds < 0:
        return default
    return math.ceil(seconds)


def _error_message(response: requests.Response) -> str:
    """Extract the server message (and inner exception message) from an error body."""
    try:
        body = response.json()
    except ValueError:
        return response.text[:500] if response.text else response.reason or ""

    if not isinstance(body, dict):
        return str(body)

    message = body.get("message") or response.reason or ""
    inner = body.get("innerException")
    if isinstance(inner, dict) and inner.get("message"):
        message = f"{message} ({inner['message']})"
    return message


class AdoClient:
    """
    A client for the Azure DevOps REST API, bound to one organization and project.

    Every request goes through the shared ``RateLimiter``. A 429 response is
    replayed exactly once after the server's Retry-After interval; connection
    errors, timeouts and 5xx responses are retried by ``RetryManager``.

    Authentication (in order of precedence):
    1. Explicit PAT parameter (or ``config.pat``)
    2. ``ADO_PAT`` environment variable
    3. ``AZURE_DEVOPS_EXT_PAT`` environment variable

    Raises:
        AdoConfigurationError: If organization or project is missing.
        AdoAuthenticationError: If no credential is available.
    """

    def __init__(
        self,
        organization: str | None = None,
        project: str | None = None,
        pat: str | None = None,
        config: AdoSyncConfig | None = None,
        rate_limiter: RateLimiter | None = None,
        session: requests.Session | None = None,
        auth_manager: AuthManager | None = None,
    ):
        self.config = config or AdoSyncConfig(organization=organization, project=project, pat=pat)
        self.organization = organization or self.config.organization
        self.project = project or self.config.project

        if not self.organization or not self.project:
            raise AdoConfigurationError(
                "Organization and project are required. Pass them explicitly or set "
                "ADO_ORGANIZATION and ADO_PROJECT.",
                context={"organization": self.organization, "project": self.project},
            )

        self.base_url = f"https://dev.azure.com/{self.organization}"
        self.api_version = self.config.api_version

        self.telemetry = get_telemetry_manager()
        if self.config.telemetry.enabled and not self.telemetry.initialized:
            self.telemetry = initialize_telemetry(self.config.telemetry)

        self.retry_manager = RetryManager(self.config.retry)
        self.rate_limiter = rate_limiter or RateLimiter(
            max_requests=self.config.rate_limit.max_requests,
            window_seconds=self.config.rate_limit.window_seconds,
            threshold=self.config.rate_limit.threshold,
        )
        self.session = session or self._create_session()
        self.correlation_id = str(uuid.uuid4())

        self.auth_manager = auth_manager or AuthManager.default(pat or self.config.pat)
        self.headers = self.auth_manager.get_auth_headers()

        logger.info(
            f"AdoClient initialized for {self.organization}/{self.project} "
            f"with correlation_id={self.correlation_id}"
        )

    def _create_session(self) -> requests.Session:
        """Create a requests session with a pooled HTTP adapter."""
        session = requests.Session()
        adapter = HTTPAdapter(pool_connections=4, pool_maxsize=10)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        return session

    def close(self):
        """Close the underlying HTTP session."""
        logger.debug(f"Closing session for {self.organization}/{self.project}")
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    @property
    def project_api_url(self) -> str:
        """Base URL of project-scoped REST resources."""
        return f"{self.base_url}/{self.project}/_apis"

    def work_item_web_url(self, work_item_id: int) -> str:
        """Browser URL of a work item."""
        return f"{self.base_url}/{self.project}/_workitems/edit/{work_item_id}"

    def work_item_api_url(self, work_item_id: int) -> str:
        """REST URL used as the target of work item relations."""
        return f"{self.project_api_url}/wit/workItems/{work_item_id}"

    def pull_request_web_url(self, repository: str, pull_request_id: int) -> str:
        return f"{self.base_url}/{self.project}/_git/{repository}/pullrequest/{pull_request_id}"

    def _validate_response(self, response: requests.Response, method: str, url: str):
        """
        Map an HTTP response to the ado-sync error taxonomy.

        Raises:
            AdoAuthenticationError: On 401 or an HTML sign-in page.
            AdoNetworkError: On 5xx (retryable).
            AdoConcurrencyError: On 409/412 (revision mismatch).
            AdoApiError: On any other 4xx.
        """
        context = {"correlation_id": self.correlation_id, "method": method, "url": url}
        status = response.status_code

        content_type = response.headers.get("Content-Type", "")
        if status == 401 or ("text/html" in content_type and "Sign In" in response.text):
            logger.error(f"Authentication failed for {method} {url} (status {status})")
            raise AdoAuthenticationError(
                "Authentication failed. The Personal Access Token (PAT) is likely "
                "invalid or expired.",
                context={**context, "status_code": status},
            )

        if status >= 500:
            raise AdoNetworkError(
                f"Server error {status} for {method} {url}", status_code=status, context=context
            )

        if status >= 400:
            message = _error_message(response)
            logger.error(f"HTTP {status} for {method} {url}: {message}")
            if status in (409, 412):
                raise AdoConcurrencyError(
                    f"Revision mismatch for {method} {url}: {message}",
                    status_code=status,
                    context=context,
                )
            raise AdoApiError(
                f"Azure DevOps API error {status}: {message}", status_code=status, context=context
            )

    def _perform(self, method: str, url: str, **kwargs) -> requests.Response:
        """Send one request after passing through the rate limiter."""
        waited = self.rate_limiter.throttle()
        if waited:
            self.telemetry.record_rate_limit_wait(waited, "window")

        try:
            return self.session.request(method, url, **kwargs)
        except requests.exceptions.Timeout as e:
            raise AdoTimeoutError(
                f"Request timeout for {method} {url}",
                timeout_seconds=self.config.request_timeout_seconds,
                context={"correlation_id": self.correlation_id, "method": method, "url": url},
                original_exception=e,
            ) from e
        except requests.exceptions.RequestException as e:
            raise AdoNetworkError(
                f"Network error for {method} {url}: {e}",
                context={
                    "correlation_id": self.correlation_id,
                    "method": method,
                    "url": url,
                    "error_type": type(e).__name__,
                },
                original_exception=e,
            ) from e

    def _send_request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        json: Any = None,
        content_type: str | None = None,
        api_version: str | None = None,
    ) -> Any:
        """
        Send an authenticated request and return the parsed JSON body.

        Args:
            method: HTTP method (GET, POST, PATCH, DELETE)
            url: Full URL of the endpoint
            params: Query parameters; ``api-version`` is added automatically
            json: Request body
            content_type: Overrides the default ``application/json`` content type
            api_version: Overrides the configured API version

        Returns:
            The decoded JSON response, or None for an empty body.
        """
        query = {"api-version": api_version or self.api_version}
        query.update(params or {})

        headers = dict(self.headers)
        if content_type:
            headers["Content-Type"] = content_type

        request_kwargs = {
            "headers": headers,
            "params": query,
            "timeout": self.config.request_timeout_seconds,
        }
        if json is not None:
            request_kwargs["json"] = json

        @self.retry_manager.retry_on_failure
        def make_request():
            response = self._perform(method, url, **request_kwargs)

            if response.status_code == 429:
                retry_after = _parse_retry_after(
                    response.headers.get("Retry-After"), self.config.rate_limit.default_retry_after
                )
                self.telemetry.record_rate_limit_wait(retry_after, "retry_after")
                self.rate_limiter.handle_retry_after(retry_after)
                response = self._perform(method, url, **request_kwargs)

                if response.status_code == 429:
                    raise AdoRateLimitError(
                        f"Rate limit exceeded for {method} {url}",
                        retry_after=_parse_retry_after(
                            response.headers.get("Retry-After"),
                            self.config.rate_limit.default_retry_after,
                        ),
                        context={
                            "correlation_id": self.correlation_id,
                            "method": method,
                            "url": url,
                        },
                    )

            self._validate_response(response, method, url)
            return response.json() if response.content else None

        with self.telemetry.trace_api_call(
            method.lower(), **{"ado.url": url, "correlation_id": self.correlation_id}
        ):
            return make_request()

    def get(self, url: str, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return self._send_request("GET", url, params=params, **kwargs)

    def post(self, url: str, json: Any = None, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return self._send_request("POST", url, params=params, json=json, **kwargs)

    def patch(
        self, url: str, json: Any = None, params: dict[str, Any] | None = None, **kwargs
    ) -> Any:
        return self._send_request("PATCH", url, params=params, json=json, **kwargs)

    def delete(self, url: str, params: dict[str, Any] | None = None, **kwargs) -> Any:
        return self._send_request("DELETE", url, params=params, **kwargs)

    def test_connection(self) -> bool:
        """
        Verify credentials and project access with a single project lookup.

        Returns:
            bool: True when the project could be read.

        Raises:
            AdoAuthenticationError: If the credential is rejected.
        """
        url = f"{self.project_api_url}/wit/workitemtypes"
        with tracer.start_as_current_span("test_connection") as span:
            span.set_attribute("ado.organization", self.organization)
            span.set_attribute("ado.project", self.project)
            try:
                self.get(url)
            except AdoAuthenticationError:
                logger.error("Authentication failed - invalid or expired PAT")
                raise
            except (AdoApiError, AdoNetworkError, AdoTimeoutError, AdoRateLimitError) as e:
                logger.error(f"Connection test failed: {e}")
                return False

        logger.info(f"Connected to {self.organization}/{self.project}")
        return True
