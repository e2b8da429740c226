"""HTTP client for the provider's attribute and term listings."""

from datetime import datetime
from typing import Any, Optional
from urllib.parse import quote

import requests
import structlog
from pydantic import TypeAdapter, ValidationError

from taxonomy_sync.errors import ConfigurationError, TransportError
from taxonomy_sync.models.config import DEFAULT_NAMESPACE, ClientConfig
from taxonomy_sync.models.taxonomy import AttributeDefinition, AttributeTerm, format_timestamp
from taxonomy_sync.utils.retry import exponential_backoff_retry

log = structlog.stdlib.get_logger()

DEFAULT_TIMEOUT_SECONDS = 30.0

_attribute_list = TypeAdapter(list[AttributeDefinition])
_term_list = TypeAdapter(list[AttributeTerm])


class ProviderTransport:
    """Authenticated, blocking access to the provider API.

    Every payload is validated into the taxonomy models here, so callers
    never deal with missing keys or loosely typed values.
    """

    def __init__(
        self,
        api_url: Optional[str],
        username: Optional[str],
        app_password: Optional[str],
        namespace: str = DEFAULT_NAMESPACE,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_retries: int = 0,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize provider transport.

        Args:
            api_url: API root URL of the provider (namespace is appended)
            username: Provider username
            app_password: Application password issued by the provider
            namespace: Versioned path namespace
            timeout: Per-request timeout in seconds
            max_retries: Retries for connection failures (0 = single attempt)
            session: Optional requests session (injectable for tests)
        """
        self._api_url = (api_url or "").rstrip("/")
        self._username = username or ""
        self._app_password = app_password or ""
        self._namespace = namespace.strip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._send = exponential_backoff_retry(
            max_retries=max_retries,
            base_delay=1.0,
            max_delay=30.0,
            exceptions=(requests.ConnectionError,),
        )(self._send_once)

        log.info(
            "provider_transport_initialized",
            api_url=self._api_url,
            namespace=self._namespace,
            timeout=timeout,
            configured=self.is_configured,
        )

    @classmethod
    def from_config(cls, config: ClientConfig, namespace: str = DEFAULT_NAMESPACE) -> "ProviderTransport":
        return cls(
            api_url=config.api_url,
            username=config.username,
            app_password=config.app_password,
            namespace=namespace,
            timeout=config.timeout_seconds,
            max_retries=config.max_retries,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_url and self._username and self._app_password)

    @property
    def session(self) -> requests.Session:
        return self._session

    @property
    def timeout(self) -> float:
        return self._timeout

    def build_url(self, endpoint: str) -> str:
        return f"{self._api_url}/{self._namespace}{endpoint}"

    def list_attributes(
        self, modified_since: datetime | str | None = None
    ) -> list[AttributeDefinition]:
        """Fetch every attribute definition, optionally filtered by a cursor."""
        payload = self.get_json("/attributes", params=self._cursor_params(modified_since))
        return self._validate(_attribute_list, payload, "/attributes")

    def get_attribute(self, slug: str) -> AttributeDefinition:
        """Fetch a single attribute definition by its slug."""
        endpoint = f"/attributes/{quote(slug, safe='')}"
        payload = self.get_json(endpoint)
        return self._validate(TypeAdapter(AttributeDefinition), payload, endpoint)

    def list_terms(
        self, attribute_slug: str, modified_since: datetime | str | None = None
    ) -> list[AttributeTerm]:
        """Fetch the terms of one attribute, tagged with the attribute slug."""
        endpoint = f"/attributes/{quote(attribute_slug, safe='')}/terms"
        payload = self.get_json(endpoint, params=self._cursor_params(modified_since))
        terms = self._validate(_term_list, payload, endpoint)
        return [term.model_copy(update={"attribute_slug": attribute_slug}) for term in terms]

    def check_health(self) -> bool:
        """Return True if the provider's health endpoint answers ``ok``."""
        payload = self.get_json("/health")
        return isinstance(payload, dict) and payload.get("status") == "ok"

    def get_json(self, endpoint: str, params: Optional[dict[str, Any]] = None) -> Any:
        """
        Perform an authenticated GET and decode the JSON body.

        Args:
            endpoint: Path below the namespace, e.g. ``/attributes``
            params: Optional query parameters

        Returns:
            Decoded JSON body

        Raises:
            ConfigurationError: If endpoint or credentials are missing
            TransportError: On network failure, timeout, non-2xx status or bad JSON
        """
        if not self.is_configured:
            raise ConfigurationError("API credentials are not configured.")

        url = self.build_url(endpoint)
        log.debug("provider_request", url=url, params=params)

        try:
            response = self._send(url, params or {})
        except requests.Timeout as e:
            log.error("provider_request_timed_out", endpoint=endpoint, timeout=self._timeout)
            raise TransportError(
                f"API request to {endpoint} timed out after {self._timeout} seconds.",
                endpoint=endpoint,
            ) from e
        except requests.RequestException as e:
            log.error("provider_request_failed", endpoint=endpoint, error=str(e))
            raise TransportError(f"API request to {endpoint} failed: {e}", endpoint=endpoint) from e

        status_code = response.status_code
        if status_code < 200 or status_code >= 300:
            message = f"API request to {endpoint} failed with status code {status_code}."
            details = self._error_message(response)
            if details:
                message += f" Details: {details}"
            log.error("provider_request_rejected", endpoint=endpoint, status_code=status_code)
            raise TransportError(message, status_code=status_code, endpoint=endpoint)

        try:
            return response.json()
        except ValueError as e:
            log.error("provider_response_not_json", endpoint=endpoint)
            raise TransportError(
                f"Failed to decode JSON response from {endpoint}.",
                status_code=status_code,
                endpoint=endpoint,
            ) from e

    def _send_once(self, url: str, params: dict[str, Any]) -> requests.Response:
        return self._session.get(
            url,
            params=params,
            auth=(self._username, self._app_password),
            timeout=self._timeout,
        )

    def _cursor_params(self, modified_since: datetime | str | None) -> dict[str, Any]:
        if modified_since is None or modified_since == "":
            return {}
        if isinstance(modified_since, datetime):
            return {"modified_since": format_timestamp(modified_since)}
        return {"modified_since": modified_since}

    def _error_message(self, response: requests.Response) -> str | None:
        try:
            data = response.json()
        except ValueError:
            return None
        if isinstance(data, dict):
            message = data.get("message") or data.get("detail")
            return str(message) if message else None
        return None

    def _validate(self, adapter: TypeAdapter, payload: Any, endpoint: str) -> Any:
        try:
            return adapter.validate_python(payload)
        except ValidationError as e:
            log.error("provider_response_invalid", endpoint=endpoint, error=str(e))
            raise TransportError(
                f"Malformed response from {endpoint}: {e.error_count()} validation error(s).",
                endpoint=endpoint,
            ) from e
