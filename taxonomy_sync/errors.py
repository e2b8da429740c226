"""Exception hierarchy for the taxonomy sync system.

Fatal errors (configuration, transport failures on the top-level fetch,
concurrent runs) propagate to the caller. Reconciliation and asset errors are
caught per item by the sync client and absorbed into the summary.
"""

from typing import Any


class TaxonomySyncError(Exception):
    """Base exception for all taxonomy sync errors."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ConfigurationError(TaxonomySyncError):
    """Raised when configuration is invalid or missing."""

    pass


class TransportError(TaxonomySyncError):
    """Raised when a request to the provider fails.

    Covers network failures, timeouts, non-2xx responses and response bodies
    that cannot be decoded or validated.
    """

    def __init__(self, message: str, status_code: int | None = None, endpoint: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.endpoint = endpoint


class ProviderAPIError(TaxonomySyncError):
    """Error raised by the provider listing layer and rendered as an HTTP error body."""

    status_code: int = 500
    code: str = "taxonomy_sync_error"

    def __init__(self, message: str, param: str | None = None, **data: Any):
        super().__init__(message)
        self.param = param
        self.data = data

    def to_payload(self) -> dict[str, Any]:
        """Render the error in the wire shape ``{code, message, data}``."""
        data: dict[str, Any] = {"status": self.status_code}
        if self.param is not None:
            data["param"] = self.param
        data.update(self.data)
        return {"code": self.code, "message": self.message, "data": data}


class InvalidParameterError(ProviderAPIError):
    """A request parameter failed validation before any query ran."""

    status_code = 400
    code = "rest_invalid_param"


class NotFoundError(ProviderAPIError):
    """The requested attribute definition does not exist."""

    status_code = 404
    code = "attribute_not_found"


class AuthenticationRequiredError(ProviderAPIError):
    """Credentials were missing or did not match an issued application password."""

    status_code = 401
    code = "rest_unauthorized"


class PermissionDeniedError(ProviderAPIError):
    """The authenticated principal lacks the required capability."""

    status_code = 403
    code = "rest_forbidden"


class ListingError(ProviderAPIError):
    """The catalog failed while producing a listing."""

    status_code = 500
    code = "terms_fetch_error"


class CatalogError(TaxonomySyncError):
    """Raised by catalog storage when a create/update cannot be applied."""

    pass


class AssetError(TaxonomySyncError):
    """Raised when an image cannot be downloaded or materialised locally."""

    def __init__(self, message: str, source_url: str | None = None):
        super().__init__(message)
        self.source_url = source_url


class SyncAbortedError(TaxonomySyncError):
    """Raised when a sync run cannot proceed past fetching attribute definitions."""

    def __init__(self, message: str, cause: Exception | None = None):
        super().__init__(message)
        self.cause = cause


class SyncInProgressError(TaxonomySyncError):
    """Raised when a sync is requested while another run is still active."""

    pass
