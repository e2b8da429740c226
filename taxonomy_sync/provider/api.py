"""FastAPI application exposing the provider's attribute and term listings."""

from typing import Any

import structlog
from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from taxonomy_sync.errors import (
    AuthenticationRequiredError,
    PermissionDeniedError,
    ProviderAPIError,
)
from taxonomy_sync.models.config import DEFAULT_NAMESPACE, MANAGE_CATALOG_CAPABILITY
from taxonomy_sync.provider.auth import ApplicationPasswordAuthenticator, Principal
from taxonomy_sync.provider.listing_service import ListingService

log = structlog.stdlib.get_logger()

_basic_auth = HTTPBasic(auto_error=False)

MODIFIED_SINCE_DESCRIPTION = (
    "Limit results to entities modified after the given ISO 8601 date-time "
    "(YYYY-MM-DDTHH:MM:SS[.fraction][Z])."
)


async def provider_error_handler(request: Request, exc: ProviderAPIError) -> JSONResponse:
    """Render listing and auth errors in the ``{code, message, data}`` shape."""
    log.warning(
        "provider_request_rejected",
        path=request.url.path,
        status_code=exc.status_code,
        code=exc.code,
        error=exc.message,
    )
    headers = {"WWW-Authenticate": "Basic"} if exc.status_code == 401 else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload(), headers=headers)


def build_router(
    listing_service: ListingService,
    authenticator: ApplicationPasswordAuthenticator,
    required_capability: str = MANAGE_CATALOG_CAPABILITY,
) -> APIRouter:
    """Build the authenticated listing routes."""

    def require_principal(
        credentials: HTTPBasicCredentials | None = Depends(_basic_auth),
    ) -> Principal:
        if credentials is None:
            raise AuthenticationRequiredError("Authentication credentials were not provided.")

        principal = authenticator.authenticate(credentials.username, credentials.password)
        if principal is None:
            raise AuthenticationRequiredError("Invalid username or application password.")

        if not principal.can(required_capability):
            log.warning("permission_check_failed", username=principal.username)
            raise PermissionDeniedError("You do not have permissions to access this data.")

        log.debug("permission_check_passed", username=principal.username)
        return principal

    router = APIRouter(dependencies=[Depends(require_principal)])

    @router.get("/attributes")
    def list_attributes(
        modified_since: str | None = Query(default=None, description=MODIFIED_SINCE_DESCRIPTION),
    ) -> list[dict[str, Any]]:
        attributes = listing_service.list_attributes(modified_since=modified_since)
        return [attribute.model_dump(mode="json") for attribute in attributes]

    @router.get("/attributes/{slug}")
    def get_attribute(slug: str) -> dict[str, Any]:
        return listing_service.get_attribute(slug).model_dump(mode="json")

    @router.get("/attributes/{attribute_slug}/terms")
    def list_attribute_terms(
        attribute_slug: str,
        modified_since: str | None = Query(default=None, description=MODIFIED_SINCE_DESCRIPTION),
    ) -> list[dict[str, Any]]:
        terms = listing_service.list_terms(attribute_slug, modified_since=modified_since)
        return [
            term.model_dump(mode="json", by_alias=True, exclude={"attribute_slug"})
            for term in terms
        ]

    return router


def create_app(
    listing_service: ListingService,
    authenticator: ApplicationPasswordAuthenticator,
    namespace: str = DEFAULT_NAMESPACE,
    required_capability: str = MANAGE_CATALOG_CAPABILITY,
) -> FastAPI:
    """
    Create the provider HTTP application.

    Args:
        listing_service: Source of attribute and term listings
        authenticator: Verifies HTTP Basic application-password credentials
        namespace: Versioned path prefix, e.g. ``taxonomy-sync/v1``
        required_capability: Capability a principal needs to read listings

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Taxonomy Sync Provider API",
        description="Read-only attribute and term listings for catalog synchronization",
        version="1.0.0",
    )
    app.add_exception_handler(ProviderAPIError, provider_error_handler)

    prefix = "/" + namespace.strip("/")

    @app.get(f"{prefix}/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(
        build_router(listing_service, authenticator, required_capability),
        prefix=prefix,
    )

    log.info("provider_api_created", namespace=namespace)
    return app
