"""FastAPI application for the dashboard API and the public link viewer."""

import logging
from datetime import datetime

from fastapi import BackgroundTasks, Depends, FastAPI, Header, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from menu_link_service.auth.api_dependencies import get_api_key_from_header
from menu_link_service.auth.api_key_validator import APIKeyValidator
from menu_link_service.exceptions import (
    ConcurrentModificationError,
    InactiveLinkError,
    MenuLinkServiceError,
    NotFoundError,
    SlugExhaustedError,
    TransientStorageError,
    ValidationError,
)
from menu_link_service.models.link_models import LinkCreate, LinkUpdate, MenuLink, StyleConfig
from menu_link_service.models.menu_models import Menu
from menu_link_service.models.visit_models import LinkSummary, VisitContext
from menu_link_service.services.analytics_service import AnalyticsAggregator, TimeRange
from menu_link_service.services.link_registry import LinkRegistry
from menu_link_service.services.menu_directory import MenuDirectory
from menu_link_service.services.visit_recorder import VisitRecorder

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[MenuLinkServiceError], int] = {
    ValidationError: 422,
    NotFoundError: 404,
    InactiveLinkError: 410,
    ConcurrentModificationError: 409,
    SlugExhaustedError: 503,
    TransientStorageError: 503,
}


class HealthResponse(BaseModel):
    """Health check response model."""

    status: str


class PurgeResponse(BaseModel):
    """Response model for a retention purge."""

    deleted: int


class ViewerLinkResponse(BaseModel):
    """What a viewer needs to render a menu behind a link."""

    slug: str
    name: str | None = None
    menu_id: str
    menu_name: str
    pdf_key: str
    style_config: StyleConfig


def client_ip(request: Request) -> str:
    """Viewer IP as reported by the edge, else the socket peer.

    The service sits behind CloudFront and API Gateway. CloudFront overwrites
    CloudFront-Viewer-Address ("ip:port") on every request, and Mangum sets
    the socket peer from API Gateway's sourceIp. X-Forwarded-For is ignored
    because viewers can prepend arbitrary hops to it.
    """
    viewer_address = request.headers.get("cloudfront-viewer-address", "").strip()
    if viewer_address:
        # IPv6 addresses arrive unbracketed, so only the last colon separates the port
        host = viewer_address.rsplit(":", 1)[0]
        if host:
            return host
    return request.client.host if request.client else "unknown"


def create_app(
    link_registry: LinkRegistry,
    visit_recorder: VisitRecorder,
    analytics: AnalyticsAggregator,
    menu_directory: MenuDirectory,
    api_keys: list[str],
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        link_registry: Service managing links
        visit_recorder: Service recording visits
        analytics: Service summarizing visits
        menu_directory: Service looking up menus
        api_keys: List of valid API keys for the dashboard endpoints

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Menu Link Service API",
        description="Shareable menu links, QR styling and visit analytics",
        version="1.0.0",
    )

    app.state.link_registry = link_registry
    app.state.visit_recorder = visit_recorder
    app.state.analytics = analytics
    app.state.menu_directory = menu_directory
    app.state.api_key_validator = APIKeyValidator(api_keys=api_keys)

    @app.exception_handler(MenuLinkServiceError)
    async def service_error_handler(_request: Request, exc: MenuLinkServiceError) -> JSONResponse:
        status_code = next(
            (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
            500,
        )
        if status_code >= 500:
            logger.error(f"{type(exc).__name__}: {exc.message}")
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    def validate_api_key(x_api_key: str | None = Header(None)) -> str:
        """Dependency to validate API key."""
        return get_api_key_from_header(x_api_key=x_api_key, validator=app.state.api_key_validator)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health_check() -> HealthResponse:
        """Health check endpoint."""
        return HealthResponse(status="healthy")

    @app.get(
        "/restaurants/{restaurant_id}/menus",
        response_model=list[Menu],
        tags=["Menus"],
    )
    async def list_restaurant_menus(
        restaurant_id: str,
        _api_key: str = Depends(validate_api_key),
    ) -> list[Menu]:
        menus: list[Menu] = await app.state.menu_directory.find_menus_by_restaurant(restaurant_id)
        return menus

    @app.post(
        "/menus/{menu_id}/links",
        response_model=MenuLink,
        status_code=201,
        tags=["Links"],
    )
    async def create_link(
        menu_id: str,
        body: LinkCreate,
        _api_key: str = Depends(validate_api_key),
    ) -> MenuLink:
        """Create a shareable link for a menu."""
        link: MenuLink = await app.state.link_registry.create_link(
            menu_id=menu_id,
            name=body.name,
            style_config=body.style_config,
            tracking_meta=body.tracking_meta,
        )
        return link

    @app.get("/menus/{menu_id}/links", response_model=list[MenuLink], tags=["Links"])
    async def list_links(
        menu_id: str,
        include_inactive: bool = True,
        _api_key: str = Depends(validate_api_key),
    ) -> list[MenuLink]:
        links: list[MenuLink] = await app.state.link_registry.list_links_for_menu(
            menu_id, include_inactive=include_inactive
        )
        return links

    @app.get("/menus/{menu_id}/analytics", response_model=LinkSummary, tags=["Analytics"])
    async def menu_analytics(
        menu_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        _api_key: str = Depends(validate_api_key),
    ) -> LinkSummary:
        """Visit summary across all links of a menu."""
        summary: LinkSummary = await app.state.analytics.summarize_menu(
            menu_id, TimeRange(start=start, end=end)
        )
        return summary

    @app.get("/links/{link_id}", response_model=MenuLink, tags=["Links"])
    async def get_link(link_id: str, _api_key: str = Depends(validate_api_key)) -> MenuLink:
        link: MenuLink = await app.state.link_registry.get_link(link_id)
        return link

    @app.patch("/links/{link_id}", response_model=MenuLink, tags=["Links"])
    async def update_link(
        link_id: str,
        body: LinkUpdate,
        _api_key: str = Depends(validate_api_key),
    ) -> MenuLink:
        """Partially update a link's name, slug, styling or tracking tags."""
        link: MenuLink = await app.state.link_registry.update_link(link_id, body)
        return link

    @app.post("/links/{link_id}/deactivate", response_model=MenuLink, tags=["Links"])
    async def deactivate_link(link_id: str, _api_key: str = Depends(validate_api_key)) -> MenuLink:
        link: MenuLink = await app.state.link_registry.deactivate_link(link_id)
        return link

    @app.post("/links/{link_id}/regenerate-slug", response_model=MenuLink, tags=["Links"])
    async def regenerate_slug(link_id: str, _api_key: str = Depends(validate_api_key)) -> MenuLink:
        """Replace a leaked or unwanted slug with a fresh one."""
        link: MenuLink = await app.state.link_registry.regenerate_slug(link_id)
        return link

    @app.get("/links/{link_id}/analytics", response_model=LinkSummary, tags=["Analytics"])
    async def link_analytics(
        link_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
        _api_key: str = Depends(validate_api_key),
    ) -> LinkSummary:
        """Visit summary for a single link."""
        summary: LinkSummary = await app.state.analytics.summarize(
            link_id, TimeRange(start=start, end=end)
        )
        return summary

    @app.post("/admin/visits/purge", response_model=PurgeResponse, tags=["Admin"])
    async def purge_visits(_api_key: str = Depends(validate_api_key)) -> PurgeResponse:
        """Run the visit retention purge on demand."""
        logger.info("Manual visit purge triggered")
        deleted: int = await app.state.visit_recorder.purge_expired()
        return PurgeResponse(deleted=deleted)

    @app.get("/l/{slug}", response_model=ViewerLinkResponse, tags=["Viewer"])
    async def view_link(
        slug: str,
        request: Request,
        background_tasks: BackgroundTasks,
        utm_source: str | None = None,
        table: str | None = None,
        location: str | None = None,
    ) -> ViewerLinkResponse:
        """Resolve a public link.

        The visit is recorded after the response is sent, so analytics never
        slows down or breaks the menu page.
        """
        link: MenuLink = await app.state.link_registry.resolve_link(slug)
        menu: Menu = await app.state.menu_directory.get_menu(link.menu_id)

        context = VisitContext(
            source=utm_source,
            table=table,
            location=location,
            country=request.headers.get("cloudfront-viewer-country"),
            city=request.headers.get("cloudfront-viewer-city"),
        )
        background_tasks.add_task(
            app.state.visit_recorder.record_visit,
            link_id=link.link_id,
            raw_ip=client_ip(request),
            user_agent=request.headers.get("user-agent"),
            referrer=request.headers.get("referer"),
            context=context,
        )

        return ViewerLinkResponse(
            slug=link.slug,
            name=link.name,
            menu_id=menu.menu_id,
            menu_name=menu.name,
            pdf_key=menu.pdf_key,
            style_config=link.style_config,
        )

    return app
