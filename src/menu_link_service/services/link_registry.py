"""Link registry: creation and maintenance of shareable menu links."""

import logging
import uuid
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from menu_link_service.exceptions import (
    ConcurrentModificationError,
    InactiveLinkError,
    NotFoundError,
    SlugConflictError,
    SlugExhaustedError,
    ValidationError,
)
from menu_link_service.models.link_models import LinkUpdate, MenuLink, StyleConfig, TrackingMeta
from menu_link_service.observability.decorators import traced
from menu_link_service.observability.metrics import (
    record_link_created,
    record_slug_collision,
    record_slug_exhausted,
)
from menu_link_service.repositories.link_repositories import LinkRepository
from menu_link_service.repositories.menu_repositories import MenuRepository
from menu_link_service.services.slug_generator import generate_slug

logger = logging.getLogger(__name__)

DEFAULT_MAX_SLUG_ATTEMPTS = 5

M = TypeVar("M", bound=BaseModel)


def describe_validation_error(error: PydanticValidationError) -> str:
    """Flatten pydantic errors into one readable message."""
    parts = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail["loc"])
        parts.append(f"{location}: {detail['msg']}" if location else detail["msg"])
    return "; ".join(parts)


def _coerce(model: type[M], value: M | dict[str, Any] | None) -> M | None:
    if value is None or isinstance(value, model):
        return value
    try:
        return model.model_validate(value)
    except PydanticValidationError as e:
        raise ValidationError(describe_validation_error(e)) from e


class LinkRegistry:
    """Service owning MenuLink records and their slug uniqueness.

    Uniqueness is guaranteed by the repository's conditional write; this
    service only compensates for a rejected write by retrying with a fresh
    slug, up to max_attempts times.
    """

    def __init__(
        self,
        link_repository: LinkRepository,
        menu_repository: MenuRepository,
        slug_generator: Callable[[], str] = generate_slug,
        max_attempts: int = DEFAULT_MAX_SLUG_ATTEMPTS,
    ) -> None:
        """Initialize the LinkRegistry.

        Args:
            link_repository: Repository for link rows and slug claims
            menu_repository: Repository used to check the target menu
            slug_generator: Produces candidate slugs
            max_attempts: Slug attempts before giving up with SlugExhaustedError
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.link_repository = link_repository
        self.menu_repository = menu_repository
        self.slug_generator = slug_generator
        self.max_attempts = max_attempts

    def _write_with_unique_slug(
        self,
        write: Callable[[str], bool | None],
        operation: str,
        first_candidate: str | None = None,
    ) -> tuple[str, bool | None, int]:
        """Run write(slug) until storage accepts the slug.

        Returns:
            Tuple of (accepted slug, write result, attempts used)

        Raises:
            SlugExhaustedError: If every attempt hit a slug conflict
        """
        candidate = first_candidate or self.slug_generator()

        for attempt in range(1, self.max_attempts + 1):
            try:
                return candidate, write(candidate), attempt
            except SlugConflictError:
                record_slug_collision(operation)
                logger.warning(
                    f"Slug collision on {operation} (attempt {attempt}/{self.max_attempts})"
                )
                candidate = self.slug_generator()

        record_slug_exhausted(operation)
        logger.critical(
            f"Could not allocate a unique slug after {self.max_attempts} attempts on {operation}; "
            "check slug keyspace and storage health"
        )
        raise SlugExhaustedError(
            f"Failed to generate unique slug after {self.max_attempts} attempts",
            attempts=self.max_attempts,
        )

    @traced("link_registry.create_link")
    async def create_link(
        self,
        menu_id: str,
        name: str | None = None,
        style_config: StyleConfig | dict[str, Any] | None = None,
        tracking_meta: TrackingMeta | dict[str, Any] | None = None,
    ) -> MenuLink:
        """Create a shareable link for a menu.

        Args:
            menu_id: Menu the link points to
            name: Optional display label
            style_config: QR styling; defaults apply to anything omitted
            tracking_meta: Attribution tags copied onto visits

        Returns:
            The persisted MenuLink

        Raises:
            ValidationError: Bad style/tracking input or a non-linkable menu
            NotFoundError: If the menu does not exist
            SlugExhaustedError: If no unique slug was found within the attempt budget
            TransientStorageError: On storage failure
        """
        style = _coerce(StyleConfig, style_config) or StyleConfig()
        tracking = _coerce(TrackingMeta, tracking_meta) or TrackingMeta()

        menu = self.menu_repository.get_menu(menu_id)
        if menu is None:
            raise NotFoundError(f"Menu {menu_id} not found", resource="menu", resource_id=menu_id)
        if not menu.is_linkable:
            raise ValidationError(f"Menu {menu_id} is {menu.status.value} and cannot be linked")

        now = datetime.now(UTC)
        try:
            draft = MenuLink(
                link_id=f"lnk_{uuid.uuid4().hex[:16]}",
                menu_id=menu_id,
                slug=self.slug_generator(),
                name=name,
                style_config=style,
                tracking_meta=tracking,
                is_active=True,
                created_at=now,
                updated_at=now,
            )
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

        def write(slug: str) -> None:
            self.link_repository.create_link(draft.model_copy(update={"slug": slug}))

        slug, _, attempts = self._write_with_unique_slug(write, "create", draft.slug)
        link = draft.model_copy(update={"slug": slug})

        record_link_created(attempts)
        logger.info(f"Created link {link.link_id} ({link.slug}) for menu {menu_id}")
        return link

    def _apply_update(self, current: MenuLink, changes: LinkUpdate) -> MenuLink:
        """Merge explicitly set fields onto the stored link, keeping its slug."""
        data = current.model_dump()

        if "name" in changes.model_fields_set:
            data["name"] = changes.name
        if changes.is_active is not None:
            data["is_active"] = changes.is_active
        if changes.style_config is not None:
            data["style_config"].update(changes.style_config.model_dump(exclude_unset=True))
        if changes.tracking_meta is not None:
            data["tracking_meta"].update(changes.tracking_meta.model_dump(exclude_unset=True))
        data["updated_at"] = datetime.now(UTC)

        try:
            return MenuLink.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError(describe_validation_error(e)) from e

    def _read_link(self, link_id: str) -> MenuLink:
        link = self.link_repository.get_link(link_id)
        if link is None:
            raise NotFoundError(f"Link {link_id} not found", resource="link", resource_id=link_id)
        return link

    def _concurrent_modification(self, link_id: str, operation: str) -> ConcurrentModificationError:
        logger.error(
            f"Link {link_id} kept changing during {operation}; "
            f"gave up after {self.max_attempts} attempts"
        )
        return ConcurrentModificationError(
            f"Link {link_id} was modified concurrently, try again",
            link_id=link_id,
            attempts=self.max_attempts,
        )

    def _write_update(
        self, current: MenuLink, updated: MenuLink, requested_slug: str | None
    ) -> MenuLink | None:
        """Write an updated link, moving it to requested_slug if that differs.

        Returns:
            The stored link, or None if the row vanished or its slug changed
        """
        if requested_slug is None or requested_slug == current.slug:
            return updated if self.link_repository.save_link(updated) else None

        def write(slug: str) -> bool:
            return self.link_repository.change_slug(
                updated.model_copy(update={"slug": slug}), current.slug
            )

        slug, saved, _ = self._write_with_unique_slug(write, "update", requested_slug)
        return updated.model_copy(update={"slug": slug}) if saved else None

    @traced("link_registry.update_link")
    async def update_link(self, link_id: str, update: LinkUpdate | dict[str, Any]) -> MenuLink:
        """Apply a partial update to a link.

        Only explicitly set fields change. When a new slug is requested it is
        tried first; if it is taken, generated slugs are tried until the
        attempt budget runs out.

        Each write is conditional on the slug that was read. If another writer
        moved the link in between, the link is re-read and the update applied
        again to the fresh row.

        Raises:
            ValidationError: If the update is malformed (nothing is written)
            NotFoundError: If the link does not exist
            SlugExhaustedError: If no unique slug could be claimed
            ConcurrentModificationError: If the link kept changing on every attempt
            TransientStorageError: On storage failure
        """
        changes = _coerce(LinkUpdate, update) or LinkUpdate()
        fields = sorted(changes.model_fields_set)

        for attempt in range(1, self.max_attempts + 1):
            current = self._read_link(link_id)
            updated = self._apply_update(current, changes)

            stored = self._write_update(current, updated, changes.slug)
            if stored is not None:
                logger.info(f"Updated link {link_id}: {', '.join(fields) or 'no fields'}")
                return stored

            logger.warning(
                f"Link {link_id} changed during update "
                f"(attempt {attempt}/{self.max_attempts}), re-reading"
            )

        raise self._concurrent_modification(link_id, "update")

    @traced("link_registry.regenerate_slug")
    async def regenerate_slug(self, link_id: str) -> MenuLink:
        """Give a link a fresh random slug, invalidating the old one."""
        return await self.update_link(link_id, LinkUpdate(slug=self.slug_generator()))

    @traced("link_registry.deactivate_link")
    async def deactivate_link(self, link_id: str) -> MenuLink:
        """Soft-disable a link. Deactivating an inactive link is a no-op.

        Raises:
            NotFoundError: If the link does not exist
            ConcurrentModificationError: If the link kept changing on every attempt
            TransientStorageError: On storage failure
        """
        for attempt in range(1, self.max_attempts + 1):
            link = self._read_link(link_id)
            if not link.is_active:
                return link

            deactivated = link.model_copy(
                update={"is_active": False, "updated_at": datetime.now(UTC)}
            )
            if self.link_repository.save_link(deactivated):
                logger.info(f"Deactivated link {link_id}")
                return deactivated

            logger.warning(
                f"Link {link_id} changed during deactivate "
                f"(attempt {attempt}/{self.max_attempts}), re-reading"
            )

        raise self._concurrent_modification(link_id, "deactivate")

    @traced("link_registry.resolve_link")
    async def resolve_link(self, slug: str) -> MenuLink:
        """Look up the active link behind a slug.

        Raises:
            NotFoundError: If no link has this slug
            InactiveLinkError: If the link exists but is deactivated
            TransientStorageError: On storage failure
        """
        link = self.link_repository.get_link_by_slug(slug)
        if link is None:
            raise NotFoundError(f"No link with slug {slug}", resource="link", resource_id=slug)
        if not link.is_active:
            raise InactiveLinkError(f"Link {slug} has been disabled", slug=slug)
        return link

    @traced("link_registry.get_link")
    async def get_link(self, link_id: str) -> MenuLink:
        """Get a link by ID regardless of its active state.

        Raises:
            NotFoundError: If the link does not exist
        """
        return self._read_link(link_id)

    @traced("link_registry.list_links_for_menu")
    async def list_links_for_menu(
        self, menu_id: str, include_inactive: bool = True
    ) -> list[MenuLink]:
        """List a menu's links, newest first.

        Raises:
            NotFoundError: If the menu does not exist
        """
        if self.menu_repository.get_menu(menu_id) is None:
            raise NotFoundError(f"Menu {menu_id} not found", resource="menu", resource_id=menu_id)

        links = self.link_repository.list_links_for_menu(menu_id)
        if not include_inactive:
            links = [link for link in links if link.is_active]
        return links
