"""Menu link service exceptions."""


class MenuLinkServiceError(Exception):
    """Base exception for menu link service errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(MenuLinkServiceError):
    """Input failed validation (bad hex color, missing field, unknown frame style)."""


class NotFoundError(MenuLinkServiceError):
    """Referenced link, menu, or restaurant does not exist."""

    def __init__(self, message: str, resource: str | None = None, resource_id: str | None = None) -> None:
        super().__init__(message)
        self.resource = resource
        self.resource_id = resource_id


class InactiveLinkError(MenuLinkServiceError):
    """Link exists but has been deactivated."""

    def __init__(self, message: str, slug: str | None = None) -> None:
        super().__init__(message)
        self.slug = slug


class SlugExhaustedError(MenuLinkServiceError):
    """No unique slug could be allocated within the attempt budget."""

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class SlugConflictError(MenuLinkServiceError):
    """Storage rejected a write because the slug is already claimed."""

    def __init__(self, message: str, slug: str) -> None:
        super().__init__(message)
        self.slug = slug


class TransientStorageError(MenuLinkServiceError):
    """Storage call failed; the operation may succeed if repeated later."""

    def __init__(self, message: str, operation: str | None = None) -> None:
        super().__init__(message)
        self.operation = operation


class ConcurrentModificationError(MenuLinkServiceError):
    """Link kept changing underneath a read-modify-write until the retry budget ran out."""

    def __init__(self, message: str, link_id: str, attempts: int) -> None:
        super().__init__(message)
        self.link_id = link_id
        self.attempts = attempts
