"""Shareable menu link models.

A MenuLink is the public entry point to a menu: a short slug that resolves to
the menu, with QR code styling and attribution metadata attached. Links are
stored in DynamoDB keyed by link_id; slug uniqueness is enforced separately by
the slug claim table (see LinkRepository).
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

HEX_COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"
SLUG_PATTERN = r"^[A-Za-z0-9_-]{4,32}$"

DEFAULT_QR_CODE_COLOR = "#000000"
DEFAULT_BACKGROUND_COLOR = "#ffffff"


class FrameStyle(str, Enum):
    """Frame drawn around the rendered QR code."""

    NONE = "none"
    ROUNDED = "rounded"
    SQUARE = "square"


class StyleConfig(BaseModel):
    """QR code styling for a link."""

    model_config = ConfigDict(str_strip_whitespace=True)

    qr_code_color: str = Field(
        default=DEFAULT_QR_CODE_COLOR, pattern=HEX_COLOR_PATTERN, description="QR foreground color"
    )
    qr_code_logo: str | None = Field(
        None, description="Object-storage key of the logo drawn in the QR code"
    )
    frame_style: FrameStyle = Field(default=FrameStyle.ROUNDED, description="QR frame style")
    background_color: str = Field(
        default=DEFAULT_BACKGROUND_COLOR, pattern=HEX_COLOR_PATTERN, description="Viewer background"
    )

    def to_dynamodb_item(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "qr_code_color": self.qr_code_color,
            "frame_style": self.frame_style.value,
            "background_color": self.background_color,
        }
        if self.qr_code_logo is not None:
            item["qr_code_logo"] = self.qr_code_logo
        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "StyleConfig":
        return cls(
            qr_code_color=item.get("qr_code_color", DEFAULT_QR_CODE_COLOR),
            qr_code_logo=item.get("qr_code_logo"),
            frame_style=FrameStyle(item.get("frame_style", FrameStyle.ROUNDED.value)),
            background_color=item.get("background_color", DEFAULT_BACKGROUND_COLOR),
        )


class StyleConfigUpdate(BaseModel):
    """Partial style change; only fields that were explicitly set are applied."""

    model_config = ConfigDict(str_strip_whitespace=True)

    qr_code_color: str | None = Field(None, pattern=HEX_COLOR_PATTERN)
    qr_code_logo: str | None = None
    frame_style: FrameStyle | None = None
    background_color: str | None = Field(None, pattern=HEX_COLOR_PATTERN)


class TrackingMeta(BaseModel):
    """UTM-style attribution tags copied onto visits."""

    model_config = ConfigDict(str_strip_whitespace=True)

    source: str | None = Field(None, max_length=50, description="e.g. facebook, instagram, table")
    medium: str | None = Field(None, max_length=50, description="e.g. social, qr, direct")
    campaign: str | None = Field(None, max_length=100, description="Campaign name")
    table: str | None = Field(None, max_length=20, description="Table number")
    location: str | None = Field(None, max_length=100, description="Physical location identifier")

    def to_dynamodb_item(self) -> dict[str, Any]:
        # DynamoDB rejects empty strings in some contexts; only persist set values
        return {key: value for key, value in self.model_dump().items() if value}

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "TrackingMeta":
        return cls(**{key: item.get(key) for key in cls.model_fields})


class MenuLink(BaseModel):
    """Shareable, trackable link to a menu.

    Stored in DynamoDB with link_id as partition key and a menu_id GSI.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    link_id: str = Field(..., description="Opaque link identifier")
    menu_id: str = Field(..., description="Menu this link points to")
    slug: str = Field(..., pattern=SLUG_PATTERN, description="Globally unique short identifier")
    name: str | None = Field(None, max_length=100, description="Optional display label")
    style_config: StyleConfig = Field(default_factory=StyleConfig)
    tracking_meta: TrackingMeta = Field(default_factory=TrackingMeta)
    is_active: bool = Field(default=True, description="Inactive links neither resolve nor record")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last modification timestamp")

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "link_id": self.link_id,
            "menu_id": self.menu_id,
            "slug": self.slug,
            "style_config": self.style_config.to_dynamodb_item(),
            "tracking_meta": self.tracking_meta.to_dynamodb_item(),
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

        if self.name is not None:
            item["name"] = self.name

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "MenuLink":
        """Create MenuLink from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            MenuLink: Parsed model instance
        """
        return cls(
            link_id=item["link_id"],
            menu_id=item["menu_id"],
            slug=item["slug"],
            name=item.get("name"),
            style_config=StyleConfig.from_dynamodb_item(item.get("style_config", {})),
            tracking_meta=TrackingMeta.from_dynamodb_item(item.get("tracking_meta", {})),
            is_active=item.get("is_active", True),
            created_at=datetime.fromisoformat(item["created_at"]),
            updated_at=datetime.fromisoformat(item["updated_at"]),
        )


class LinkCreate(BaseModel):
    """Request body for creating a link."""

    name: str | None = Field(None, max_length=100)
    style_config: StyleConfig | None = None
    tracking_meta: TrackingMeta | None = None


class LinkUpdate(BaseModel):
    """Partial update for a link.

    Unset fields are left untouched. Nested style and tracking updates are
    merged into the stored values rather than replacing them wholesale.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str | None = Field(None, max_length=100)
    slug: str | None = Field(None, pattern=SLUG_PATTERN)
    style_config: StyleConfigUpdate | None = None
    tracking_meta: TrackingMeta | None = None
    is_active: bool | None = None
