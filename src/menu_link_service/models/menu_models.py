"""Restaurant and menu models.

Restaurants and menus are owned by the dashboard; this service only reads them
to check that a link targets a real, linkable menu. Ownership is by id
reference: a menu stores its restaurant_id and nothing points back.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class MenuStatusEnum(str, Enum):
    """Publication state of a menu."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class LocalizedText(BaseModel):
    """Text in each supported locale."""

    en: str = Field(..., max_length=500)
    ar: str = Field(..., max_length=500)


class Restaurant(BaseModel):
    """Restaurant model."""

    restaurant_id: str = Field(..., description="Unique identifier for the restaurant")
    owner_id: str = Field(..., description="User who owns the restaurant")
    name: LocalizedText = Field(..., description="Restaurant name per locale")
    slug: str = Field(..., pattern=r"^[a-z0-9-]+$", description="Unique URL slug")
    is_active: bool = Field(default=True)

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Restaurant":
        return cls(
            restaurant_id=item["restaurant_id"],
            owner_id=item["owner_id"],
            name=LocalizedText(**item["name"]),
            slug=item["slug"],
            is_active=item.get("is_active", True),
        )


class Menu(BaseModel):
    """PDF menu model."""

    menu_id: str = Field(..., description="Unique identifier for the menu")
    restaurant_id: str = Field(..., description="Restaurant this menu belongs to")
    name: str = Field(..., max_length=100, description="Menu name")
    description: str | None = Field(None, max_length=500, description="Menu description")
    pdf_key: str = Field(..., description="Object-storage key of the menu PDF")
    status: MenuStatusEnum = Field(default=MenuStatusEnum.DRAFT)
    is_active: bool = Field(default=True)
    created_at: datetime | None = None

    @property
    def is_linkable(self) -> bool:
        """Links may point at draft or published menus that are still active."""
        return self.is_active and self.status != MenuStatusEnum.ARCHIVED

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Menu":
        data: dict[str, Any] = {
            "menu_id": item["menu_id"],
            "restaurant_id": item["restaurant_id"],
            "name": item["name"],
            "pdf_key": item["pdf_key"],
            "status": MenuStatusEnum(item.get("status", MenuStatusEnum.DRAFT.value)),
            "is_active": item.get("is_active", True),
        }

        if "description" in item:
            data["description"] = item["description"]

        if "created_at" in item:
            data["created_at"] = datetime.fromisoformat(item["created_at"])

        return cls(**data)
