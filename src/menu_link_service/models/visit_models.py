"""Visit tracking and analytics models.

Visits are append-only records written each time a viewer resolves a link.
They are stored in DynamoDB with (link_id, visit_key) as composite key, where
visit_key sorts chronologically so a link's visits can be range-queried by time.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

UNKNOWN_BUCKET = "unknown"


def _clip(value: Any, max_length: int) -> Any:
    """Trim a free-text value and cut it to max_length; blank becomes None."""
    if not isinstance(value, str):
        return value
    value = value.strip()[:max_length]
    return value or None


class VisitContext(BaseModel):
    """Request-derived attribution for a visit.

    source/table/location override the link's tracking metadata when set.
    """

    source: str | None = None
    table: str | None = None
    location: str | None = None
    country: str | None = None
    city: str | None = None


class Visit(BaseModel):
    """A single resolved view of a menu link."""

    visit_id: str = Field(..., description="Unique visit identifier")
    link_id: str = Field(..., description="Link that was visited")
    timestamp: datetime = Field(..., description="Visit time")
    ip_hash: str = Field(..., description="Salted one-way hash of the viewer IP")
    user_agent: str | None = Field(None, description="Browser/device info")
    referrer: str | None = Field(None, description="HTTP referrer")
    source: str | None = Field(None, description="Attribution source")
    table: str | None = Field(None, description="Table number")
    location: str | None = Field(None, description="Physical location identifier")
    country: str | None = Field(None, description="ISO 3166-1 alpha-2 country code")
    city: str | None = Field(None, description="Detected city")
    expires_at: int | None = Field(None, description="Epoch seconds after which TTL may remove it")

    @field_validator("user_agent", "referrer", mode="before")
    @classmethod
    def clip_long_text(cls, v: Any) -> Any:
        return _clip(v, 500)

    @field_validator("source", mode="before")
    @classmethod
    def clip_source(cls, v: Any) -> Any:
        return _clip(v, 50)

    @field_validator("table", mode="before")
    @classmethod
    def clip_table(cls, v: Any) -> Any:
        return _clip(v, 20)

    @field_validator("location", "city", mode="before")
    @classmethod
    def clip_place(cls, v: Any) -> Any:
        return _clip(v, 100)

    @field_validator("country", mode="before")
    @classmethod
    def normalize_country(cls, v: Any) -> Any:
        """Keep only well-formed two-letter codes, upper-cased."""
        if not isinstance(v, str):
            return v
        v = v.strip().upper()
        return v if len(v) == 2 and v.isalpha() else None

    @property
    def visit_key(self) -> str:
        """Sort key: ISO timestamp then visit id, so keys order by time."""
        return f"{self.timestamp.isoformat()}#{self.visit_id}"

    def to_dynamodb_item(self) -> dict[str, Any]:
        """Convert to DynamoDB item format.

        Returns:
            dict: DynamoDB-compatible representation
        """
        item: dict[str, Any] = {
            "link_id": self.link_id,
            "visit_key": self.visit_key,
            "visit_id": self.visit_id,
            "timestamp": self.timestamp.isoformat(),
            "ip_hash": self.ip_hash,
        }

        for attr in ("user_agent", "referrer", "source", "table", "location", "country", "city"):
            value = getattr(self, attr)
            if value is not None:
                item[attr] = value

        if self.expires_at is not None:
            item["expires_at"] = self.expires_at

        return item

    @classmethod
    def from_dynamodb_item(cls, item: dict[str, Any]) -> "Visit":
        """Create Visit from DynamoDB item.

        Args:
            item: DynamoDB item dictionary

        Returns:
            Visit: Parsed model instance
        """
        data: dict[str, Any] = {
            "visit_id": item["visit_id"],
            "link_id": item["link_id"],
            "timestamp": datetime.fromisoformat(item["timestamp"]),
            "ip_hash": item["ip_hash"],
        }

        for attr in ("user_agent", "referrer", "source", "table", "location", "country", "city"):
            if attr in item:
                data[attr] = item[attr]

        if "expires_at" in item:
            # DynamoDB numbers come back as Decimal
            data["expires_at"] = int(item["expires_at"])

        return cls(**data)


class LinkSummary(BaseModel):
    """Visit counts grouped by dimension.

    Visits missing a dimension are counted under "unknown", so every mapping
    sums to total.
    """

    total: int = Field(default=0, ge=0)
    by_source: dict[str, int] = Field(default_factory=dict)
    by_table: dict[str, int] = Field(default_factory=dict)
    by_country: dict[str, int] = Field(default_factory=dict)
    by_day: dict[str, int] = Field(default_factory=dict)
