"""Shared pytest fixtures and configuration for all tests."""

import os

# Must be set before main/lambda_handler are imported so they skip real wiring
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import UTC, datetime  # noqa: E402

import pytest  # noqa: E402

from menu_link_service.models.link_models import MenuLink, StyleConfig, TrackingMeta  # noqa: E402
from menu_link_service.models.menu_models import Menu, MenuStatusEnum  # noqa: E402
from menu_link_service.models.visit_models import Visit  # noqa: E402


@pytest.fixture
def mock_menu_id() -> str:
    """Fixture providing a standard test menu ID."""
    return "menu_123456"


@pytest.fixture
def sample_menu(mock_menu_id: str) -> Menu:
    """Fixture providing a published menu."""
    return Menu(
        menu_id=mock_menu_id,
        restaurant_id="rest_123456",
        name="Dinner Menu",
        description="Evening service",
        pdf_key="menus/rest_123456/dinner.pdf",
        status=MenuStatusEnum.PUBLISHED,
        is_active=True,
    )


@pytest.fixture
def sample_link(mock_menu_id: str) -> MenuLink:
    """Fixture providing an active link with table tracking."""
    now = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
    return MenuLink(
        link_id="lnk_abc123",
        menu_id=mock_menu_id,
        slug="Ab3dE_9z",
        name="Table 4 QR",
        style_config=StyleConfig(qr_code_color="#112233"),
        tracking_meta=TrackingMeta(source="qr", medium="print", table="4"),
        is_active=True,
        created_at=now,
        updated_at=now,
    )


@pytest.fixture
def sample_link_item(sample_link: MenuLink) -> dict:
    """Fixture providing the DynamoDB item for sample_link."""
    return sample_link.to_dynamodb_item()


@pytest.fixture
def make_visit():
    """Factory fixture building visits with selected dimensions."""

    def _make(
        visit_id: str = "vst_1",
        link_id: str = "lnk_abc123",
        timestamp: datetime | None = None,
        **fields,
    ) -> Visit:
        return Visit(
            visit_id=visit_id,
            link_id=link_id,
            timestamp=timestamp or datetime(2024, 1, 15, 12, 0, tzinfo=UTC),
            ip_hash="f" * 64,
            **fields,
        )

    return _make
