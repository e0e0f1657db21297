"""Unit tests for menu and restaurant repositories."""

from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

from menu_link_service.exceptions import TransientStorageError
from menu_link_service.models.menu_models import MenuStatusEnum
from menu_link_service.repositories.menu_repositories import MenuRepository, RestaurantRepository


@pytest.fixture
def menu_item() -> dict:
    return {
        "menu_id": "menu_1",
        "restaurant_id": "rest_1",
        "name": "Lunch",
        "pdf_key": "menus/rest_1/lunch.pdf",
        "status": "published",
        "created_at": "2024-01-01T09:00:00+00:00",
    }


@pytest.mark.unit
class TestMenuRepository:
    """Test suite for MenuRepository."""

    @pytest.fixture
    def mock_dynamodb(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> MenuRepository:
        return MenuRepository(dynamodb_resource=mock_dynamodb, table_name="test-menus")

    def test_get_menu_found(
        self, repository: MenuRepository, mock_dynamodb: MagicMock, menu_item: dict
    ) -> None:
        """Test successfully retrieving a menu."""
        mock_dynamodb.Table.return_value.get_item.return_value = {"Item": menu_item}

        menu = repository.get_menu("menu_1")

        assert menu is not None
        assert menu.status == MenuStatusEnum.PUBLISHED
        assert menu.is_linkable
        assert menu.created_at.year == 2024
        mock_dynamodb.Table.return_value.get_item.assert_called_once_with(
            Key={"menu_id": "menu_1"}
        )

    def test_get_menu_not_found(
        self, repository: MenuRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test retrieving a non-existent menu."""
        mock_dynamodb.Table.return_value.get_item.return_value = {}

        assert repository.get_menu("menu_missing") is None

    def test_get_menu_storage_error(
        self, repository: MenuRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test that read failures raise TransientStorageError."""
        mock_dynamodb.Table.return_value.get_item.side_effect = ClientError(
            {"Error": {"Code": "InternalServerError", "Message": "Server error"}}, "GetItem"
        )

        with pytest.raises(TransientStorageError) as exc_info:
            repository.get_menu("menu_1")

        assert exc_info.value.operation == "get_menu"

    def test_archived_menu_is_not_linkable(
        self, repository: MenuRepository, mock_dynamodb: MagicMock, menu_item: dict
    ) -> None:
        """Test that archived menus are parsed but not linkable."""
        mock_dynamodb.Table.return_value.get_item.return_value = {
            "Item": {**menu_item, "status": "archived"}
        }

        assert repository.get_menu("menu_1").is_linkable is False

    def test_find_menus_by_restaurant(
        self, repository: MenuRepository, mock_dynamodb: MagicMock, menu_item: dict
    ) -> None:
        """Test that all pages of the restaurant index are read."""
        mock_dynamodb.Table.return_value.query.side_effect = [
            {"Items": [menu_item], "LastEvaluatedKey": {"menu_id": "menu_1"}},
            {"Items": [{**menu_item, "menu_id": "menu_2"}]},
        ]

        menus = repository.find_menus_by_restaurant("rest_1")

        assert [menu.menu_id for menu in menus] == ["menu_1", "menu_2"]
        first_call = mock_dynamodb.Table.return_value.query.call_args_list[0].kwargs
        assert first_call["IndexName"] == "restaurant_id-index"
        assert first_call["ExpressionAttributeValues"] == {":rid": "rest_1"}


@pytest.mark.unit
class TestRestaurantRepository:
    """Test suite for RestaurantRepository."""

    @pytest.fixture
    def mock_dynamodb(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def repository(self, mock_dynamodb: MagicMock) -> RestaurantRepository:
        return RestaurantRepository(dynamodb_resource=mock_dynamodb, table_name="test-restaurants")

    def test_get_restaurant_found(
        self, repository: RestaurantRepository, mock_dynamodb: MagicMock
    ) -> None:
        """Test successfully retrieving a restaurant."""
        mock_dynamodb.Table.return_value.get_item.return_value = {
            "Item": {
                "restaurant_id": "rest_1",
                "owner_id": "user_1",
                "name": {"en": "Cedar House", "ar": "بيت الأرز"},
                "slug": "cedar-house",
            }
        }

        restaurant = repository.get_restaurant("rest_1")

        assert restaurant is not None
        assert restaurant.name.en == "Cedar House"
        assert restaurant.is_active is True

    def test_get_restaurant_not_found(
        self, repository: RestaurantRepository, mock_dynamodb: MagicMock
    ) -> None:
        mock_dynamodb.Table.return_value.get_item.return_value = {}

        assert repository.get_restaurant("rest_missing") is None
