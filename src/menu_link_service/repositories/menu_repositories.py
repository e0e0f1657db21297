"""Read-only DynamoDB repositories for restaurants and menus.

Relationships are resolved by explicit queries (find_menus_by_restaurant)
rather than back-references stored on the parent.
"""

import logging
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from menu_link_service.exceptions import TransientStorageError
from menu_link_service.models.menu_models import Menu, Restaurant

logger = logging.getLogger(__name__)


class MenuRepository:
    """Repository for menu lookups.

    Menus live in a table keyed by menu_id with a restaurant_id GSI.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def get_menu(self, menu_id: str) -> Menu | None:
        """Retrieve a menu by ID.

        Args:
            menu_id: Menu identifier

        Returns:
            Menu if found, None otherwise

        Raises:
            TransientStorageError: On storage failure
        """
        try:
            response = self.table.get_item(Key={"menu_id": menu_id})

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to get menu {menu_id}: {e}")
            raise TransientStorageError(f"Failed to get menu: {e}", operation="get_menu") from e

        if "Item" not in response:
            return None

        return Menu.from_dynamodb_item(response["Item"])

    def find_menus_by_restaurant(self, restaurant_id: str) -> list[Menu]:
        """List all menus of a restaurant.

        Args:
            restaurant_id: Restaurant identifier

        Returns:
            list: List of Menu objects (empty list if none found)

        Raises:
            TransientStorageError: On storage failure
        """
        query_kwargs: dict[str, Any] = {
            "IndexName": "restaurant_id-index",
            "KeyConditionExpression": "restaurant_id = :rid",
            "ExpressionAttributeValues": {":rid": restaurant_id},
        }
        items: list[dict[str, Any]] = []

        try:
            while True:
                response = self.table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list menus for restaurant {restaurant_id}: {e}")
            raise TransientStorageError(
                f"Failed to list menus: {e}", operation="find_menus_by_restaurant"
            ) from e

        return [Menu.from_dynamodb_item(item) for item in items]


class RestaurantRepository:
    """Repository for restaurant lookups."""

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        """Retrieve a restaurant by ID.

        Raises:
            TransientStorageError: On storage failure
        """
        try:
            response = self.table.get_item(Key={"restaurant_id": restaurant_id})

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to get restaurant {restaurant_id}: {e}")
            raise TransientStorageError(
                f"Failed to get restaurant: {e}", operation="get_restaurant"
            ) from e

        if "Item" not in response:
            return None

        return Restaurant.from_dynamodb_item(response["Item"])
