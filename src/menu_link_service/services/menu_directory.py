"""Read access to restaurants and their menus."""

import logging

from menu_link_service.exceptions import NotFoundError
from menu_link_service.models.menu_models import Menu
from menu_link_service.repositories.menu_repositories import MenuRepository, RestaurantRepository

logger = logging.getLogger(__name__)


class MenuDirectory:
    """Looks up menus by explicit id queries instead of object-graph traversal."""

    def __init__(
        self, menu_repository: MenuRepository, restaurant_repository: RestaurantRepository
    ) -> None:
        self.menu_repository = menu_repository
        self.restaurant_repository = restaurant_repository

    async def get_menu(self, menu_id: str) -> Menu:
        """Get a menu by ID.

        Raises:
            NotFoundError: If the menu does not exist
        """
        menu = self.menu_repository.get_menu(menu_id)
        if menu is None:
            raise NotFoundError(f"Menu {menu_id} not found", resource="menu", resource_id=menu_id)
        return menu

    async def find_menus_by_restaurant(self, restaurant_id: str) -> list[Menu]:
        """List a restaurant's active menus.

        Raises:
            NotFoundError: If the restaurant does not exist
        """
        if self.restaurant_repository.get_restaurant(restaurant_id) is None:
            raise NotFoundError(
                f"Restaurant {restaurant_id} not found",
                resource="restaurant",
                resource_id=restaurant_id,
            )

        menus = self.menu_repository.find_menus_by_restaurant(restaurant_id)
        return [menu for menu in menus if menu.is_active]
