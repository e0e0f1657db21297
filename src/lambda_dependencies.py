"""Dependency factory shared by the Lambda handler and the local server.

Everything is built explicitly and handed to its consumers; the entry point
that calls create_dependencies() owns the result for the life of the process
(a Lambda container keeps it across warm invocations).
"""

import logging
import os
from dataclasses import dataclass
from typing import Any

import boto3
from fastapi import FastAPI

from menu_link_service.handlers.api_handler import create_app
from menu_link_service.handlers.event_handler import RetentionEventHandler
from menu_link_service.observability import configure_logging, setup_observability
from menu_link_service.repositories.link_repositories import LinkRepository
from menu_link_service.repositories.menu_repositories import MenuRepository, RestaurantRepository
from menu_link_service.repositories.visit_repositories import VisitRepository
from menu_link_service.services.analytics_service import AnalyticsAggregator
from menu_link_service.services.link_registry import DEFAULT_MAX_SLUG_ATTEMPTS, LinkRegistry
from menu_link_service.services.menu_directory import MenuDirectory
from menu_link_service.services.visit_recorder import VisitRecorder

logger = logging.getLogger(__name__)

DEVELOPMENT_ENVIRONMENTS = {"development", "test"}
DEVELOPMENT_IP_HASH_SALT = "dev-only-ip-hash-salt"
DEVELOPMENT_API_KEY = "dummy-key-for-development"


@dataclass
class ServiceDependencies:
    """Fully wired services for one process."""

    link_registry: LinkRegistry
    visit_recorder: VisitRecorder
    analytics: AnalyticsAggregator
    menu_directory: MenuDirectory
    retention_handler: RetentionEventHandler


def get_dynamodb_resource() -> Any:
    """Create a DynamoDB resource for the current environment.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB - use environment variables for credentials
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            aws_secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
        )

    logger.info(f"Using AWS DynamoDB in region {region}")
    # Production - boto3 will use default credential chain (IAM role, env vars, etc.)
    return boto3.resource("dynamodb", region_name=region)


def get_ip_hash_salt() -> str:
    """Read the IP hashing secret.

    Raises:
        ValueError: If IP_HASH_SALT is unset outside development/test
    """
    salt = os.getenv("IP_HASH_SALT", "")
    if salt:
        return salt

    environment = os.getenv("ENVIRONMENT", "development")
    if environment not in DEVELOPMENT_ENVIRONMENTS:
        raise ValueError("IP_HASH_SALT must be set in environment")

    logger.warning("No IP_HASH_SALT configured - using development salt")
    return DEVELOPMENT_IP_HASH_SALT


def get_api_keys() -> list[str]:
    """Read the comma-separated ADMIN_API_KEY list."""
    api_keys_str = os.getenv("ADMIN_API_KEY", "")
    api_keys = [key.strip() for key in api_keys_str.split(",") if key.strip()]

    if not api_keys:
        logger.warning("No ADMIN_API_KEY configured - using development key")
        api_keys = [DEVELOPMENT_API_KEY]

    return api_keys


def create_dependencies(dynamodb_resource: Any | None = None) -> ServiceDependencies:
    """Build repositories and services from environment configuration.

    Args:
        dynamodb_resource: Optional pre-built resource (defaults to get_dynamodb_resource())

    Returns:
        ServiceDependencies with every service wired to the same resource
    """
    dynamodb_resource = dynamodb_resource or get_dynamodb_resource()

    links_table = os.getenv("DYNAMODB_MENU_LINKS_TABLE", "menu-links")
    slugs_table = os.getenv("DYNAMODB_LINK_SLUGS_TABLE", "menu-link-slugs")
    visits_table = os.getenv("DYNAMODB_VISITS_TABLE", "menu-link-visits")
    menus_table = os.getenv("DYNAMODB_MENUS_TABLE", "menus")
    restaurants_table = os.getenv("DYNAMODB_RESTAURANTS_TABLE", "restaurants")

    link_repository = LinkRepository(
        dynamodb_resource=dynamodb_resource,
        links_table_name=links_table,
        slugs_table_name=slugs_table,
    )
    visit_repository = VisitRepository(dynamodb_resource=dynamodb_resource, table_name=visits_table)
    menu_repository = MenuRepository(dynamodb_resource=dynamodb_resource, table_name=menus_table)
    restaurant_repository = RestaurantRepository(
        dynamodb_resource=dynamodb_resource, table_name=restaurants_table
    )

    logger.info(
        f"Repositories configured - links: {links_table}, slugs: {slugs_table}, "
        f"visits: {visits_table}, menus: {menus_table}"
    )

    max_attempts = int(os.getenv("SLUG_MAX_ATTEMPTS", str(DEFAULT_MAX_SLUG_ATTEMPTS)))
    link_registry = LinkRegistry(
        link_repository=link_repository,
        menu_repository=menu_repository,
        max_attempts=max_attempts,
    )
    visit_recorder = VisitRecorder(
        visit_repository=visit_repository,
        link_repository=link_repository,
        ip_hash_salt=get_ip_hash_salt(),
    )
    analytics = AnalyticsAggregator(
        visit_repository=visit_repository,
        link_repository=link_repository,
        menu_repository=menu_repository,
    )
    menu_directory = MenuDirectory(
        menu_repository=menu_repository, restaurant_repository=restaurant_repository
    )

    logger.info("Services initialized")

    return ServiceDependencies(
        link_registry=link_registry,
        visit_recorder=visit_recorder,
        analytics=analytics,
        menu_directory=menu_directory,
        retention_handler=RetentionEventHandler(visit_recorder=visit_recorder),
    )


def build_fastapi_app(dependencies: ServiceDependencies) -> FastAPI:
    """Create the instrumented FastAPI application for a dependency bundle."""
    app = create_app(
        link_registry=dependencies.link_registry,
        visit_recorder=dependencies.visit_recorder,
        analytics=dependencies.analytics,
        menu_directory=dependencies.menu_directory,
        api_keys=get_api_keys(),
    )
    setup_observability(app)

    logger.info("FastAPI application initialized")
    return app


def initialize_environment() -> None:
    """Configure logging; call once at process start."""
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    logger.info("Environment initialized")
