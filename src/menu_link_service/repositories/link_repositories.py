"""DynamoDB repository for menu links.

Slug uniqueness is enforced by DynamoDB itself: every slug is claimed by a
conditional put (attribute_not_exists) on the slug table, written in the same
transaction as the link row. Two writers racing for one slug cannot both win;
the loser gets SlugConflictError and no partial write is left behind.

Every overwrite of a link row is conditional on the slug the writer read, so
a stale read-modify-write can never put a released slug back into a row.

Unlike the visit repository, lookups raise TransientStorageError on storage
failures instead of returning None, so owner-facing callers can tell
"missing" from "storage unavailable".
"""

import logging
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from menu_link_service.exceptions import SlugConflictError, TransientStorageError
from menu_link_service.models.link_models import MenuLink

logger = logging.getLogger(__name__)

CONDITIONAL_CHECK_FAILED = "ConditionalCheckFailed"
TRANSACTION_CANCELED = "TransactionCanceledException"


def _cancellation_codes(error: ClientError) -> list[str]:
    """Per-item cancellation codes of a failed transaction, in request order."""
    reasons = error.response.get("CancellationReasons", [])
    return [reason.get("Code", "None") for reason in reasons]


class LinkRepository:
    """Repository for menu link CRUD operations.

    Links live in the links table (partition key link_id, GSI menu_id-index).
    Slug claims live in the slugs table (partition key slug) and map a slug to
    the link that owns it.
    """

    def __init__(
        self,
        dynamodb_resource: DynamoDBServiceResource,
        links_table_name: str,
        slugs_table_name: str,
    ) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            links_table_name: Name of the links table
            slugs_table_name: Name of the slug claim table
        """
        self.dynamodb = dynamodb_resource
        self.links_table_name = links_table_name
        self.slugs_table_name = slugs_table_name
        self.links_table: Table = dynamodb_resource.Table(links_table_name)
        self.slugs_table: Table = dynamodb_resource.Table(slugs_table_name)
        # The resource-attached client accepts native Python types
        self.client = dynamodb_resource.meta.client

    def _slug_claim_put(self, slug: str, link_id: str) -> dict[str, Any]:
        return {
            "Put": {
                "TableName": self.slugs_table_name,
                "Item": {
                    "slug": slug,
                    "link_id": link_id,
                    "claimed_at": datetime.now(UTC).isoformat(),
                },
                "ConditionExpression": "attribute_not_exists(slug)",
            }
        }

    def create_link(self, link: MenuLink) -> None:
        """Persist a new link and claim its slug atomically.

        Args:
            link: MenuLink to create

        Raises:
            SlugConflictError: If the slug is already claimed
            TransientStorageError: On any other storage failure
        """
        try:
            self.client.transact_write_items(
                TransactItems=[
                    self._slug_claim_put(link.slug, link.link_id),
                    {
                        "Put": {
                            "TableName": self.links_table_name,
                            "Item": link.to_dynamodb_item(),
                            "ConditionExpression": "attribute_not_exists(link_id)",
                        }
                    },
                ]
            )

        except ClientError as e:
            codes = _cancellation_codes(e)
            if e.response["Error"]["Code"] == TRANSACTION_CANCELED and codes[:1] == [
                CONDITIONAL_CHECK_FAILED
            ]:
                raise SlugConflictError(f"Slug {link.slug} is already taken", slug=link.slug) from e
            logger.error(f"Failed to create link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to create link: {e}", operation="create_link") from e

        except BotoCoreError as e:
            logger.error(f"Failed to create link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to create link: {e}", operation="create_link") from e

    def change_slug(self, link: MenuLink, old_slug: str) -> bool:
        """Move a link to a new slug and save its other fields in one transaction.

        The new slug is claimed, the old claim released and the link row
        rewritten together, so a failed claim leaves everything unchanged.

        Args:
            link: MenuLink carrying the new slug and updated fields
            old_slug: Slug the caller read from the link row

        Returns:
            bool: True if the link was updated, False if it no longer exists
            or no longer holds old_slug

        Raises:
            SlugConflictError: If the new slug is already claimed
            TransientStorageError: On any other storage failure
        """
        try:
            self.client.transact_write_items(
                TransactItems=[
                    self._slug_claim_put(link.slug, link.link_id),
                    {
                        "Delete": {
                            "TableName": self.slugs_table_name,
                            "Key": {"slug": old_slug},
                            "ConditionExpression": "link_id = :lid",
                            "ExpressionAttributeValues": {":lid": link.link_id},
                        }
                    },
                    {
                        "Put": {
                            "TableName": self.links_table_name,
                            "Item": link.to_dynamodb_item(),
                            "ConditionExpression": "attribute_exists(link_id) AND slug = :old",
                            "ExpressionAttributeValues": {":old": old_slug},
                        }
                    },
                ]
            )
            return True

        except ClientError as e:
            codes = _cancellation_codes(e)
            if e.response["Error"]["Code"] == TRANSACTION_CANCELED and codes:
                if codes[0] == CONDITIONAL_CHECK_FAILED:
                    raise SlugConflictError(
                        f"Slug {link.slug} is already taken", slug=link.slug
                    ) from e
                if CONDITIONAL_CHECK_FAILED in codes[1:]:
                    logger.warning(f"Link {link.link_id} changed or vanished during slug change")
                    return False
            logger.error(f"Failed to change slug for link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to change slug: {e}", operation="change_slug") from e

        except BotoCoreError as e:
            logger.error(f"Failed to change slug for link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to change slug: {e}", operation="change_slug") from e

    def save_link(self, link: MenuLink) -> bool:
        """Overwrite an existing link row without changing its slug.

        The write only succeeds while the stored row still carries link.slug;
        slug changes go through change_slug.

        Args:
            link: MenuLink to save, carrying the slug the caller read

        Returns:
            bool: True if saved, False if the link does not exist or its slug
            has changed since it was read

        Raises:
            TransientStorageError: On storage failure
        """
        try:
            self.links_table.put_item(
                Item=link.to_dynamodb_item(),
                ConditionExpression="attribute_exists(link_id) AND slug = :slug",
                ExpressionAttributeValues={":slug": link.slug},
            )
            return True

        except ClientError as e:
            if e.response["Error"]["Code"] == "ConditionalCheckFailedException":
                return False
            logger.error(f"Failed to save link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to save link: {e}", operation="save_link") from e

        except BotoCoreError as e:
            logger.error(f"Failed to save link {link.link_id}: {e}")
            raise TransientStorageError(f"Failed to save link: {e}", operation="save_link") from e

    def get_link(self, link_id: str) -> MenuLink | None:
        """Retrieve a link by ID.

        Args:
            link_id: Link identifier

        Returns:
            MenuLink if found, None otherwise

        Raises:
            TransientStorageError: On storage failure
        """
        try:
            response = self.links_table.get_item(Key={"link_id": link_id}, ConsistentRead=True)

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to get link {link_id}: {e}")
            raise TransientStorageError(f"Failed to get link: {e}", operation="get_link") from e

        if "Item" not in response:
            return None

        return MenuLink.from_dynamodb_item(response["Item"])

    def get_link_by_slug(self, slug: str) -> MenuLink | None:
        """Retrieve the link that owns a slug.

        Args:
            slug: Link slug

        Returns:
            MenuLink if the slug is claimed, None otherwise

        Raises:
            TransientStorageError: On storage failure
        """
        try:
            response = self.slugs_table.get_item(Key={"slug": slug}, ConsistentRead=True)

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to look up slug {slug}: {e}")
            raise TransientStorageError(
                f"Failed to look up slug: {e}", operation="get_link_by_slug"
            ) from e

        if "Item" not in response:
            return None

        return self.get_link(response["Item"]["link_id"])

    def list_links_for_menu(self, menu_id: str) -> list[MenuLink]:
        """List all links of a menu, newest first.

        Uses a Global Secondary Index on menu_id.

        Args:
            menu_id: Menu identifier

        Returns:
            list: List of MenuLink objects (empty list if none found)

        Raises:
            TransientStorageError: On storage failure
        """
        query_kwargs: dict[str, Any] = {
            "IndexName": "menu_id-index",
            "KeyConditionExpression": "menu_id = :mid",
            "ExpressionAttributeValues": {":mid": menu_id},
        }
        items: list[dict[str, Any]] = []

        try:
            while True:
                response = self.links_table.query(**query_kwargs)
                items.extend(response.get("Items", []))
                if "LastEvaluatedKey" not in response:
                    break
                query_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to list links for menu {menu_id}: {e}")
            raise TransientStorageError(
                f"Failed to list links: {e}", operation="list_links_for_menu"
            ) from e

        links = [MenuLink.from_dynamodb_item(item) for item in items]
        return sorted(links, key=lambda link: link.created_at, reverse=True)
