"""DynamoDB repository for visit records.

Visits are append-only. save_visit follows the simple-return-value pattern
(False on failure) because the only caller treats recording as best effort;
reads and purges raise TransientStorageError so owner-facing callers see them.
"""

import logging
from datetime import UTC, datetime
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from mypy_boto3_dynamodb.service_resource import DynamoDBServiceResource, Table

from menu_link_service.exceptions import TransientStorageError
from menu_link_service.models.visit_models import Visit

logger = logging.getLogger(__name__)

# Sorts after any visit id character, so "<ts>#~" bounds every key at <ts>
_KEY_SUFFIX_MAX = "#~"


def as_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


class VisitRepository:
    """Repository for visit records.

    Manages visit records in DynamoDB with composite key (link_id, visit_key).
    The table is expected to have TTL enabled on expires_at.
    """

    def __init__(self, dynamodb_resource: DynamoDBServiceResource, table_name: str) -> None:
        """Initialize repository.

        Args:
            dynamodb_resource: Boto3 DynamoDB resource
            table_name: Name of the DynamoDB table
        """
        self.dynamodb = dynamodb_resource
        self.table_name = table_name
        self.table: Table = dynamodb_resource.Table(table_name)

    def save_visit(self, visit: Visit) -> bool:
        """Append a visit.

        Args:
            visit: Visit to save

        Returns:
            bool: True if save succeeded, False otherwise
        """
        try:
            self.table.put_item(Item=visit.to_dynamodb_item())
            return True

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to save visit for link {visit.link_id}: {e}")
            return False

    def list_visits_for_link(
        self,
        link_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[Visit]:
        """List visits for a link, oldest first, optionally bounded in time.

        Args:
            link_id: Link identifier
            start: Inclusive lower bound on visit time
            end: Inclusive upper bound on visit time

        Returns:
            list: List of Visit objects (empty list if none found)

        Raises:
            TransientStorageError: On storage failure
        """
        values: dict[str, Any] = {":lid": link_id}

        if start is not None and end is not None:
            key_condition = "link_id = :lid AND visit_key BETWEEN :start AND :end"
            values[":start"] = as_utc(start).isoformat()
            values[":end"] = as_utc(end).isoformat() + _KEY_SUFFIX_MAX
        elif start is not None:
            key_condition = "link_id = :lid AND visit_key >= :start"
            values[":start"] = as_utc(start).isoformat()
        elif end is not None:
            key_condition = "link_id = :lid AND visit_key <= :end"
            values[":end"] = as_utc(end).isoformat() + _KEY_SUFFIX_MAX
        else:
            key_condition = "link_id = :lid"

        query_kwargs: dict[str, Any] = {
            "KeyConditionExpression": key_condition,
            "ExpressionAttributeValues": values,
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
            logger.error(f"Failed to list visits for link {link_id}: {e}")
            raise TransientStorageError(
                f"Failed to list visits: {e}", operation="list_visits_for_link"
            ) from e

        return [Visit.from_dynamodb_item(item) for item in items]

    def purge_visits_before(self, cutoff: datetime) -> int:
        """Delete every visit recorded before cutoff.

        Scans the whole table; intended for a scheduled job, not request paths.

        Args:
            cutoff: Visits strictly older than this are deleted

        Returns:
            int: Number of visits deleted

        Raises:
            TransientStorageError: On storage failure
        """
        scan_kwargs: dict[str, Any] = {
            "FilterExpression": "#ts < :cutoff",
            "ProjectionExpression": "link_id, visit_key",
            "ExpressionAttributeNames": {"#ts": "timestamp"},
            "ExpressionAttributeValues": {":cutoff": as_utc(cutoff).isoformat()},
        }
        deleted = 0

        try:
            with self.table.batch_writer() as batch:
                while True:
                    response = self.table.scan(**scan_kwargs)
                    for item in response.get("Items", []):
                        batch.delete_item(
                            Key={"link_id": item["link_id"], "visit_key": item["visit_key"]}
                        )
                        deleted += 1
                    if "LastEvaluatedKey" not in response:
                        break
                    scan_kwargs["ExclusiveStartKey"] = response["LastEvaluatedKey"]

        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to purge visits before {cutoff.isoformat()}: {e}")
            raise TransientStorageError(
                f"Failed to purge visits: {e}", operation="purge_visits_before"
            ) from e

        return deleted
