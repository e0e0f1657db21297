"""EventBridge handler for scheduled maintenance events."""

import logging
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from menu_link_service.exceptions import TransientStorageError
from menu_link_service.services.visit_recorder import VisitRecorder

logger = logging.getLogger(__name__)

SCHEDULED_EVENT_SOURCE = "aws.events"
SCHEDULED_EVENT_DETAIL_TYPE = "Scheduled Event"


class ScheduledEvent(BaseModel):
    """EventBridge scheduled rule invocation.

    Attributes:
        source: Always "aws.events" for scheduled rules
        detail_type: Always "Scheduled Event" for scheduled rules
        time: ISO 8601 time the rule fired
        resources: ARNs of the rules that fired
    """

    source: str
    detail_type: str = Field(alias="detail-type")
    time: str
    resources: list[str] = Field(default_factory=list)


def parse_scheduled_event(event: dict[str, Any]) -> ScheduledEvent | None:
    """Parse a raw EventBridge event into a ScheduledEvent.

    Returns:
        ScheduledEvent if the payload is a scheduled rule invocation, None otherwise
    """
    try:
        parsed = ScheduledEvent.model_validate(event)
    except ValidationError as e:
        logger.error(f"Failed to parse EventBridge event: {e}")
        return None

    if parsed.source != SCHEDULED_EVENT_SOURCE or parsed.detail_type != SCHEDULED_EVENT_DETAIL_TYPE:
        logger.warning(f"Unsupported event type: {parsed.source}/{parsed.detail_type}")
        return None

    return parsed


class RetentionEventHandler:
    """Runs the visit retention purge when the schedule fires."""

    def __init__(self, visit_recorder: VisitRecorder) -> None:
        self.visit_recorder = visit_recorder

    async def handle_scheduled_event(self, event: dict[str, Any]) -> dict[str, Any]:
        """Lambda-style handler for a scheduled purge.

        Args:
            event: EventBridge event dictionary

        Returns:
            Dictionary with statusCode and body for Lambda response
        """
        scheduled = parse_scheduled_event(event)
        if scheduled is None:
            return {"statusCode": 400, "body": "Invalid event format"}

        logger.info(f"Running visit retention purge for schedule fired at {scheduled.time}")

        try:
            deleted = await self.visit_recorder.purge_expired()
        except TransientStorageError as e:
            logger.error(f"Visit retention purge failed: {e.message}")
            return {"statusCode": 500, "body": f"Visit purge failed: {e.message}"}

        return {"statusCode": 200, "body": f"Purged {deleted} expired visits"}
