"""AWS Lambda handler for both API Gateway and EventBridge events.

This module provides a single Lambda entry point that handles:
1. API Gateway requests (via Mangum ASGI adapter for FastAPI)
2. EventBridge scheduled events (visit retention purge)

The handler detects the event type and routes accordingly.
"""

import asyncio
import logging
import os
from typing import Any

from mangum import Mangum

from lambda_dependencies import build_fastapi_app, create_dependencies, initialize_environment

logger = logging.getLogger(__name__)

# Built once per container during cold start (skipped in test mode)
if os.getenv("ENVIRONMENT") != "test":
    initialize_environment()
    dependencies = create_dependencies()
    app = build_fastapi_app(dependencies)
    mangum_handler = Mangum(app, lifespan="off")
else:
    dependencies = None  # type: ignore
    app = None  # type: ignore
    mangum_handler = None  # type: ignore


def is_eventbridge_event(event: dict[str, Any]) -> bool:
    """Determine if the event is from EventBridge.

    Args:
        event: The Lambda event payload

    Returns:
        True if this is an EventBridge event, False otherwise
    """
    # API Gateway events carry 'requestContext' instead
    return "source" in event and "detail-type" in event and "detail" in event


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """Multi-purpose Lambda handler for API Gateway and EventBridge events.

    Args:
        event: The Lambda event payload (EventBridge or API Gateway)
        context: The Lambda context object

    Returns:
        Response dict with statusCode and body
    """
    logger.info(f"Received Lambda invocation, request_id: {context.aws_request_id}")

    try:
        if is_eventbridge_event(event):
            logger.info(
                f"Processing EventBridge event: {event.get('source')} - {event.get('detail-type')}"
            )
            return handle_eventbridge_event(event)

        logger.info("Processing API Gateway request via Mangum")
        result: dict[str, Any] = mangum_handler(event, context)
        return result

    except Exception as e:
        logger.exception(f"Unhandled error in Lambda handler: {e}")
        return {
            "statusCode": 500,
            "body": "Internal server error",
        }


def handle_eventbridge_event(event: dict[str, Any]) -> dict[str, Any]:
    """Handle EventBridge scheduled events.

    Args:
        event: The EventBridge event payload

    Returns:
        Response dict with statusCode and body
    """
    result: dict[str, Any] = asyncio.run(
        dependencies.retention_handler.handle_scheduled_event(event)
    )
    return result
