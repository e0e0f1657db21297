"""Main application entry point for the menu link service.

Provides the FastAPI application factory for running the service locally or
behind a container runtime.
"""

import logging
import os

from fastapi import FastAPI

from lambda_dependencies import (
    ServiceDependencies,
    build_fastapi_app,
    create_dependencies,
    initialize_environment,
)

logger = logging.getLogger(__name__)


def create_application(dependencies: ServiceDependencies | None = None) -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    Args:
        dependencies: Pre-built services (built from the environment if omitted)

    Returns:
        Configured FastAPI application instance
    """
    initialize_environment()

    logger.info("Initializing menu link service...")

    app = build_fastapi_app(dependencies or create_dependencies())

    logger.info("Menu link service initialized successfully")
    return app


# Skip building the real app during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    app = FastAPI()


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", "8001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")
    logger.info(f"API documentation available at http://{host}:{port}/docs")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
