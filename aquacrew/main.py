import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, HTTPException

# Load env from the project root .env (skipped under pytest)
if "PYTEST_CURRENT_TEST" not in os.environ:
    load_dotenv()

from aquacrew.core.config import settings, validate_config
from aquacrew.core.container import AppContainer, build_container
from aquacrew.core.errors import (
    AppError,
    app_error_handler,
    http_error_handler,
    unhandled_exception_handler,
)
from aquacrew.core.logging import configure_logging
from aquacrew.core.middleware.request_id import RequestIdMiddleware
from aquacrew.api import admin, health, hydration, metrics, milestones, profiles, streaks, usage


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger = logging.getLogger("aquacrew")
    logger.info("Starting AquaCrew backend...")
    try:
        yield
    finally:
        logging.getLogger("aquacrew").info("Stopping AquaCrew backend...")


def create_app(container: Optional[AppContainer] = None) -> FastAPI:
    configure_logging(settings.ENV)
    validate_config(strict=getattr(settings, "CONFIG_STRICT", False))

    app = FastAPI(title="AquaCrew - Backend", lifespan=lifespan)
    app.state.container = container or build_container(settings)

    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(AppError, app_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    for module in (health, metrics, profiles, hydration, streaks, milestones, usage, admin):
        app.include_router(module.router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("aquacrew.main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")), reload=False)
