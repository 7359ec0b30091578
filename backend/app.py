import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

import setproctitle

import settings
from brotli_asgi import BrotliMiddleware
from fastapi import FastAPI, APIRouter

from routes.activity_route import router as activity_router
from routes.auth_route import get_version, router as auth_router
from routes.challenges_route import router as challenges_router
from routes.errors import register_exception_handlers
from routes.friendship_route import router as friendship_router
from starlette.middleware import Middleware
from starlette.middleware.sessions import SessionMiddleware

from utils import setup_logs

logger = logging.getLogger("questlog.main")
setup_logs()
setproctitle.setproctitle("Questlog API")


def update_database():  # pragma: no cover
    """Init the DB or run the Alembic migrations"""
    import alembic.config

    if not Path("alembic.ini").is_file():
        os.chdir(settings.BACKEND_DIR)

    try:
        alembic.config.main(
            argv=[
                "--raiseerr",
                "upgrade",
                "head",
            ]
        )
    except Exception as e:
        logger.exception(f"Cannot run DB migrations: {e}")


@asynccontextmanager
async def app_lifespan(app: FastAPI):
    """Lifespan context manager for FastAPI app"""
    logger.debug("Starting...")
    if not settings.TESTING_MODE:
        update_database()
    yield
    logger.debug("Closing app")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application"""

    app = FastAPI(
        title="Questlog",
        description="Friends, challenges and rewards for gamers",
        version=get_version(),
        middleware=[
            Middleware(BrotliMiddleware, minimum_size=1000),
            Middleware(SessionMiddleware, secret_key=settings.SESSION_SECRET_KEY),
        ],
        swagger_ui_parameters={
            "defaultModelsExpandDepth": 0,
        },  # collapse the swagger schema
        lifespan=app_lifespan,
    )
    register_exception_handlers(app)

    # Mount routers
    api_router = APIRouter()
    api_router.include_router(auth_router)
    api_router.include_router(friendship_router, tags=["friendship"])
    api_router.include_router(challenges_router, tags=["challenges"])
    api_router.include_router(activity_router, tags=["activity"])
    app.include_router(api_router, prefix=settings.API_PREFIX)
    return app
