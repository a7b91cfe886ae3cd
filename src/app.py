"""
Users API Server
Single-resource CRUD service over the users table.
"""

import logging
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings
from database.connection import Database, ensure_database_exists
from api.routes import health, users
from middleware.security_headers import SecurityHeadersMiddleware
from middleware.body_parsing import BodyParsingMiddleware
from utils.error_handling import setup_error_handling

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    await ensure_database_exists()

    database = Database()
    await database.connect()
    await database.test_connection()
    app.state.database = database

    yield

    await database.close()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Users API",
        description="CRUD API for the users resource",
        version=settings.APP_VERSION,
        lifespan=lifespan
    )

    # Added first so it runs inside the request context middleware
    app.add_middleware(BodyParsingMiddleware)

    # Centralized error handling (adds the request context middleware)
    setup_error_handling(app)

    app.add_middleware(SecurityHeadersMiddleware)

    allow_any_origin = "*" in settings.ALLOWED_ORIGINS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if allow_any_origin else settings.ALLOWED_ORIGINS,
        allow_credentials=not allow_any_origin,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    app.include_router(health.router, tags=["Health"])
    app.include_router(users.router, prefix="/api/users", tags=["Users"])

    return app


# FastAPI app instance is exported for use by uvicorn
# Server startup is handled by main.py at the project root
app = create_app()
