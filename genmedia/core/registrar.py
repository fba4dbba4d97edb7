import logging

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from genmedia.common.exception.errors import BaseExceptionError
from genmedia.core.conf import settings
from genmedia.database.db import create_tables

logger = logging.getLogger(__name__)


@asynccontextmanager
async def register_init(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup and shutdown hooks

    :param app: FastAPI application
    :return:
    """
    if settings.DATABASE_CREATE_TABLES:
        await create_tables()
        logger.info('Database tables created')

    yield


def register_logger() -> None:
    """Configure the root logger once"""
    logging.basicConfig(level=settings.LOG_STD_LEVEL, format=settings.LOG_FORMAT)


def register_middleware(app: FastAPI) -> None:
    if settings.MIDDLEWARE_CORS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=['*'],
            allow_headers=['*'],
            expose_headers=settings.CORS_EXPOSE_HEADERS,
        )


async def service_exception_handler(request: Request, exc: BaseExceptionError) -> JSONResponse:
    """Render service errors as ``{"error": code, "message": ..., "details": ...}``"""
    if exc.status_code >= 500:
        logger.error(f'{request.method} {request.url.path} failed: {exc.code} {exc.message}')
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers={'Cache-Control': 'no-store'})


def register_exception(app: FastAPI) -> None:
    app.add_exception_handler(BaseExceptionError, service_exception_handler)


def register_router(app: FastAPI) -> None:
    from genmedia.app.router import router

    app.include_router(router)


def register_app() -> FastAPI:
    """Create the FastAPI application"""
    register_logger()

    app = FastAPI(
        title=settings.FASTAPI_TITLE,
        description=settings.FASTAPI_DESCRIPTION,
        docs_url=settings.FASTAPI_DOCS_URL,
        redoc_url=settings.FASTAPI_REDOC_URL,
        openapi_url=settings.FASTAPI_OPENAPI_URL,
        lifespan=register_init,
    )

    register_middleware(app)
    register_router(app)
    register_exception(app)

    return app
