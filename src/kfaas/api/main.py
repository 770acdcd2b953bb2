from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kfaas import __version__
from kfaas.api.routes import health, services
from kfaas.config import get_settings
from kfaas.logging import configure_logging


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    configure_logging()
    yield


async def invalid_service_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": f"The service specification is not valid: {exc.errors()}"},
    )


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="kfaas API",
        version=__version__,
        docs_url=f"{settings.api_prefix}/docs",
        openapi_url=f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.cors_origins],
            allow_methods=["*"],
            allow_headers=["*"],
            allow_credentials=True,
        )

    app.add_exception_handler(RequestValidationError, invalid_service_handler)
    app.include_router(services.router, prefix=settings.api_prefix, tags=["services"])
    app.include_router(health.router, tags=["health"])
    return app


app = create_app()
