"""FastAPI application entrypoint."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from bigcsv_migrator import __version__
from bigcsv_migrator.api import api_router
from bigcsv_migrator.api.dependencies import get_runtime, get_settings


def create_app() -> FastAPI:
    """Build FastAPI application."""

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        """Recover this node's tasks and run the background loops while serving."""

        runtime = get_runtime()
        await runtime.startup()
        try:
            yield
        finally:
            await runtime.shutdown()

    settings = get_settings()
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """Run the node."""

    settings = get_settings()
    uvicorn.run(
        "bigcsv_migrator.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


__all__ = ["app", "create_app", "run"]
