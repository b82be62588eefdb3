"""FastAPI application setup."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from ..app import Application
from .routes import control, governance


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    application: Application = app.state.application
    await application.start()
    yield
    await application.stop()


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create and configure FastAPI application."""
    application = application or get_app()

    fastapi_app = FastAPI(
        title="Antibeaver API",
        description="Operator API for agent traffic governance",
        version="0.2.1",
        lifespan=lifespan,
    )
    fastapi_app.state.application = application

    fastapi_app.include_router(governance.create_governance_router(application))
    fastapi_app.include_router(control.create_control_router(application))

    return fastapi_app
