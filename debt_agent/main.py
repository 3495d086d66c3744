"""Main FastAPI application for the Debt Collection Agent."""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from debt_agent.api.health import router as health_router
from debt_agent.api.webhooks import router as webhooks_router
from debt_agent.core.config import get_settings
from debt_agent.core.dependencies import ServiceContainer, build_container
from debt_agent.core.exceptions import DebtAgentError
from debt_agent.core.logging import get_logger, setup_logging
from debt_agent.core.middleware import CorrelationIDMiddleware

logger = get_logger(__name__)


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the application.

    Args:
        container: Pre-built services, mainly for tests; built from settings when omitted
    """
    settings = container.settings if container else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.service_name, settings.environment)
        services = container or build_container(settings)
        app.state.container = services
        logger.info("Starting Debt Collection Agent", version=settings.service_version)

        if settings.scheduler_enabled:
            await services.scheduler.start()
        try:
            yield
        finally:
            await services.scheduler.stop()
            logger.info("Debt Collection Agent stopped")

    app = FastAPI(
        title="Debt Collection Agent",
        description="Automated debt reminders, escalation and reply handling",
        version=settings.service_version,
        lifespan=lifespan,
    )
    app.add_middleware(CorrelationIDMiddleware)

    @app.exception_handler(DebtAgentError)
    async def debt_agent_error_handler(request: Request, exc: DebtAgentError) -> JSONResponse:
        logger.warning("Request failed", path=request.url.path, error_code=exc.error_code, detail=exc.detail)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(health_router, tags=["health"])
    app.include_router(webhooks_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    _settings = get_settings()
    uvicorn.run("debt_agent.main:app", host=_settings.host, port=_settings.port, reload=_settings.debug)
