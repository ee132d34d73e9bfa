"""larder - household inventory, meal planning and shopping list backend."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from larder.core.db_client import close_connection, init_db
from larder.core.errors import LarderError, to_error_response
from larder.core.logging import configure_logfire, instrument_fastapi
from larder.interface.articles_router import router as articles_router
from larder.interface.batches_router import router as batches_router
from larder.interface.consumption_router import router as consumption_router
from larder.interface.dashboard_router import router as dashboard_router
from larder.interface.forecast_router import router as forecast_router
from larder.interface.recipes_router import meal_plan_router, router as recipes_router
from larder.interface.shopping_router import router as shopping_router
from larder.interface.units_router import router as units_router


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    # Configure logging first so startup logs are captured
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    yield
    # Shutdown
    await close_connection()


app = FastAPI(
    title="larder",
    description="Household inventory, meal planning and shopping lists",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)


@app.exception_handler(LarderError)
async def larder_error_handler(request: Request, exc: LarderError) -> JSONResponse:
    """Render domain errors as structured responses."""
    status_code, body = to_error_response(exc)
    logger.info(
        "request_rejected",
        extra={"path": request.url.path, "code": body.code, "status_code": status_code},
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


# Register routers
app.include_router(units_router)
app.include_router(shopping_router)
app.include_router(articles_router)
app.include_router(batches_router)
app.include_router(recipes_router)
app.include_router(meal_plan_router)
app.include_router(forecast_router)
app.include_router(consumption_router)
app.include_router(dashboard_router)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)  # noqa: S104
