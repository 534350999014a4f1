"""Main FastAPI application for the DayGuard backend."""
from fastapi import FastAPI, Request

from app.api.errors import register_exception_handlers
from app.api.routes.events import router as events_router
from app.api.routes.guardian import router as guardian_router
from app.api.routes.negotiator import router as negotiator_router
from app.api.routes.orchestrator import router as orchestrator_router
from app.core.config import settings
from app.core.logging import configure_logging
from app.core.middleware import RequestIDMiddleware
from app.observability.client import init_opik
from app.observability.tracing import trace

configure_logging(log_level=settings.log_level, log_format=settings.log_format)

app = FastAPI(title=settings.app_name, version="0.1.0")
app.add_middleware(RequestIDMiddleware)
register_exception_handlers(app)
app.include_router(guardian_router)
app.include_router(negotiator_router)
app.include_router(orchestrator_router)
app.include_router(events_router)


@app.on_event("startup")
async def startup_observability() -> None:
    """Initialize observability backends after the event loop starts."""
    init_opik()


@app.get("/health", tags=["health"], summary="Readiness probe")
async def health_check(request: Request) -> dict[str, str]:
    """Return a simple status payload so automation can probe the API."""
    with trace("http.health_check", metadata={"route": "/health"}, request_id=request.state.request_id):
        return {"status": "ok"}
