import logging

from fastapi import Depends, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse

from cortex_construct.api.construct import router as construct_router
from cortex_construct.config import Settings, get_settings
from cortex_construct.logging_config import configure_logging
from cortex_construct.telemetry import emit_app_startup_event, emit_exception

configure_logging()

LOGGER = logging.getLogger(__name__)

app = FastAPI(title="Cortex Construct API")
app.include_router(construct_router)


@app.on_event("startup")
async def _startup() -> None:
    emit_app_startup_event()


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    emit_exception(module=__name__, error=exc)
    body = {"error": "Unexpected server error"}
    # Internal error text is only exposed outside production.
    if not get_settings().is_production:
        body["details"] = str(exc)
    return JSONResponse(body, status_code=500)


@app.get("/", response_class=PlainTextResponse)
def read_root() -> str:
    """Healthcheck endpoint for the service."""
    return "ok"


@app.get("/healthz", response_class=PlainTextResponse)
def healthcheck() -> str:
    """Liveness probe used by container orchestrators."""
    return "ok"


@app.get("/readyz", response_class=PlainTextResponse)
def readiness_probe(settings: Settings = Depends(get_settings)) -> str:
    """Readiness probe that ensures upstream credentials are configured."""

    missing: list[str] = []
    if not settings.cortex_api_key:
        missing.append("CORTEX_API_KEY")
    if not settings.openai_api_key:
        missing.append("OPENAI_API_KEY")
    if missing:
        raise HTTPException(status_code=503, detail=f"missing credentials: {', '.join(missing)}")
    return "ok"
