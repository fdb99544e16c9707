from __future__ import annotations

import json
import logging
from importlib import resources

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse, StreamingResponse
from pydantic import ValidationError

from .config import RelayConfig
from .errors import RelayError, err_invalid_body, err_metrics_disabled
from .logging_utils import JsonlLogger
from .metrics import MetricsAggregator
from .models import RelayRequest
from .relay import GeminiRelay

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


async def read_relay_request(req: Request) -> RelayRequest:
    """Parse a JSON body, or a form body whose ``data`` field holds the JSON."""
    content_type = req.headers.get("content-type", "")
    try:
        if FORM_CONTENT_TYPE in content_type:
            form = await req.form()
            raw = form.get("data")
            if not isinstance(raw, str):
                raise err_invalid_body("Form body must carry a 'data' field")
            data = json.loads(raw)
        else:
            data = await req.json()
        return RelayRequest.model_validate(data)
    except (ValueError, ValidationError) as exc:
        logger.info("[app] Rejected request body: %s", exc)
        raise err_invalid_body() from exc


def _index_html() -> str:
    return (
        resources.files("gemini_relay")
        .joinpath("static/index.html")
        .read_text(encoding="utf-8")
    )


def create_app(
    cfg: RelayConfig | None = None, relay: GeminiRelay | None = None
) -> FastAPI:
    cfg = cfg or RelayConfig.load()
    if relay is None:
        relay = GeminiRelay(
            cfg, MetricsAggregator(), JsonlLogger(cfg.log_path, cfg.max_log_bytes)
        )

    app = FastAPI(title="Gemini Relay", version="0.1")
    app.state.cfg = cfg
    app.state.relay = relay
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RelayError)
    async def _relay_error(_req: Request, exc: RelayError):
        return JSONResponse(status_code=exc.status_code, content=exc.detail)

    @app.on_event("shutdown")
    async def _shutdown():  # pragma: no cover
        await relay.aclose()

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return HTMLResponse(_index_html())

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/api/gemini")
    async def gemini(req: Request):
        body = await read_relay_request(req)
        return StreamingResponse(
            relay.stream(body.model_type, body.contents),
            media_type="text/event-stream",
            headers=SSE_HEADERS,
        )

    @app.get("/api/metrics")
    async def metrics_api():
        if not cfg.enable_metrics:
            raise err_metrics_disabled()
        return relay.metrics.summary()

    return app
