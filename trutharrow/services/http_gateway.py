"""HTTP surface of the moderation gateway.

Endpoints:
- OPTIONS <path>: CORS preflight, empty 200.
- POST <path>: ``{content}`` -> ``{shouldApprove, flagReason?}``.
- GET /health: liveness probe.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from ..errors import EmptyContentError
from ..moderation.gateway import ModerationGateway
from ..moderation.policy import EMPTY_CONTENT_REASON, FAIL_OPEN_VERDICT

logger = structlog.get_logger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "authorization, x-client-info, apikey, content-type",
}


def _json(payload: dict[str, Any], status_code: int = 200) -> JSONResponse:
    return JSONResponse(payload, status_code=status_code, headers=CORS_HEADERS)


def create_app(gateway: ModerationGateway, *, path: str = "/content-moderation") -> FastAPI:
    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        yield
        await gateway.close()

    app = FastAPI(title="TruthArrow Moderation Gateway", version="1.0.0", lifespan=lifespan)
    app.state.gateway = gateway

    @app.middleware("http")
    async def cors(request: Request, call_next):
        if request.method == "OPTIONS":
            return Response(status_code=200, headers=CORS_HEADERS)
        response = await call_next(request)
        response.headers.update(CORS_HEADERS)
        return response

    @app.post(path)
    async def moderate(request: Request) -> JSONResponse:
        try:
            body = await request.json()
        except ValueError as exc:
            logger.error("moderation_request_unreadable", error=str(exc))
            return _json(FAIL_OPEN_VERDICT.to_payload())

        content = body.get("content") if isinstance(body, dict) else None
        if content is not None and not isinstance(content, str):
            logger.error("moderation_request_invalid_content", content_type=type(content).__name__)
            return _json(FAIL_OPEN_VERDICT.to_payload())

        try:
            verdict = await gateway.judge(content or "")
        except EmptyContentError:
            logger.info("moderation_request_empty")
            return _json({"shouldApprove": False, "flagReason": EMPTY_CONTENT_REASON}, status_code=400)
        return _json(verdict.to_payload())

    @app.get("/health")
    async def health() -> JSONResponse:
        return _json({"status": "ok", "judge_configured": gateway.configured})

    return app
