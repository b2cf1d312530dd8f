from __future__ import annotations

import re
import time
from uuid import uuid4

from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import Response
from structlog import contextvars as structlog_contextvars

from .config import settings
from .logging import configure_logging, logger
from .metrics import registry
from .routers import cards, health, review


# 受け入れるクライアント指定の X-Request-ID（英数字と . _ -、最大 64 文字）
_REQUEST_ID_PATTERN = re.compile(r"[A-Za-z0-9._-]{1,64}")


def _resolve_request_id(raw: str | None) -> str:
    if raw and _REQUEST_ID_PATTERN.fullmatch(raw):
        return raw
    return uuid4().hex


class AccessLogAndMetricsMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, then record access logs and latency metrics.

    - 妥当なクライアント指定 ID はそのまま使い、それ以外は採番して
      `request.state.request_id` に格納し、`X-Request-ID` ヘッダで返す
    - 処理後に `request_complete` を構造化ログへ出力し、遅延をメトリクスへ記録
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:  # type: ignore[override]
        start = time.time()
        path = request.url.path
        method = request.method
        request_id = _resolve_request_id(request.headers.get("x-request-id"))
        request.state.request_id = request_id
        structlog_contextvars.bind_contextvars(request_id=request_id)
        is_error = False
        status_code: int | None = None
        error_type: str | None = None
        error_message: str | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as exc:
            is_error = True
            status_code = 500
            error_type = exc.__class__.__name__
            raw_error_message = str(exc)
            error_message = (
                raw_error_message
                if len(raw_error_message) <= 200
                else f"{raw_error_message[:197]}..."
            )
            raise
        finally:
            latency_ms = (time.time() - start) * 1000
            registry.record(path, latency_ms, is_error=is_error)
            log_method = logger.error if is_error else logger.info
            log_method(
                "request_complete",
                path=path,
                method=method,
                status_code=status_code,
                latency_ms=latency_ms,
                is_error=is_error,
                error_type=error_type,
                error_message=error_message,
            )
            structlog_contextvars.unbind_contextvars("request_id")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance."""
    configure_logging()
    app = FastAPI(title="Examito Review API", version="0.1.0")

    configured_origins = list(settings.allowed_cors_origins)
    allow_credentials = bool(configured_origins)
    if not configured_origins:
        configured_origins = ["*"]
    # ワイルドカード許可時は資格情報付き CORS を無効化する
    app.add_middleware(
        CORSMiddleware,
        allow_origins=configured_origins,
        allow_credentials=allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AccessLogAndMetricsMiddleware)

    app.include_router(health.router)
    app.include_router(review.router, prefix="/api/review")
    app.include_router(cards.router, prefix="/api/cards")
    logger.info("app_created", environment=settings.environment, db_path=settings.srs_db_path)
    return app


app = create_app()


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    import uvicorn

    uvicorn.run("examito.main:app", host="0.0.0.0", port=8000)
