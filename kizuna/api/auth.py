"""
API 認証・リクエストログ

- API キー認証
- 認証済みユーザーIDの取得（上流のゲートウェイが付与するヘッダー）
- リクエストログミドルウェア
"""

from __future__ import annotations

import time
from collections.abc import Callable

from fastapi import Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from starlette.middleware.base import BaseHTTPMiddleware

from ..core.config import get_settings
from ..core.logging import get_logger, log_failure, log_http

# === API キー認証 ===

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


async def verify_api_key(
    api_key: str | None = Security(api_key_header),
) -> str:
    """
    API キーを検証

    API キーが設定されていない場合は認証をスキップ（開発用）。

    Raises:
        HTTPException: 認証失敗時
    """
    settings = get_settings()

    if not settings.security.api_keys:
        return "development-mode"

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail={
                "error": "unauthorized",
                "code": "UNAUTHORIZED",
                "message": "API キーが必要です",
                "header": settings.security.api_key_header,
            },
        )

    if api_key not in settings.security.api_keys:
        raise HTTPException(
            status_code=403,
            detail={
                "error": "forbidden",
                "code": "FORBIDDEN",
                "message": "無効な API キーです",
            },
        )

    return api_key


async def get_current_user_id(
    user_id: str | None = Header(None, alias="X-User-Id"),
) -> str:
    """認証済みユーザーIDを取得"""
    if not user_id or not user_id.strip():
        raise HTTPException(
            status_code=401,
            detail={
                "error": "unauthorized",
                "code": "UNAUTHORIZED",
                "message": "ユーザーIDが必要です",
                "header": get_settings().security.user_id_header,
            },
        )
    return user_id.strip()


# === リクエストログミドルウェア ===


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    リクエスト/レスポンスログミドルウェア

    構造化ログで出力する。メッセージ本文は記録しない。
    """

    SKIP_LOGGING_PATHS = {"/v1/health", "/docs", "/openapi.json", "/redoc"}

    async def dispatch(self, request: Request, call_next: Callable):
        if request.url.path in self.SKIP_LOGGING_PATHS:
            return await call_next(request)

        logger = get_logger("api.request")
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID", f"req_{int(start_time * 1000)}")
        user_id = request.headers.get("X-User-Id")

        log_http(logger, request.method, request.url.path, request_id, user_id=user_id)

        try:
            response = await call_next(request)
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            log_failure(
                logger, e, "http_request", user_id=user_id,
                request_id=request_id, method=request.method, path=request.url.path,
                duration_ms=round(duration_ms, 2),
            )
            raise

        duration_ms = (time.time() - start_time) * 1000
        log_http(
            logger, request.method, request.url.path, request_id, user_id=user_id,
            status_code=response.status_code, duration_ms=round(duration_ms, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
