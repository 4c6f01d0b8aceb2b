"""
Kizuna API - メインアプリケーション
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime

from fastapi import FastAPI
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from .. import __version__
from ..adapters.storage.sqlalchemy import SQLAlchemyStorageAdapter
from ..core.config import get_settings
from ..core.logging import configure_logging, get_logger
from .auth import RequestLoggingMiddleware
from .dependencies import get_ai_provider, get_chat_pipeline, get_progress_cache, get_storage
from .routes import chat_router, growth_router, quota_router
from .schemas import HealthResponse

configure_logging(get_settings().log_level)
logger = get_logger("api.main")

API_VERSION = __version__


class APIVersionMiddleware(BaseHTTPMiddleware):
    """APIバージョンをレスポンスヘッダーに追加"""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-API-Version"] = API_VERSION
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """アプリケーションライフサイクル"""
    settings = get_settings()

    # 起動時
    logger.info(f"Kizuna API v{API_VERSION} starting...")
    logger.info(f"Debug mode: {settings.debug}")
    logger.info(f"API keys configured: {len(settings.security.api_keys)} key(s)")
    if not settings.security.api_keys:
        logger.warning("No API keys configured - running in development mode (no auth)")

    storage = get_storage()
    if isinstance(storage, SQLAlchemyStorageAdapter):
        await storage.init_db()

    pipeline = get_chat_pipeline()
    eviction_task = asyncio.create_task(
        get_progress_cache().run_eviction_loop(settings.cache.eviction_interval)
    )

    yield

    # 終了時
    eviction_task.cancel()
    try:
        await eviction_task
    except asyncio.CancelledError:
        pass

    # 切断されたリクエストの残り処理を完了させる
    await pipeline.drain()

    if isinstance(storage, SQLAlchemyStorageAdapter):
        await storage.close()

    logger.info("Kizuna API shutting down...")


def create_app() -> FastAPI:
    """FastAPIアプリケーションを作成"""
    application = FastAPI(
        title="Kizuna API",
        description=(
            "コンパニオン関係性エンジン\n\n"
            "**特徴:**\n"
            "- 日次メッセージ配額（同時送信でも上限を超えない）\n"
            "- 禁止語によるコンテンツ審査\n"
            "- 親密度・マイルストーンによる関係性の成長\n"
        ),
        version=API_VERSION,
        lifespan=lifespan,
    )

    # ミドルウェア（実行順序: 下から上）
    application.add_middleware(RequestLoggingMiddleware)
    application.add_middleware(APIVersionMiddleware)

    # ルーター登録
    application.include_router(chat_router)
    application.include_router(growth_router)
    application.include_router(quota_router)

    @application.get("/v1/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        """ヘルスチェック"""
        components = {
            "storage": True,
            "ai_provider": True,
        }

        try:
            storage = get_storage()
            if isinstance(storage, SQLAlchemyStorageAdapter):
                components["storage"] = await storage.ping()
        except Exception:
            components["storage"] = False

        try:
            components["ai_provider"] = await get_ai_provider().health_check()
        except Exception:
            components["ai_provider"] = False

        # 生成バックエンドが落ちていてもフォールバックで応答できる
        if not components["storage"]:
            status = "unhealthy"
        elif not components["ai_provider"]:
            status = "degraded"
        else:
            status = "healthy"

        return HealthResponse(
            status=status,
            timestamp=datetime.now(),
            version=API_VERSION,
            components=components,
        )

    return application


# デフォルトアプリケーションインスタンス
app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
