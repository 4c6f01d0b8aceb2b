"""
API Dependencies
依存性注入の設定
"""

from typing import Optional

from ..adapters.ai.openai import OpenAICompatibleAdapter
from ..adapters.storage.sqlalchemy import SQLAlchemyPlanProvider, SQLAlchemyStorageAdapter
from ..core.cache import TTLCache
from ..core.config import get_settings
from ..core.logging import get_logger
from ..domain.models.progress import RelationshipProgress
from ..domain.ports.ai_port import IAIProvider
from ..domain.ports.plan_port import IPlanProvider
from ..domain.ports.storage_port import IStorage
from ..domain.services.chat import ChatPipeline
from ..domain.services.intimacy import IntimacyLedger
from ..domain.services.milestone import MilestoneEngine
from ..domain.services.moderation import ModerationGate
from ..domain.services.progress_store import ProgressStore
from ..domain.services.quota import QuotaLedger
from ..domain.services.reply import ReplyAcquirer
from ..domain.services.scoring import InteractionQualityEvaluator

logger = get_logger(__name__)

# === シングルトンインスタンス ===

_storage: Optional[IStorage] = None
_plan_provider: Optional[IPlanProvider] = None
_ai_provider: Optional[IAIProvider] = None
_progress_cache: Optional[TTLCache[RelationshipProgress]] = None
_chat_pipeline: Optional[ChatPipeline] = None


# === 依存性取得関数 ===

def get_storage() -> IStorage:
    """ストレージを取得（KIZUNA_DB_URL で PostgreSQL / SQLite を切り替え）"""
    global _storage
    if _storage is None:
        db = get_settings().database
        _storage = SQLAlchemyStorageAdapter(
            database_url=db.url,
            echo=db.echo,
            pool_size=db.pool_size,
            max_overflow=db.max_overflow,
        )
    return _storage


def get_plan_provider() -> IPlanProvider:
    """プランプロバイダーを取得"""
    global _plan_provider
    if _plan_provider is None:
        storage = get_storage()
        if not isinstance(storage, SQLAlchemyStorageAdapter):
            raise RuntimeError("Plan provider requires SQLAlchemyStorageAdapter; use set_plan_provider()")
        _plan_provider = SQLAlchemyPlanProvider(
            storage, free_daily_limit=get_settings().quota.free_daily_limit
        )
    return _plan_provider


def get_ai_provider() -> IAIProvider:
    """AIプロバイダーを取得（DeepSeek 等の OpenAI 互換 API）"""
    global _ai_provider
    if _ai_provider is None:
        ai = get_settings().ai
        if not ai.is_configured:
            logger.warning("DEEPSEEK_API_KEY is not set - all replies will use fallback lines")
        _ai_provider = OpenAICompatibleAdapter(
            api_key=ai.api_key,
            model=ai.model,
            timeout=ai.http_timeout,
            base_url=ai.base_url,
            temperature=ai.temperature,
            max_tokens=ai.max_tokens,
        )
    return _ai_provider


def get_progress_cache() -> TTLCache[RelationshipProgress]:
    """関係性進捗キャッシュを取得"""
    global _progress_cache
    if _progress_cache is None:
        cache = get_settings().cache
        _progress_cache = TTLCache(ttl_seconds=cache.progress_ttl, max_items=cache.max_items)
    return _progress_cache


def get_chat_pipeline() -> ChatPipeline:
    """チャットパイプラインを取得"""
    global _chat_pipeline
    if _chat_pipeline is None:
        settings = get_settings()
        storage = get_storage()
        _chat_pipeline = ChatPipeline(
            storage=storage,
            plan_provider=get_plan_provider(),
            quota_ledger=QuotaLedger(storage),
            moderation=ModerationGate(),
            reply_acquirer=ReplyAcquirer(
                get_ai_provider(),
                timeout=settings.chat.reply_timeout,
                history_turns=settings.chat.history_turns,
            ),
            evaluator=InteractionQualityEvaluator(),
            intimacy_ledger=IntimacyLedger(),
            milestone_engine=MilestoneEngine(),
            progress_store=ProgressStore(storage, get_progress_cache()),
            max_message_length=settings.chat.max_message_length,
            history_turns=settings.chat.history_turns,
            reply_persist_attempts=settings.chat.reply_persist_attempts,
            special_moment_threshold=settings.chat.special_moment_threshold,
        )
    return _chat_pipeline


# === テスト用リセット関数 ===

def reset_dependencies() -> None:
    """依存性をリセット（テスト用）"""
    global _storage, _plan_provider, _ai_provider, _progress_cache, _chat_pipeline
    _storage = None
    _plan_provider = None
    _ai_provider = None
    _progress_cache = None
    _chat_pipeline = None


def set_storage(storage: IStorage) -> None:
    """ストレージを設定（テスト用）"""
    global _storage
    _storage = storage


def set_plan_provider(plan_provider: IPlanProvider) -> None:
    """プランプロバイダーを設定（テスト用）"""
    global _plan_provider
    _plan_provider = plan_provider


def set_ai_provider(ai_provider: IAIProvider) -> None:
    """AIプロバイダーを設定（テスト用）"""
    global _ai_provider
    _ai_provider = ai_provider
