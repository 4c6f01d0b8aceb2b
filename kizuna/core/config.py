"""
統合設定管理

pydantic-settings を使用した型安全な設定管理
- 環境変数から自動読み込み
- バリデーション付き
- デフォルト値対応
"""

from functools import lru_cache
from typing import List
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """データベース設定"""

    model_config = SettingsConfigDict(env_prefix="KIZUNA_DB_")

    url: str = Field(
        default="sqlite+aiosqlite:///data/kizuna.db",
        description="SQLAlchemy 非同期接続URL（本番は postgresql+asyncpg://...）",
    )
    echo: bool = Field(default=False, description="SQL をログ出力")
    pool_size: int = Field(default=10, description="コネクションプールサイズ（PostgreSQL）")
    max_overflow: int = Field(default=20, description="プール超過接続数（PostgreSQL）")


class AISettings(BaseSettings):
    """生成バックエンド設定（OpenAI 互換 API）"""

    model_config = SettingsConfigDict(env_prefix="")

    api_key: str = Field(default="", alias="DEEPSEEK_API_KEY", description="API キー")
    base_url: str = Field(
        default="https://api.deepseek.com/v1", alias="DEEPSEEK_BASE_URL", description="API ベースURL"
    )
    model: str = Field(default="deepseek-chat", alias="DEEPSEEK_TEXT_MODEL", description="テキストモデル")
    temperature: float = Field(default=0.8, alias="KIZUNA_AI_TEMPERATURE")
    max_tokens: int = Field(default=500, alias="KIZUNA_AI_MAX_TOKENS")
    http_timeout: int = Field(default=60, alias="KIZUNA_AI_HTTP_TIMEOUT", description="HTTP タイムアウト(秒)")

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)


class ChatSettings(BaseSettings):
    """チャットパイプライン設定"""

    model_config = SettingsConfigDict(env_prefix="KIZUNA_CHAT_")

    max_message_length: int = Field(default=2000, description="メッセージ最大文字数")
    reply_timeout: float = Field(default=20.0, description="返信生成のタイムアウト(秒)")
    history_turns: int = Field(default=10, description="プロンプトに含める履歴件数")
    reply_persist_attempts: int = Field(default=3, description="返信保存の試行回数")
    special_moment_threshold: int = Field(default=90, description="特別な瞬間として記録する品質スコア")

    @field_validator("reply_persist_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError("reply_persist_attempts must be >= 1")
        return v


class QuotaSettings(BaseSettings):
    """配額設定"""

    model_config = SettingsConfigDict(env_prefix="KIZUNA_QUOTA_")

    free_daily_limit: int = Field(default=20, description="無料プランの1日あたりメッセージ数")


class CacheSettings(BaseSettings):
    """キャッシュ設定"""

    model_config = SettingsConfigDict(env_prefix="KIZUNA_CACHE_")

    progress_ttl: int = Field(default=30 * 60, description="関係性進捗キャッシュのTTL(秒)")
    max_items: int = Field(default=1000, description="キャッシュ最大件数")
    eviction_interval: int = Field(default=300, description="期限切れエントリ掃除の間隔(秒)")


class SecuritySettings(BaseSettings):
    """セキュリティ設定"""

    model_config = SettingsConfigDict(env_prefix="KIZUNA_")

    # API 認証（カンマ区切り文字列で指定）
    api_keys_str: str = Field(
        default="",
        alias="KIZUNA_API_KEYS",
        description="許可された API キー（カンマ区切り）"
    )
    api_key_header: str = Field(default="X-API-Key", description="API キーヘッダー名")
    user_id_header: str = Field(default="X-User-Id", description="認証済みユーザーIDヘッダー名")

    @property
    def api_keys(self) -> List[str]:
        """API キーリストを取得"""
        if not self.api_keys_str:
            return []
        return [k.strip() for k in self.api_keys_str.split(",") if k.strip()]


class KizunaSettings(BaseSettings):
    """Kizuna 全体設定"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # 基本設定
    debug: bool = Field(default=False, alias="KIZUNA_DEBUG", description="デバッグモード")
    log_level: str = Field(default="INFO", alias="KIZUNA_LOG_LEVEL", description="ログレベル")

    # サブ設定
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    ai: AISettings = Field(default_factory=AISettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    quota: QuotaSettings = Field(default_factory=QuotaSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    # API サーバー設定
    api_host: str = Field(default="0.0.0.0", alias="API_HOST", description="API サーバーホスト")
    api_port: int = Field(default=8000, alias="API_PORT", description="API サーバーポート")

    @classmethod
    def load(cls) -> "KizunaSettings":
        """設定をロード（サブ設定も含む）"""
        return cls(
            database=DatabaseSettings(),
            ai=AISettings(),
            chat=ChatSettings(),
            quota=QuotaSettings(),
            cache=CacheSettings(),
            security=SecuritySettings(),
        )


@lru_cache()
def get_settings() -> KizunaSettings:
    """
    設定を取得（キャッシュ付き）

    使用例:
        settings = get_settings()
        print(settings.quota.free_daily_limit)
        print(settings.database.url)
    """
    return KizunaSettings.load()


def reload_settings() -> KizunaSettings:
    """設定を再読み込み"""
    get_settings.cache_clear()
    return get_settings()
