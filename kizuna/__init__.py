"""
Kizuna - コンパニオン関係性エンジン

メッセージ駆動の関係性成長エンジン:
- 日次メッセージ配額: 同時送信でも上限を超えない原子的な予約
- コンテンツ審査: 禁止語によるゲート
- 返信取得: 生成バックエンド + 性格別フォールバック
- 親密度台帳: 互動品質に応じたポイントとレベル
- マイルストーン: 一度だけ付与される関係性の節目
"""

from importlib.metadata import PackageNotFoundError, version as _dist_version
from pathlib import Path
import tomllib

_pyproject = Path(__file__).resolve().parent.parent / "pyproject.toml"
if _pyproject.exists():
    with _pyproject.open("rb") as _f:
        __version__: str = tomllib.load(_f)["project"]["version"]
else:
    try:
        __version__ = _dist_version("kizuna")
    except PackageNotFoundError:
        __version__ = "0.0.0"

# ===== Domain Models =====
from .domain.models import (
    ChatMessage,
    Companion,
    CompanionType,
    GrowthTrend,
    InteractionQuality,
    MemoryFragment,
    Milestone,
    PersonalityConfig,
    PersonalityType,
    Plan,
    QuotaReservation,
    RelationshipProgress,
)

# ===== Ports (Interfaces) =====
from .domain.ports import (
    IAIProvider,
    IPlanProvider,
    IStorage,
)

# ===== Domain Services =====
from .domain.services import (
    ChatPipeline,
    IntimacyLedger,
    InteractionQualityEvaluator,
    MilestoneEngine,
    ModerationGate,
    ProgressStore,
    QuotaLedger,
    ReplyAcquirer,
)


# ===== Adapters (lazy import) =====
# アダプターは依存関係が多いため遅延インポート
def get_openai_adapter():
    from .adapters.ai.openai import OpenAICompatibleAdapter

    return OpenAICompatibleAdapter


def get_sqlalchemy_storage():
    from .adapters.storage.sqlalchemy import SQLAlchemyStorageAdapter

    return SQLAlchemyStorageAdapter


# ===== API (lazy import) =====
def create_app():
    from .api.main import create_app as _create_app

    return _create_app()


__all__ = [
    # Version
    "__version__",
    # Domain Models - コンパニオン
    "Companion",
    "CompanionType",
    "PersonalityConfig",
    "PersonalityType",
    # Domain Models - メッセージ・配額
    "ChatMessage",
    "Plan",
    "QuotaReservation",
    # Domain Models - 関係性
    "RelationshipProgress",
    "InteractionQuality",
    "GrowthTrend",
    "Milestone",
    "MemoryFragment",
    # Domain Services
    "ModerationGate",
    "QuotaLedger",
    "ReplyAcquirer",
    "InteractionQualityEvaluator",
    "IntimacyLedger",
    "MilestoneEngine",
    "ProgressStore",
    "ChatPipeline",
    # Ports
    "IStorage",
    "IAIProvider",
    "IPlanProvider",
    # Adapters (lazy)
    "get_openai_adapter",
    "get_sqlalchemy_storage",
    # API (lazy)
    "create_app",
]
