"""
SQLAlchemyストレージアダプター
SQLAlchemy 2.0 非同期ORMによる永続化（PostgreSQL / SQLite）

日次配額の加算は INSERT ... ON CONFLICT DO UPDATE ... WHERE ... RETURNING の
1文で行い、同一ユーザーの並行リクエストでも上限を超えない。
"""

from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator, Callable
from datetime import date, datetime
from pathlib import Path
from typing import Any, Optional

from sqlalchemy import (
    JSON,
    BigInteger,
    Date,
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    delete,
    select,
    text,
    update,
)
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ...core.exceptions import ConfigurationError, PersistenceError
from ...core.logging import get_logger
from ...domain.models.companion import Companion
from ...domain.models.message import ChatMessage, MessageType, SenderType
from ...domain.models.milestone import MemoryFragment, MemoryType
from ...domain.models.progress import GrowthTrend, InteractionQuality, RelationshipProgress
from ...domain.models.quota import Plan
from ...domain.ports.plan_port import IPlanProvider
from ...domain.ports.storage_port import IStorage

logger = get_logger(__name__)

# SQLite では INTEGER PRIMARY KEY でないと自動採番されない
AutoIncrementId = BigInteger().with_variant(Integer, "sqlite")


class Base(DeclarativeBase):
    """SQLAlchemy 2.0 ベースクラス"""
    pass


class CompanionRecord(Base):
    """コンパニオンテーブル"""
    __tablename__ = "companions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    companion_type: Mapped[str] = mapped_column(String(20), nullable=False)
    personality_config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    background: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # 関係性進捗の表示用ミラー
    intimacy_level: Mapped[int] = mapped_column(Integer, default=1)
    intimacy_points: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now, onupdate=datetime.now)


class ChatMessageRecord(Base):
    """チャットメッセージテーブル（追記のみ）"""
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_conversation", "user_id", "companion_id", "seq"),
    )

    # 並び順は seq で決める（同一時刻のメッセージでも保存順を保つ）
    seq: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    companion_id: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_type: Mapped[str] = mapped_column(String(20), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), default="text")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class DailyMessageQuotaRecord(Base):
    """日次メッセージ配額テーブル"""
    __tablename__ = "daily_message_quotas"
    __table_args__ = (
        UniqueConstraint("user_id", "quota_date", name="uq_daily_message_quotas_user_date"),
    )

    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    quota_date: Mapped[date] = mapped_column(Date, nullable=False)
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class RelationshipProgressRecord(Base):
    """関係性進捗テーブル"""
    __tablename__ = "relationship_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "companion_id", name="uq_relationship_progress_pair"),
    )

    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    companion_id: Mapped[str] = mapped_column(String(64), nullable=False)

    intimacy_level: Mapped[int] = mapped_column(Integer, default=1)
    intimacy_points: Mapped[int] = mapped_column(Integer, default=0)
    total_interactions: Mapped[int] = mapped_column(Integer, default=0)
    quality_score: Mapped[float] = mapped_column(Float, default=50.0)
    relationship_days: Mapped[int] = mapped_column(Integer, default=0)
    milestones: Mapped[list[str]] = mapped_column(JSON, default=list)
    recent_interactions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, default=list)
    growth_trend: Mapped[str] = mapped_column(String(20), default="stable")

    first_interaction_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class MemoryFragmentRecord(Base):
    """回想フラグメントテーブル（追記のみ）"""
    __tablename__ = "memory_fragments"
    __table_args__ = (
        Index("ix_memory_fragments_pair", "user_id", "companion_id"),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    companion_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    emotional_value: Mapped[int] = mapped_column(Integer, default=0)
    tags: Mapped[list[str]] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class SubscriptionRecord(Base):
    """サブスクリプションテーブル"""
    __tablename__ = "subscriptions"

    id: Mapped[int] = mapped_column(AutoIncrementId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="free")
    daily_message_limit: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    end_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.now)


class SQLAlchemyStorageAdapter(IStorage):
    """
    SQLAlchemyストレージアダプター

    SQLAlchemyError はすべて PersistenceError に変換する。
    """

    def __init__(
        self,
        database_url: str,
        echo: bool = False,
        pool_size: int = 10,
        max_overflow: int = 20,
    ):
        self.database_url = database_url
        url = make_url(database_url)

        engine_kwargs: dict[str, Any] = {"echo": echo}
        if url.get_backend_name() == "sqlite":
            # 並行書き込みはロック待ちで直列化する
            engine_kwargs["connect_args"] = {"timeout": 30}
        elif url.get_backend_name() == "postgresql":
            engine_kwargs.update(pool_size=pool_size, max_overflow=max_overflow, pool_pre_ping=True)
        else:
            raise ConfigurationError(f"Unsupported database backend: {url.get_backend_name()}")

        self._sqlite_path = url.database if url.get_backend_name() == "sqlite" else None
        self.engine: AsyncEngine = create_async_engine(database_url, **engine_kwargs)
        self.session_maker: async_sessionmaker[AsyncSession] = async_sessionmaker(
            self.engine, expire_on_commit=False
        )

    @property
    def dialect_name(self) -> str:
        return self.engine.dialect.name

    def _insert(self, table):
        """方言ごとの INSERT（ON CONFLICT 対応）"""
        if self.dialect_name == "postgresql":
            return pg_insert(table)
        return sqlite_insert(table)

    @asynccontextmanager
    async def _transaction(self, operation: str) -> AsyncGenerator[AsyncSession, None]:
        try:
            async with self.session_maker() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            logger.error(f"Database operation failed: {operation}: {e}")
            raise PersistenceError(
                f"Database operation failed: {operation}", operation=operation
            ) from e

    # === ライフサイクル ===

    async def create_tables(self) -> None:
        """テーブル作成"""
        if self._sqlite_path and self._sqlite_path != ":memory:":
            Path(self._sqlite_path).parent.mkdir(parents=True, exist_ok=True)
        try:
            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError("Failed to create tables", operation="create_tables") from e
        logger.info("Database tables created")

    async def init_db(self) -> None:
        await self.create_tables()

    async def ping(self) -> bool:
        """データベース接続チェック"""
        try:
            async with self.session_maker() as session:
                await session.execute(text("SELECT 1"))
            return True
        except SQLAlchemyError:
            return False

    async def close(self) -> None:
        await self.engine.dispose()

    # === コンパニオン ===

    async def save_companion(self, companion: Companion) -> None:
        async with self._transaction("save_companion") as session:
            record = await session.get(CompanionRecord, companion.id)
            if record is None:
                record = CompanionRecord(id=companion.id, created_at=companion.created_at)
                session.add(record)
            record.user_id = companion.user_id
            record.name = companion.name
            record.companion_type = companion.companion_type.value
            record.personality_config = companion.personality.to_dict()
            record.background = companion.background
            record.intimacy_level = companion.intimacy_level
            record.intimacy_points = companion.intimacy_points
            record.updated_at = datetime.now()

    async def load_companion(self, companion_id: str, user_id: str) -> Companion | None:
        async with self._transaction("load_companion") as session:
            result = await session.execute(
                select(CompanionRecord).where(
                    CompanionRecord.id == companion_id,
                    CompanionRecord.user_id == user_id,
                )
            )
            record = result.scalar_one_or_none()

        if record is None:
            return None
        return Companion.from_dict({
            "id": record.id,
            "user_id": record.user_id,
            "name": record.name,
            "companion_type": record.companion_type,
            "personality_config": record.personality_config,
            "background": record.background,
            "intimacy_level": record.intimacy_level,
            "intimacy_points": record.intimacy_points,
            "created_at": record.created_at.isoformat(),
            "updated_at": record.updated_at.isoformat(),
        })

    async def update_companion_intimacy(
        self, companion_id: str, intimacy_level: int, intimacy_points: int
    ) -> None:
        async with self._transaction("update_companion_intimacy") as session:
            await session.execute(
                update(CompanionRecord)
                .where(CompanionRecord.id == companion_id)
                .values(
                    intimacy_level=intimacy_level,
                    intimacy_points=intimacy_points,
                    updated_at=datetime.now(),
                )
            )

    # === メッセージ ===

    async def append_message(self, message: ChatMessage) -> None:
        async with self._transaction("append_message") as session:
            session.add(ChatMessageRecord(
                id=message.id,
                user_id=message.user_id,
                companion_id=message.companion_id,
                sender_type=message.sender_type.value,
                content=message.content,
                message_type=message.message_type.value,
                created_at=message.created_at,
            ))

    async def fetch_recent_messages(
        self, user_id: str, companion_id: str, limit: int
    ) -> list[ChatMessage]:
        if limit <= 0:
            return []
        async with self._transaction("fetch_recent_messages") as session:
            result = await session.execute(
                select(ChatMessageRecord)
                .where(
                    ChatMessageRecord.user_id == user_id,
                    ChatMessageRecord.companion_id == companion_id,
                )
                .order_by(ChatMessageRecord.seq.desc())
                .limit(limit)
            )
            records = list(result.scalars())

        return [
            ChatMessage(
                id=r.id,
                user_id=r.user_id,
                companion_id=r.companion_id,
                sender_type=SenderType(r.sender_type),
                content=r.content,
                message_type=MessageType(r.message_type),
                created_at=r.created_at,
            )
            for r in reversed(records)
        ]

    async def delete_messages(self, user_id: str, companion_id: str) -> int:
        async with self._transaction("delete_messages") as session:
            result = await session.execute(
                delete(ChatMessageRecord).where(
                    ChatMessageRecord.user_id == user_id,
                    ChatMessageRecord.companion_id == companion_id,
                )
            )
            return result.rowcount or 0

    # === 日次配額 ===

    async def reserve_quota(self, user_id: str, quota_date: date, daily_limit: int) -> int | None:
        if daily_limit <= 0:
            return None

        table = DailyMessageQuotaRecord.__table__
        now = datetime.now()
        stmt = self._insert(table).values(
            user_id=user_id,
            quota_date=quota_date,
            message_count=1,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.quota_date],
            set_={
                "message_count": table.c.message_count + 1,
                "updated_at": now,
            },
            where=table.c.message_count < daily_limit,
        ).returning(table.c.message_count)

        async with self._transaction("reserve_quota") as session:
            result = await session.execute(stmt)
            count = result.scalar_one_or_none()
        return count

    async def release_quota(self, user_id: str, quota_date: date) -> None:
        async with self._transaction("release_quota") as session:
            await session.execute(
                update(DailyMessageQuotaRecord)
                .where(
                    DailyMessageQuotaRecord.user_id == user_id,
                    DailyMessageQuotaRecord.quota_date == quota_date,
                    DailyMessageQuotaRecord.message_count > 0,
                )
                .values(
                    message_count=DailyMessageQuotaRecord.message_count - 1,
                    updated_at=datetime.now(),
                )
            )

    async def get_quota_count(self, user_id: str, quota_date: date) -> int:
        async with self._transaction("get_quota_count") as session:
            result = await session.execute(
                select(DailyMessageQuotaRecord.message_count).where(
                    DailyMessageQuotaRecord.user_id == user_id,
                    DailyMessageQuotaRecord.quota_date == quota_date,
                )
            )
            count = result.scalar_one_or_none()
        return count or 0

    # === 関係性進捗 ===

    async def load_progress(self, user_id: str, companion_id: str) -> RelationshipProgress | None:
        async with self._transaction("load_progress") as session:
            result = await session.execute(
                select(RelationshipProgressRecord).where(
                    RelationshipProgressRecord.user_id == user_id,
                    RelationshipProgressRecord.companion_id == companion_id,
                )
            )
            record = result.scalar_one_or_none()

        if record is None:
            return None
        return RelationshipProgress(
            user_id=record.user_id,
            companion_id=record.companion_id,
            intimacy_level=record.intimacy_level,
            intimacy_points=record.intimacy_points,
            total_interactions=record.total_interactions,
            quality_score=record.quality_score,
            relationship_days=record.relationship_days,
            milestones=list(record.milestones or []),
            recent_interactions=[
                InteractionQuality.from_dict(i) for i in (record.recent_interactions or [])
            ],
            growth_trend=GrowthTrend(record.growth_trend),
            first_interaction_at=record.first_interaction_at,
            last_updated=record.updated_at,
        )

    async def save_progress(self, progress: RelationshipProgress) -> None:
        table = RelationshipProgressRecord.__table__
        values = {
            "intimacy_level": progress.intimacy_level,
            "intimacy_points": progress.intimacy_points,
            "total_interactions": progress.total_interactions,
            "quality_score": progress.quality_score,
            "relationship_days": progress.relationship_days,
            "milestones": list(progress.milestones),
            "recent_interactions": [i.to_dict() for i in progress.recent_interactions],
            "growth_trend": progress.growth_trend.value,
            "first_interaction_at": progress.first_interaction_at,
            "updated_at": progress.last_updated,
        }
        stmt = self._insert(table).values(
            user_id=progress.user_id, companion_id=progress.companion_id, **values
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[table.c.user_id, table.c.companion_id],
            set_=values,
        )

        async with self._transaction("save_progress") as session:
            await session.execute(stmt)

    # === 回想フラグメント ===

    async def append_memory(self, memory: MemoryFragment) -> None:
        async with self._transaction("append_memory") as session:
            session.add(MemoryFragmentRecord(
                id=memory.id,
                user_id=memory.user_id,
                companion_id=memory.companion_id,
                type=memory.type.value,
                title=memory.title,
                content=memory.content,
                emotional_value=memory.emotional_value,
                tags=list(memory.tags),
                timestamp=memory.timestamp,
            ))

    async def list_memories(
        self, user_id: str, companion_id: str, limit: int = 50
    ) -> list[MemoryFragment]:
        async with self._transaction("list_memories") as session:
            result = await session.execute(
                select(MemoryFragmentRecord)
                .where(
                    MemoryFragmentRecord.user_id == user_id,
                    MemoryFragmentRecord.companion_id == companion_id,
                )
                .order_by(MemoryFragmentRecord.timestamp.desc())
                .limit(limit)
            )
            records = list(result.scalars())

        return [
            MemoryFragment(
                id=r.id,
                user_id=r.user_id,
                companion_id=r.companion_id,
                type=MemoryType(r.type),
                title=r.title,
                content=r.content,
                emotional_value=r.emotional_value,
                timestamp=r.timestamp,
                tags=tuple(r.tags or ()),
            )
            for r in records
        ]


class SQLAlchemyPlanProvider(IPlanProvider):
    """
    サブスクリプションテーブルからプランを解決

    premium は end_date が未設定または未来の間だけ無制限。
    行がなければ無料プラン。
    """

    def __init__(
        self,
        storage: SQLAlchemyStorageAdapter,
        free_daily_limit: int = 20,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.storage = storage
        self.free_daily_limit = free_daily_limit
        self._clock = clock

    async def get_plan(self, user_id: str) -> Plan:
        async with self.storage._transaction("get_plan") as session:
            result = await session.execute(
                select(SubscriptionRecord).where(SubscriptionRecord.user_id == user_id)
            )
            record = result.scalar_one_or_none()

        if record is None:
            return Plan.free(self.free_daily_limit)

        if record.type == "premium" and (record.end_date is None or record.end_date > self._clock()):
            return Plan.premium()

        if record.type == "free" and record.daily_message_limit is not None:
            return Plan.free(record.daily_message_limit)
        return Plan.free(self.free_daily_limit)

    async def save_subscription(
        self,
        user_id: str,
        plan_type: str,
        daily_message_limit: int | None = None,
        end_date: datetime | None = None,
    ) -> None:
        """サブスクリプションを登録・更新"""
        if plan_type not in ("free", "premium"):
            raise ValueError(f"Unknown plan type: {plan_type}")

        async with self.storage._transaction("save_subscription") as session:
            result = await session.execute(
                select(SubscriptionRecord).where(SubscriptionRecord.user_id == user_id)
            )
            record = result.scalar_one_or_none()
            if record is None:
                record = SubscriptionRecord(user_id=user_id)
                session.add(record)
            record.type = plan_type
            record.daily_message_limit = daily_message_limit
            record.end_date = end_date
