from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy import JSON, TIMESTAMP, Integer, Text, delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from jobcore.config.settings import Settings


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


class KeyValueRecord(Base):
    """One entry of the flat key/value namespace."""

    __tablename__ = "kv_store"

    # Insertion sequence keeps key listing in first-write order
    seq: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(Text, unique=True, nullable=False, index=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Entry expiry, if any"
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=lambda: datetime.now(UTC),
    )


class Database:
    """Database connection and session management."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.engine = create_async_engine(
            settings.database_url,
            echo=settings.db_echo,
        )
        self.SessionLocal = async_sessionmaker(
            bind=self.engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    async def create_all(self) -> None:
        """Create tables that do not exist yet."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def close(self):
        """Close database connections."""
        await self.engine.dispose()


def _pattern_to_like(pattern: str) -> str:
    """Translate a glob pattern (``*`` and ``?``) into a LIKE pattern."""
    escaped = pattern.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return escaped.replace("*", "%").replace("?", "_")


class SQLKeyValueBackend:
    """Key/value backend stored in a single SQL table."""

    def __init__(self, database: Database):
        self.database = database
        self._initialized = False

    async def initialize(self) -> None:
        """Create the key/value table if it doesn't exist."""
        await self.database.create_all()
        self._initialized = True

    async def _session(self) -> AsyncSession:
        if not self._initialized:
            await self.initialize()
        return self.database.SessionLocal()

    @staticmethod
    def _live(now: datetime):
        return or_(KeyValueRecord.expires_at.is_(None), KeyValueRecord.expires_at > now)

    async def get(self, key: str) -> Any | None:
        now = datetime.now(UTC)
        async with await self._session() as session:
            result = await session.execute(
                select(KeyValueRecord.value).where(
                    KeyValueRecord.key == key, self._live(now)
                )
            )
            return result.scalar_one_or_none()

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        now = datetime.now(UTC)
        expires_at = now + timedelta(seconds=ttl) if ttl else None
        async with await self._session() as session:
            result = await session.execute(
                select(KeyValueRecord).where(KeyValueRecord.key == key)
            )
            record = result.scalar_one_or_none()
            if record is None:
                session.add(
                    KeyValueRecord(
                        key=key, value=value, expires_at=expires_at, updated_at=now
                    )
                )
            else:
                record.value = value
                record.expires_at = expires_at
                record.updated_at = now
            await session.commit()

    async def delete(self, key: str) -> None:
        async with await self._session() as session:
            await session.execute(delete(KeyValueRecord).where(KeyValueRecord.key == key))
            await session.commit()

    async def keys(self, pattern: str | None = None) -> list[str]:
        now = datetime.now(UTC)
        query = select(KeyValueRecord.key).where(self._live(now))
        if pattern is not None:
            query = query.where(
                KeyValueRecord.key.like(_pattern_to_like(pattern), escape="\\")
            )
        query = query.order_by(KeyValueRecord.seq)
        async with await self._session() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def clear(self) -> None:
        async with await self._session() as session:
            await session.execute(delete(KeyValueRecord))
            await session.commit()

    async def close(self) -> None:
        await self.database.close()
