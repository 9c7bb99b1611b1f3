"""
SQLAlchemy persistence for the completion ledger.

Tables:
- completion_records: one row per (user_id, sequence_id, item_number), enforced
  by a unique constraint; (user_id, idempotency_key) is unique too; indexed on
  (user_id, completed_on) for streak queries.
- experiment_reflections: closing reflection per (user_id, sequence_id).

Writes are a single ``INSERT ... ON CONFLICT DO NOTHING`` followed by a read of
the triple, so concurrent duplicates resolve inside the database. SQLite has a
single writer, so its writes are also serialized in-process.
"""

from __future__ import annotations

import asyncio
import contextlib
from datetime import date, datetime, timezone
from typing import Any, AsyncContextManager, Collection, Optional

import structlog
from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    insert,
    select,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from sequence_progress.config import get_settings
from sequence_progress.domain.models import CompletionRecord

logger = structlog.get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class CompletionRow(Base):
    """
    Completion records table.

    Never updated after insert. Deleted only with the account or the content.
    """

    __tablename__ = "completion_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(255), nullable=False)
    sequence_id: Mapped[str] = mapped_column(String(255), nullable=False)
    item_number: Mapped[int] = mapped_column(Integer, nullable=False)
    completed_on: Mapped[date] = mapped_column(Date, nullable=False)
    completed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    idempotency_key: Mapped[str] = mapped_column(String(512), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint("item_number > 0", name="positive_item_number"),
        UniqueConstraint("user_id", "sequence_id", "item_number", name="uq_completion_triple"),
        UniqueConstraint("user_id", "idempotency_key", name="uq_completion_idempotency_key"),
        Index("idx_completion_user_date", "user_id", "completed_on"),
    )

    def __repr__(self) -> str:
        return (
            f"<CompletionRow(user_id={self.user_id}, sequence_id={self.sequence_id}, "
            f"item={self.item_number}, on={self.completed_on})>"
        )


class ReflectionRow(Base):
    """Experiment closing reflections. Editable, unlike completions."""

    __tablename__ = "experiment_reflections"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    sequence_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    text: Mapped[str] = mapped_column(Text, nullable=False)


def _to_record(row: CompletionRow) -> CompletionRecord:
    completed_at = row.completed_at
    if completed_at.tzinfo is None:
        # SQLite drops the offset; values are always written in UTC.
        completed_at = completed_at.replace(tzinfo=timezone.utc)
    return CompletionRecord(
        user_id=row.user_id,
        sequence_id=row.sequence_id,
        item_number=row.item_number,
        completed_on=row.completed_on,
        completed_at=completed_at,
        idempotency_key=row.idempotency_key,
        note=row.note,
    )


class SqlAlchemyCompletionStore:
    """CompletionStore backed by an async SQLAlchemy engine."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory
        self._sqlite_write_lock = asyncio.Lock()

    def _writer(self, session: AsyncSession) -> AsyncContextManager[Any]:
        if session.bind.dialect.name == "sqlite":
            return self._sqlite_write_lock
        return contextlib.nullcontext()

    @staticmethod
    def _row_values(record: CompletionRecord) -> dict[str, Any]:
        return {
            "user_id": record.user_id,
            "sequence_id": record.sequence_id,
            "item_number": record.item_number,
            "completed_on": record.completed_on,
            "completed_at": record.completed_at.astimezone(timezone.utc),
            "idempotency_key": record.idempotency_key,
            "note": record.note,
        }

    async def insert_if_absent(self, record: CompletionRecord) -> tuple[CompletionRecord, bool]:
        values = self._row_values(record)
        async with self._session_factory() as session, self._writer(session):
            async with session.begin():
                dialect = session.bind.dialect.name
                if dialect == "postgresql":
                    stmt = postgresql.insert(CompletionRow).values(**values).on_conflict_do_nothing()
                    created = (await session.execute(stmt)).rowcount == 1
                elif dialect == "sqlite":
                    stmt = sqlite.insert(CompletionRow).values(**values).on_conflict_do_nothing()
                    created = (await session.execute(stmt)).rowcount == 1
                else:
                    created = await self._insert_with_savepoint(session, values)

                stored = await self._select_existing(session, record)

        if stored is None:
            # Unreachable while the unique constraints hold.
            raise RuntimeError(f"completion {record.triple} vanished after insert")
        return _to_record(stored), created

    @staticmethod
    async def _insert_with_savepoint(session: AsyncSession, values: dict[str, Any]) -> bool:
        try:
            async with session.begin_nested():
                await session.execute(insert(CompletionRow).values(**values))
            return True
        except IntegrityError:
            return False

    @staticmethod
    async def _select_existing(
        session: AsyncSession, record: CompletionRecord
    ) -> Optional[CompletionRow]:
        by_triple = select(CompletionRow).where(
            CompletionRow.user_id == record.user_id,
            CompletionRow.sequence_id == record.sequence_id,
            CompletionRow.item_number == record.item_number,
        )
        row = (await session.execute(by_triple)).scalar_one_or_none()
        if row is not None:
            return row
        # Lost to a row holding the same key under another triple.
        by_key = select(CompletionRow).where(
            CompletionRow.user_id == record.user_id,
            CompletionRow.idempotency_key == record.idempotency_key,
        )
        return (await session.execute(by_key)).scalar_one_or_none()

    async def get_by_key(self, user_id: str, idempotency_key: str) -> Optional[CompletionRecord]:
        stmt = select(CompletionRow).where(
            CompletionRow.user_id == user_id,
            CompletionRow.idempotency_key == idempotency_key,
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _to_record(row) if row is not None else None

    async def get_by_triple(
        self, user_id: str, sequence_id: str, item_number: int
    ) -> Optional[CompletionRecord]:
        stmt = select(CompletionRow).where(
            CompletionRow.user_id == user_id,
            CompletionRow.sequence_id == sequence_id,
            CompletionRow.item_number == item_number,
        )
        async with self._session_factory() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        return _to_record(row) if row is not None else None

    async def list_for_sequence(self, user_id: str, sequence_id: str) -> list[CompletionRecord]:
        stmt = (
            select(CompletionRow)
            .where(CompletionRow.user_id == user_id, CompletionRow.sequence_id == sequence_id)
            .order_by(CompletionRow.item_number)
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(r) for r in rows]

    async def list_for_user(self, user_id: str) -> list[CompletionRecord]:
        stmt = (
            select(CompletionRow)
            .where(CompletionRow.user_id == user_id)
            .order_by(
                CompletionRow.completed_on,
                CompletionRow.sequence_id,
                CompletionRow.item_number,
            )
        )
        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).scalars().all()
        return [_to_record(r) for r in rows]

    async def completion_dates(
        self, user_id: str, sequence_ids: Optional[Collection[str]] = None
    ) -> set[date]:
        stmt = select(CompletionRow.completed_on).where(CompletionRow.user_id == user_id).distinct()
        if sequence_ids is not None:
            if not sequence_ids:
                return set()
            stmt = stmt.where(CompletionRow.sequence_id.in_(list(sequence_ids)))
        async with self._session_factory() as session:
            return set((await session.execute(stmt)).scalars().all())

    async def save_reflection(self, user_id: str, sequence_id: str, text: str) -> None:
        async with self._session_factory() as session, self._writer(session):
            async with session.begin():
                await session.merge(ReflectionRow(user_id=user_id, sequence_id=sequence_id, text=text))

    async def get_reflection(self, user_id: str, sequence_id: str) -> Optional[str]:
        async with self._session_factory() as session:
            row = await session.get(ReflectionRow, (user_id, sequence_id))
        return row.text if row is not None else None


# Global engine and session factory
_engine: AsyncEngine | None = None
_async_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing only applies to server databases."""
    if url.startswith("sqlite"):
        return create_async_engine(url, echo=echo)
    return create_async_engine(
        url,
        echo=echo,
        pool_pre_ping=True,  # Verify connections before using
        pool_recycle=3600,  # Recycle connections after 1 hour
    )


def get_engine() -> AsyncEngine:
    """
    Get or create the database engine.

    Returns:
        AsyncEngine: SQLAlchemy async engine instance
    """
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for(settings.database_url, echo=settings.database_echo)
    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """
    Get or create the session factory.

    Returns:
        async_sessionmaker: SQLAlchemy async session factory
    """
    global _async_session_factory
    if _async_session_factory is None:
        _async_session_factory = make_session_factory(get_engine())
    return _async_session_factory


async def init_db(engine: Optional[AsyncEngine] = None) -> None:
    """
    Initialize database tables.

    Creates all tables defined in models if they don't exist.
    """
    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database_initialized", dialect=engine.dialect.name)


async def close_db() -> None:
    """Close database connections and dispose of the engine."""
    global _engine, _async_session_factory
    if _engine is not None:
        await _engine.dispose()
        _engine = None
        _async_session_factory = None
