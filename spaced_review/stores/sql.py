"""
SQLAlchemy-backed stores.

Tables:
- review_items     - scheduling state per item
- review_attempts  - append-only attempt log
- user_metrics     - learner counters

SQLite by default (~/.spaced_review/review.db); any SQLAlchemy URL works,
including PostgreSQL through psycopg2.
"""

from __future__ import annotations

from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any

from loguru import logger
from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Engine,
    Float,
    Index,
    Integer,
    String,
    create_engine,
    or_,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from spaced_review.core.errors import NotFoundError, PersistenceError
from spaced_review.core.models import (
    ReviewableItem,
    ReviewAttempt,
    StrategyKind,
    UserMetrics,
    to_utc,
)
from spaced_review.stores.base import AttemptFilter, check_stale_write

# =============================================================================
# ORM Models
# =============================================================================


class Base(DeclarativeBase):
    pass


class ItemRow(Base):
    """Scheduling state for one item."""

    __tablename__ = "review_items"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    category: Mapped[str] = mapped_column(String(64), default="general")
    strategy: Mapped[str] = mapped_column(String(32), default=StrategyKind.EASE_FACTOR.value)
    interval_days: Mapped[int] = mapped_column(Integer, default=0)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    next_review_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    last_reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    level: Mapped[int] = mapped_column(Integer, default=1)
    mastered: Mapped[bool] = mapped_column(Boolean, default=False)
    status: Mapped[str | None] = mapped_column(String(16))

    __table_args__ = (
        Index("idx_review_items_next_review", "next_review_date"),
        Index("idx_review_items_category", "category", "next_review_date"),
    )

    def __repr__(self) -> str:
        return f"<ItemRow id={self.id} next_review={self.next_review_date}>"


class AttemptRow(Base):
    """One review event."""

    __tablename__ = "review_attempts"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    item_id: Mapped[str] = mapped_column(String(64), index=True)
    user_id: Mapped[str] = mapped_column(String(128))
    category: Mapped[str] = mapped_column(String(64), default="general")
    quality: Mapped[int | None] = mapped_column(Integer)
    correct: Mapped[bool | None] = mapped_column(Boolean)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    time_spent_ms: Mapped[int | None] = mapped_column(Integer)

    __table_args__ = (Index("idx_review_attempts_user_time", "user_id", "timestamp"),)


class MetricsRow(Base):
    """Learner counters."""

    __tablename__ = "user_metrics"

    user_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_questions: Mapped[int] = mapped_column(Integer, default=0)
    correct_answers: Mapped[int] = mapped_column(Integer, default=0)
    streak: Mapped[int] = mapped_column(Integer, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, default=0)
    last_activity_date: Mapped[date | None] = mapped_column(Date)


# =============================================================================
# Row conversion
# =============================================================================


def _item_fields(item: ReviewableItem) -> dict[str, Any]:
    return {
        "content": dict(item.content),
        "category": item.category,
        "strategy": item.strategy.value,
        "interval_days": item.interval_days,
        "ease_factor": item.ease_factor,
        "review_count": item.review_count,
        "next_review_date": item.next_review_date,
        "last_reviewed_at": item.last_reviewed_at,
        "level": item.level,
        "mastered": item.mastered,
        "status": item.status.value if item.status else None,
    }


def _item_from_row(row: ItemRow) -> ReviewableItem:
    return ReviewableItem(
        id=row.id,
        content=row.content or {},
        category=row.category,
        strategy=row.strategy,
        interval_days=row.interval_days,
        ease_factor=row.ease_factor,
        review_count=row.review_count,
        next_review_date=row.next_review_date,
        last_reviewed_at=row.last_reviewed_at,
        level=row.level,
        mastered=row.mastered,
        status=row.status,
    )


def _attempt_from_row(row: AttemptRow) -> ReviewAttempt:
    return ReviewAttempt(
        id=row.id,
        item_id=row.item_id,
        user_id=row.user_id,
        category=row.category,
        quality=row.quality,
        correct=row.correct,
        timestamp=row.timestamp,
        time_spent_ms=row.time_spent_ms,
    )


# =============================================================================
# Store
# =============================================================================


class SqlStore:
    """
    Implements ItemStore, AttemptStore and MetricsStore over SQLAlchemy.

    Item writes lock the row (SELECT ... FOR UPDATE where the backend
    supports it) so read-modify-write of one item is atomic.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._session_factory = sessionmaker(
            bind=engine, autocommit=False, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_url(cls, database_url: str, echo: bool = False) -> SqlStore:
        """Create a store (and its tables) from a connection string."""
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            engine = create_engine(
                database_url,
                echo=echo,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            if database_url.startswith("sqlite:///"):
                Path(database_url.removeprefix("sqlite:///")).parent.mkdir(
                    parents=True, exist_ok=True
                )
            engine = create_engine(database_url, echo=echo, pool_pre_ping=True)
        store = cls(engine)
        store.init_schema()
        return store

    def init_schema(self) -> None:
        """Create tables if they do not exist."""
        try:
            Base.metadata.create_all(bind=self.engine)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to initialize schema: {e}") from e
        logger.debug("Review tables initialized")

    @contextmanager
    def session_scope(self) -> Generator[Session, None, None]:
        """Provide a transactional scope around a series of operations."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Database error: {e}") from e
        except Exception:  # Rollback on engine errors (NotFound, stale write) before re-raising
            session.rollback()
            raise
        finally:
            session.close()

    # =========================================================================
    # ItemStore
    # =========================================================================

    def get_item(self, item_id: str) -> ReviewableItem:
        with self.session_scope() as session:
            row = session.get(ItemRow, item_id)
            if row is None:
                raise NotFoundError(f"Item not found: {item_id}")
            return _item_from_row(row)

    def all_items(self) -> list[ReviewableItem]:
        with self.session_scope() as session:
            rows = session.scalars(select(ItemRow).order_by(ItemRow.id)).all()
            return [_item_from_row(row) for row in rows]

    def list_due_items(
        self, before: datetime, limit: int, category_filter: str | None = None
    ) -> list[ReviewableItem]:
        stmt = (
            select(ItemRow)
            .where(
                or_(ItemRow.next_review_date.is_(None), ItemRow.next_review_date <= to_utc(before))
            )
            .order_by(ItemRow.next_review_date.asc().nulls_first(), ItemRow.id.asc())
            .limit(max(0, limit))
        )
        if category_filter is not None:
            stmt = stmt.where(ItemRow.category == category_filter)

        with self.session_scope() as session:
            return [_item_from_row(row) for row in session.scalars(stmt).all()]

    def upsert_item(self, item: ReviewableItem) -> None:
        with self.session_scope() as session:
            row = session.get(ItemRow, item.id, with_for_update=True)
            check_stale_write(_item_from_row(row) if row else None, item)
            if row is None:
                session.add(ItemRow(id=item.id, **_item_fields(item)))
            else:
                for key, value in _item_fields(item).items():
                    setattr(row, key, value)

    # =========================================================================
    # AttemptStore
    # =========================================================================

    def append_attempt(self, attempt: ReviewAttempt) -> None:
        with self.session_scope() as session:
            session.add(
                AttemptRow(
                    id=attempt.id,
                    item_id=attempt.item_id,
                    user_id=attempt.user_id,
                    category=attempt.category,
                    quality=attempt.quality,
                    correct=attempt.correct,
                    timestamp=attempt.timestamp,
                    time_spent_ms=attempt.time_spent_ms,
                )
            )

    def list_attempts(
        self, user_id: str, filters: AttemptFilter | None = None
    ) -> list[ReviewAttempt]:
        filters = filters or AttemptFilter()
        stmt = select(AttemptRow).where(AttemptRow.user_id == user_id)
        if filters.category is not None:
            stmt = stmt.where(AttemptRow.category == filters.category)
        if filters.item_id is not None:
            stmt = stmt.where(AttemptRow.item_id == filters.item_id)
        if filters.since is not None:
            stmt = stmt.where(AttemptRow.timestamp >= to_utc(filters.since))
        if filters.until is not None:
            stmt = stmt.where(AttemptRow.timestamp < to_utc(filters.until))

        with self.session_scope() as session:
            attempts = [_attempt_from_row(row) for row in session.scalars(stmt).all()]
        # Ordering and limit share the in-process rules with the other stores
        return filters.apply(attempts)

    # =========================================================================
    # MetricsStore
    # =========================================================================

    def get_user_metrics(self, user_id: str) -> UserMetrics:
        with self.session_scope() as session:
            row = session.get(MetricsRow, user_id)
            if row is None:
                return UserMetrics(user_id=user_id)
            return UserMetrics(
                user_id=row.user_id,
                total_questions=row.total_questions,
                correct_answers=row.correct_answers,
                streak=row.streak,
                longest_streak=row.longest_streak,
                last_activity_date=row.last_activity_date,
            )

    def upsert_user_metrics(self, user_id: str, metrics: UserMetrics) -> None:
        with self.session_scope() as session:
            row = session.get(MetricsRow, user_id) or MetricsRow(user_id=user_id)
            row.total_questions = metrics.total_questions
            row.correct_answers = metrics.correct_answers
            row.streak = metrics.streak
            row.longest_streak = metrics.longest_streak
            row.last_activity_date = metrics.last_activity_date
            session.add(row)

    def close(self) -> None:
        self.engine.dispose()
