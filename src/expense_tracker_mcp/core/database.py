"""
Local object store for categories and expenses.

SQLAlchemy ORM over SQLite. The store knows nothing about validation or
caching; it provides sessions, the schema, and a ``did_save`` signal fired
after every commit that actually wrote something.
"""

import asyncio
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    event,
    func,
    select,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    sessionmaker,
)

from expense_tracker_mcp.core.observable import Signal, running_loop

logger = logging.getLogger(__name__)

DEFAULT_DATA_DIR = Path.home() / ".expense_tracker"


def new_identifier() -> str:
    return uuid.uuid4().hex


def _casefold(value: Optional[str]) -> Optional[str]:
    return value.casefold() if value is not None else None


class Base(DeclarativeBase):
    pass


class CategoryRecord(Base):
    __tablename__ = "categories"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_identifier)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    icon: Mapped[str] = mapped_column(String(50), nullable=False, default="questionmark")
    color_hex: Mapped[str] = mapped_column(String(9), nullable=False, default="000000")
    order: Mapped[int] = mapped_column("sort_order", Integer, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    expenses: Mapped[List["ExpenseRecord"]] = relationship(back_populates="category")

    def __repr__(self) -> str:
        return f"<CategoryRecord(id={self.id}, name={self.name}, order={self.order})>"


class ExpenseRecord(Base):
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_identifier)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=datetime.now)

    # Weak link: deleting a category never touches its expenses
    category_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("categories.id"), nullable=True, index=True
    )
    category: Mapped[Optional[CategoryRecord]] = relationship(
        back_populates="expenses", lazy="joined"
    )

    def __repr__(self) -> str:
        return f"<ExpenseRecord(id={self.id}, name={self.name}, amount={self.amount})>"


class ExpenseDatabase:
    """
    Owns the SQLite engine and hands out ORM sessions.

    Sessions are short-lived and opened on whatever thread runs the query;
    the gateway runs them on worker threads.
    """

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize the database.

        Args:
            db_path: Path to the SQLite file.
                    If None, uses ~/.expense_tracker/expenses.db.
        """
        if db_path is None:
            db_path = DEFAULT_DATA_DIR / "expenses.db"

        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )

        @event.listens_for(self.engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.execute("PRAGMA journal_mode = WAL")
            cursor.close()
            # SQLite lower() folds ASCII only
            dbapi_connection.create_function(
                "casefold", 1, _casefold, deterministic=True
            )

        self._session_factory = sessionmaker(self.engine, expire_on_commit=False)
        self.did_save: Signal[None] = Signal()
        self._loop: Optional[asyncio.AbstractEventLoop] = None

        event.listen(self._session_factory, "after_flush", self._mark_written)
        event.listen(self._session_factory, "after_commit", self._announce_save)
        event.listen(self._session_factory, "after_rollback", self._forget_writes)

        Base.metadata.create_all(self.engine)
        logger.debug(f"Opened expense database at {self.db_path}")

    def session(self) -> Session:
        return self._session_factory()

    def attach_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Deliver ``did_save`` on ``loop`` when a commit happens on a worker thread."""
        self._loop = loop

    def is_available(self) -> bool:
        return self.db_path.exists()

    @staticmethod
    def _mark_written(session: Session, flush_context: Any) -> None:
        session.info["has_writes"] = True

    @staticmethod
    def _forget_writes(session: Session) -> None:
        session.info.pop("has_writes", None)

    def _announce_save(self, session: Session) -> None:
        if not session.info.pop("has_writes", False):
            return

        loop = self._loop
        if loop is None or not loop.is_running() or running_loop() is loop:
            self.did_save.emit(None)
        else:
            loop.call_soon_threadsafe(self.did_save.emit, None)

    def stats(self) -> Dict[str, int]:
        """Row counts for both entity kinds."""
        with self.session() as session:
            categories = session.scalar(select(func.count()).select_from(CategoryRecord))
            expenses = session.scalar(select(func.count()).select_from(ExpenseRecord))
        return {"categories": categories or 0, "expenses": expenses or 0}

    def delete_all_data(self) -> None:
        with self.session() as session, session.begin():
            session.info["has_writes"] = True
            session.execute(delete(ExpenseRecord))
            session.execute(delete(CategoryRecord))
        logger.info("All data deleted")

    def close(self) -> None:
        self.engine.dispose()
