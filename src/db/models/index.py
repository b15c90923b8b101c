"""Index definition, composition, history and rebalance log SQLAlchemy models."""

import uuid

from sqlalchemy import (
    Column,
    String,
    Date,
    DateTime,
    Boolean,
    Float,
    Integer,
    Text,
    JSON,
    ForeignKey,
    Index as SQLIndex,
    func,
    text,
)
from .base import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class IndexDefinition(Base):
    """Index definition - identity plus the methodology used to screen and weight it."""

    __tablename__ = "index_definitions"

    id = Column(String(36), primary_key=True, default=_new_id)
    ticker = Column(String(20), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    config = Column(JSON, nullable=False)  # validated MethodologyConfig payload
    base_value = Column(Float, nullable=False, default=100.0)
    inception_date = Column(Date, nullable=False)  # exchange-local creation day

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class CompositionEntry(Base):
    """
    One holding span of a ticker inside an index.

    A ticker may enter and leave an index several times; each span is its
    own row. Open spans have exit_date = NULL and only one may be open per
    (index_id, ticker).
    """

    __tablename__ = "index_composition"

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(
        String(36), ForeignKey("index_definitions.id"), nullable=False
    )
    ticker = Column(String(20), nullable=False)
    weight = Column(Float, nullable=False)
    entry_price = Column(Float)
    entry_date = Column(Date, nullable=False)
    exit_price = Column(Float)
    exit_date = Column(Date, nullable=True)

    __table_args__ = (
        SQLIndex("idx_composition_index_dates", "index_id", "entry_date", "exit_date"),
        SQLIndex(
            "uq_composition_open_ticker",
            "index_id",
            "ticker",
            unique=True,
            sqlite_where=text("exit_date IS NULL"),
            postgresql_where=text("exit_date IS NULL"),
        ),
    )


class HistoryPoint(Base):
    """Daily official index level. Unique per (index_id, date)."""

    __tablename__ = "index_history_points"

    index_id = Column(
        String(36), ForeignKey("index_definitions.id"), primary_key=True, nullable=False
    )
    date = Column(Date, primary_key=True, nullable=False)
    point = Column(Float, nullable=False)
    daily_change = Column(Float, nullable=False, default=0.0)  # percent
    dividends_received = Column(Float, nullable=False, default=0.0)  # cumulative
    dividends_by_ticker = Column(JSON)  # ticker -> amount per share
    daily_contributions_by_ticker = Column(JSON)  # ticker -> percent
    composition_snapshot = Column(JSON)  # ticker -> {weight, price, entry_price, entry_date}
    current_yield = Column(Float)
    is_virtual = Column(Boolean, default=False)  # synthetic base-100 anchor

    # Attribution check: |sum(contributions) - daily_change| within tolerance
    is_consistent = Column(Boolean, default=True)
    consistency_difference = Column(Float, default=0.0)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())


class RebalanceLogEntry(Base):
    """Append-only audit trail of composition changes."""

    __tablename__ = "index_rebalance_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    index_id = Column(
        String(36), ForeignKey("index_definitions.id"), nullable=False
    )
    date = Column(Date, nullable=False)
    action = Column(String(10), nullable=False)  # 'ENTRY' | 'EXIT'
    ticker = Column(String(20), nullable=False)
    reason = Column(Text)

    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        SQLIndex("idx_rebalance_log_index_date", "index_id", "date"),
    )
