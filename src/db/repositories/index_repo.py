"""Repositories for index definitions, composition entries and the rebalance log."""

from typing import Any, List, Optional
from datetime import date
from sqlalchemy import or_
from sqlalchemy.orm import Session

from src.db.models.index import IndexDefinition, CompositionEntry, RebalanceLogEntry
from src.errors import InvalidInputError
from src.index.methodology import validate_methodology
from .base import BaseRepository


class IndexDefinitionRepository(BaseRepository[IndexDefinition]):
    """Repository for IndexDefinition CRUD operations."""

    def __init__(self, session: Session):
        super().__init__(session, IndexDefinition)

    def get_index(self, index_id: str) -> Optional[IndexDefinition]:
        """Get index definition by ID."""
        return self.session.get(IndexDefinition, index_id)

    def get_by_ticker(self, ticker: str) -> Optional[IndexDefinition]:
        return (
            self.session.query(IndexDefinition)
            .filter(IndexDefinition.ticker == ticker)
            .first()
        )

    def create_index(
        self,
        ticker: str,
        name: str,
        config: Any,
        inception_date: date,
        description: Optional[str] = None,
        base_value: float = 100.0,
        commit: bool = True,
    ) -> IndexDefinition:
        """
        Create an index after validating its methodology.

        Raises:
            InvalidInputError: Bad methodology or duplicate ticker; nothing is written
        """
        methodology = validate_methodology(config)
        if self.get_by_ticker(ticker):
            raise InvalidInputError(f"Index ticker '{ticker}' already exists", raw_input=ticker)

        index = IndexDefinition(
            ticker=ticker,
            name=name,
            description=description,
            config=methodology.model_dump(mode="json"),
            base_value=base_value,
            inception_date=inception_date,
        )
        return self.add(index, commit=commit)

    def get_all_indices(self) -> List[IndexDefinition]:
        """All index definitions, oldest first."""
        return (
            self.session.query(IndexDefinition)
            .order_by(IndexDefinition.created_at, IndexDefinition.id)
            .all()
        )


class CompositionRepository:
    """
    Repository for CompositionEntry spans.

    A span opened on D (entry_date = D) is held from D's close, so it first
    earns a return on the next trading day. A span closed on D still earns
    D's return.
    """

    def __init__(self, session: Session):
        self.session = session

    def get_holdings_for_returns(self, index_id: str, d: date) -> List[CompositionEntry]:
        """Spans held going into d: entered before d, not exited before d."""
        return (
            self.session.query(CompositionEntry)
            .filter(
                CompositionEntry.index_id == index_id,
                CompositionEntry.entry_date < d,
                or_(CompositionEntry.exit_date.is_(None), CompositionEntry.exit_date >= d),
            )
            .order_by(CompositionEntry.ticker)
            .all()
        )

    def get_active_at_close(self, index_id: str, d: date) -> List[CompositionEntry]:
        """Spans held after d's close (rebalances on d applied)."""
        return (
            self.session.query(CompositionEntry)
            .filter(
                CompositionEntry.index_id == index_id,
                CompositionEntry.entry_date <= d,
                or_(CompositionEntry.exit_date.is_(None), CompositionEntry.exit_date > d),
            )
            .order_by(CompositionEntry.ticker)
            .all()
        )

    def get_open_entries(self, index_id: str) -> List[CompositionEntry]:
        return (
            self.session.query(CompositionEntry)
            .filter(
                CompositionEntry.index_id == index_id,
                CompositionEntry.exit_date.is_(None),
            )
            .order_by(CompositionEntry.ticker)
            .all()
        )

    def get_entries_for_ticker(self, index_id: str, ticker: str) -> List[CompositionEntry]:
        return (
            self.session.query(CompositionEntry)
            .filter(
                CompositionEntry.index_id == index_id,
                CompositionEntry.ticker == ticker,
            )
            .order_by(CompositionEntry.entry_date)
            .all()
        )

    def get_all_entries(self, index_id: str) -> List[CompositionEntry]:
        return (
            self.session.query(CompositionEntry)
            .filter(CompositionEntry.index_id == index_id)
            .order_by(CompositionEntry.ticker, CompositionEntry.entry_date)
            .all()
        )

    def has_any(self, index_id: str) -> bool:
        return (
            self.session.query(CompositionEntry.id)
            .filter(CompositionEntry.index_id == index_id)
            .first()
            is not None
        )

    def open_entry(
        self,
        index_id: str,
        ticker: str,
        weight: float,
        entry_date: date,
        entry_price: Optional[float] = None,
    ) -> CompositionEntry:
        """Stage a new open span (caller commits)."""
        entry = CompositionEntry(
            index_id=index_id,
            ticker=ticker,
            weight=weight,
            entry_date=entry_date,
            entry_price=entry_price,
        )
        self.session.add(entry)
        return entry

    def close_entry(
        self, entry: CompositionEntry, exit_date: date, exit_price: Optional[float] = None
    ) -> CompositionEntry:
        """Stage closing an open span (caller commits)."""
        entry.exit_date = exit_date
        entry.exit_price = exit_price
        return entry

    def restore_before(self, index_id: str, d: date) -> int:
        """
        Undo every composition change made on or after d (caller commits).

        Spans opened on/after d are removed and spans closed on/after d are
        reopened. Returns the number of rows touched.
        """
        removed = (
            self.session.query(CompositionEntry)
            .filter(CompositionEntry.index_id == index_id, CompositionEntry.entry_date >= d)
            .delete(synchronize_session=False)
        )
        # The deletes must hit the database before reopening, or the partial
        # unique index on open spans can trip.
        self.session.flush()
        reopened = 0
        closed = (
            self.session.query(CompositionEntry)
            .filter(CompositionEntry.index_id == index_id, CompositionEntry.exit_date >= d)
            .all()
        )
        for entry in closed:
            entry.exit_date = None
            entry.exit_price = None
            reopened += 1
        self.session.flush()
        return removed + reopened


class RebalanceLogRepository:
    """Append-only rebalance audit trail."""

    def __init__(self, session: Session):
        self.session = session

    def append(
        self, index_id: str, d: date, action: str, ticker: str, reason: str
    ) -> RebalanceLogEntry:
        """Stage one log row (caller commits)."""
        row = RebalanceLogEntry(
            index_id=index_id, date=d, action=action, ticker=ticker, reason=reason
        )
        self.session.add(row)
        return row

    def list_entries(self, index_id: str) -> List[RebalanceLogEntry]:
        return (
            self.session.query(RebalanceLogEntry)
            .filter(RebalanceLogEntry.index_id == index_id)
            .order_by(RebalanceLogEntry.date, RebalanceLogEntry.id)
            .all()
        )

    def delete_from(self, index_id: str, d: date) -> int:
        """Remove rows dated on/after d. Only used when regenerating a rebalance."""
        return (
            self.session.query(RebalanceLogEntry)
            .filter(RebalanceLogEntry.index_id == index_id, RebalanceLogEntry.date >= d)
            .delete(synchronize_session=False)
        )
