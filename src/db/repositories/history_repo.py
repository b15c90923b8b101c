from typing import List, Optional
from datetime import date
from sqlalchemy.orm import Session

from src.db.models.index import HistoryPoint
from .base import BaseRepository


class HistoryRepository(BaseRepository[HistoryPoint]):
    """Daily index points, unique per (index_id, date)."""

    def __init__(self, session: Session):
        super().__init__(session, HistoryPoint)

    def get_point(self, index_id: str, d: date) -> Optional[HistoryPoint]:
        return self.session.get(HistoryPoint, (index_id, d))

    def get_last_before(self, index_id: str, d: date) -> Optional[HistoryPoint]:
        """Most recent point strictly before d."""
        return (
            self.session.query(HistoryPoint)
            .filter(HistoryPoint.index_id == index_id, HistoryPoint.date < d)
            .order_by(HistoryPoint.date.desc())
            .first()
        )

    def get_first(self, index_id: str) -> Optional[HistoryPoint]:
        return (
            self.session.query(HistoryPoint)
            .filter(HistoryPoint.index_id == index_id)
            .order_by(HistoryPoint.date.asc())
            .first()
        )

    def get_last(self, index_id: str) -> Optional[HistoryPoint]:
        return (
            self.session.query(HistoryPoint)
            .filter(HistoryPoint.index_id == index_id)
            .order_by(HistoryPoint.date.desc())
            .first()
        )

    def list_points(
        self,
        index_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
    ) -> List[HistoryPoint]:
        """Points oldest first, optionally bounded (inclusive)."""
        query = self.session.query(HistoryPoint).filter(HistoryPoint.index_id == index_id)
        if start:
            query = query.filter(HistoryPoint.date >= start)
        if end:
            query = query.filter(HistoryPoint.date <= end)
        return query.order_by(HistoryPoint.date.asc()).all()

    def upsert(self, point: HistoryPoint, commit: bool = True) -> HistoryPoint:
        """Write a point, overwriting any existing row for the same (index_id, date)."""
        return self.merge(point, commit=commit)

    def delete_from(self, index_id: str, d: date) -> int:
        """Remove points dated on/after d (caller commits)."""
        return (
            self.session.query(HistoryPoint)
            .filter(HistoryPoint.index_id == index_id, HistoryPoint.date >= d)
            .delete(synchronize_session=False)
        )
