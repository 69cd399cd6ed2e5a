"""
Base repository class for data access layer.

Repositories keep query logic out of the services. They add and flush but
never commit: transaction boundaries belong to the caller (one commit per
game during sync, one commit per recalculation).

Example:
    class TeamRatingRepository(BaseRepository[TeamRating]):
        def find_by_team(self, season: int, team_name: str) -> Optional[TeamRating]:
            return self.where_first(
                TeamRating.season == season,
                TeamRating.team_name == team_name
            )
"""
from abc import ABC
from typing import TypeVar, Generic, Type, Optional, Any, Dict
from sqlalchemy import func
from sqlalchemy.orm import Session

T = TypeVar("T")


class BaseRepository(Generic[T], ABC):
    """
    Base repository class providing common data access methods.

    Attributes:
        model_type: The SQLAlchemy model class this repository manages
        db: The database session
    """

    def __init__(self, model_type: Type[T], db: Session):
        self.model_type = model_type
        self.db = db

    # ========================================================================
    # CRUD Operations
    # ========================================================================

    def find_by_id(self, id: Any) -> Optional[T]:
        """Find a single record by primary key."""
        return self.db.get(self.model_type, id)

    def create(self, **kwargs) -> T:
        """
        Create a new record.

        Returns:
            The created record (flushed, not committed)
        """
        instance = self.model_type(**kwargs)
        self.db.add(instance)
        self.db.flush()
        return instance

    # ========================================================================
    # Query Builders
    # ========================================================================

    def where_first(self, *criterion) -> Optional[T]:
        """Filter records using SQLAlchemy expressions and return first match."""
        return self.db.query(self.model_type).filter(*criterion).first()

    def exists_where(self, *criterion) -> bool:
        """Check if any record matching the criterion exists."""
        return self.db.query(
            self.db.query(self.model_type).filter(*criterion).exists()
        ).scalar()

    def count(self, *criterion) -> int:
        """Count records matching optional criterion."""
        query = self.db.query(func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return query.scalar() or 0

    def group_by_and_count(self, field: str, *criterion) -> Dict[Any, int]:
        """
        Count records grouped by a column.

        Args:
            field: Column name to group by
            criterion: Optional filter criteria

        Returns:
            Dict of column value to count
        """
        column = getattr(self.model_type, field)
        query = self.db.query(column, func.count(self.model_type.id))
        if criterion:
            query = query.filter(*criterion)
        return {value: count for value, count in query.group_by(column).all()}
