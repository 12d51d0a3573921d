"""
Repository module providing abstraction for review state and history persistence.

The scheduler never touches storage; callers fetch a state through a
repository, schedule it, and save the result back.
"""

import abc
import datetime
from typing import List, Optional

from leetstack.database import Database
from leetstack.models import ReviewSession, ReviewState


class ReviewStateRepository(abc.ABC):
    """Repository for per-card review states."""

    @abc.abstractmethod
    def get(self, card_id: str) -> Optional[ReviewState]:
        """Get the review state of a card."""
        pass

    @abc.abstractmethod
    def save(self, state: ReviewState) -> ReviewState:
        """Save a review state and return the state that ends up stored."""
        pass

    @abc.abstractmethod
    def delete(self, card_id: str) -> bool:
        """Delete the review state of a card."""
        pass

    @abc.abstractmethod
    def list(self) -> List[ReviewState]:
        """List all review states."""
        pass

    @abc.abstractmethod
    def get_due(
        self, current_time: datetime.datetime, limit: Optional[int] = None
    ) -> List[ReviewState]:
        """Get review states due at or before current_time, oldest first."""
        pass

    @abc.abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass


class SQLiteReviewStateRepository(ReviewStateRepository):
    """SQLite implementation of the ReviewStateRepository."""

    def __init__(self, db: Database):
        """Initialize with a Database instance."""
        self.db = db

    def get(self, card_id: str) -> Optional[ReviewState]:
        return self.db.get_review_state(card_id)

    def save(self, state: ReviewState) -> ReviewState:
        return self.db.save_review_state(state)

    def delete(self, card_id: str) -> bool:
        return self.db.delete_review_state(card_id)

    def list(self) -> List[ReviewState]:
        return self.db.list_review_states()

    def get_due(
        self, current_time: datetime.datetime, limit: Optional[int] = None
    ) -> List[ReviewState]:
        return self.db.list_due_review_states(current_time, limit)

    def close(self) -> None:
        """Close the database connection."""
        self.db.close()


class ReviewSessionRepository(abc.ABC):
    """Repository for the history of recorded reviews."""

    @abc.abstractmethod
    def add(self, session: ReviewSession) -> ReviewSession:
        """Record a review and return it with its id set."""
        pass

    @abc.abstractmethod
    def list(
        self, card_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ReviewSession]:
        """List recorded reviews oldest first, optionally for one card or the newest few."""
        pass

    @abc.abstractmethod
    def close(self) -> None:
        """Close any open connections."""
        pass


class SQLiteReviewSessionRepository(ReviewSessionRepository):
    """SQLite implementation of the ReviewSessionRepository."""

    def __init__(self, db: Database):
        """Initialize with a Database instance."""
        self.db = db

    def add(self, session: ReviewSession) -> ReviewSession:
        return self.db.add_review_session(session)

    def list(
        self, card_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ReviewSession]:
        return self.db.list_review_sessions(card_id, limit)

    def close(self) -> None:
        """Close the database connection."""
        self.db.close()
