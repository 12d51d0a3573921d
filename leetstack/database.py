"""
Database module for persistence of review states and review history.

This module provides a SQLite implementation for storing and retrieving the
scheduling state of each reviewable card and the log of past reviews.
Timestamps are stored as UTC ISO-8601 strings; naive datetimes are taken to be
UTC.
"""

import datetime
import logging
import os
import sqlite3
from dataclasses import replace
from typing import List, Optional

from leetstack.models import ReviewSession, ReviewState, as_utc

logger = logging.getLogger("leetstack")

MAX_REVIEW_SESSIONS = 1000


def adapt_datetime(dt):
    """Convert datetime to a fixed-width UTC ISO string for SQLite storage."""
    return as_utc(dt).isoformat(timespec="microseconds") if dt else None


def convert_datetime(value):
    """Convert an ISO string from SQLite to an aware datetime object."""
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8")
    try:
        return as_utc(datetime.datetime.fromisoformat(value))
    except (ValueError, TypeError):
        logger.warning(f"Unreadable timestamp in database: {value!r}")
        return None


sqlite3.register_adapter(datetime.datetime, adapt_datetime)
sqlite3.register_converter("timestamp", convert_datetime)


class Database:
    """SQLite database implementation for review state and history persistence."""

    def __init__(
        self,
        db_path: str = "data/leetstack.db",
        max_review_sessions: Optional[int] = MAX_REVIEW_SESSIONS,
    ):
        """
        Initialize the database connection.

        Args:
            db_path: Path to the SQLite database file, or ":memory:"
            max_review_sessions: Review history size (None keeps every review)
        """
        if max_review_sessions is not None and max_review_sessions < 1:
            raise ValueError("max_review_sessions must be at least 1")
        directory = os.path.dirname(db_path)
        if directory:
            os.makedirs(directory, exist_ok=True)

        self.db_path = db_path
        self.max_review_sessions = max_review_sessions
        self.conn = None

        self._connect()
        self._create_tables()

    def _connect(self) -> None:
        """Establish connection to the SQLite database."""
        try:
            self.conn = sqlite3.connect(self.db_path, detect_types=sqlite3.PARSE_DECLTYPES)
            self.conn.row_factory = sqlite3.Row
            logger.info(f"Connected to database at {self.db_path}")
        except sqlite3.Error as e:
            logger.error(f"Error connecting to database: {e}")
            raise

    def _create_tables(self) -> None:
        """Create necessary tables if they don't exist."""
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS review_states (
                card_id TEXT PRIMARY KEY,
                ease_factor REAL NOT NULL,
                interval REAL NOT NULL,
                repetitions INTEGER NOT NULL,
                next_review_date timestamp,
                last_reviewed_at timestamp,
                last_review_status TEXT
            )
            """
            )
            cursor.execute(
                """
            CREATE INDEX IF NOT EXISTS idx_review_states_next_review_date
            ON review_states (next_review_date)
            """
            )
            cursor.execute(
                """
            CREATE TABLE IF NOT EXISTS review_sessions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                card_id TEXT NOT NULL,
                reviewed_at timestamp NOT NULL,
                difficulty TEXT NOT NULL
            )
            """
            )
            cursor.execute(
                """
            CREATE INDEX IF NOT EXISTS idx_review_sessions_reviewed_at
            ON review_sessions (reviewed_at)
            """
            )
            self.conn.commit()
            logger.info("Database tables created or already exist")
        except sqlite3.Error as e:
            logger.error(f"Error creating database tables: {e}")
            raise

    def close(self) -> None:
        """Close the database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None
            logger.info("Database connection closed")

    @staticmethod
    def _row_to_state(row: sqlite3.Row) -> ReviewState:
        return ReviewState(
            card_id=row["card_id"],
            ease_factor=row["ease_factor"],
            interval=row["interval"],
            repetitions=row["repetitions"],
            next_review_date=row["next_review_date"],
            last_reviewed_at=row["last_reviewed_at"],
            last_review_status=row["last_review_status"],
        )

    def get_review_state(self, card_id: str) -> Optional[ReviewState]:
        """
        Retrieve the review state of a card.

        Args:
            card_id: The ID of the card

        Returns:
            The ReviewState if found, None otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM review_states WHERE card_id = ?", (card_id,))
            row = cursor.fetchone()

            if not row:
                logger.debug(f"Review state for card {card_id} not found")
                return None

            return self._row_to_state(row)
        except sqlite3.Error as e:
            logger.error(f"Error retrieving review state: {e}")
            raise

    def save_review_state(self, state: ReviewState) -> ReviewState:
        """
        Insert or replace the review state of a card, last writer wins.

        A state whose last_reviewed_at is older than the stored one (or that
        was never reviewed while the stored one was) is discarded, so a slow
        device cannot roll back a newer review.

        Args:
            state: The ReviewState to save

        Returns:
            The state that is stored after the call
        """
        try:
            existing = self.get_review_state(state.card_id)
            if existing is not None and existing.last_reviewed_at is not None:
                incoming = state.last_reviewed_at
                if incoming is None or as_utc(incoming) < existing.last_reviewed_at:
                    logger.warning(
                        f"Ignoring stale review state for card {state.card_id} "
                        f"(stored review at {existing.last_reviewed_at.isoformat()})"
                    )
                    return existing

            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT OR REPLACE INTO review_states
                (card_id, ease_factor, interval, repetitions,
                next_review_date, last_reviewed_at, last_review_status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    state.card_id,
                    state.ease_factor,
                    state.interval,
                    state.repetitions,
                    state.next_review_date,
                    state.last_reviewed_at,
                    state.last_review_status,
                ),
            )
            self.conn.commit()
            logger.info(f"Saved review state for card {state.card_id}")
            return state
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error saving review state: {e}")
            raise

    def delete_review_state(self, card_id: str) -> bool:
        """
        Delete the review state of a card.

        Args:
            card_id: The ID of the card

        Returns:
            True if a state was deleted, False otherwise
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute("DELETE FROM review_states WHERE card_id = ?", (card_id,))
            self.conn.commit()

            deleted = cursor.rowcount > 0
            if deleted:
                logger.info(f"Deleted review state for card {card_id}")
            else:
                logger.warning(f"No review state for card {card_id} found to delete")
            return deleted
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error deleting review state: {e}")
            raise

    def list_review_states(self) -> List[ReviewState]:
        """List all stored review states ordered by due date."""
        try:
            cursor = self.conn.cursor()
            cursor.execute("SELECT * FROM review_states ORDER BY next_review_date, card_id")
            return [self._row_to_state(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            logger.error(f"Error listing review states: {e}")
            raise

    def list_due_review_states(
        self, current_time: datetime.datetime, limit: Optional[int] = None
    ) -> List[ReviewState]:
        """
        Get the review states that are due, oldest due date first.

        Args:
            current_time: Cards due at or before this time are returned
            limit: Maximum number of states to return (None for all)

        Returns:
            List of due ReviewState objects
        """
        try:
            cursor = self.conn.cursor()
            query = """
                SELECT * FROM review_states
                WHERE next_review_date IS NULL OR next_review_date <= ?
                ORDER BY next_review_date, card_id
            """
            params: tuple = (current_time,)
            if limit is not None:
                query += " LIMIT ?"
                params = (current_time, limit)

            cursor.execute(query, params)
            states = [self._row_to_state(row) for row in cursor.fetchall()]
            logger.info(f"Retrieved {len(states)} due review states")
            return states
        except sqlite3.Error as e:
            logger.error(f"Error retrieving due review states: {e}")
            raise

    def add_review_session(self, session: ReviewSession) -> ReviewSession:
        """
        Append a review to the history.

        Only the newest max_review_sessions entries are kept.

        Args:
            session: The ReviewSession to record

        Returns:
            The session with its storage id set
        """
        try:
            cursor = self.conn.cursor()
            cursor.execute(
                """
                INSERT INTO review_sessions (card_id, reviewed_at, difficulty)
                VALUES (?, ?, ?)
                """,
                (session.card_id, session.reviewed_at, session.difficulty),
            )
            session_id = cursor.lastrowid

            if self.max_review_sessions is not None:
                cursor.execute(
                    """
                    DELETE FROM review_sessions WHERE id NOT IN (
                        SELECT id FROM review_sessions
                        ORDER BY reviewed_at DESC, id DESC LIMIT ?
                    )
                    """,
                    (self.max_review_sessions,),
                )
                if cursor.rowcount > 0:
                    logger.debug(f"Pruned {cursor.rowcount} old review sessions")

            self.conn.commit()
            logger.info(f"Recorded {session.difficulty} review session for card {session.card_id}")
            return replace(session, id=session_id)
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error(f"Error recording review session: {e}")
            raise

    def list_review_sessions(
        self, card_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ReviewSession]:
        """
        List recorded reviews, oldest first.

        Args:
            card_id: Only return reviews of this card (None for all cards)
            limit: Only return the newest this many reviews (None for all)

        Returns:
            List of ReviewSession objects
        """
        try:
            cursor = self.conn.cursor()
            query = "SELECT * FROM review_sessions"
            params: list = []
            if card_id is not None:
                query += " WHERE card_id = ?"
                params.append(card_id)
            query += " ORDER BY reviewed_at DESC, id DESC"
            if limit is not None:
                query += " LIMIT ?"
                params.append(limit)

            cursor.execute(query, params)
            sessions = [
                ReviewSession(
                    id=row["id"],
                    card_id=row["card_id"],
                    reviewed_at=row["reviewed_at"],
                    difficulty=row["difficulty"],
                )
                for row in cursor.fetchall()
            ]
            sessions.reverse()
            return sessions
        except sqlite3.Error as e:
            logger.error(f"Error listing review sessions: {e}")
            raise
