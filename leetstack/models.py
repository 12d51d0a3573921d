"""
Core data models for the LeetStack study tracker.

This module defines the data structures for review scheduling state, review
history and statistics, chunking options and chunk output, and the flashcards
returned by the text-generation collaborator.
"""

import datetime
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def as_utc(dt: datetime.datetime) -> datetime.datetime:
    """Return dt in UTC, taking a naive datetime to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.timezone.utc)
    return dt.astimezone(datetime.timezone.utc)


def parse_timestamp(value: Any) -> Optional[datetime.datetime]:
    """
    Convert an ISO-8601 string (or datetime) to an aware UTC datetime.

    Strings without an offset are read as UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime.datetime):
        return as_utc(value)
    # fromisoformat() only accepts a trailing "Z" from Python 3.11 on
    if isinstance(value, str) and value.endswith("Z"):
        value = value[:-1] + "+00:00"
    return as_utc(datetime.datetime.fromisoformat(value))


@dataclass(frozen=True)
class CardSnapshot:
    """
    The persisted scheduling state of one reviewable unit.

    Attributes:
        ease_factor: Per-card multiplier, None for a new card
        interval: Last computed interval in seconds, None for a new card
        repetitions: Stage index or repetition count, None for a new card
    """

    ease_factor: Optional[float] = None
    interval: Optional[float] = None
    repetitions: Optional[int] = None


@dataclass(frozen=True)
class ScheduleResult:
    """
    Output of one scheduling decision.

    Attributes:
        ease_factor: Updated ease factor, never below the configured minimum
        interval: Seconds until the next review
        repetitions: Updated stage index or repetition count
        next_review_date: last_reviewed_at + interval
        last_reviewed_at: When the decision was made
    """

    ease_factor: float
    interval: float
    repetitions: int
    next_review_date: datetime.datetime
    last_reviewed_at: datetime.datetime

    def to_snapshot(self) -> CardSnapshot:
        """Return the subset of the result that the caller persists."""
        return CardSnapshot(
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
        )


@dataclass
class ReviewState:
    """
    Stored review metadata for a single card.

    Attributes:
        card_id: Identifier of the solution or flashcard
        ease_factor: Current ease factor
        interval: Current interval in seconds
        repetitions: Current stage index or repetition count
        next_review_date: When the card is due next
        last_reviewed_at: When the card was last reviewed (None if never)
        last_review_status: Difficulty reported at the last review
    """

    card_id: str
    ease_factor: float
    interval: float
    repetitions: int
    next_review_date: Optional[datetime.datetime] = None
    last_reviewed_at: Optional[datetime.datetime] = None
    last_review_status: Optional[str] = None

    @classmethod
    def from_result(
        cls, card_id: str, result: ScheduleResult, status: Optional[str] = None
    ) -> "ReviewState":
        """Build the stored state from a scheduling decision."""
        return cls(
            card_id=card_id,
            ease_factor=result.ease_factor,
            interval=result.interval,
            repetitions=result.repetitions,
            next_review_date=result.next_review_date,
            last_reviewed_at=result.last_reviewed_at,
            last_review_status=status,
        )

    def to_snapshot(self) -> CardSnapshot:
        return CardSnapshot(
            ease_factor=self.ease_factor,
            interval=self.interval,
            repetitions=self.repetitions,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the review state to a dictionary."""
        return {
            "card_id": self.card_id,
            "ease_factor": self.ease_factor,
            "interval": self.interval,
            "repetitions": self.repetitions,
            "next_review_date": (
                self.next_review_date.isoformat() if self.next_review_date else None
            ),
            "last_reviewed_at": (
                self.last_reviewed_at.isoformat() if self.last_reviewed_at else None
            ),
            "last_review_status": self.last_review_status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReviewState":
        """Create a review state from a dictionary."""
        return cls(
            card_id=data["card_id"],
            ease_factor=float(data["ease_factor"]),
            interval=float(data["interval"]),
            repetitions=int(data["repetitions"]),
            next_review_date=parse_timestamp(data.get("next_review_date")),
            last_reviewed_at=parse_timestamp(data.get("last_reviewed_at")),
            last_review_status=data.get("last_review_status"),
        )


@dataclass
class ReviewSession:
    """
    One recorded review, kept for history and statistics.

    Attributes:
        card_id: Identifier of the reviewed card
        reviewed_at: When the review happened
        difficulty: Difficulty reported for the review
        id: Storage identifier (None until stored)
    """

    card_id: str
    reviewed_at: datetime.datetime
    difficulty: str
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "card_id": self.card_id,
            "reviewed_at": self.reviewed_at.isoformat(),
            "difficulty": self.difficulty,
        }


@dataclass(frozen=True)
class UserStats:
    """Aggregate review statistics across all cards."""

    total_cards: int
    total_reviews: int
    streak: int
    average_ease_factor: float
    last_review_date: Optional[datetime.datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_cards": self.total_cards,
            "total_reviews": self.total_reviews,
            "streak": self.streak,
            "average_ease_factor": self.average_ease_factor,
            "last_review_date": (
                self.last_review_date.isoformat() if self.last_review_date else None
            ),
        }


@dataclass(frozen=True)
class ChunkAnchor:
    """Text of a previously generated flashcard, used to resume chunking."""

    front: Optional[str] = None
    back: Optional[str] = None
    extra: Optional[str] = None

    def search_targets(self) -> List[str]:
        """Return the non-empty stripped snippets in front/back/extra order."""
        targets = []
        for value in (self.front, self.back, self.extra):
            if isinstance(value, str) and value.strip():
                targets.append(value.strip())
        return targets


@dataclass(frozen=True)
class ChunkOptions:
    """
    Options for the block-overlap chunker.

    Attributes:
        target_size: Soft character budget per chunk
        overlap_blocks: Trailing blocks repeated at the start of the next chunk
        anchor: Previously generated card to skip past
    """

    target_size: int = 500
    overlap_blocks: int = 2
    anchor: Optional[ChunkAnchor] = None

    def __post_init__(self) -> None:
        if self.target_size <= 0:
            raise ValueError(f"target_size must be positive, got {self.target_size}")
        if self.overlap_blocks < 0:
            raise ValueError(f"overlap_blocks must not be negative, got {self.overlap_blocks}")


@dataclass
class MarkdownChunk:
    """
    A heading-delimited section of a markdown document.

    Attributes:
        id: "section-{n}", 1-indexed in document order
        title: Heading text without the leading hashes
        level: Heading level (1-6)
        content: Heading line plus body, stripped
        start_index: Offset of the section start in the source text
        end_index: Offset just past the section in the source text
    """

    id: str
    title: str
    level: int
    content: str
    start_index: int
    end_index: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "level": self.level,
            "content": self.content,
            "start_index": self.start_index,
            "end_index": self.end_index,
        }


@dataclass
class GeneratedCard:
    """A front/back flashcard produced by the text-generation collaborator."""

    front: str
    back: str
    extra: Optional[str] = None

    def to_anchor(self) -> ChunkAnchor:
        return ChunkAnchor(front=self.front, back=self.back, extra=self.extra)

    def to_dict(self) -> Dict[str, Any]:
        return {"front": self.front, "back": self.back, "extra": self.extra}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneratedCard":
        return cls(front=data["front"], back=data["back"], extra=data.get("extra"))


@dataclass
class CardStack:
    """
    A topic, optional summary and ordered cards for one piece of content.

    Attributes:
        topic: Topic detected or supplied for the content
        summary: Optional prose summary
        cards: Generated cards in order
    """

    topic: Optional[str] = None
    summary: Optional[str] = None
    cards: List[GeneratedCard] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "summary": self.summary,
            "cards": [card.to_dict() for card in self.cards],
        }
