"""
Service layer for LeetStack.

ReviewService runs the fetch, schedule and persist cycle for card reviews and
reports review history and statistics.
NoteStackService feeds chunked study material to a text-generation
collaborator and aggregates the flashcards it returns.
"""

import abc
import datetime
import logging
from dataclasses import replace
from typing import List, Optional, Union

from leetstack.chunking import (
    DEFAULT_MAX_TOKENS,
    chunk_by_blocks,
    chunk_by_headings,
    combine_chunks,
    group_chunks_by_size,
)
from leetstack.errors import CardNotFoundError
from leetstack.models import (
    CardStack,
    ChunkAnchor,
    ChunkOptions,
    GeneratedCard,
    ReviewSession,
    ReviewState,
    UserStats,
    as_utc,
)
from leetstack.repository import ReviewSessionRepository, ReviewStateRepository
from leetstack.srs import (
    ReviewDifficulty,
    ReviewScheduler,
    create_initial_review_state,
    parse_difficulty,
)

logger = logging.getLogger("leetstack")

DEFAULT_STACK_TOPIC = "Interview study stack"
DEFAULT_MAX_ITERATIONS = 10


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def _require_card_id(card_id: str) -> str:
    if not card_id or not card_id.strip():
        raise ValueError("card_id is required")
    return card_id.strip()


class ReviewService:
    """
    Service that schedules card reviews and keeps their state in a repository.
    """

    def __init__(
        self,
        scheduler: ReviewScheduler,
        repository: ReviewStateRepository,
        session_repository: Optional[ReviewSessionRepository] = None,
    ):
        self.scheduler = scheduler
        self.repository = repository
        self.session_repository = session_repository
        logger.info(f"ReviewService initialized with {scheduler.name} scheduler")

    def ensure_card(
        self, card_id: str, current_time: Optional[datetime.datetime] = None
    ) -> ReviewState:
        """
        Return the stored state of a card, creating the initial one if needed.

        Args:
            card_id: The ID of the card
            current_time: The current time (defaults to now)

        Returns:
            The card's review state
        """
        card_id = _require_card_id(card_id)
        existing = self.repository.get(card_id)
        if existing is not None:
            return existing

        state = create_initial_review_state(card_id, self.scheduler, current_time or _utcnow())
        logger.info(f"Created initial review state for card {card_id}")
        return self.repository.save(state)

    def review_card(
        self,
        card_id: str,
        difficulty: Union[ReviewDifficulty, str],
        current_time: Optional[datetime.datetime] = None,
    ) -> ReviewState:
        """
        Record a review and persist the newly scheduled state.

        Cards without a stored state are scheduled from the defaults. The
        review is added to the history unless the save was discarded as stale.

        Args:
            card_id: The ID of the card
            difficulty: The recall difficulty reported by the user
            current_time: The time of the review (defaults to now)

        Returns:
            The review state stored after the review
        """
        card_id = _require_card_id(card_id)
        difficulty = parse_difficulty(difficulty)
        current_time = as_utc(current_time or _utcnow())

        existing = self.repository.get(card_id)
        snapshot = existing.to_snapshot() if existing is not None else None

        result = self.scheduler.schedule(snapshot, difficulty, current_time)
        state = ReviewState.from_result(card_id, result, difficulty.value)
        saved = self.repository.save(state)
        if self.session_repository is not None and saved.last_reviewed_at == current_time:
            self.session_repository.add(ReviewSession(card_id, current_time, difficulty.value))

        logger.info(
            f"Reviewed card {card_id} as {difficulty.value}; "
            f"next review at {saved.next_review_date.isoformat()}"
        )
        return saved

    def get_due_cards(
        self, current_time: Optional[datetime.datetime] = None, limit: Optional[int] = None
    ) -> List[ReviewState]:
        """Get the cards due for review, oldest due date first."""
        return self.repository.get_due(current_time or _utcnow(), limit)

    def get_review_history(
        self, card_id: Optional[str] = None, limit: Optional[int] = None
    ) -> List[ReviewSession]:
        """Get recorded reviews oldest first, optionally for one card or the newest few."""
        if self.session_repository is None:
            return []
        if card_id is not None:
            card_id = _require_card_id(card_id)
        return self.session_repository.list(card_id, limit)

    def get_user_stats(self, current_time: Optional[datetime.datetime] = None) -> UserStats:
        """
        Summarize review activity.

        The streak counts consecutive UTC days with at least one review,
        ending today; it is 0 when nothing was reviewed today.

        Args:
            current_time: The current time (defaults to now)

        Returns:
            The aggregated statistics
        """
        today = as_utc(current_time or _utcnow()).date()
        states = self.repository.list()
        sessions = self.get_review_history()

        if states:
            average_ease = sum(state.ease_factor for state in states) / len(states)
        else:
            average_ease = self.scheduler.config.initial_ease_factor

        review_days = {as_utc(session.reviewed_at).date() for session in sessions}
        streak = 0
        day = today
        while day in review_days:
            streak += 1
            day -= datetime.timedelta(days=1)

        return UserStats(
            total_cards=len(states),
            total_reviews=len(sessions),
            streak=streak,
            average_ease_factor=average_ease,
            last_review_date=sessions[-1].reviewed_at if sessions else None,
        )

    def reset_card(
        self, card_id: str, current_time: Optional[datetime.datetime] = None
    ) -> ReviewState:
        """
        Put a card back to its initial scheduling state.

        Raises:
            CardNotFoundError: If the card has no stored state
        """
        card_id = _require_card_id(card_id)
        if self.repository.get(card_id) is None:
            raise CardNotFoundError(f"No review state stored for card {card_id}")

        self.repository.delete(card_id)
        state = create_initial_review_state(card_id, self.scheduler, current_time or _utcnow())
        logger.info(f"Reset review state for card {card_id}")
        return self.repository.save(state)


class CardGenerator(abc.ABC):
    """Text-generation collaborator that turns study material into flashcards."""

    @abc.abstractmethod
    async def generate(
        self, content: str, topic: Optional[str] = None, anchor: Optional[ChunkAnchor] = None
    ) -> CardStack:
        """
        Generate flashcards for a piece of content.

        Args:
            content: The material to turn into cards
            topic: Topic hint, if known
            anchor: The last card generated so far, if any

        Returns:
            The generated topic, summary and cards
        """
        pass


class NoteStackService:
    """
    Service that chunks study material and collects generated flashcards.
    """

    def __init__(
        self,
        generator: CardGenerator,
        options: Optional[ChunkOptions] = None,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.generator = generator
        self.options = options or ChunkOptions()
        self.max_iterations = max_iterations
        self.max_tokens = max_tokens

    async def build_incremental_stack(
        self,
        content: str,
        topic: Optional[str] = None,
        initial_anchor: Optional[ChunkAnchor] = None,
    ) -> CardStack:
        """
        Generate cards chunk by chunk, resuming after the last generated card.

        Each attempt chunks the content past the current anchor and sends the
        first chunk to the generator. Generation stops when the generator
        returns no cards, no content is left, the anchor stops advancing, or
        max_iterations is reached.

        Args:
            content: The full study material
            topic: Topic hint passed to the generator
            initial_anchor: Card to resume after, from a previous run

        Returns:
            The aggregated stack
        """
        aggregated: List[GeneratedCard] = []
        anchor = initial_anchor
        derived_topic = None
        previous_chunk = None

        for attempt in range(1, self.max_iterations + 1):
            chunks = chunk_by_blocks(content, replace(self.options, anchor=anchor))
            if not chunks:
                logger.info(f"Attempt {attempt}: no content left after anchor; stopping")
                break

            chunk = chunks[0]
            if chunk == previous_chunk:
                logger.info(f"Attempt {attempt}: anchor did not advance; stopping")
                break
            previous_chunk = chunk

            stack = await self.generator.generate(chunk, topic=topic, anchor=anchor)
            if not derived_topic and stack.topic:
                derived_topic = stack.topic
            if not stack.cards:
                logger.info(f"Attempt {attempt} returned 0 cards; stopping")
                break

            aggregated.extend(stack.cards)
            anchor = stack.cards[-1].to_anchor()
            logger.info(
                f"Attempt {attempt} produced {len(stack.cards)} cards (total={len(aggregated)})"
            )

        return CardStack(
            topic=derived_topic or topic or DEFAULT_STACK_TOPIC,
            summary=None,
            cards=aggregated,
        )

    async def build_sectioned_stack(self, markdown: str, topic: Optional[str] = None) -> CardStack:
        """
        Generate cards for a markdown document one section group at a time.

        Sections are packed into groups within the token budget and each
        group is sent to the generator once.

        Args:
            markdown: The markdown document
            topic: Topic hint passed to the generator

        Returns:
            The aggregated stack, with the group summaries joined
        """
        groups = group_chunks_by_size(chunk_by_headings(markdown), self.max_tokens)
        aggregated: List[GeneratedCard] = []
        summaries: List[str] = []
        derived_topic = None

        for index, group in enumerate(groups, start=1):
            text = combine_chunks(group)
            if not text.strip():
                continue

            stack = await self.generator.generate(text, topic=topic)
            if not derived_topic and stack.topic:
                derived_topic = stack.topic
            if stack.summary:
                summaries.append(stack.summary.strip())
            aggregated.extend(stack.cards)
            logger.info(
                f"Section group {index}/{len(groups)} ({len(group)} sections) "
                f"produced {len(stack.cards)} cards"
            )

        return CardStack(
            topic=derived_topic or topic or DEFAULT_STACK_TOPIC,
            summary="\n\n".join(summaries) or None,
            cards=aggregated,
        )
