"""
Tests for the service layer.
"""

import datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from leetstack.chunking import chunk_by_headings, combine_chunks, group_chunks_by_size
from leetstack.database import Database
from leetstack.errors import CardNotFoundError, UnknownDifficultyError
from leetstack.models import (
    CardStack,
    ChunkAnchor,
    ChunkOptions,
    GeneratedCard,
    ReviewSession,
    ReviewState,
    UserStats,
)
from leetstack.repository import SQLiteReviewSessionRepository, SQLiteReviewStateRepository
from leetstack.services import DEFAULT_STACK_TOPIC, NoteStackService, ReviewService
from leetstack.srs import SchedulerConfig, StageScheduler

SENTENCES = [f"Sentence number {i:02d} is here ok." for i in range(10)]
STUDY_TEXT = "\n".join(SENTENCES)

NOTES = """# Hashing

Hash maps give constant time lookups on average.

# Two Pointers

Walk inward from both ends of a sorted array.

# Heaps

A binary heap keeps the smallest element at the root.
"""


@pytest.fixture
def scheduler():
    return StageScheduler(SchedulerConfig(steps_seconds=(20, 60, 180)))


@pytest.fixture
def mock_state_repo():
    """Create a mock review state repository that stores what it is given."""
    repo = MagicMock()
    repo.get = MagicMock(return_value=None)
    repo.save = MagicMock(side_effect=lambda state: state)
    repo.delete = MagicMock(return_value=True)
    repo.get_due = MagicMock(return_value=[])
    return repo


@pytest.fixture
def review_service(scheduler, mock_state_repo):
    return ReviewService(scheduler, mock_state_repo)


@pytest.fixture
def mock_generator():
    """Create a mock card generator."""
    generator = MagicMock()
    generator.generate = AsyncMock()
    return generator


def card(front, back="answer"):
    return GeneratedCard(front=front, back=back)


class TestReviewService:
    def test_review_new_card(self, review_service, mock_state_repo, reference_time):
        state = review_service.review_card("two-sum", "easy", reference_time)

        mock_state_repo.get.assert_called_once_with("two-sum")
        mock_state_repo.save.assert_called_once_with(state)
        assert state.card_id == "two-sum"
        assert state.repetitions == 1
        assert state.interval == 60
        assert state.ease_factor == pytest.approx(2.65)
        assert state.next_review_date == reference_time + datetime.timedelta(seconds=60)
        assert state.last_reviewed_at == reference_time
        assert state.last_review_status == "easy"

    def test_review_existing_card(self, review_service, mock_state_repo, reference_time):
        mock_state_repo.get.return_value = ReviewState(
            card_id="lru-cache", ease_factor=2.5, interval=180, repetitions=2
        )

        state = review_service.review_card("lru-cache", "hard", reference_time)

        assert state.repetitions == 0
        assert state.interval == 20
        assert state.ease_factor == pytest.approx(2.2)

    def test_good_is_recorded_as_medium(self, review_service, mock_state_repo, reference_time):
        mock_state_repo.get.return_value = ReviewState(
            card_id="card", ease_factor=2.5, interval=180, repetitions=2
        )

        state = review_service.review_card("card", "Good", reference_time)

        assert state.last_review_status == "medium"
        assert state.repetitions == 1
        assert state.interval == 60

    def test_unknown_difficulty(self, review_service, mock_state_repo):
        with pytest.raises(UnknownDifficultyError):
            review_service.review_card("card", "perfect")
        mock_state_repo.save.assert_not_called()

    @pytest.mark.parametrize("card_id", ["", "   "])
    def test_blank_card_id(self, review_service, card_id):
        with pytest.raises(ValueError):
            review_service.review_card(card_id, "easy")

    def test_review_defaults_to_now(self, review_service):
        before = datetime.datetime.now(datetime.timezone.utc)
        state = review_service.review_card("card", "medium")

        assert state.last_reviewed_at.tzinfo is not None
        assert state.last_reviewed_at >= before

    def test_get_due_cards(self, review_service, mock_state_repo, reference_time):
        due_state = ReviewState(card_id="card", ease_factor=2.5, interval=20, repetitions=0)
        mock_state_repo.get_due.return_value = [due_state]

        assert review_service.get_due_cards(reference_time, limit=3) == [due_state]
        mock_state_repo.get_due.assert_called_once_with(reference_time, 3)

    def test_ensure_card_creates_initial_state(
        self, review_service, mock_state_repo, reference_time
    ):
        state = review_service.ensure_card("new-card", reference_time)

        mock_state_repo.save.assert_called_once_with(state)
        assert state.repetitions == 0
        assert state.interval == 20
        assert state.ease_factor == 2.5
        assert state.next_review_date == reference_time + datetime.timedelta(seconds=20)
        assert state.last_reviewed_at is None

    def test_ensure_card_keeps_existing_state(self, review_service, mock_state_repo):
        existing = ReviewState(card_id="card", ease_factor=2.0, interval=180, repetitions=2)
        mock_state_repo.get.return_value = existing

        assert review_service.ensure_card("card") is existing
        mock_state_repo.save.assert_not_called()

    def test_reset_missing_card(self, review_service, mock_state_repo):
        with pytest.raises(CardNotFoundError) as exc_info:
            review_service.reset_card("ghost")

        assert "ghost" in str(exc_info.value)
        mock_state_repo.delete.assert_not_called()

    def test_reset_card(self, review_service, mock_state_repo, reference_time):
        mock_state_repo.get.return_value = ReviewState(
            card_id="card", ease_factor=1.3, interval=180, repetitions=2
        )

        state = review_service.reset_card("card", reference_time)

        mock_state_repo.delete.assert_called_once_with("card")
        mock_state_repo.save.assert_called_once_with(state)
        assert state.repetitions == 0
        assert state.ease_factor == 2.5
        assert state.interval == 20


class TestReviewHistoryAndStats:
    @pytest.fixture
    def mock_session_repo(self):
        repo = MagicMock()
        repo.add = MagicMock(side_effect=lambda session: session)
        repo.list = MagicMock(return_value=[])
        return repo

    @pytest.fixture
    def service(self, scheduler, mock_state_repo, mock_session_repo):
        mock_state_repo.list = MagicMock(return_value=[])
        return ReviewService(scheduler, mock_state_repo, mock_session_repo)

    def test_review_is_recorded(self, service, mock_session_repo, reference_time):
        service.review_card("two-sum", "good", reference_time)

        mock_session_repo.add.assert_called_once_with(
            ReviewSession("two-sum", reference_time, "medium")
        )

    def test_stale_review_is_not_recorded(
        self, service, mock_state_repo, mock_session_repo, reference_time
    ):
        newer = ReviewState(
            card_id="two-sum",
            ease_factor=2.5,
            interval=60,
            repetitions=2,
            last_reviewed_at=reference_time + datetime.timedelta(hours=1),
        )
        mock_state_repo.save = MagicMock(return_value=newer)

        assert service.review_card("two-sum", "easy", reference_time) is newer
        mock_session_repo.add.assert_not_called()

    def test_history_without_session_repository(self, review_service):
        assert review_service.get_review_history() == []

    def test_history_for_card(self, service, mock_session_repo):
        service.get_review_history(" two-sum ", limit=5)
        mock_session_repo.list.assert_called_once_with("two-sum", 5)

    def test_stats_without_reviews(self, service, reference_time):
        stats = service.get_user_stats(reference_time)

        assert stats == UserStats(
            total_cards=0,
            total_reviews=0,
            streak=0,
            average_ease_factor=2.5,
            last_review_date=None,
        )

    def test_stats_streak_over_consecutive_days(
        self, service, mock_state_repo, mock_session_repo, reference_time
    ):
        day = datetime.timedelta(days=1)
        mock_state_repo.list.return_value = [
            ReviewState(card_id="a", ease_factor=2.0, interval=20, repetitions=0),
            ReviewState(card_id="b", ease_factor=3.0, interval=20, repetitions=0),
        ]
        mock_session_repo.list.return_value = [
            ReviewSession("a", reference_time - 4 * day, "easy"),
            ReviewSession("a", reference_time - 2 * day, "easy"),
            ReviewSession("b", reference_time - day, "hard"),
            ReviewSession("a", reference_time - day, "medium"),
            ReviewSession("b", reference_time, "easy"),
        ]

        stats = service.get_user_stats(reference_time)

        assert stats.total_cards == 2
        assert stats.total_reviews == 5
        assert stats.streak == 3
        assert stats.average_ease_factor == 2.5
        assert stats.last_review_date == reference_time

    def test_streak_is_zero_without_review_today(
        self, service, mock_session_repo, reference_time
    ):
        mock_session_repo.list.return_value = [
            ReviewSession("a", reference_time - datetime.timedelta(days=1), "easy"),
        ]

        assert service.get_user_stats(reference_time).streak == 0

    def test_streak_uses_utc_days(self, service, mock_session_repo):
        plus_five = datetime.timezone(datetime.timedelta(hours=5))
        # 2025-01-02 01:00 at +05:00 is still 2025-01-01 in UTC
        mock_session_repo.list.return_value = [
            ReviewSession("a", datetime.datetime(2025, 1, 2, 1, 0, tzinfo=plus_five), "easy"),
        ]

        now = datetime.datetime(2025, 1, 1, 23, 0, tzinfo=datetime.timezone.utc)
        assert service.get_user_stats(now).streak == 1


class TestReviewServiceWithDatabase:
    """Runs the review cycle against a real in-memory database."""

    @pytest.fixture
    def service(self, scheduler):
        db = Database(":memory:")
        yield ReviewService(
            scheduler, SQLiteReviewStateRepository(db), SQLiteReviewSessionRepository(db)
        )
        db.close()

    def test_review_cycle(self, service, reference_time):
        minute = datetime.timedelta(minutes=1)

        service.review_card("two-sum", "easy", reference_time)
        service.review_card("two-sum", "easy", reference_time + minute)
        service.review_card("valid-parentheses", "hard", reference_time)

        stored = service.repository.get("two-sum")
        assert stored.repetitions == 2
        assert stored.interval == 180

        due = service.get_due_cards(reference_time + datetime.timedelta(seconds=30))
        assert [state.card_id for state in due] == ["valid-parentheses"]

        due_later = service.get_due_cards(reference_time + datetime.timedelta(hours=1))
        assert [state.card_id for state in due_later] == ["valid-parentheses", "two-sum"]

    def test_reset_after_reviews(self, service, reference_time):
        service.review_card("card", "easy", reference_time)
        service.review_card("card", "easy", reference_time + datetime.timedelta(minutes=2))

        state = service.reset_card("card", reference_time + datetime.timedelta(minutes=5))

        assert state.repetitions == 0
        assert service.repository.get("card").repetitions == 0
        assert service.repository.get("card").last_reviewed_at is None

    def test_history_and_stats(self, service, reference_time):
        service.review_card("two-sum", "easy", reference_time - datetime.timedelta(days=1))
        service.review_card("two-sum", "medium", reference_time)
        service.review_card("heap", "hard", reference_time + datetime.timedelta(minutes=1))

        history = service.get_review_history()
        assert [(s.card_id, s.difficulty) for s in history] == [
            ("two-sum", "easy"),
            ("two-sum", "medium"),
            ("heap", "hard"),
        ]
        assert [s.difficulty for s in service.get_review_history("two-sum")] == [
            "easy",
            "medium",
        ]

        stats = service.get_user_stats(reference_time + datetime.timedelta(hours=1))
        assert stats.total_cards == 2
        assert stats.total_reviews == 3
        assert stats.streak == 2
        assert stats.last_review_date == reference_time + datetime.timedelta(minutes=1)


class TestNoteStackService:
    @pytest.fixture
    def stack_service(self, mock_generator):
        return NoteStackService(mock_generator, ChunkOptions(target_size=100, overlap_blocks=0))

    @pytest.mark.asyncio
    async def test_incremental_stack_resumes_after_last_card(self, stack_service, mock_generator):
        mock_generator.generate.side_effect = [
            CardStack(topic="Sentences", cards=[card("first"), card(SENTENCES[3])]),
            CardStack(topic="Ignored", cards=[card(SENTENCES[7])]),
            CardStack(cards=[]),
        ]

        stack = await stack_service.build_incremental_stack(STUDY_TEXT)

        assert mock_generator.generate.await_count == 3
        chunks_sent = [call.args[0] for call in mock_generator.generate.await_args_list]
        assert chunks_sent == [
            "\n".join(SENTENCES[0:4]),
            "\n".join(SENTENCES[4:8]),
            "\n".join(SENTENCES[8:10]),
        ]
        anchors = [call.kwargs["anchor"] for call in mock_generator.generate.await_args_list]
        assert anchors[0] is None
        assert anchors[1] == ChunkAnchor(front=SENTENCES[3], back="answer")

        assert [c.front for c in stack.cards] == ["first", SENTENCES[3], SENTENCES[7]]
        assert stack.topic == "Sentences"
        assert stack.summary is None

    @pytest.mark.asyncio
    async def test_stops_when_anchor_does_not_advance(self, stack_service, mock_generator):
        mock_generator.generate.return_value = CardStack(cards=[card("not in the text")])

        stack = await stack_service.build_incremental_stack(STUDY_TEXT, topic="Notes")

        assert mock_generator.generate.await_count == 1
        assert len(stack.cards) == 1
        assert stack.topic == "Notes"

    @pytest.mark.asyncio
    async def test_respects_max_iterations(self, mock_generator):
        service = NoteStackService(
            mock_generator, ChunkOptions(target_size=100, overlap_blocks=0), max_iterations=2
        )
        mock_generator.generate.side_effect = [
            CardStack(cards=[card(SENTENCES[3])]),
            CardStack(cards=[card(SENTENCES[7])]),
        ]

        stack = await service.build_incremental_stack(STUDY_TEXT)

        assert mock_generator.generate.await_count == 2
        assert len(stack.cards) == 2

    @pytest.mark.asyncio
    async def test_nothing_left_after_initial_anchor(self, stack_service, mock_generator):
        stack = await stack_service.build_incremental_stack(
            STUDY_TEXT, initial_anchor=ChunkAnchor(front=SENTENCES[-1])
        )

        mock_generator.generate.assert_not_called()
        assert stack.cards == []
        assert stack.topic == DEFAULT_STACK_TOPIC

    @pytest.mark.asyncio
    async def test_blank_content(self, stack_service, mock_generator):
        stack = await stack_service.build_incremental_stack("   ")

        mock_generator.generate.assert_not_called()
        assert stack.cards == []

    def test_invalid_max_iterations(self, mock_generator):
        with pytest.raises(ValueError):
            NoteStackService(mock_generator, max_iterations=0)

    @pytest.mark.asyncio
    async def test_sectioned_stack(self, mock_generator):
        service = NoteStackService(mock_generator, max_tokens=20)
        groups = group_chunks_by_size(chunk_by_headings(NOTES), 20)
        assert len(groups) == 3

        mock_generator.generate.side_effect = [
            CardStack(topic="Data structures", summary="Hashing basics.", cards=[card("Q1")]),
            CardStack(summary=None, cards=[card("Q2"), card("Q3")]),
            CardStack(summary="  Heap notes. ", cards=[]),
        ]

        stack = await service.build_sectioned_stack(NOTES, topic="Algorithms")

        sent = [call.args[0] for call in mock_generator.generate.await_args_list]
        assert sent == [combine_chunks(group) for group in groups]
        for call in mock_generator.generate.await_args_list:
            assert call.kwargs["topic"] == "Algorithms"
        assert [c.front for c in stack.cards] == ["Q1", "Q2", "Q3"]
        assert stack.topic == "Data structures"
        assert stack.summary == "Hashing basics.\n\nHeap notes."

    @pytest.mark.asyncio
    async def test_sectioned_stack_without_summaries(self, mock_generator):
        service = NoteStackService(mock_generator)
        mock_generator.generate.return_value = CardStack(cards=[card("Q")])

        stack = await service.build_sectioned_stack(NOTES)

        assert mock_generator.generate.await_count == 1
        assert stack.summary is None
        assert stack.topic == DEFAULT_STACK_TOPIC
