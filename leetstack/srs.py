"""
Spaced Repetition System (SRS) module.

This module implements the review schedulers that turn a card's scheduling
snapshot and a self-reported recall difficulty into the next interval, ease
factor and due date.

StageScheduler is the canonical scheduler. LearningStepScheduler and
SM2DayScheduler reproduce the policies of older clients so that snapshots
persisted by those clients can still be scheduled consistently.
"""

import datetime
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional, Tuple, Type, Union

from leetstack.errors import InvalidSchedulerConfigError, UnknownDifficultyError
from leetstack.models import CardSnapshot, ReviewState, ScheduleResult, as_utc

logger = logging.getLogger("leetstack")

DAY_SECONDS = 86400
# timedelta resolution; shorter steps would not move the due date
MIN_STEP_SECONDS = 1e-6


class ReviewDifficulty(str, Enum):
    """
    Self-assessed recall difficulty reported right after a review.

    "good" is accepted as an alias of MEDIUM, matching older clients.
    """

    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def _missing_(cls, value):
        if isinstance(value, str):
            normalized = value.strip().lower()
            if normalized == "good":
                return cls.MEDIUM
            for member in cls:
                if member.value == normalized:
                    return member
        return None


def parse_difficulty(value: Union[ReviewDifficulty, str]) -> ReviewDifficulty:
    """
    Convert a rating received at a string boundary to a ReviewDifficulty.

    Raises:
        UnknownDifficultyError: If the value is not a supported rating
    """
    if isinstance(value, ReviewDifficulty):
        return value
    try:
        return ReviewDifficulty(value)
    except ValueError:
        raise UnknownDifficultyError(f"Unknown difficulty rating: {value!r}") from None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def sm2_ease_factor(current: float, quality: int, min_ease_factor: float) -> float:
    """SM-2 ease update for a 0-5 quality score, floored at min_ease_factor."""
    updated = current + (0.1 - (5 - quality) * (0.08 + (5 - quality) * 0.02))
    return max(min_ease_factor, updated)


@dataclass(frozen=True)
class SchedulerConfig:
    """
    Immutable scheduler configuration, validated on construction.

    Attributes:
        steps_seconds: Ordered stage/learning-step durations in seconds
        easy_step: Stages advanced on an easy rating
        medium_step: Stages retreated on a medium rating
        easy_bonus: Interval multiplier for easy ratings after graduation
        initial_ease_factor: Ease factor assumed for a new card
        min_ease_factor: Lower bound for the ease factor
    """

    steps_seconds: Tuple[float, ...]
    easy_step: int = 1
    medium_step: int = 1
    easy_bonus: float = 1.3
    initial_ease_factor: float = 2.5
    min_ease_factor: float = 1.3

    def __post_init__(self) -> None:
        steps = tuple(self.steps_seconds)
        object.__setattr__(self, "steps_seconds", steps)

        if not steps:
            raise InvalidSchedulerConfigError("steps_seconds must contain at least one duration")
        for duration in steps:
            if (
                isinstance(duration, bool)
                or not isinstance(duration, (int, float))
                or not math.isfinite(duration)
                or duration < MIN_STEP_SECONDS
            ):
                raise InvalidSchedulerConfigError(
                    f"steps_seconds entries must be numbers of at least one microsecond, "
                    f"got {duration!r}"
                )
        if self.easy_step < 0 or self.medium_step < 0:
            raise InvalidSchedulerConfigError("easy_step and medium_step must not be negative")
        if self.easy_bonus <= 0:
            raise InvalidSchedulerConfigError("easy_bonus must be positive")
        if self.min_ease_factor <= 0:
            raise InvalidSchedulerConfigError("min_ease_factor must be positive")
        if self.initial_ease_factor < self.min_ease_factor:
            raise InvalidSchedulerConfigError(
                "initial_ease_factor must not be below min_ease_factor"
            )

    @property
    def day_seconds(self) -> int:
        return DAY_SECONDS


class ReviewScheduler(ABC):
    """
    Base class for review schedulers.

    Subclasses implement _advance(), which maps the resolved snapshot and a
    difficulty to the new (ease factor, interval, repetitions) triple.
    schedule() handles defaults, the clock and the result envelope.
    """

    name = "base"

    def __init__(self, config: SchedulerConfig):
        self.config = config

    def get_initial_interval_seconds(self) -> float:
        """Interval assigned to a card that has never been reviewed."""
        return self.config.steps_seconds[0]

    def resolve_snapshot(self, snapshot: Optional[CardSnapshot]) -> Tuple[float, float, int]:
        """
        Fill in defaults for a missing or partial snapshot.

        Returns:
            Tuple of (ease_factor, interval_seconds, repetitions)
        """
        if snapshot is None:
            snapshot = CardSnapshot()

        ease_factor = snapshot.ease_factor
        if ease_factor is None:
            ease_factor = self.config.initial_ease_factor

        interval = snapshot.interval
        if interval is None:
            interval = self.get_initial_interval_seconds()

        repetitions = 0 if snapshot.repetitions is None else max(0, int(snapshot.repetitions))

        return ease_factor, interval, repetitions

    def schedule(
        self,
        snapshot: Optional[CardSnapshot],
        difficulty: Union[ReviewDifficulty, str],
        now: Optional[datetime.datetime] = None,
    ) -> ScheduleResult:
        """
        Compute the next review for a card.

        Args:
            snapshot: Current scheduling state (None for a new card)
            difficulty: The recall difficulty reported by the user
            now: The time of the review (defaults to the current UTC time)

        Returns:
            The new scheduling state
        """
        difficulty = parse_difficulty(difficulty)
        if now is None:
            now = datetime.datetime.now(datetime.timezone.utc)

        ease_factor, interval, repetitions = self.resolve_snapshot(snapshot)
        new_ease, new_interval, new_repetitions = self._advance(
            ease_factor, interval, repetitions, difficulty
        )

        result = ScheduleResult(
            ease_factor=new_ease,
            interval=new_interval,
            repetitions=new_repetitions,
            next_review_date=now + datetime.timedelta(seconds=new_interval),
            last_reviewed_at=now,
        )
        logger.debug(
            f"{self.name} scheduler: {difficulty.value} moved repetitions "
            f"{repetitions} -> {new_repetitions}, interval {new_interval}s"
        )
        return result

    @abstractmethod
    def _advance(
        self,
        ease_factor: float,
        interval: float,
        repetitions: int,
        difficulty: ReviewDifficulty,
    ) -> Tuple[float, float, int]:
        pass


class StageScheduler(ReviewScheduler):
    """
    Stage-pattern scheduler.

    A card's repetitions value is its index into steps_seconds. Easy advances
    it by easy_step, medium retreats it by medium_step, hard resets it to
    the first stage. Both ends saturate. The ease factor moves by a fixed
    delta per rating and does not affect the interval.
    """

    name = "stage"

    EASE_DELTAS = {
        ReviewDifficulty.EASY: 0.15,
        ReviewDifficulty.MEDIUM: -0.05,
        ReviewDifficulty.HARD: -0.30,
    }

    def _advance(self, ease_factor, interval, repetitions, difficulty):
        steps = self.config.steps_seconds
        last_stage = len(steps) - 1
        stage = min(repetitions, last_stage)

        if difficulty is ReviewDifficulty.EASY:
            next_stage = min(stage + self.config.easy_step, last_stage)
        elif difficulty is ReviewDifficulty.MEDIUM:
            next_stage = max(stage - self.config.medium_step, 0)
        else:
            next_stage = 0

        next_interval = steps[next_stage]
        new_ease = max(self.config.min_ease_factor, ease_factor + self.EASE_DELTAS[difficulty])
        return new_ease, next_interval, next_stage


class LearningStepScheduler(ReviewScheduler):
    """
    Learning steps followed by SM-2 style day multiplication.

    The first len(steps_seconds) successful reviews walk through the
    learning steps. After that the interval, in whole days, is multiplied by
    the ease factor (and by easy_bonus for easy ratings). Hard resets the
    card to the first step.
    """

    name = "learning-steps"

    QUALITY = {
        ReviewDifficulty.EASY: 5,
        ReviewDifficulty.MEDIUM: 4,
        ReviewDifficulty.HARD: 2,
    }

    def _advance(self, ease_factor, interval, repetitions, difficulty):
        config = self.config
        new_ease = sm2_ease_factor(ease_factor, self.QUALITY[difficulty], config.min_ease_factor)

        if difficulty is ReviewDifficulty.HARD:
            return new_ease, self.get_initial_interval_seconds(), 0

        next_repetitions = repetitions + 1
        steps = config.steps_seconds
        if next_repetitions <= len(steps):
            index = max(0, min(next_repetitions - 1, len(steps) - 1))
            return new_ease, steps[index], next_repetitions

        current_days = max(1, interval / config.day_seconds)
        bonus = config.easy_bonus if difficulty is ReviewDifficulty.EASY else 1
        next_days = max(1, _round_half_up(current_days * new_ease * bonus))
        return new_ease, next_days * config.day_seconds, next_repetitions


class SM2DayScheduler(ReviewScheduler):
    """
    Classic SM-2 scheduling in whole days.

    Intervals go 1 day, 6 days, then previous interval times the ease
    factor. Hard restarts learning at one day and leaves the ease factor
    unchanged. steps_seconds is not used.
    """

    name = "sm2"

    QUALITY = {
        ReviewDifficulty.EASY: 5,
        ReviewDifficulty.MEDIUM: 3,
        ReviewDifficulty.HARD: 1,
    }

    def get_initial_interval_seconds(self) -> float:
        return self.config.day_seconds

    def _advance(self, ease_factor, interval, repetitions, difficulty):
        config = self.config
        if difficulty is ReviewDifficulty.HARD:
            return max(config.min_ease_factor, ease_factor), config.day_seconds, 0

        new_ease = sm2_ease_factor(ease_factor, self.QUALITY[difficulty], config.min_ease_factor)
        if repetitions == 0:
            days = 1
        elif repetitions == 1:
            days = 6
        else:
            days = max(1, _round_half_up(interval / config.day_seconds * new_ease))
        return new_ease, days * config.day_seconds, repetitions + 1


SCHEDULERS: Dict[str, Type[ReviewScheduler]] = {
    StageScheduler.name: StageScheduler,
    LearningStepScheduler.name: LearningStepScheduler,
    SM2DayScheduler.name: SM2DayScheduler,
}


def create_scheduler(name: str, config: SchedulerConfig) -> ReviewScheduler:
    """
    Create a scheduler by name ("stage", "learning-steps" or "sm2").

    Raises:
        ValueError: If the name is not a known scheduler
    """
    try:
        scheduler_cls = SCHEDULERS[name.strip().lower()]
    except KeyError:
        raise ValueError(
            f"Unknown scheduler {name!r}; expected one of {', '.join(sorted(SCHEDULERS))}"
        ) from None
    return scheduler_cls(config)


def is_due(state: ReviewState, current_time: Optional[datetime.datetime] = None) -> bool:
    """
    Check if a card is due for review.

    Args:
        state: The stored review state to check
        current_time: The current time (defaults to now if not provided)

    Returns:
        True if the card is due for review, False otherwise
    """
    if current_time is None:
        current_time = datetime.datetime.now(datetime.timezone.utc)

    if state.next_review_date is None:
        return True

    return as_utc(current_time) >= as_utc(state.next_review_date)


def create_initial_review_state(
    card_id: str, scheduler: ReviewScheduler, current_time: Optional[datetime.datetime] = None
) -> ReviewState:
    """
    Build the review state of a card that has never been reviewed.

    The card becomes due one initial interval after current_time.
    """
    if current_time is None:
        current_time = datetime.datetime.now(datetime.timezone.utc)

    interval = scheduler.get_initial_interval_seconds()
    return ReviewState(
        card_id=card_id,
        ease_factor=scheduler.config.initial_ease_factor,
        interval=interval,
        repetitions=0,
        next_review_date=current_time + datetime.timedelta(seconds=interval),
        last_reviewed_at=None,
        last_review_status=None,
    )
