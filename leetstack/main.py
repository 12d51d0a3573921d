#!/usr/bin/env python
"""
LeetStack - command-line entry point.

Chunks study material, schedules card reviews against the local SQLite
review store and reports review history and statistics.
"""

import argparse
import datetime
import json
import logging
import sys
from typing import Any, List, Optional

from config import settings
from config.logging_config import setup_logging
from leetstack.chunking import chunk_by_blocks, chunk_by_headings, group_chunks_by_size
from leetstack.database import Database
from leetstack.errors import LeetStackError
from leetstack.models import ChunkAnchor, ChunkOptions, parse_timestamp
from leetstack.repository import SQLiteReviewSessionRepository, SQLiteReviewStateRepository
from leetstack.services import CardGenerator, NoteStackService, ReviewService
from leetstack.srs import SCHEDULERS, ReviewScheduler, SchedulerConfig, create_scheduler

logger = logging.getLogger("leetstack")


def build_scheduler_config() -> SchedulerConfig:
    """Build the scheduler configuration from settings."""
    return SchedulerConfig(
        steps_seconds=tuple(settings.SR_LEARNING_STEPS),
        easy_step=settings.SR_EASY_STEP,
        medium_step=settings.SR_MEDIUM_STEP,
        easy_bonus=settings.SR_EASY_BONUS,
        initial_ease_factor=settings.SR_INITIAL_EASE,
        min_ease_factor=settings.SR_MIN_EASE,
    )


def build_scheduler(name: Optional[str] = None) -> ReviewScheduler:
    """Create the configured scheduler, or the named one if given."""
    return create_scheduler(name or settings.SR_SCHEDULER, build_scheduler_config())


def build_note_stack_service(generator: CardGenerator) -> NoteStackService:
    """Create a NoteStackService around a generator using the chunking settings."""
    options = ChunkOptions(
        target_size=settings.CHUNK_TARGET_SIZE, overlap_blocks=settings.CHUNK_OVERLAP_BLOCKS
    )
    return NoteStackService(
        generator,
        options,
        max_iterations=settings.STACK_MAX_ITERATIONS,
        max_tokens=settings.CHUNK_MAX_TOKENS,
    )


def _timestamp_arg(value: str) -> datetime.datetime:
    return parse_timestamp(value)


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False))


def cmd_chunk(args: argparse.Namespace) -> int:
    with open(args.file, encoding="utf-8") as f:
        text = f.read()

    if args.headings:
        groups = group_chunks_by_size(chunk_by_headings(text), args.max_tokens)
        _print_json({"groups": [[chunk.to_dict() for chunk in group] for group in groups]})
        return 0

    anchor = None
    if args.anchor_front or args.anchor_back or args.anchor_extra:
        anchor = ChunkAnchor(
            front=args.anchor_front, back=args.anchor_back, extra=args.anchor_extra
        )
    options = ChunkOptions(
        target_size=args.target_size, overlap_blocks=args.overlap, anchor=anchor
    )
    _print_json({"chunks": chunk_by_blocks(text, options)})
    return 0


def _open_service(args: argparse.Namespace) -> ReviewService:
    db = Database(args.db, settings.REVIEW_HISTORY_LIMIT)
    return ReviewService(
        build_scheduler(args.scheduler),
        SQLiteReviewStateRepository(db),
        SQLiteReviewSessionRepository(db),
    )


def cmd_review(args: argparse.Namespace) -> int:
    service = _open_service(args)
    try:
        state = service.review_card(args.card_id, args.difficulty, args.now)
        _print_json(state.to_dict())
    finally:
        service.repository.close()
    return 0


def cmd_due(args: argparse.Namespace) -> int:
    service = _open_service(args)
    try:
        states = service.get_due_cards(args.now, args.limit)
        _print_json([state.to_dict() for state in states])
    finally:
        service.repository.close()
    return 0


def cmd_reset(args: argparse.Namespace) -> int:
    service = _open_service(args)
    try:
        state = service.reset_card(args.card_id, args.now)
        _print_json(state.to_dict())
    finally:
        service.repository.close()
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    service = _open_service(args)
    try:
        _print_json(service.get_user_stats(args.now).to_dict())
    finally:
        service.repository.close()
    return 0


def cmd_history(args: argparse.Namespace) -> int:
    service = _open_service(args)
    try:
        sessions = service.get_review_history(args.card_id, args.limit)
        _print_json([session.to_dict() for session in sessions])
    finally:
        service.repository.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="leetstack", description="Chunk study notes and schedule card reviews."
    )
    parser.add_argument("--db", default=settings.DATABASE_PATH, help="Path to the SQLite database")
    parser.add_argument(
        "--scheduler",
        choices=sorted(SCHEDULERS),
        default=None,
        help=f"Scheduler variant (default: {settings.SR_SCHEDULER})",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    chunk = subparsers.add_parser("chunk", help="Split a text file into chunks")
    chunk.add_argument("file", help="Text or markdown file to chunk")
    chunk.add_argument(
        "--headings", action="store_true", help="Split by markdown headings and group by size"
    )
    chunk.add_argument("--target-size", type=int, default=settings.CHUNK_TARGET_SIZE)
    chunk.add_argument("--overlap", type=int, default=settings.CHUNK_OVERLAP_BLOCKS)
    chunk.add_argument("--max-tokens", type=int, default=settings.CHUNK_MAX_TOKENS)
    chunk.add_argument("--anchor-front", help="Front of the last generated card")
    chunk.add_argument("--anchor-back", help="Back of the last generated card")
    chunk.add_argument("--anchor-extra", help="Extra text of the last generated card")
    chunk.set_defaults(func=cmd_chunk)

    review = subparsers.add_parser("review", help="Record a review for a card")
    review.add_argument("card_id")
    review.add_argument("difficulty", help="easy, medium (or good), hard")
    review.add_argument("--now", type=_timestamp_arg, default=None, help="ISO-8601 review time")
    review.set_defaults(func=cmd_review)

    due = subparsers.add_parser("due", help="List cards due for review")
    due.add_argument("--limit", type=int, default=None)
    due.add_argument("--now", type=_timestamp_arg, default=None, help="ISO-8601 reference time")
    due.set_defaults(func=cmd_due)

    reset = subparsers.add_parser("reset", help="Reset a card to its initial schedule")
    reset.add_argument("card_id")
    reset.add_argument("--now", type=_timestamp_arg, default=None, help="ISO-8601 reset time")
    reset.set_defaults(func=cmd_reset)

    stats = subparsers.add_parser("stats", help="Show review statistics")
    stats.add_argument("--now", type=_timestamp_arg, default=None, help="ISO-8601 reference time")
    stats.set_defaults(func=cmd_stats)

    history = subparsers.add_parser("history", help="List recorded reviews, oldest first")
    history.add_argument("--card", dest="card_id", default=None, help="Only this card")
    history.add_argument("--limit", type=int, default=None, help="Only the newest N reviews")
    history.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main application entry point"""
    args = build_parser().parse_args(argv)
    setup_logging()
    logger.debug(f"Running command {args.command}")

    try:
        return args.func(args)
    except (LeetStackError, ValueError, OSError) as e:
        logger.error(f"Error running {args.command}: {e}", exc_info=settings.DEBUG_MODE)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
