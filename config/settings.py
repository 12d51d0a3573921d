"""
Configuration settings for LeetStack.

Values are read once from the environment (and a .env file) at import time.
"""

import os
from typing import List, Optional, Sequence, Union

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

SECONDS_PER_DAY = 60 * 60 * 24
DEV_LEARNING_STEPS = [20, 60, 180]
DEFAULT_LEARNING_STEPS = [SECONDS_PER_DAY, 3 * SECONDS_PER_DAY]


def parse_steps(value: Optional[Union[str, Sequence]]) -> Optional[List[float]]:
    """
    Parse a comma-separated list (or sequence) of durations in seconds.

    Non-numeric and non-positive entries are dropped. Returns None when no
    valid entry remains so that callers can fall back to a default.
    """
    if not value:
        return None

    parts = value.split(",") if isinstance(value, str) else value
    steps = []
    for part in parts:
        try:
            duration = float(str(part).strip())
        except ValueError:
            continue
        if duration > 0 and duration != float("inf"):
            steps.append(int(duration) if duration.is_integer() else duration)

    return steps or None


def _env_bool(name: str, default: str = "False") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


# Application settings
DEBUG_MODE = _env_bool("DEBUG_MODE")

# Spaced repetition settings
SR_SCHEDULER = os.getenv("SR_SCHEDULER", "stage")
SR_LEARNING_STEPS = parse_steps(os.getenv("SR_LEARNING_STEPS")) or (
    DEV_LEARNING_STEPS if DEBUG_MODE else DEFAULT_LEARNING_STEPS
)
SR_EASY_STEP = int(os.getenv("SR_EASY_STEP", "1"))
SR_MEDIUM_STEP = int(os.getenv("SR_MEDIUM_STEP", "1"))
SR_EASY_BONUS = float(os.getenv("SR_EASY_BONUS", "1.3"))
SR_INITIAL_EASE = float(os.getenv("SR_INITIAL_EASE", "2.5"))
SR_MIN_EASE = float(os.getenv("SR_MIN_EASE", "1.3"))

# Chunking settings
CHUNK_TARGET_SIZE = int(os.getenv("CHUNK_TARGET_SIZE", "500"))
CHUNK_OVERLAP_BLOCKS = int(os.getenv("CHUNK_OVERLAP_BLOCKS", "2"))
CHUNK_MAX_TOKENS = int(os.getenv("CHUNK_MAX_TOKENS", "3000"))
STACK_MAX_ITERATIONS = int(os.getenv("STACK_MAX_ITERATIONS", "10"))

# Database Settings
DATABASE_PATH = os.getenv("DATABASE_PATH", "data/leetstack.db")
_history_limit = int(os.getenv("REVIEW_HISTORY_LIMIT", "1000"))
# 0 keeps every recorded review
REVIEW_HISTORY_LIMIT = _history_limit if _history_limit > 0 else None

# Logging Settings
LOG_DIR = os.getenv("LOG_DIR", "logs")
