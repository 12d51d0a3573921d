"""
Exception types raised by LeetStack.
"""


class LeetStackError(Exception):
    """Base class for all LeetStack errors."""


class InvalidSchedulerConfigError(LeetStackError, ValueError):
    """Raised when a scheduler configuration is rejected at construction."""


class UnknownDifficultyError(LeetStackError, ValueError):
    """Raised for a difficulty rating outside the supported set."""


class CardNotFoundError(LeetStackError, KeyError):
    """Raised when an operation requires a stored review state that is missing."""

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return str(self.args[0]) if self.args else "Card not found"
