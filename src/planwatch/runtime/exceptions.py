from enum import Enum
from typing import Optional


class PlanwatchError(Exception):
    """Base class for errors raised by planwatch."""

    pass


class DecodeFailure(str, Enum):
    MALFORMED = "malformed"
    UNKNOWN_KIND = "unknown_kind"


class DecodeError(PlanwatchError):
    """
    Raised when a line of the stream cannot be turned into an Event.

    Both failures are fatal to a run: a malformed line means the stream is
    corrupt, an unknown kind means the producer speaks a newer vocabulary.
    """

    def __init__(
        self,
        reason: DecodeFailure,
        detail: str,
        line: str = "",
        message_type: Optional[str] = None,
    ):
        self.reason = reason
        self.detail = detail
        self.line = line
        self.message_type = message_type
        super().__init__(f"{reason.value}: {detail}")


class LineSourceError(PlanwatchError):
    """Raised by a line source when reading fails for a reason other than EOF."""

    pass


class ConfigError(PlanwatchError):
    """Raised when a configuration file cannot be loaded or has unknown keys."""

    pass
