from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ControlEvent:
    """Base class for everything the dashboard loop reacts to."""

    pass


@dataclass(frozen=True)
class LineReady(ControlEvent):
    line: str = ""


@dataclass(frozen=True)
class LineError(ControlEvent):
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class EndOfStream(ControlEvent):
    pass


@dataclass(frozen=True)
class TimerTick(ControlEvent):
    pass


@dataclass(frozen=True)
class UserInterrupt(ControlEvent):
    pass


@dataclass(frozen=True)
class WindowResize(ControlEvent):
    columns: int = 0
    lines: int = 0
