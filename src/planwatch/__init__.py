import logging

from .codec.decoder import decode
from .codec.encoder import to_json
from .runtime.controller import DashboardController, RunOutcome, RunResult
from .runtime.exceptions import DecodeError, DecodeFailure, LineSourceError, PlanwatchError
from .runtime.snapshot import DashboardSnapshot
from .runtime.view_state import ViewState

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "decode",
    "to_json",
    "DashboardController",
    "RunOutcome",
    "RunResult",
    "DashboardSnapshot",
    "ViewState",
    "DecodeError",
    "DecodeFailure",
    "LineSourceError",
    "PlanwatchError",
]
