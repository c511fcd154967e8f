from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Tuple

from planwatch.runtime.tracker import OperationLocator, OperationStatus
from planwatch.runtime.view_state import ViewState
from planwatch.spec.events import ChangeAction, Diagnostic, Event, ResourceAddress


class RenderTrigger(str, Enum):
    LINE = "line"
    TICK = "tick"
    RESIZE = "resize"
    END = "end"


@dataclass(frozen=True)
class OperationRow:
    sequence_index: int
    status: OperationStatus
    action: str
    module: str
    resource_address: str
    elapsed_seconds: int
    resource: ResourceAddress = field(default_factory=ResourceAddress)
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


@dataclass(frozen=True)
class PlanRow:
    sequence_index: int
    module: str
    resource_address: str
    action: ChangeAction
    comment: str = ""


@dataclass(frozen=True)
class OutputRow:
    sequence_index: int
    name: str
    type: str
    sensitive: bool
    value: str


@dataclass(frozen=True)
class LookupAnomaly:
    """A lifecycle event whose operation could not be updated."""

    stage: str
    locator: OperationLocator
    status: str
    reason: str  # "not_found" or "already_terminal"


@dataclass(frozen=True)
class DashboardSnapshot:
    phase: ViewState = ViewState.IDLE
    visited_phases: Tuple[ViewState, ...] = (ViewState.IDLE,)
    refresh_rows: Tuple[OperationRow, ...] = ()
    apply_rows: Tuple[OperationRow, ...] = ()
    plan_rows: Tuple[PlanRow, ...] = ()
    output_rows: Tuple[OutputRow, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()
    anomalies: Tuple[LookupAnomaly, ...] = ()
    completed_count: int = 0
    expected_total: int = 0
    is_eof: bool = False
    layout_reset: bool = False
    trigger: RenderTrigger = RenderTrigger.LINE
    version: Optional[str] = None
    last_message: str = ""
    last_event: Optional[Event] = None
    last_record_index: Optional[int] = None
    elapsed_seconds: int = 0
    terminal_size: Optional[Tuple[int, int]] = None

    @property
    def has_error(self) -> bool:
        return any(d.severity.lower() == "error" for d in self.diagnostics)

    @property
    def active_rows(self) -> Tuple[Any, ...]:
        """Rows of the table that belongs to the current phase."""
        return self.rows_for(self.phase)

    def rows_for(self, phase: ViewState) -> Tuple[Any, ...]:
        if phase is ViewState.REFRESHING:
            return self.refresh_rows
        if phase is ViewState.PLANNING:
            return self.plan_rows
        if phase is ViewState.APPLYING:
            return self.apply_rows
        if phase is ViewState.SUMMARIZING:
            return self.output_rows
        return ()

    @property
    def progress_fraction(self) -> float:
        """Completed share of the expected total, clamped to [0, 1] for display."""
        if self.expected_total <= 0:
            # Nothing to do is as good as everything done once the run has ended
            return 1.0 if self.is_eof or self.phase is ViewState.SUMMARIZING else 0.0
        return min(1.0, self.completed_count / self.expected_total)
