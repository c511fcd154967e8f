import asyncio
import json
import logging
import shutil
import signal
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional

from planwatch.codec.decoder import decode
from planwatch.runtime.control import (
    ControlEvent,
    EndOfStream,
    LineError,
    LineReady,
    TimerTick,
    UserInterrupt,
    WindowResize,
)
from planwatch.runtime.exceptions import DecodeError, LineSourceError
from planwatch.runtime.progress import ProgressCounter
from planwatch.runtime.snapshot import (
    DashboardSnapshot,
    LookupAnomaly,
    OperationRow,
    OutputRow,
    PlanRow,
    RenderTrigger,
)
from planwatch.runtime.tracker import (
    OperationCollection,
    OperationLocator,
    OperationStatus,
)
from planwatch.runtime.view_state import ViewStateMachine
from planwatch.spec.events import (
    ChangeAction,
    ChangeSummary,
    Diagnostic,
    Event,
    Hook,
    Level,
    OperationComplete,
    OperationErrored,
    OperationProgress,
    OperationStart,
    OutputsReported,
    PlannedChange,
    RefreshComplete,
    RefreshStart,
    VersionInfo,
)
from planwatch.spec.protocols import LineSource, RenderSink

logger = logging.getLogger(__name__)

REFRESH_ACTION = "refresh"


class RunOutcome(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class RunResult:
    outcome: RunOutcome
    snapshot: DashboardSnapshot
    error: Optional[BaseException] = None


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _plan_comment(event: PlannedChange) -> str:
    if event.action in (ChangeAction.DELETE, ChangeAction.REPLACE):
        return event.reason or ""
    if event.action is ChangeAction.MOVE and event.previous_resource is not None:
        source = event.previous_resource.full_address
        if event.previous_resource.module:
            source = f"{source} ({event.previous_resource.module})"
        return f"Moved from {source}"
    return ""


def _raw_json(value) -> str:
    return "" if value is None else json.dumps(value)


class DashboardController:
    """
    Drives a run: reads lines, decodes them, and folds the resulting events
    into the operation collections, the progress counter and the phase.

    All state is owned here and mutated only by `dispatch`, which consumes one
    control event at a time. `run` feeds it from a single asyncio queue merging
    line reads, timer ticks and signals, so state changes always happen in
    stream order.
    """

    def __init__(
        self,
        source: LineSource,
        sink: Optional[RenderSink] = None,
        tick_interval: float = 1.0,
        clock: Callable[[], datetime] = _utcnow,
        handle_signals: bool = False,
    ):
        self._source = source
        self._sink = sink
        self._tick_interval = tick_interval
        self._clock = clock
        self._handle_signals = handle_signals

        self.refresh_operations = OperationCollection("refresh")
        self.apply_operations = OperationCollection("apply")
        self.counter = ProgressCounter()
        self.view = ViewStateMachine()

        self.plan_rows: List[PlanRow] = []
        self.output_rows: List[OutputRow] = []
        self.diagnostics: List[Diagnostic] = []
        self.anomalies: List[LookupAnomaly] = []

        self.is_eof = False
        self.error: Optional[BaseException] = None
        self.version: Optional[str] = None
        self.last_message = ""
        self.last_event: Optional[Event] = None
        self._last_record_index: Optional[int] = None
        self._terminal_size = None
        self._started_at = clock()

        self._queue: Optional[asyncio.Queue] = None
        self._read_task: Optional[asyncio.Task] = None

        self._event_handlers: Dict[type, Callable[[Event], None]] = {
            VersionInfo: self._on_version,
            Diagnostic: self._on_diagnostic,
            PlannedChange: self._on_planned_change,
            ChangeSummary: self._on_change_summary,
            OutputsReported: self._on_outputs,
            Hook: self._on_hook,
        }
        self._hook_handlers: Dict[type, Callable[[Hook], None]] = {
            RefreshStart: self._on_refresh_start,
            RefreshComplete: self._on_refresh_complete,
            OperationStart: self._on_operation_start,
            OperationProgress: self._on_operation_progress,
            OperationComplete: self._on_operation_finished,
            OperationErrored: self._on_operation_finished,
        }

    # --- Dispatch ---

    def dispatch(self, event: ControlEvent) -> Optional[RunOutcome]:
        """
        Applies one control event. Returns the outcome when the event ends
        the run, None otherwise.
        """
        if isinstance(event, LineReady):
            try:
                decoded = decode(event.line)
            except DecodeError as e:
                logger.error("Failed to decode line: %s", e)
                self.error = e
                return RunOutcome.FAILED
            self.apply_event(decoded)
            return None

        if isinstance(event, TimerTick):
            self._render(RenderTrigger.TICK)
            return None

        if isinstance(event, WindowResize):
            self._terminal_size = (event.columns, event.lines)
            self._render(RenderTrigger.RESIZE, layout_reset=True)
            return None

        if isinstance(event, EndOfStream):
            logger.info("Reached end of stream")
            self.is_eof = True
            self._render(RenderTrigger.END)
            return RunOutcome.COMPLETED

        if isinstance(event, LineError):
            logger.error("Line source failed: %s", event.error)
            self.error = event.error
            return RunOutcome.FAILED

        if isinstance(event, UserInterrupt):
            logger.warning("Interrupted before end of stream")
            return RunOutcome.INTERRUPTED

        raise TypeError(f"Unsupported control event: {event!r}")

    def apply_event(self, event: Event):
        """Folds a decoded event into the dashboard state and renders."""
        logger.debug("Event received: %s", type(event).__name__)
        self.last_event = event
        self.last_message = event.message
        self._last_record_index = None

        handler = self._event_handlers.get(type(event))
        if handler:
            handler(event)

        changed = self.view.advance(event)
        self._render(RenderTrigger.LINE, layout_reset=changed)

    # --- Event Handlers ---

    def _on_version(self, event: VersionInfo):
        self.version = event.message

    def _on_diagnostic(self, event: Diagnostic):
        if event.level in (Level.WARN, Level.ERROR):
            self.diagnostics.append(event)

    def _on_planned_change(self, event: PlannedChange):
        logger.debug(
            "Planned change: %s %s", event.action.value, event.resource.full_address
        )
        self.counter.observe_planned_change(event)
        self.plan_rows.append(
            PlanRow(
                sequence_index=len(self.plan_rows) + 1,
                module=event.resource.module,
                resource_address=event.resource.full_address,
                action=event.action,
                comment=_plan_comment(event),
            )
        )

    def _on_change_summary(self, event: ChangeSummary):
        logger.debug(
            "Change summary (%s): add=%d change=%d import=%d remove=%d",
            event.phase.value,
            event.added,
            event.changed,
            event.imported,
            event.removed,
        )
        self.counter.observe_summary(event)

    def _on_outputs(self, event: OutputsReported):
        for name, output in event.outputs.items():
            # Outputs carrying an action are planned, not applied
            if output.action is not None:
                continue
            self.output_rows.append(
                OutputRow(
                    sequence_index=len(self.output_rows) + 1,
                    name=name,
                    type=_raw_json(output.type),
                    sensitive=output.sensitive,
                    value=_raw_json(output.value),
                )
            )

    def _on_hook(self, event: Hook):
        handler = self._hook_handlers.get(type(event.payload))
        if handler:
            handler(event)

    def _on_refresh_start(self, event: Hook):
        resource = event.payload.resource
        locator = OperationLocator.for_resource(resource, REFRESH_ACTION)
        self._last_record_index = self.refresh_operations.insert(
            resource, locator, event.timestamp
        )

    def _on_refresh_complete(self, event: Hook):
        locator = OperationLocator.for_resource(event.payload.resource, REFRESH_ACTION)
        self._finish(
            self.refresh_operations, locator, OperationStatus.COMPLETED, event.timestamp
        )

    def _on_operation_start(self, event: Hook):
        payload = event.payload
        locator = OperationLocator.for_resource(payload.resource, payload.action.value)
        self._last_record_index = self.apply_operations.insert(
            payload.resource, locator, event.timestamp
        )

    def _on_operation_progress(self, event: Hook):
        payload = event.payload
        locator = OperationLocator.for_resource(payload.resource, payload.action.value)
        record = self.apply_operations.find(locator)
        if record is None:
            self._report_anomaly(self.apply_operations, locator, "progress", "not_found")
            return
        self._last_record_index = record.sequence_index

    def _on_operation_finished(self, event: Hook):
        payload = event.payload
        status = (
            OperationStatus.ERRORED
            if isinstance(payload, OperationErrored)
            else OperationStatus.COMPLETED
        )
        locator = OperationLocator.for_resource(payload.resource, payload.action.value)
        if self._finish(self.apply_operations, locator, status, event.timestamp):
            self.counter.record_completion()

    def _finish(
        self,
        collection: OperationCollection,
        locator: OperationLocator,
        status: OperationStatus,
        end_time: datetime,
    ) -> bool:
        record = collection.update(locator, status, end_time)
        if record is None:
            reason = "not_found" if collection.find(locator) is None else "already_terminal"
            self._report_anomaly(collection, locator, status.value, reason)
            return False
        self._last_record_index = record.sequence_index
        return True

    def _report_anomaly(
        self,
        collection: OperationCollection,
        locator: OperationLocator,
        status: str,
        reason: str,
    ):
        logger.warning(
            "Can't apply %s to %s operation %s (%s): %s",
            status,
            collection.stage,
            locator.resource_address,
            locator.action_name,
            reason,
            extra={
                "stage": collection.stage,
                "op_module": locator.module,
                "op_address": locator.resource_address,
                "op_action": locator.action_name,
            },
        )
        self.anomalies.append(
            LookupAnomaly(
                stage=collection.stage, locator=locator, status=status, reason=reason
            )
        )

    # --- Snapshot ---

    def _rows(self, collection: OperationCollection, now: datetime):
        return tuple(
            OperationRow(
                sequence_index=record.sequence_index,
                status=record.status,
                action=record.locator.action_name,
                module=record.locator.module,
                resource_address=record.locator.resource_address,
                elapsed_seconds=record.elapsed_seconds(now),
                resource=record.raw_resource_address,
                start_time=record.start_time,
                end_time=record.end_time,
            )
            for record in collection
        )

    def snapshot(
        self,
        trigger: RenderTrigger = RenderTrigger.LINE,
        layout_reset: bool = False,
    ) -> DashboardSnapshot:
        now = self._clock()
        return DashboardSnapshot(
            phase=self.view.current,
            visited_phases=self.view.visited,
            refresh_rows=self._rows(self.refresh_operations, now),
            apply_rows=self._rows(self.apply_operations, now),
            plan_rows=tuple(self.plan_rows),
            output_rows=tuple(self.output_rows),
            diagnostics=tuple(self.diagnostics),
            anomalies=tuple(self.anomalies),
            completed_count=self.counter.completed_count,
            expected_total=self.counter.expected_total,
            is_eof=self.is_eof,
            layout_reset=layout_reset,
            trigger=trigger,
            version=self.version,
            last_message=self.last_message,
            last_event=self.last_event,
            last_record_index=self._last_record_index,
            elapsed_seconds=max(0, int((now - self._started_at).total_seconds())),
            terminal_size=self._terminal_size,
        )

    def _render(self, trigger: RenderTrigger, layout_reset: bool = False):
        if self._sink is not None:
            self._sink.render(self.snapshot(trigger, layout_reset))

    # --- Event Loop ---

    def interrupt(self):
        """Requests an immediate halt. Safe to call from signal handlers."""
        if self._queue is not None:
            self._queue.put_nowait(UserInterrupt())

    def _on_resize(self):
        size = shutil.get_terminal_size()
        if self._queue is not None:
            self._queue.put_nowait(WindowResize(columns=size.columns, lines=size.lines))

    async def _read_next(self):
        try:
            line = await self._source.readline()
        except LineSourceError as e:
            self._queue.put_nowait(LineError(error=e))
            return
        except Exception as e:
            # Anything else must still halt the run
            logger.exception("Line source raised unexpectedly")
            self._queue.put_nowait(LineError(error=e))
            return
        if line is None:
            self._queue.put_nowait(EndOfStream())
        else:
            self._queue.put_nowait(LineReady(line=line))

    def _request_line(self):
        self._read_task = asyncio.create_task(self._read_next())

    async def _tick(self):
        while True:
            await asyncio.sleep(self._tick_interval)
            self._queue.put_nowait(TimerTick())

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> List[int]:
        installed = []
        handlers = {signal.SIGINT: self.interrupt}
        if hasattr(signal, "SIGWINCH"):
            handlers[signal.SIGWINCH] = self._on_resize
        for sig, handler in handlers.items():
            try:
                loop.add_signal_handler(sig, handler)
                installed.append(sig)
            except (NotImplementedError, RuntimeError):
                logger.debug("Signal %s is not supported on this platform", sig)
        return installed

    async def run(self) -> RunResult:
        """
        Runs until end of stream, a fatal error or an interrupt.

        Only one read is in flight at a time. It is abandoned, not drained,
        when the run halts for any reason other than end of stream.
        """
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        installed = self._install_signal_handlers(loop) if self._handle_signals else []
        ticker = asyncio.create_task(self._tick())

        outcome = None
        try:
            self._request_line()
            while outcome is None:
                event = await self._queue.get()
                outcome = self.dispatch(event)
                if outcome is None and isinstance(event, LineReady):
                    self._request_line()
        finally:
            ticker.cancel()
            if self._read_task is not None and not self._read_task.done():
                self._read_task.cancel()
            for sig in installed:
                loop.remove_signal_handler(sig)

        return RunResult(
            outcome=outcome,
            snapshot=self.snapshot(RenderTrigger.END),
            error=self.error,
        )
