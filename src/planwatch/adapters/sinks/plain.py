import json
import sys
from typing import Optional, TextIO

from planwatch.runtime.snapshot import DashboardSnapshot, RenderTrigger
from planwatch.spec.events import (
    Diagnostic,
    Event,
    Hook,
    Level,
    LogLine,
    OperationComplete,
    OperationErrored,
    OperationProgress,
    OperationStart,
    OutputsReported,
    RefreshComplete,
)

_OPERATION_PAYLOADS = (OperationStart, OperationProgress, OperationComplete, OperationErrored)


def format_event(
    event: Event, record_index: Optional[int] = None, total: int = 0
) -> Optional[str]:
    """
    Formats one event as a single line of plain output. Returns None for
    lifecycle events whose operation could not be matched.
    """
    if isinstance(event, LogLine):
        pairs = " ".join(f"{k}={v}" for k, v in event.extra_fields.items())
        return f"{event.message}. {pairs}" if pairs else event.message

    if isinstance(event, Diagnostic):
        text = f"Summary: {event.summary}."
        if event.detail:
            text += f" Detail: {event.detail}"
        if event.level is not Level.INFO:
            text = f"[{event.level.value.upper()}] {text}"
        return text

    if isinstance(event, OutputsReported):
        outputs = []
        for name, output in event.outputs.items():
            if output.action is not None:
                continue
            entry = f"{name}={json.dumps(output.value)}"
            if output.sensitive:
                entry += " (sensitive)"
            outputs.append(entry)
        return f"{event.message}. {' '.join(outputs)}" if outputs else event.message

    if isinstance(event, Hook):
        if isinstance(event.payload, _OPERATION_PAYLOADS):
            if record_index is None:
                return None
            width = len(str(total))
            return f"[{record_index:>{width}}/{total:>{width}}] {event.message}"
        if isinstance(event.payload, RefreshComplete) and record_index is None:
            return None

    return event.message


class PlainRenderer:
    """A RenderSink for pipes and CI logs: one line per processed event."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream if stream is not None else sys.stdout

    def render(self, snapshot: DashboardSnapshot) -> None:
        if snapshot.trigger is not RenderTrigger.LINE or snapshot.last_event is None:
            return
        line = format_event(
            snapshot.last_event, snapshot.last_record_index, snapshot.expected_total
        )
        if line is not None:
            print(line, file=self._stream, flush=True)
