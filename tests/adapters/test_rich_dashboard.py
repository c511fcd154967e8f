import io
from datetime import datetime, timezone

import pytest
from rich.console import Console

from planwatch.adapters.sinks.rich_dashboard import RichDashboard, format_duration
from planwatch.config import Theme
from planwatch.runtime.control import EndOfStream, LineReady, WindowResize
from planwatch.runtime.controller import DashboardController
from planwatch.runtime.view_state import ViewState
from planwatch.testing import ScriptedLineSource

NOW = datetime(2024, 5, 1, 10, 0, 30, tzinfo=timezone.utc)


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def dashboard(output):
    theme = Theme()
    console = Console(file=output, theme=theme.to_rich(), width=120, height=40)
    return RichDashboard(theme, console=console)


def run_lines(*lines, eof=True):
    controller = DashboardController(ScriptedLineSource([]), clock=lambda: NOW)
    for line in lines:
        controller.dispatch(LineReady(line=line))
    if eof:
        controller.dispatch(EndOfStream())
    return controller


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0s"), (45, "45s"), (65, "1m5s"), (3600, "1h0m0s"), (7203, "2h0m3s"), (-4, "0s")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected


def test_apply_table_shows_index_over_total(dashboard, output, lines):
    controller = run_lines(
        lines.change_summary(add=3, operation="plan"),
        lines.planned_change("null_resource.a"),
        lines.planned_change("null_resource.b", module="module.net"),
        lines.planned_change("null_resource.c"),
        lines.apply_start("null_resource.a"),
        lines.apply_complete("null_resource.a"),
        lines.apply_start("null_resource.b", module="module.net"),
        eof=False,
    )
    snapshot = controller.snapshot()

    dashboard.console.print(dashboard.phase_table(snapshot, ViewState.APPLYING))
    text = output.getvalue()

    assert "1/3" in text
    assert "2/3" in text
    assert "module.net" in text
    assert "✅" in text
    assert "🕛" in text


def test_plan_table_lists_changes(dashboard, output, lines):
    controller = run_lines(
        lines.planned_change("aws_instance.a", "replace", reason="cannot_update"),
        eof=False,
    )

    dashboard.console.print(dashboard.phase_table(controller.snapshot(), ViewState.PLANNING))
    text = output.getvalue()

    assert "aws_instance.a" in text
    assert "replace" in text
    assert "cannot_update" in text


def test_summary_prints_each_visited_phase(dashboard, output, lines):
    controller = run_lines(
        lines.refresh_start("aws_instance.old"),
        lines.refresh_complete("aws_instance.old"),
        lines.planned_change("null_resource.a"),
        lines.apply_start("null_resource.a"),
        lines.apply_complete("null_resource.a"),
        lines.change_summary(add=1),
        lines.outputs(ip={"sensitive": False, "type": "string", "value": "10.0.0.1"}),
        lines.diagnostic("warning", "Deprecated attribute"),
    )

    dashboard.print_summary(controller.snapshot())
    text = output.getvalue()

    for title in ("Refreshing", "Planning", "Applying", "Summary", "Diagnostics"):
        assert title in text
    assert "aws_instance.old" in text
    assert "10.0.0.1" in text
    assert "Deprecated attribute" in text
    assert "Time spent:" in text


def test_summary_marks_failed_runs(dashboard, output, lines):
    controller = run_lines(lines.diagnostic("error", "Broken"))

    dashboard.print_summary(controller.snapshot())

    assert "❌" in output.getvalue()


def test_live_render_accepts_snapshots(dashboard, lines):
    controller = DashboardController(ScriptedLineSource([]), dashboard, clock=lambda: NOW)

    with dashboard:
        controller.dispatch(LineReady(line=lines.planned_change("null_resource.a")))
        controller.dispatch(WindowResize(columns=80, lines=24))
        controller.dispatch(LineReady(line=lines.apply_start("null_resource.a")))
        controller.dispatch(EndOfStream())

    assert controller.is_eof
