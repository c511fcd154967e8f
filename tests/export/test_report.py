import csv
import io
from datetime import datetime, timezone

from planwatch.export.report import HEADER, operation_rows, write_csv
from planwatch.runtime.control import LineReady
from planwatch.runtime.controller import DashboardController
from planwatch.testing import ScriptedLineSource

NOW = datetime(2024, 5, 1, 10, 1, 0, tzinfo=timezone.utc)


def epoch(hour, minute, second):
    return str(int(datetime(2024, 5, 1, hour, minute, second, tzinfo=timezone.utc).timestamp()))


def snapshot_of(*lines):
    controller = DashboardController(ScriptedLineSource([]), clock=lambda: NOW)
    for line in lines:
        controller.dispatch(LineReady(line=line))
    return controller.snapshot()


def test_rows_list_refresh_before_apply(lines):
    snapshot = snapshot_of(
        lines.apply_start("aws_instance.web", module="module.app"),  # 10:00:01
        lines.refresh_start("aws_instance.db"),  # 10:00:02
        lines.refresh_complete("aws_instance.db"),  # 10:00:03
        lines.apply_complete("aws_instance.web", module="module.app"),  # 10:00:04
    )

    rows = list(operation_rows(snapshot))

    assert rows == [
        [epoch(10, 0, 2), epoch(10, 0, 3), "refresh", "refresh", "", "aws_instance", "db", "null", "complete", "1"],
        [epoch(10, 0, 1), epoch(10, 0, 4), "apply", "create", "module.app", "aws_instance", "web", "null", "complete", "3"],
    ]


def test_open_operation_has_zero_end(lines):
    snapshot = snapshot_of(lines.apply_start("aws_instance.web"))

    (row,) = operation_rows(snapshot)

    assert row[1] == "0"
    assert row[8] == "start"
    # Still running: measured against the clock
    assert row[9] == "59"


def test_instance_key_is_json(lines):
    snapshot = snapshot_of(
        lines.line(
            "apply_start",
            "aws_instance.web[\"blue\"]: Creating...",
            hook={
                "resource": lines.resource('aws_instance.web["blue"]', key="blue"),
                "action": "create",
            },
        ),
    )

    (row,) = operation_rows(snapshot)

    assert row[7] == '"blue"'


def test_write_csv_has_header(lines):
    snapshot = snapshot_of(lines.apply_start("aws_instance.web"))
    out = io.StringIO()

    write_csv(snapshot, out)

    parsed = list(csv.reader(io.StringIO(out.getvalue())))
    assert parsed[0] == HEADER
    assert len(parsed) == 2
    assert out.getvalue().endswith("\n")
    assert "\r" not in out.getvalue()


def test_write_csv_empty_run():
    out = io.StringIO()
    write_csv(snapshot_of(), out)
    assert out.getvalue() == ",".join(HEADER) + "\n"
