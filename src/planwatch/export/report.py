import csv
import json
from datetime import datetime
from typing import Iterable, List, Optional, TextIO

from planwatch.runtime.snapshot import DashboardSnapshot, OperationRow

HEADER = [
    "Start Timestamp",
    "End Timestamp",
    "Stage",
    "Action",
    "Module",
    "Resource Type",
    "Resource Name",
    "Resource Key",
    "Status",
    "Duration (sec)",
]


def _epoch(value: Optional[datetime]) -> int:
    return int(value.timestamp()) if value is not None else 0


def _to_csv_row(row: OperationRow, stage: str) -> List[str]:
    return [
        str(_epoch(row.start_time)),
        str(_epoch(row.end_time)),
        stage,
        row.action,
        row.module,
        row.resource.resource_type,
        row.resource.resource_name,
        json.dumps(row.resource.instance_key),
        row.status.value,
        str(row.elapsed_seconds),
    ]


def operation_rows(snapshot: DashboardSnapshot) -> Iterable[List[str]]:
    """Yields one row per operation, refresh operations first."""
    for row in snapshot.refresh_rows:
        yield _to_csv_row(row, "refresh")
    for row in snapshot.apply_rows:
        yield _to_csv_row(row, "apply")


def write_csv(snapshot: DashboardSnapshot, stream: TextIO):
    writer = csv.writer(stream, lineterminator="\n")
    writer.writerow(HEADER)
    writer.writerows(operation_rows(snapshot))
