from typing import Dict, List, Optional, Tuple

from rich.console import Console, Group, RenderableType
from rich.live import Live
from rich.progress_bar import ProgressBar
from rich.rule import Rule
from rich.spinner import Spinner
from rich.table import Table
from rich.text import Text

from planwatch.config import Theme
from planwatch.runtime.snapshot import DashboardSnapshot
from planwatch.runtime.view_state import ViewState

# Lines taken by everything around the table: title, state line, progress, borders
CHROME_HEIGHT = 12

PHASE_TITLES = {
    ViewState.IDLE: "Idle",
    ViewState.REFRESHING: "Refreshing",
    ViewState.PLANNING: "Planning",
    ViewState.APPLYING: "Applying",
    ViewState.SUMMARIZING: "Summary",
}


def format_duration(seconds: int) -> str:
    """Formats whole seconds as e.g. `45s`, `1m5s` or `2h0m3s`."""
    hours, rest = divmod(max(0, seconds), 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def _column_widths(phase: ViewState, width: int) -> List[int]:
    if phase in (ViewState.REFRESHING, ViewState.APPLYING):
        status, action, time = 6, 8, 24
        dynamic = max(15, width - status - action - time)
        return [dynamic // 5, status, action, dynamic // 5 * 2, dynamic // 5 * 2, time]
    if phase is ViewState.PLANNING:
        index, action = 6, 8
        dynamic = max(15, width - index - action)
        return [index, dynamic // 3, dynamic // 3, action, dynamic // 3]
    if phase is ViewState.SUMMARIZING:
        index, type_, sensitive = 6, 8, 10
        dynamic = max(10, width - index - type_ - sensitive)
        return [index, dynamic // 2, type_, sensitive, dynamic // 2]
    return []


COLUMN_TITLES: Dict[ViewState, Tuple[str, ...]] = {
    ViewState.REFRESHING: ("Index", "Status", "Action", "Module", "Resource", "Time"),
    ViewState.APPLYING: ("Index", "Status", "Action", "Module", "Resource", "Time"),
    ViewState.PLANNING: ("Index", "Module", "Resource", "Action", "Comment"),
    ViewState.SUMMARIZING: ("Index", "Name", "Type", "Sensitive", "Value"),
}


class RichDashboard:
    """
    A RenderSink that keeps a `rich.live.Live` display in sync with the
    latest snapshot. Column widths are derived from the terminal width and
    cached until a snapshot asks for a layout reset.
    """

    def __init__(
        self,
        theme: Theme,
        console: Optional[Console] = None,
        refresh_per_second: float = 8,
    ):
        self._theme = theme
        self._console = console or Console(theme=theme.to_rich(), stderr=True)
        self._refresh_per_second = refresh_per_second
        self._live: Optional[Live] = None
        self._widths: Dict[ViewState, List[int]] = {}
        self._spinner = Spinner("dots", style="info")

    @property
    def console(self) -> Console:
        return self._console

    def __enter__(self) -> "RichDashboard":
        self.start()
        return self

    def __exit__(self, *exc_info):
        self.stop()

    def start(self):
        self._live = Live(
            self.build(DashboardSnapshot()),
            console=self._console,
            refresh_per_second=self._refresh_per_second,
            transient=True,
        )
        self._live.start()

    def stop(self):
        if self._live is not None:
            self._live.stop()
            self._live = None

    def render(self, snapshot: DashboardSnapshot) -> None:
        if snapshot.layout_reset:
            self._widths.clear()
        if self._live is not None:
            self._live.update(self.build(snapshot))

    # --- Building Blocks ---

    def _width(self, snapshot: DashboardSnapshot) -> int:
        if snapshot.terminal_size:
            return snapshot.terminal_size[0]
        return self._console.size.width

    def _height(self, snapshot: DashboardSnapshot) -> int:
        if snapshot.terminal_size:
            return snapshot.terminal_size[1]
        return self._console.size.height

    def _title(self, snapshot: DashboardSnapshot) -> Text:
        title = "planwatch"
        if snapshot.version:
            title += f" ({snapshot.version})"
        return Text(f" {title} ", style="title")

    def _state_line(self, snapshot: DashboardSnapshot) -> Table:
        grid = Table.grid(padding=(0, 1))
        if snapshot.is_eof:
            prefix: RenderableType = Text(
                self._theme.glyph("error" if snapshot.has_error else "complete")
            )
        else:
            prefix = self._spinner
        message = snapshot.last_message
        if snapshot.is_eof:
            message = f"Time spent: {format_duration(snapshot.elapsed_seconds)}"
        grid.add_row(
            prefix,
            Text(f" {PHASE_TITLES[snapshot.phase]} ", style="subtitle"),
            Text(message, style="comment", overflow="ellipsis", no_wrap=True),
        )
        return grid

    def _progress(self, snapshot: DashboardSnapshot) -> Table:
        grid = Table.grid(padding=(0, 1), expand=True)
        grid.add_column(ratio=1)
        grid.add_column(justify="right")
        grid.add_row(
            ProgressBar(
                total=100,
                completed=round(snapshot.progress_fraction * 100),
                complete_style="progress",
                finished_style="progress",
            ),
            Text(f"{snapshot.completed_count}/{snapshot.expected_total}", style="data"),
        )
        return grid

    def phase_table(
        self,
        snapshot: DashboardSnapshot,
        phase: ViewState,
        limit: Optional[int] = None,
    ) -> Table:
        titles = COLUMN_TITLES.get(phase, ())
        widths = self._widths.get(phase)
        if widths is None:
            widths = _column_widths(phase, self._width(snapshot))
            self._widths[phase] = widths

        table = Table(header_style="header", expand=False)
        for title, width in zip(titles, widths):
            table.add_column(title, width=width, overflow="ellipsis", no_wrap=True)

        rows = snapshot.rows_for(phase)
        if limit is not None and len(rows) > limit:
            # Follow the tail of the run
            rows = rows[-limit:]

        if phase in (ViewState.REFRESHING, ViewState.APPLYING):
            total = snapshot.expected_total if phase is ViewState.APPLYING else 0
            for row in rows:
                index = f"{row.sequence_index}/{total}" if total > 0 else str(row.sequence_index)
                table.add_row(
                    index,
                    self._theme.glyph(row.status.value),
                    row.action,
                    row.module or "-",
                    row.resource_address,
                    format_duration(row.elapsed_seconds),
                )
        elif phase is ViewState.PLANNING:
            for row in rows:
                table.add_row(
                    str(row.sequence_index),
                    row.module,
                    row.resource_address,
                    row.action.value,
                    row.comment,
                )
        elif phase is ViewState.SUMMARIZING:
            for row in rows:
                table.add_row(
                    str(row.sequence_index),
                    row.name,
                    row.type,
                    str(row.sensitive).lower(),
                    row.value,
                )
        return table

    def build(self, snapshot: DashboardSnapshot) -> RenderableType:
        parts: List[RenderableType] = [self._title(snapshot), Text(""), self._state_line(snapshot)]

        if snapshot.phase is not ViewState.IDLE:
            limit = max(1, self._height(snapshot) - CHROME_HEIGHT)
            parts += [Text(""), self.phase_table(snapshot, snapshot.phase, limit)]

        if snapshot.phase is ViewState.APPLYING:
            parts += [Text(""), self._progress(snapshot)]

        if snapshot.anomalies:
            parts.append(
                Text(f"{len(snapshot.anomalies)} unmatched lifecycle event(s)", style="warning")
            )
        return Group(*parts)

    def _diagnostics_table(self, snapshot: DashboardSnapshot) -> Table:
        table = Table(header_style="header")
        for title in ("Severity", "Summary", "Detail", "Address"):
            table.add_column(title)
        for diag in snapshot.diagnostics:
            style = "error" if diag.severity.lower() == "error" else "warning"
            table.add_row(
                Text(diag.severity, style=style),
                diag.summary,
                diag.detail,
                diag.address or "",
            )
        return table

    def print_summary(self, snapshot: DashboardSnapshot):
        """Prints one static table per visited phase, for scrollback after the run."""
        self._widths.clear()
        self._console.print(self._title(snapshot))
        for phase in snapshot.visited_phases:
            if phase is ViewState.IDLE:
                continue
            self._console.print(Rule(PHASE_TITLES[phase], align="center"))
            self._console.print(self.phase_table(snapshot, phase))
            if phase is ViewState.APPLYING:
                self._console.print(self._progress(snapshot))

        if snapshot.diagnostics:
            self._console.print(Rule("Diagnostics", align="center"))
            self._console.print(self._diagnostics_table(snapshot))

        if snapshot.is_eof:
            self._console.print(self._state_line(snapshot))
