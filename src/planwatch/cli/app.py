import asyncio
import os
import sys
from typing import Optional

import typer

from planwatch.adapters.sinks.plain import PlainRenderer
from planwatch.adapters.sinks.rich_dashboard import RichDashboard, format_duration
from planwatch.adapters.sources import open_line_source
from planwatch.config import CONFIG_ENV, Settings, load_settings
from planwatch.export.report import write_csv
from planwatch.logs import LEVELS, configure_logging, remove_logging
from planwatch.messaging import bus
from planwatch.renderers import CliRenderer, JsonRenderer
from planwatch.runtime.controller import DashboardController, RunOutcome, RunResult
from planwatch.runtime.exceptions import ConfigError, LineSourceError
from planwatch.runtime.snapshot import DashboardSnapshot
from .rendering import RichCliRenderer

app = typer.Typer(help="Live dashboard for machine-readable plan/apply output.")

EXIT_CODES = {
    RunOutcome.COMPLETED: 0,
    RunOutcome.FAILED: 1,
    RunOutcome.INTERRUPTED: 130,
}
CONFIG_EXIT_CODE = 2


def _load_settings(config: Optional[str], **overrides) -> Settings:
    try:
        settings = load_settings(config).with_overrides(**overrides)
    except ConfigError as e:
        bus.error("config.error", error=e)
        raise typer.Exit(CONFIG_EXIT_CODE)

    path = config or os.environ.get(CONFIG_ENV)
    if path:
        bus.info("config.loaded", path=path)

    if settings.log_level is not None and settings.log_level not in LEVELS:
        bus.error(
            "config.error",
            error=f"log level must be one of {', '.join(LEVELS)}, got '{settings.log_level}'",
        )
        raise typer.Exit(CONFIG_EXIT_CODE)

    if settings.tick_interval <= 0:
        bus.error("config.error", error="tick interval must be positive")
        raise typer.Exit(CONFIG_EXIT_CODE)

    bus.store.use_locale(settings.locale)
    if settings.log_format == "json":
        bus.set_renderer(JsonRenderer(store=bus.store))
    return settings


def _write_report(snapshot: DashboardSnapshot, path: str) -> bool:
    try:
        with open(path, "w", newline="", encoding="utf-8") as f:
            write_csv(snapshot, f)
    except OSError as e:
        bus.error("export.error", path=path, error=e)
        return False
    bus.info(
        "export.written",
        rows=len(snapshot.refresh_rows) + len(snapshot.apply_rows),
        path=path,
    )
    return True


def _report_outcome(result: RunResult):
    snapshot = result.snapshot
    counts = dict(completed=snapshot.completed_count, total=snapshot.expected_total)

    if snapshot.anomalies:
        bus.warning("watch.anomalies", count=len(snapshot.anomalies))

    if result.outcome is RunOutcome.COMPLETED:
        msg_id = "watch.completed_with_errors" if snapshot.has_error else "watch.completed"
        level = "error" if snapshot.has_error else "info"
        bus.emit(level, msg_id, elapsed=snapshot.elapsed_seconds, **counts)
    elif result.outcome is RunOutcome.FAILED:
        bus.error("watch.failed", error=result.error)
    else:
        bus.warning("watch.interrupted", **counts)


async def _watch(settings: Settings, input_path: Optional[str]) -> RunResult:
    tee = open(settings.tee_path, "w", encoding="utf-8") if settings.tee_path else None
    try:
        source = await open_line_source(input_path, tee=tee)
        try:
            bus.info("watch.started", source=input_path or "stdin")
            if settings.plain:
                controller = DashboardController(
                    source,
                    PlainRenderer(),
                    tick_interval=settings.tick_interval,
                    handle_signals=True,
                )
                return await controller.run()

            dashboard = RichDashboard(settings.build_theme())
            controller = DashboardController(
                source,
                dashboard,
                tick_interval=settings.tick_interval,
                handle_signals=True,
            )
            with dashboard:
                result = await controller.run()
            dashboard.print_summary(result.snapshot)
            return result
        finally:
            source.close()
    finally:
        if tee is not None:
            tee.close()


async def _replay(input_path: str) -> RunResult:
    source = await open_line_source(input_path)
    try:
        return await DashboardController(source).run()
    finally:
        source.close()


@app.command()
def watch(
    input_path: Optional[str] = typer.Argument(
        None, help="Recorded stream to read. Reads stdin when omitted or '-'."
    ),
    config: Optional[str] = typer.Option(
        None, "--config", help="YAML configuration file (defaults to $PLANWATCH_CONFIG)."
    ),
    plain: Optional[bool] = typer.Option(
        None, "--plain/--no-plain", help="Print one line per event instead of the dashboard."
    ),
    tee_path: Optional[str] = typer.Option(
        None, "--tee", help="Copy every input line to this file."
    ),
    csv_path: Optional[str] = typer.Option(
        None, "--csv", help="Write the operation records to this CSV file at the end."
    ),
    log_path: Optional[str] = typer.Option(
        None, "--log-path", help="Write diagnostic logs to this file."
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Diagnostic log level: trace, debug, info, warn or error."
    ),
    log_format: Optional[str] = typer.Option(
        None, "--log-format", help="Format of status messages: 'human' or 'json'."
    ),
    tick: Optional[float] = typer.Option(
        None, "--tick", help="Seconds between duration refreshes."
    ),
):
    """Follow a plan/apply run and show its progress."""
    settings = _load_settings(
        config,
        plain=plain,
        tee_path=tee_path,
        csv_path=csv_path,
        log_path=log_path,
        log_level=log_level,
        log_format=log_format,
        tick_interval=tick,
    )

    try:
        handler = configure_logging(settings.log_level, settings.log_path)
    except OSError as e:
        bus.error("config.error", error=e)
        raise typer.Exit(CONFIG_EXIT_CODE)

    try:
        try:
            result = asyncio.run(_watch(settings, input_path))
        except KeyboardInterrupt:
            bus.warning("watch.interrupted", completed="?", total="?")
            raise typer.Exit(EXIT_CODES[RunOutcome.INTERRUPTED])
        except (LineSourceError, OSError) as e:
            bus.error("watch.source_error", error=e)
            raise typer.Exit(EXIT_CODES[RunOutcome.FAILED])

        _report_outcome(result)
        if settings.plain and result.snapshot.is_eof:
            bus.info("watch.time_spent", elapsed=format_duration(result.snapshot.elapsed_seconds))
        if settings.csv_path and not _write_report(result.snapshot, settings.csv_path):
            raise typer.Exit(EXIT_CODES[RunOutcome.FAILED])
        raise typer.Exit(EXIT_CODES[result.outcome])
    finally:
        remove_logging(handler)


@app.command()
def export(
    input_path: str = typer.Argument(..., help="Recorded stream to replay."),
    csv_path: str = typer.Option(..., "--csv", help="Destination CSV file."),
):
    """Replay a recorded stream without a display and export its operations as CSV."""
    try:
        result = asyncio.run(_replay(input_path))
    except LineSourceError as e:
        bus.error("watch.source_error", error=e)
        raise typer.Exit(EXIT_CODES[RunOutcome.FAILED])

    if result.outcome is not RunOutcome.COMPLETED:
        _report_outcome(result)
        raise typer.Exit(EXIT_CODES[result.outcome])

    if not _write_report(result.snapshot, csv_path):
        raise typer.Exit(EXIT_CODES[RunOutcome.FAILED])


def main():
    if sys.stderr.isatty():
        bus.set_renderer(RichCliRenderer(store=bus.store))
    else:
        bus.set_renderer(CliRenderer(store=bus.store))
    app()


if __name__ == "__main__":
    main()
