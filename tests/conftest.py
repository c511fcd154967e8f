import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import pytest

from planwatch.messaging import bus
from planwatch.renderers import CliRenderer


def resource(addr: str, module: str = "", key: Any = None) -> Dict[str, Any]:
    base = addr.split("[")[0]
    resource_type, resource_name = base.split(".")[-2:]
    return {
        "addr": f"{module}.{addr}" if module else addr,
        "module": module,
        "resource": addr,
        "implied_provider": resource_type.split("_")[0],
        "resource_type": resource_type,
        "resource_name": resource_name,
        "resource_key": key,
    }


class LineFactory:
    """Builds stream lines in the producer's format, one second apart."""

    resource = staticmethod(resource)

    def __init__(self, start: Optional[datetime] = None):
        self._now = start or datetime(2024, 5, 1, 10, 0, 0, tzinfo=timezone.utc)

    def line(self, type_: str, message: str = "", level: str = "info", **body: Any) -> str:
        self._now += timedelta(seconds=1)
        data = {
            "@level": level,
            "@message": message,
            "@module": "terraform.ui",
            "@timestamp": self._now.strftime("%Y-%m-%dT%H:%M:%S.%f") + "Z",
            "type": type_,
        }
        data.update(body)
        return json.dumps(data)

    def version(self, engine: str = "1.9.0") -> str:
        return self.line("version", f"Terraform {engine}", terraform=engine, ui="1.2")

    def log(self, message: str, **fields: Any) -> str:
        return self.line("log", message, **fields)

    def diagnostic(self, severity: str, summary: str, detail: str = "", level: Optional[str] = None) -> str:
        diag = {"severity": severity, "summary": summary, "detail": detail}
        return self.line(
            "diagnostic",
            f"{severity.capitalize()}: {summary}",
            level=level or ("warn" if severity == "warning" else severity),
            diagnostic=diag,
        )

    def planned_change(self, addr: str, action: str = "create", module: str = "", **change: Any) -> str:
        body = {"resource": resource(addr, module), "action": action, **change}
        return self.line("planned_change", f"{addr}: Plan to {action}", change=body)

    def change_summary(self, add=0, change=0, remove=0, operation="apply", import_=None) -> str:
        changes = {"add": add, "change": change, "remove": remove, "operation": operation}
        if import_ is not None:
            changes["import"] = import_
        return self.line(
            "change_summary",
            f"Apply complete! Resources: {add} added, {change} changed, {remove} destroyed.",
            changes=changes,
        )

    def outputs(self, **outputs: Dict[str, Any]) -> str:
        return self.line("outputs", "Outputs: %d" % len(outputs), outputs=outputs)

    def hook(self, type_: str, addr: str, message: str = "", module: str = "", **hook: Any) -> str:
        return self.line(
            type_,
            message or f"{addr}: {type_}",
            hook={"resource": resource(addr, module), **hook},
        )

    def apply_start(self, addr: str, action: str = "create", module: str = "") -> str:
        return self.hook("apply_start", addr, f"{addr}: Creating...", module, action=action)

    def apply_progress(self, addr: str, action: str = "create", elapsed: int = 10) -> str:
        return self.hook(
            "apply_progress",
            addr,
            f"{addr}: Still creating... [{elapsed}s elapsed]",
            action=action,
            elapsed_seconds=elapsed,
        )

    def apply_complete(self, addr: str, action: str = "create", module: str = "") -> str:
        return self.hook(
            "apply_complete",
            addr,
            f"{addr}: Creation complete after 1s",
            module,
            action=action,
            id_key="id",
            id_value="abc",
            elapsed_seconds=1,
        )

    def apply_errored(self, addr: str, action: str = "create") -> str:
        return self.hook(
            "apply_errored",
            addr,
            f"{addr}: Creation errored after 1s",
            action=action,
            elapsed_seconds=1,
        )

    def refresh_start(self, addr: str) -> str:
        return self.hook(
            "refresh_start", addr, f"{addr}: Refreshing state...", id_key="id", id_value="abc"
        )

    def refresh_complete(self, addr: str) -> str:
        return self.hook(
            "refresh_complete", addr, f"{addr}: Refresh complete", id_key="id", id_value="abc"
        )


@pytest.fixture
def lines():
    """Provides a LineFactory for building producer output."""
    return LineFactory()


@pytest.fixture
def captured_bus():
    """
    Routes the global message bus into a list of (level, msg_id, kwargs)
    tuples and restores a plain CLI renderer afterwards.
    """

    class CapturingRenderer:
        def __init__(self):
            self.messages = []

        def render(self, msg_id, level, **kwargs):
            self.messages.append((level, msg_id, kwargs))

        def ids(self):
            return [m[1] for m in self.messages]

    renderer = CapturingRenderer()
    bus.set_renderer(renderer)
    yield renderer
    bus.set_renderer(CliRenderer(store=bus.store))
