import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from planwatch.spec.events import (
    ChangeSummary,
    Diagnostic,
    Event,
    Hook,
    HookPayload,
    LogLine,
    OperationComplete,
    OperationErrored,
    OperationProgress,
    OperationStart,
    Output,
    OutputsReported,
    PlannedChange,
    Pos,
    ProvisionEvent,
    ProvisionProgress,
    RefreshComplete,
    RefreshStart,
    ResourceAddress,
    ResourceDrift,
    SourceRange,
    VersionInfo,
)

# --- Serialization Helpers ---


def format_timestamp(value: datetime) -> str:
    """Formats an aware datetime the way the producer does, with a trailing Z for UTC."""
    if value.utcoffset() == timezone.utc.utcoffset(None):
        value = value.astimezone(timezone.utc)
        return value.isoformat().replace("+00:00", "Z")
    return value.isoformat()


def _resource_to_dict(resource: ResourceAddress) -> Dict[str, Any]:
    return {
        "addr": resource.full_address,
        "module": resource.module,
        "resource": resource.base_resource,
        "implied_provider": resource.implied_provider,
        "resource_type": resource.resource_type,
        "resource_name": resource.resource_name,
        "resource_key": resource.instance_key,
    }


def _pos_to_dict(pos: Pos) -> Dict[str, int]:
    return {"line": pos.line, "column": pos.column, "byte": pos.byte}


def _range_to_dict(source_range: SourceRange) -> Dict[str, Any]:
    return {
        "filename": source_range.filename,
        "start": _pos_to_dict(source_range.start),
        "end": _pos_to_dict(source_range.end),
    }


def _output_to_dict(output: Output) -> Dict[str, Any]:
    data: Dict[str, Any] = {"sensitive": output.sensitive}
    if output.type is not None:
        data["type"] = output.type
    if output.value is not None:
        data["value"] = output.value
    if output.action is not None:
        data["action"] = output.action.value
    return data


def _set_id(data: Dict[str, Any], id_key: Optional[str], id_value: Optional[str]):
    if id_key:
        data["id_key"] = id_key
    if id_value:
        data["id_value"] = id_value


def _hook_to_dict(payload: HookPayload) -> Dict[str, Any]:
    data: Dict[str, Any] = {"resource": _resource_to_dict(payload.resource)}

    if isinstance(payload, ProvisionEvent):
        data["provisioner"] = payload.provisioner_name
        if isinstance(payload, ProvisionProgress):
            data["output"] = payload.output
        return data

    if isinstance(payload, (OperationStart, OperationProgress, OperationComplete, OperationErrored)):
        data["action"] = payload.action.value
    if isinstance(payload, (OperationStart, OperationComplete, RefreshStart, RefreshComplete)):
        _set_id(data, payload.id_key, payload.id_value)
    if isinstance(payload, (OperationProgress, OperationComplete, OperationErrored)):
        data["elapsed_seconds"] = payload.elapsed_seconds
    return data


# --- Event to Dict ---


def envelope_to_dict(event: Event) -> Dict[str, Any]:
    return {
        "@level": event.level.value,
        "@message": event.message,
        "@module": event.module,
        "@timestamp": format_timestamp(event.timestamp),
        "type": event.type.value,
    }


def event_to_dict(event: Event) -> Dict[str, Any]:
    data = envelope_to_dict(event)

    if isinstance(event, VersionInfo):
        data[event.engine_name] = event.engine_version
        data["ui"] = event.ui_version
    elif isinstance(event, LogLine):
        # Extra fields never shadow the envelope
        for key, value in event.extra_fields.items():
            data.setdefault(key, value)
    elif isinstance(event, Diagnostic):
        diag: Dict[str, Any] = {
            "severity": event.severity,
            "summary": event.summary,
            "detail": event.detail,
        }
        if event.address:
            diag["address"] = event.address
        if event.source_range is not None:
            diag["range"] = _range_to_dict(event.source_range)
        if event.snippet is not None:
            diag["snippet"] = event.snippet
        data["diagnostic"] = diag
    elif isinstance(event, (PlannedChange, ResourceDrift)):
        change: Dict[str, Any] = {
            "resource": _resource_to_dict(event.resource),
            "action": event.action.value,
        }
        if isinstance(event, PlannedChange) and event.previous_resource is not None:
            change["previous_resource"] = _resource_to_dict(event.previous_resource)
        if event.reason:
            change["reason"] = event.reason
        data["change"] = change
    elif isinstance(event, ChangeSummary):
        data["changes"] = {
            "add": event.added,
            "change": event.changed,
            "import": event.imported,
            "remove": event.removed,
            "operation": event.phase.value,
        }
    elif isinstance(event, OutputsReported):
        data["outputs"] = {
            name: _output_to_dict(output) for name, output in event.outputs.items()
        }
    elif isinstance(event, Hook):
        data["hook"] = _hook_to_dict(event.payload)

    return data


def to_json(event: Event) -> str:
    return json.dumps(event_to_dict(event))
