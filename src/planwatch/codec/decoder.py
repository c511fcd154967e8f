"""
Turns one line of the provisioning engine's machine-readable output into a
typed Event.

Decoding happens in two passes. The envelope (`@level`, `@message`,
`@module`, `@timestamp` and the `type` discriminator) is read first without
committing to a variant. The discriminator then selects a payload decoder
from `_PAYLOAD_DECODERS`, a closed table covering every type the producer
documents. Anything outside the table is an UNKNOWN_KIND failure.
"""
import json
import re
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Union

from planwatch.codec.encoder import envelope_to_dict
from planwatch.runtime.exceptions import DecodeError, DecodeFailure
from planwatch.spec.events import (
    ChangeAction,
    ChangeSummary,
    Diagnostic,
    Event,
    Hook,
    HookPayload,
    Level,
    LogLine,
    MessageType,
    Operation,
    OperationComplete,
    OperationErrored,
    OperationProgress,
    OperationStart,
    Output,
    OutputsReported,
    PlannedChange,
    Pos,
    ProvisionComplete,
    ProvisionErrored,
    ProvisionProgress,
    ProvisionStart,
    RefreshComplete,
    RefreshStart,
    ResourceAddress,
    ResourceDrift,
    SourceRange,
    VersionInfo,
)

PayloadDecoder = Callable[[Dict[str, Any], Dict[str, Any]], Event]

_TIMESTAMP_RE = re.compile(
    r"^(\d{4}-\d{2}-\d{2})[Tt ](\d{2}:\d{2}:\d{2})(\.\d+)?([Zz]|[+-]\d{2}:\d{2})$"
)


def parse_timestamp(value: str) -> datetime:
    """
    Parses an RFC 3339 timestamp. Fractions finer than a microsecond are
    truncated, since the producer may emit nanoseconds.
    """
    match = _TIMESTAMP_RE.match(value)
    if not match:
        raise ValueError(f"invalid RFC 3339 timestamp '{value}'")

    date, time_of_day, fraction, offset = match.groups()
    if fraction:
        fraction = fraction[:7].ljust(7, "0")
    if offset in ("Z", "z"):
        offset = "+00:00"
    return datetime.fromisoformat(f"{date}T{time_of_day}{fraction or ''}{offset}")


# --- Field Helpers ---


def _str(data: Dict[str, Any], key: str, default: Optional[str] = None) -> str:
    if key not in data:
        if default is None:
            raise KeyError(key)
        return default
    value = data[key]
    if not isinstance(value, str):
        raise TypeError(f"'{key}' must be a string, got {type(value).__name__}")
    return value


def _int(data: Dict[str, Any], key: str, default: Optional[int] = None) -> int:
    if key not in data:
        if default is None:
            raise KeyError(key)
        return default
    value = data[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"'{key}' must be a number, got {type(value).__name__}")
    return int(value)


def _seconds(data: Dict[str, Any]) -> float:
    value = data.get("elapsed_seconds", 0)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError("'elapsed_seconds' must be a number")
    return float(value)


def _object(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data[key]
    if not isinstance(value, dict):
        raise TypeError(f"'{key}' must be an object")
    return value


def _resource(data: Any) -> ResourceAddress:
    if not isinstance(data, dict):
        raise TypeError("resource address must be an object")
    instance_key = data.get("resource_key")
    if isinstance(instance_key, (dict, list)):
        raise TypeError("'resource_key' must be a scalar")
    return ResourceAddress(
        full_address=_str(data, "addr"),
        module=_str(data, "module", ""),
        base_resource=_str(data, "resource", ""),
        implied_provider=_str(data, "implied_provider", ""),
        resource_type=_str(data, "resource_type", ""),
        resource_name=_str(data, "resource_name", ""),
        instance_key=instance_key,
    )


def _pos(data: Dict[str, Any]) -> Pos:
    return Pos(
        line=_int(data, "line", 0),
        column=_int(data, "column", 0),
        byte=_int(data, "byte", 0),
    )


def _optional_id(data: Dict[str, Any], key: str) -> Optional[str]:
    return _str(data, key, "") or None


# --- Envelope ---


def _decode_envelope(data: Dict[str, Any]) -> Dict[str, Any]:
    try:
        level = Level(_str(data, "@level", Level.INFO.value))
    except ValueError as e:
        raise ValueError(f"unknown level '{data.get('@level')}'") from e

    return {
        "level": level,
        "message": _str(data, "@message", ""),
        "module": _str(data, "@module", ""),
        "timestamp": parse_timestamp(_str(data, "@timestamp")),
    }


# --- Payload Decoders ---


def _decode_version(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    engine_name = "tofu" if "tofu" in data and "terraform" not in data else "terraform"
    return VersionInfo(
        engine_version=_str(data, engine_name, ""),
        ui_version=_str(data, "ui", ""),
        engine_name=engine_name,
        **envelope,
    )


def _decode_log(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    # Whatever the envelope does not claim belongs to the producer's free-form fields
    known = envelope_to_dict(LogLine(**envelope))
    extra_fields = {k: v for k, v in data.items() if k not in known}
    return LogLine(extra_fields=extra_fields, **envelope)


def _decode_diagnostic(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    diag = _object(data, "diagnostic")

    source_range = None
    if diag.get("range") is not None:
        rng = _object(diag, "range")
        source_range = SourceRange(
            filename=_str(rng, "filename", ""),
            start=_pos(_object(rng, "start")),
            end=_pos(_object(rng, "end")),
        )

    snippet = None
    if diag.get("snippet") is not None:
        snippet = _object(diag, "snippet")

    return Diagnostic(
        severity=_str(diag, "severity"),
        summary=_str(diag, "summary"),
        detail=_str(diag, "detail", ""),
        address=_str(diag, "address", "") or None,
        source_range=source_range,
        snippet=snippet,
        **envelope,
    )


def _decode_planned_change(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    change = _object(data, "change")
    previous = change.get("previous_resource")
    return PlannedChange(
        resource=_resource(change["resource"]),
        action=ChangeAction(_str(change, "action")),
        previous_resource=_resource(previous) if previous is not None else None,
        reason=_str(change, "reason", "") or None,
        **envelope,
    )


def _decode_resource_drift(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    change = _object(data, "change")
    return ResourceDrift(
        resource=_resource(change["resource"]),
        action=ChangeAction(_str(change, "action")),
        reason=_str(change, "reason", "") or None,
        **envelope,
    )


def _decode_change_summary(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    changes = _object(data, "changes")
    return ChangeSummary(
        added=_int(changes, "add", 0),
        changed=_int(changes, "change", 0),
        # Older producers do not report imports
        imported=_int(changes, "import", 0),
        removed=_int(changes, "remove", 0),
        phase=Operation(_str(changes, "operation")),
        **envelope,
    )


def _decode_outputs(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
    outputs: Dict[str, Output] = {}
    for name, raw in _object(data, "outputs").items():
        if not isinstance(raw, dict):
            raise TypeError(f"output '{name}' must be an object")
        sensitive = raw.get("sensitive", False)
        if not isinstance(sensitive, bool):
            raise TypeError(f"output '{name}' has a non-boolean 'sensitive'")
        action = _str(raw, "action", "")
        outputs[name] = Output(
            sensitive=sensitive,
            type=raw.get("type"),
            value=raw.get("value"),
            action=ChangeAction(action) if action else None,
        )
    return OutputsReported(outputs=outputs, **envelope)


# --- Hook Payload Decoders ---


def _operation_start(hook: Dict[str, Any]) -> HookPayload:
    return OperationStart(
        resource=_resource(hook["resource"]),
        action=ChangeAction(_str(hook, "action")),
        id_key=_optional_id(hook, "id_key"),
        id_value=_optional_id(hook, "id_value"),
    )


def _operation_progress(hook: Dict[str, Any]) -> HookPayload:
    return OperationProgress(
        resource=_resource(hook["resource"]),
        action=ChangeAction(_str(hook, "action")),
        elapsed_seconds=_seconds(hook),
    )


def _operation_complete(hook: Dict[str, Any]) -> HookPayload:
    return OperationComplete(
        resource=_resource(hook["resource"]),
        action=ChangeAction(_str(hook, "action")),
        id_key=_optional_id(hook, "id_key"),
        id_value=_optional_id(hook, "id_value"),
        elapsed_seconds=_seconds(hook),
    )


def _operation_errored(hook: Dict[str, Any]) -> HookPayload:
    return OperationErrored(
        resource=_resource(hook["resource"]),
        action=ChangeAction(_str(hook, "action")),
        elapsed_seconds=_seconds(hook),
    )


def _provision(payload_cls: type) -> Callable[[Dict[str, Any]], HookPayload]:
    def decode_provision(hook: Dict[str, Any]) -> HookPayload:
        return payload_cls(
            resource=_resource(hook["resource"]),
            provisioner_name=_str(hook, "provisioner"),
        )

    return decode_provision


def _provision_progress(hook: Dict[str, Any]) -> HookPayload:
    return ProvisionProgress(
        resource=_resource(hook["resource"]),
        provisioner_name=_str(hook, "provisioner"),
        output=_str(hook, "output", ""),
    )


def _refresh(payload_cls: type) -> Callable[[Dict[str, Any]], HookPayload]:
    def decode_refresh(hook: Dict[str, Any]) -> HookPayload:
        return payload_cls(
            resource=_resource(hook["resource"]),
            id_key=_optional_id(hook, "id_key"),
            id_value=_optional_id(hook, "id_value"),
        )

    return decode_refresh


def _hook(decode_payload: Callable[[Dict[str, Any]], HookPayload]) -> PayloadDecoder:
    def decode_hook(data: Dict[str, Any], envelope: Dict[str, Any]) -> Event:
        return Hook(payload=decode_payload(_object(data, "hook")), **envelope)

    return decode_hook


_PAYLOAD_DECODERS: Dict[MessageType, PayloadDecoder] = {
    MessageType.VERSION: _decode_version,
    MessageType.LOG: _decode_log,
    MessageType.DIAGNOSTIC: _decode_diagnostic,
    MessageType.RESOURCE_DRIFT: _decode_resource_drift,
    MessageType.PLANNED_CHANGE: _decode_planned_change,
    MessageType.CHANGE_SUMMARY: _decode_change_summary,
    MessageType.OUTPUTS: _decode_outputs,
    # Ephemeral operations share their payload shapes with apply operations
    MessageType.APPLY_START: _hook(_operation_start),
    MessageType.APPLY_PROGRESS: _hook(_operation_progress),
    MessageType.APPLY_COMPLETE: _hook(_operation_complete),
    MessageType.APPLY_ERRORED: _hook(_operation_errored),
    MessageType.EPHEMERAL_OP_START: _hook(_operation_start),
    MessageType.EPHEMERAL_OP_PROGRESS: _hook(_operation_progress),
    MessageType.EPHEMERAL_OP_COMPLETE: _hook(_operation_complete),
    MessageType.EPHEMERAL_OP_ERRORED: _hook(_operation_errored),
    MessageType.PROVISION_START: _hook(_provision(ProvisionStart)),
    MessageType.PROVISION_PROGRESS: _hook(_provision_progress),
    MessageType.PROVISION_COMPLETE: _hook(_provision(ProvisionComplete)),
    MessageType.PROVISION_ERRORED: _hook(_provision(ProvisionErrored)),
    MessageType.REFRESH_START: _hook(_refresh(RefreshStart)),
    MessageType.REFRESH_COMPLETE: _hook(_refresh(RefreshComplete)),
}


def decode(line: Union[str, bytes]) -> Event:
    """
    Decodes a single line into an Event.

    Raises DecodeError with reason MALFORMED for invalid JSON, a broken
    envelope or a payload that does not match its type, and UNKNOWN_KIND
    for a well-formed envelope whose `type` is not part of the vocabulary.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError(DecodeFailure.MALFORMED, f"invalid UTF-8: {e}") from e

    try:
        data = json.loads(line)
    except json.JSONDecodeError as e:
        raise DecodeError(DecodeFailure.MALFORMED, f"invalid JSON: {e.msg}", line) from e

    if not isinstance(data, dict):
        raise DecodeError(DecodeFailure.MALFORMED, "expected a JSON object", line)

    # 1. Envelope
    raw_type = data.get("type")
    if not isinstance(raw_type, str):
        raise DecodeError(DecodeFailure.MALFORMED, "missing 'type' discriminator", line)
    try:
        envelope = _decode_envelope(data)
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(
            DecodeFailure.MALFORMED, f"invalid envelope: {e}", line, raw_type
        ) from e

    try:
        message_type = MessageType(raw_type)
    except ValueError as e:
        raise DecodeError(
            DecodeFailure.UNKNOWN_KIND,
            f"unrecognized message type '{raw_type}'",
            line,
            raw_type,
        ) from e

    # 2. Payload
    try:
        return _PAYLOAD_DECODERS[message_type](data, {"type": message_type, **envelope})
    except (KeyError, TypeError, ValueError) as e:
        raise DecodeError(
            DecodeFailure.MALFORMED, f"invalid '{raw_type}' payload: {e}", line, raw_type
        ) from e
