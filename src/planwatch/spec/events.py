from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, Dict, Optional

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class Level(str, Enum):
    TRACE = "trace"
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class EventKind(Enum):
    VERSION = "version"
    LOG = "log"
    DIAGNOSTIC = "diagnostic"
    RESOURCE_DRIFT = "resource_drift"
    PLANNED_CHANGE = "planned_change"
    CHANGE_SUMMARY = "change_summary"
    OUTPUTS = "outputs"
    HOOK = "hook"


class MessageType(str, Enum):
    """The `type` discriminator carried by every line of the stream."""

    VERSION = "version"
    LOG = "log"
    DIAGNOSTIC = "diagnostic"
    RESOURCE_DRIFT = "resource_drift"
    PLANNED_CHANGE = "planned_change"
    CHANGE_SUMMARY = "change_summary"
    OUTPUTS = "outputs"

    APPLY_START = "apply_start"
    APPLY_PROGRESS = "apply_progress"
    APPLY_COMPLETE = "apply_complete"
    APPLY_ERRORED = "apply_errored"

    EPHEMERAL_OP_START = "ephemeral_op_start"
    EPHEMERAL_OP_PROGRESS = "ephemeral_op_progress"
    EPHEMERAL_OP_COMPLETE = "ephemeral_op_complete"
    EPHEMERAL_OP_ERRORED = "ephemeral_op_errored"

    PROVISION_START = "provision_start"
    PROVISION_PROGRESS = "provision_progress"
    PROVISION_COMPLETE = "provision_complete"
    PROVISION_ERRORED = "provision_errored"

    REFRESH_START = "refresh_start"
    REFRESH_COMPLETE = "refresh_complete"


class ChangeAction(str, Enum):
    NOOP = "noop"
    MOVE = "move"
    REMOVE = "remove"
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    REPLACE = "replace"
    DELETE = "delete"
    IMPORT = "import"
    OPEN = "open"
    RENEW = "renew"
    CLOSE = "close"


class Operation(str, Enum):
    """The run phase a change summary refers to."""

    PLAN = "plan"
    APPLY = "apply"
    DESTROY = "destroy"


@dataclass(frozen=True)
class ResourceAddress:
    full_address: str = ""
    module: str = ""
    base_resource: str = ""
    implied_provider: str = ""
    resource_type: str = ""
    resource_name: str = ""
    # str, int, float or None, kept exactly as received
    instance_key: Any = None


@dataclass(frozen=True)
class Pos:
    line: int = 0
    column: int = 0
    byte: int = 0


@dataclass(frozen=True)
class SourceRange:
    filename: str = ""
    start: Pos = field(default_factory=Pos)
    end: Pos = field(default_factory=Pos)


@dataclass(frozen=True)
class Output:
    sensitive: bool = False
    type: Any = None
    value: Any = None
    # Non-empty only for outputs reported in a plan
    action: Optional[ChangeAction] = None


# --- Hook payloads ---


@dataclass(frozen=True)
class HookPayload:
    resource: ResourceAddress = field(default_factory=ResourceAddress)


@dataclass(frozen=True)
class OperationStart(HookPayload):
    action: ChangeAction = ChangeAction.NOOP
    id_key: Optional[str] = None
    id_value: Optional[str] = None


@dataclass(frozen=True)
class OperationProgress(HookPayload):
    action: ChangeAction = ChangeAction.NOOP
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class OperationComplete(HookPayload):
    action: ChangeAction = ChangeAction.NOOP
    id_key: Optional[str] = None
    id_value: Optional[str] = None
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class OperationErrored(HookPayload):
    action: ChangeAction = ChangeAction.NOOP
    elapsed_seconds: float = 0.0


@dataclass(frozen=True)
class ProvisionEvent(HookPayload):
    provisioner_name: str = ""


@dataclass(frozen=True)
class ProvisionStart(ProvisionEvent):
    pass


@dataclass(frozen=True)
class ProvisionProgress(ProvisionEvent):
    output: str = ""


@dataclass(frozen=True)
class ProvisionComplete(ProvisionEvent):
    pass


@dataclass(frozen=True)
class ProvisionErrored(ProvisionEvent):
    pass


@dataclass(frozen=True)
class RefreshStart(HookPayload):
    id_key: Optional[str] = None
    id_value: Optional[str] = None


@dataclass(frozen=True)
class RefreshComplete(HookPayload):
    id_key: Optional[str] = None
    id_value: Optional[str] = None


# --- Events ---


@dataclass(frozen=True)
class Event:
    kind: ClassVar[EventKind]

    level: Level = Level.INFO
    message: str = ""
    module: str = ""
    timestamp: datetime = EPOCH
    type: MessageType = MessageType.LOG


@dataclass(frozen=True)
class VersionInfo(Event):
    kind: ClassVar[EventKind] = EventKind.VERSION

    engine_version: str = ""
    ui_version: str = ""
    # "terraform" or "tofu", whichever key carried the version
    engine_name: str = "terraform"


@dataclass(frozen=True)
class LogLine(Event):
    kind: ClassVar[EventKind] = EventKind.LOG

    extra_fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Diagnostic(Event):
    kind: ClassVar[EventKind] = EventKind.DIAGNOSTIC

    severity: str = ""
    summary: str = ""
    detail: str = ""
    address: Optional[str] = None
    source_range: Optional[SourceRange] = None
    snippet: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class PlannedChange(Event):
    kind: ClassVar[EventKind] = EventKind.PLANNED_CHANGE

    resource: ResourceAddress = field(default_factory=ResourceAddress)
    action: ChangeAction = ChangeAction.NOOP
    previous_resource: Optional[ResourceAddress] = None
    reason: Optional[str] = None


@dataclass(frozen=True)
class ResourceDrift(Event):
    kind: ClassVar[EventKind] = EventKind.RESOURCE_DRIFT

    resource: ResourceAddress = field(default_factory=ResourceAddress)
    action: ChangeAction = ChangeAction.NOOP
    reason: Optional[str] = None


@dataclass(frozen=True)
class ChangeSummary(Event):
    kind: ClassVar[EventKind] = EventKind.CHANGE_SUMMARY

    added: int = 0
    changed: int = 0
    imported: int = 0
    removed: int = 0
    phase: Operation = Operation.PLAN


@dataclass(frozen=True)
class OutputsReported(Event):
    kind: ClassVar[EventKind] = EventKind.OUTPUTS

    outputs: Dict[str, Output] = field(default_factory=dict)


@dataclass(frozen=True)
class Hook(Event):
    kind: ClassVar[EventKind] = EventKind.HOOK

    payload: HookPayload = field(default_factory=HookPayload)
