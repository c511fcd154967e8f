import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterator, List, Optional

from planwatch.spec.events import ResourceAddress

logger = logging.getLogger(__name__)


class OperationStatus(str, Enum):
    STARTED = "start"
    COMPLETED = "complete"
    ERRORED = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not OperationStatus.STARTED


@dataclass(frozen=True)
class OperationLocator:
    """Identity of one operation lifecycle. Action is part of it, so a replace tracks two."""

    module: str
    resource_address: str
    action_name: str

    @classmethod
    def for_resource(cls, resource: ResourceAddress, action_name: str) -> "OperationLocator":
        return cls(
            module=resource.module,
            resource_address=resource.full_address,
            action_name=action_name,
        )


@dataclass
class OperationRecord:
    sequence_index: int
    raw_resource_address: ResourceAddress
    locator: OperationLocator
    status: OperationStatus
    start_time: datetime
    end_time: Optional[datetime] = None

    def elapsed_seconds(self, now: datetime) -> int:
        """Whole seconds from start to end, or to `now` while still running."""
        end = self.end_time if self.end_time is not None else now
        return max(0, int((end - self.start_time).total_seconds()))


class OperationCollection:
    """
    An ordered, append-only set of operation records.

    Lookups scan in insertion order and stop at the first record whose
    locator matches, so with duplicate locators the earliest record wins.
    """

    def __init__(self, stage: str):
        self.stage = stage
        self._records: List[OperationRecord] = []

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self) -> Iterator[OperationRecord]:
        return iter(self._records)

    def at(self, sequence_index: int) -> OperationRecord:
        if sequence_index < 1 or sequence_index > len(self._records):
            raise IndexError(f"No {self.stage} record with index {sequence_index}")
        return self._records[sequence_index - 1]

    def insert(
        self,
        resource: ResourceAddress,
        locator: OperationLocator,
        start_time: datetime,
    ) -> int:
        record = OperationRecord(
            sequence_index=len(self._records) + 1,
            raw_resource_address=resource,
            locator=locator,
            status=OperationStatus.STARTED,
            start_time=start_time,
        )
        self._records.append(record)
        return record.sequence_index

    def find(self, locator: OperationLocator) -> Optional[OperationRecord]:
        for record in self._records:
            if record.locator == locator:
                return record
        return None

    def update(
        self,
        locator: OperationLocator,
        status: OperationStatus,
        end_time: Optional[datetime] = None,
    ) -> Optional[OperationRecord]:
        """
        Moves the first record matching `locator` to `status`.

        Returns the updated record, or None when nothing matches. A first match
        that has already reached a terminal status is left untouched and also
        yields None.
        """
        record = self.find(locator)
        if record is None:
            return None

        if record.status.is_terminal:
            logger.debug(
                "Ignoring %s update for terminal %s record #%d (%s)",
                status.value,
                self.stage,
                record.sequence_index,
                record.locator.resource_address,
            )
            return None

        record.status = status
        if end_time is not None:
            record.end_time = end_time
        return record
