from typing import Dict

from planwatch.spec.events import ChangeAction, ChangeSummary, Operation, PlannedChange

# How many apply operations a planned change is expected to produce
ACTION_WEIGHTS: Dict[ChangeAction, int] = {
    ChangeAction.CREATE: 1,
    ChangeAction.DELETE: 1,
    ChangeAction.UPDATE: 1,
    ChangeAction.IMPORT: 1,
    ChangeAction.REPLACE: 2,
}


class ProgressCounter:
    """
    Tracks how many apply operations are expected and how many have finished.

    Until an apply-phase ChangeSummary arrives, the expected total is estimated
    from planned changes. The summary then overwrites the estimate.
    """

    def __init__(self):
        self.expected_total = 0
        self.completed_count = 0
        self.is_authoritative = False

    def observe_planned_change(self, event: PlannedChange):
        if self.is_authoritative:
            return
        self.expected_total += ACTION_WEIGHTS.get(event.action, 0)

    def observe_summary(self, event: ChangeSummary):
        if event.phase is not Operation.APPLY:
            return
        self.expected_total = event.added + event.changed + event.imported + event.removed
        self.is_authoritative = True

    def record_completion(self):
        self.completed_count += 1
