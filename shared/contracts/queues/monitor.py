"""Queue contracts for the domain monitor workers.

Every job targets a single tracked domain; the consumer serializes jobs per
(workflow, tracked_domain_id) with a Redis lock.
"""

from typing import Any, Literal

from shared.contracts.base import BaseMessage

DETECT_CHANGES_STREAM = "monitor:detect-changes"
AUTO_VERIFY_STREAM = "monitor:auto-verify"
REVERIFY_STREAM = "monitor:reverify"
INITIALIZE_SNAPSHOT_STREAM = "monitor:initialize-snapshot"

MONITOR_GROUP = "monitor-workers"

WorkflowName = Literal["detect_changes", "auto_verify", "reverify_ownership", "initialize_snapshot"]


class MonitorJob(BaseMessage):
    """Run one workflow for one tracked domain."""

    workflow: WorkflowName
    tracked_domain_id: str

    def workflow_input(self) -> dict[str, Any]:
        """Keyword arguments for the workflow function."""
        return {"tracked_domain_id": self.tracked_domain_id}


class DetectChangesJob(MonitorJob):
    """Diff fresh domain facts against the stored baseline.

    Stream: monitor:detect-changes
    """

    workflow: WorkflowName = "detect_changes"


class AutoVerifyJob(MonitorJob):
    """Start the widening auto-verification schedule for a new domain.

    Stream: monitor:auto-verify
    """

    workflow: WorkflowName = "auto_verify"
    # Single immediate attempt, used by the daily sweep of stale pending domains
    sweep: bool = False

    def workflow_input(self) -> dict[str, Any]:
        return {**super().workflow_input(), "sweep": self.sweep}


class ReverifyJob(MonitorJob):
    """Re-validate ownership of an already verified domain.

    Stream: monitor:reverify
    """

    workflow: WorkflowName = "reverify_ownership"


class InitializeSnapshotJob(MonitorJob):
    """Fill an empty baseline with the facts observed after verification.

    Stream: monitor:initialize-snapshot
    """

    workflow: WorkflowName = "initialize_snapshot"


JOB_FOR_STREAM: dict[str, type[MonitorJob]] = {
    DETECT_CHANGES_STREAM: DetectChangesJob,
    AUTO_VERIFY_STREAM: AutoVerifyJob,
    REVERIFY_STREAM: ReverifyJob,
    INITIALIZE_SNAPSHOT_STREAM: InitializeSnapshotJob,
}
