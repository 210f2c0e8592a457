"""Record the first baseline right after a domain is verified."""

from pydantic import BaseModel
import structlog

from src.workflow.errors import SNAPSHOT_NOT_FOUND
from src.workflow.runtime import WorkflowContext

from .observe import Target, commit_baseline, load_target, observe

logger = structlog.get_logger()


class InitializeSnapshotResult(BaseModel):
    initialized: bool
    categories: list[str] = []
    reason: str | None = None


async def initialize_snapshot(ctx: WorkflowContext, tracked_domain_id: str) -> InitializeSnapshotResult:
    loaded = await ctx.step("load-target", load_target, ctx.deps, tracked_domain_id)
    if loaded is None:
        return InitializeSnapshotResult(initialized=False, reason=SNAPSHOT_NOT_FOUND)
    target = Target.model_validate(loaded)
    if target.initialized:
        logger.info("snapshot_already_initialized")
        return InitializeSnapshotResult(initialized=False, reason="already_initialized")

    observation = await observe(ctx, target)
    categories = await commit_baseline(ctx, target, observation)
    return InitializeSnapshotResult(initialized=True, categories=categories)
