import logging

from pydantic_graph import Graph

from slider.logging_config import ensure_logging_configured
from slider.models import RepositoryOutcome
from slider.pipeline.state import PipelineDeps, PipelineProgress
from slider.pipeline.steps import (
    ApplyOperation,
    CheckApproval,
    CommitAndPush,
    ComputeDiff,
    MergePullRequest,
    ReconcilePullRequest,
    ReconcileReviewers,
    RecreateBranch,
    SyncRepository,
)

logger = logging.getLogger(__name__)


def build_pipeline_graph() -> Graph:
    """
    sync -> branch -> apply -> diff -> commit/push -> PR -> reviewers -> approval -> merge

    The diff step ends the run early for dry runs and for repositories the
    operation left untouched.
    """
    return Graph(
        nodes=[
            SyncRepository,
            RecreateBranch,
            ApplyOperation,
            ComputeDiff,
            CommitAndPush,
            ReconcilePullRequest,
            ReconcileReviewers,
            CheckApproval,
            MergePullRequest,
        ],
        name="repository_pipeline",
    )


_graph = build_pipeline_graph()


async def run_pipeline(deps: PipelineDeps) -> RepositoryOutcome:
    ensure_logging_configured()
    result = await _graph.run(
        SyncRepository(progress=PipelineProgress()), deps=deps
    )
    return result.output
