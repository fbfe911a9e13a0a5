from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional, Tuple

from slider.github_client import ReviewClient
from slider.local_repo import RepositoryManager
from slider.models import DiffStatus, PullRequestRef, RepositoryOutcome, RepositoryRef
from slider.operation import Operation
from slider.retry import RetryPolicy, Sleep


@dataclass(frozen=True)
class PipelineDeps:
    """Collaborators for one repository's pipeline run (read-only)."""

    ref: RepositoryRef
    repository: RepositoryManager
    client: ReviewClient
    operation: Operation
    dry_run: bool = False
    merge_policy: RetryPolicy = field(
        default_factory=lambda: RetryPolicy(max_attempts=10, delay_seconds=10.0)
    )
    sleep: Sleep = asyncio.sleep

    @property
    def branch(self) -> str:
        return self.operation.spec.branch


@dataclass(frozen=True)
class PipelineProgress:
    """
    What the pipeline has learned so far.

    Each step returns the next step with an updated copy (`dataclasses.replace`);
    nothing is mutated in place.
    """

    operation_result: Any = None
    diff: DiffStatus = ()
    reviewers: Tuple[str, ...] = ()
    pull_request: Optional[PullRequestRef] = None
    merge_result: Optional[bool] = None
    has_pending_comments: Optional[bool] = None

    def to_outcome(self) -> RepositoryOutcome:
        return RepositoryOutcome(
            operation_result=self.operation_result,
            diff=self.diff,
            reviewers=self.reviewers,
            pull_request=self.pull_request,
            merge_result=self.merge_result,
            has_pending_comments=self.has_pending_comments,
        )
