from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Union

from pydantic_graph import BaseNode, End, GraphRunContext

from slider.errors import MergeExhaustedError, MergeRejectedError, RetryExhaustedError
from slider.models import RepositoryOutcome, ReviewState
from slider.operation import dedupe
from slider.pipeline.state import PipelineDeps, PipelineProgress
from slider.retry import retry_call

logger = logging.getLogger(__name__)

Ctx = GraphRunContext[None, PipelineDeps]


@dataclass
class SyncRepository(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress = field(default_factory=PipelineProgress)

    async def run(self, ctx: Ctx) -> RecreateBranch:
        ctx.deps.repository.sync()
        return RecreateBranch(progress=self.progress)


@dataclass
class RecreateBranch(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    """Delete and re-create the operation branch so every run applies from the remote tip."""

    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> ApplyOperation:
        ctx.deps.repository.ensure_clean_branch(ctx.deps.branch)
        return ApplyOperation(progress=self.progress)


@dataclass
class ApplyOperation(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> ComputeDiff:
        path = ctx.deps.repository.path
        logger.info("[apply] %s on %s", ctx.deps.operation.spec.id, path)
        result = ctx.deps.operation.apply(path)
        return ComputeDiff(progress=replace(self.progress, operation_result=result))


@dataclass
class ComputeDiff(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> Union[CommitAndPush, End[RepositoryOutcome]]:
        diff = ctx.deps.repository.compute_diff()
        progress = replace(self.progress, diff=diff)

        # Do not touch the remote unless there is something to review.
        if ctx.deps.dry_run or not diff:
            logger.info(
                "[diff] %s: %d changed file(s)%s; stopping before commit",
                ctx.deps.ref.url,
                len(diff),
                " (dry run)" if ctx.deps.dry_run else "",
            )
            reviewers = dedupe(ctx.deps.operation.reviewers(ctx.deps.repository.path))
            return End(replace(progress, reviewers=tuple(reviewers)).to_outcome())

        return CommitAndPush(progress=progress)


@dataclass
class CommitAndPush(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> ReconcilePullRequest:
        deps = ctx.deps
        deps.repository.commit_if_dirty(
            deps.branch, deps.operation.spec.effective_commit_message
        )
        deps.repository.push(deps.branch)
        return ReconcilePullRequest(progress=self.progress)


@dataclass
class ReconcilePullRequest(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    """Reuse the open PR for our branch if there is one, otherwise open it."""

    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> ReconcileReviewers:
        deps = ctx.deps
        ref = deps.ref
        head = f"{deps.client.current_login()}:{deps.branch}"
        pull_request = deps.client.find_pull_request(ref.owner, ref.name, head)
        if pull_request is not None:
            logger.info("[pr] pull request already exists - not creating new one: %s", pull_request.url)
        else:
            logger.info("[pr] creating pull request head=%s base=%s", deps.branch, ref.default_branch)
            pull_request = deps.client.create_pull_request(
                ref.owner,
                ref.name,
                title=deps.operation.spec.review_title,
                head=deps.branch,
                base=ref.default_branch,
            )
        return ReconcileReviewers(progress=replace(self.progress, pull_request=pull_request))


@dataclass
class ReconcileReviewers(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    """Request reviewers the operation wants but the PR lacks; never withdraw any."""

    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> CheckApproval:
        deps = ctx.deps
        ref = deps.ref
        number = self.progress.pull_request.number
        login = deps.client.current_login()

        # GitHub refuses review requests addressed to the PR author.
        desired = [
            r for r in dedupe(deps.operation.reviewers(deps.repository.path)) if r != login
        ]
        current = deps.client.requested_reviewers(ref.owner, ref.name, number)
        missing = [r for r in desired if r not in current]

        if missing:
            logger.info("[reviewers] adding new reviewers: %s", ", ".join(missing))
            deps.client.request_reviewers(ref.owner, ref.name, number, missing)
        else:
            logger.info("[reviewers] no new reviewers to add")

        reviewers = tuple(dedupe(list(current) + missing))
        return CheckApproval(progress=replace(self.progress, reviewers=reviewers))


@dataclass
class CheckApproval(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> Union[MergePullRequest, End[RepositoryOutcome]]:
        ref = ctx.deps.ref
        reviews = ctx.deps.client.list_reviews(
            ref.owner, ref.name, self.progress.pull_request.number
        )
        approved = any(review.state == ReviewState.APPROVED for review in reviews)
        # The comments API is too unreliable to tell a real request for changes from
        # chatter, so anything short of an approval counts as awaiting a reply.
        progress = replace(
            self.progress, has_pending_comments=bool(reviews) and not approved
        )
        if not approved:
            return End(replace(progress, merge_result=False).to_outcome())
        return MergePullRequest(progress=progress)


@dataclass
class MergePullRequest(BaseNode[None, PipelineDeps, RepositoryOutcome]):
    progress: PipelineProgress

    async def run(self, ctx: Ctx) -> End[RepositoryOutcome]:
        deps = ctx.deps
        ref = deps.ref
        number = self.progress.pull_request.number
        logger.info("[merge] pull request approved - merging into %s", ref.default_branch)
        try:
            # GitHub spuriously rejects merges of PRs modified in the last few seconds.
            merged = await retry_call(
                lambda: deps.client.merge_pull_request(ref.owner, ref.name, number),
                policy=deps.merge_policy,
                retry_if=lambda exc: isinstance(exc, MergeRejectedError),
                description=f"merge {ref.slug}#{number}",
                sleep=deps.sleep,
            )
        except RetryExhaustedError as exc:
            raise MergeExhaustedError(ref.name, exc.attempts) from exc
        return End(replace(self.progress, merge_result=merged).to_outcome())
