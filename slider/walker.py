from __future__ import annotations

import asyncio
import logging
from typing import Callable, Dict, List, Optional

from slider.config import SliderConfig
from slider.errors import ConfigurationError
from slider.git_urls import local_path_for
from slider.github_client import ReviewClient
from slider.local_repo import RepositoryManager
from slider.logging_config import ensure_logging_configured
from slider.models import RemoteRepository, RepositoryOutcome, RepositoryRef
from slider.operation import Operation
from slider.pipeline import PipelineDeps, run_pipeline
from slider.retry import RetryPolicy, Sleep

logger = logging.getLogger(__name__)

RepositoryFactory = Callable[[RepositoryRef], RepositoryManager]


def _dedupe_repositories(repositories: List[RemoteRepository]) -> List[RemoteRepository]:
    seen = set()
    out: List[RemoteRepository] = []
    for repo in repositories:
        if repo.url not in seen:
            out.append(repo)
            seen.add(repo.url)
    return out


class GithubWalker:
    """
    Walks a set of repositories and applies an operation to every repository whose
    remote URL matches the configured pattern.

    Repositories are processed one at a time, in discovery order. A failure in one
    repository is recorded as a failed outcome and the walk moves on.
    """

    def __init__(
        self,
        client: ReviewClient,
        operation: Operation,
        config: SliderConfig,
        repository_factory: RepositoryFactory,
        *,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        if not isinstance(operation, Operation):
            raise ConfigurationError("An operation must be provided.")
        self.client = client
        self.operation = operation
        self.config = config
        self.repository_factory = repository_factory
        self.sleep = sleep
        self.working_dir = config.working_dir.expanduser().resolve()
        self._stop_requested = False

    def request_stop(self) -> None:
        """Stop before the next repository; the one in flight runs to completion."""
        self._stop_requested = True

    def discover(
        self, *, organization: Optional[str] = None, user: bool = False
    ) -> List[RemoteRepository]:
        if organization:
            return self._discover_organization(organization)
        if user:
            logger.info("[walk] listing repositories for the current user")
            return _dedupe_repositories(self.client.list_user_repositories())
        raise ConfigurationError("Either an organization or the current user must be selected.")

    def _discover_organization(self, organization: str) -> List[RemoteRepository]:
        logger.info("[walk] listing repositories for organization %s", organization)
        repositories: List[RemoteRepository] = []
        page_number = 1
        while True:
            page = self.client.list_organization_repositories(
                organization, page=page_number, per_page=self.config.page_size
            )
            repositories.extend(page.repositories)
            if not page.has_next:
                break
            page_number += 1
            logger.info("[walk] loading page %d", page_number)
        return _dedupe_repositories(repositories)

    def matches(self, repository: RemoteRepository) -> bool:
        return self.config.pattern.search(repository.url) is not None

    def _ref_for(self, repository: RemoteRepository) -> RepositoryRef:
        return RepositoryRef(
            url=repository.url,
            name=repository.name,
            owner=repository.owner,
            default_branch=repository.default_branch,
            path=local_path_for(repository.url, self.working_dir),
        )

    async def process(self, repository: RemoteRepository) -> Optional[RepositoryOutcome]:
        if not self.matches(repository):
            return None

        logger.info("[walk] applying operation %s to %s", self.operation.spec.id, repository.url)
        ref = self._ref_for(repository)
        local: Optional[RepositoryManager] = None
        try:
            local = self.repository_factory(ref)
            deps = PipelineDeps(
                ref=ref,
                repository=local,
                client=self.client,
                operation=self.operation,
                dry_run=self.config.dry_run,
                merge_policy=RetryPolicy(
                    max_attempts=self.config.merge_max_attempts,
                    delay_seconds=self.config.merge_retry_seconds,
                ),
                sleep=self.sleep,
            )
            return await run_pipeline(deps)
        except Exception as exc:
            logger.exception("[walk] pipeline failed for %s", repository.url)
            return RepositoryOutcome.failure(exc)
        finally:
            if local is not None:
                local.close()

    async def walk(
        self, *, organization: Optional[str] = None, user: bool = False
    ) -> Dict[str, RepositoryOutcome]:
        ensure_logging_configured()
        repositories = self.discover(organization=organization, user=user)
        logger.info("[walk] %d candidate repositories", len(repositories))

        outcomes: Dict[str, RepositoryOutcome] = {}
        for repository in repositories:
            if self._stop_requested:
                logger.warning(
                    "[walk] stop requested; %d repositories processed, remaining skipped",
                    len(outcomes),
                )
                break
            outcome = await self.process(repository)
            if outcome is not None:
                outcomes[repository.url] = outcome
        return outcomes
