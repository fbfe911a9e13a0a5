from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence

from github import Auth, Github
from github.GithubException import (
    BadCredentialsException,
    GithubException,
    RateLimitExceededException,
    UnknownObjectException,
)

from slider.errors import (
    AuthenticationError,
    MergeRejectedError,
    NotFoundError,
    RateLimitedError,
    RemoteError,
)
from slider.models import (
    PullRequestRef,
    RemoteRepository,
    RepositoryPage,
    ReviewEntry,
    ReviewState,
)

logger = logging.getLogger(__name__)

_NEXT_LINK_RE = re.compile(r'<[^>]+>\s*;\s*rel="next"')
# GitHub answers 405 for "not mergeable" and 409 when the head moved underneath us.
_MERGE_REJECTED_STATUSES = (405, 409, 422)


class ReviewClient(Protocol):
    """Code-host operations the pipeline and walker depend on."""

    def current_login(self) -> str: ...

    def list_organization_repositories(
        self, organization: str, *, page: int, per_page: int
    ) -> RepositoryPage: ...

    def list_user_repositories(self) -> List[RemoteRepository]: ...

    def find_pull_request(
        self, owner: str, repo: str, head: str
    ) -> Optional[PullRequestRef]: ...

    def create_pull_request(
        self, owner: str, repo: str, *, title: str, head: str, base: str
    ) -> PullRequestRef: ...

    def requested_reviewers(self, owner: str, repo: str, number: int) -> List[str]: ...

    def request_reviewers(
        self, owner: str, repo: str, number: int, reviewers: Sequence[str]
    ) -> None: ...

    def list_reviews(self, owner: str, repo: str, number: int) -> List[ReviewEntry]: ...

    def merge_pull_request(self, owner: str, repo: str, number: int) -> bool: ...


def has_next_page(link_header: Optional[str]) -> bool:
    return bool(link_header and _NEXT_LINK_RE.search(link_header))


def _review_state(raw: Optional[str]) -> ReviewState:
    try:
        return ReviewState((raw or "").upper())
    except ValueError:
        logger.debug("Unknown review state %r; treating as COMMENTED", raw)
        return ReviewState.COMMENTED


def _repository_from_json(data: Dict[str, Any]) -> RemoteRepository:
    return RemoteRepository(
        url=data["ssh_url"],
        name=data["name"],
        owner=(data.get("owner") or {}).get("login", ""),
        default_branch=data.get("default_branch") or "master",
    )


def _pull_request_ref(pr: Any) -> PullRequestRef:
    return PullRequestRef(
        number=pr.number,
        url=pr.html_url,
        head=pr.head.ref,
        base=pr.base.ref,
    )


@contextmanager
def translate_errors(action: str, *, merge: bool = False) -> Iterator[None]:
    """Re-raise PyGithub failures as slider's remote error types."""
    try:
        yield
    except UnknownObjectException as exc:
        raise NotFoundError(f"{action}: not found", status=exc.status) from exc
    except RateLimitExceededException as exc:
        raise RateLimitedError(f"{action}: rate limited", status=exc.status) from exc
    except BadCredentialsException as exc:
        raise AuthenticationError(f"{action}: bad credentials", status=exc.status) from exc
    except GithubException as exc:
        if merge and exc.status in _MERGE_REJECTED_STATUSES:
            raise MergeRejectedError(f"{action}: {exc.data}", status=exc.status) from exc
        if exc.status == 429:
            raise RateLimitedError(f"{action}: rate limited", status=exc.status) from exc
        raise RemoteError(f"{action} failed ({exc.status}): {exc.data}", status=exc.status) from exc


class GithubClient:
    def __init__(self, token: str, *, github: Optional[Github] = None) -> None:
        self.github = github or Github(auth=Auth.Token(token))
        self._login: Optional[str] = None

    def current_login(self) -> str:
        if self._login is None:
            with translate_errors("fetch authenticated user"):
                self._login = self.github.get_user().login
        return self._login

    def list_organization_repositories(
        self, organization: str, *, page: int, per_page: int
    ) -> RepositoryPage:
        with translate_errors(f"list repositories for {organization}"):
            headers, data = self.github.requester.requestJsonAndCheck(
                "GET",
                f"/orgs/{organization}/repos",
                parameters={"per_page": per_page, "page": page},
            )
        return RepositoryPage(
            repositories=tuple(_repository_from_json(item) for item in data or []),
            has_next=has_next_page(headers.get("link")),
        )

    def list_user_repositories(self) -> List[RemoteRepository]:
        with translate_errors("list repositories for the authenticated user"):
            return [
                RemoteRepository(
                    url=repo.ssh_url,
                    name=repo.name,
                    owner=repo.owner.login,
                    default_branch=repo.default_branch or "master",
                )
                for repo in self.github.get_user().get_repos()
            ]

    def _pull(self, owner: str, repo: str, number: int):
        return self.github.get_repo(f"{owner}/{repo}").get_pull(number)

    def find_pull_request(
        self, owner: str, repo: str, head: str
    ) -> Optional[PullRequestRef]:
        with translate_errors(f"list pull requests for {owner}/{repo}"):
            for pr in self.github.get_repo(f"{owner}/{repo}").get_pulls(
                state="open", head=head
            ):
                return _pull_request_ref(pr)
        return None

    def create_pull_request(
        self, owner: str, repo: str, *, title: str, head: str, base: str
    ) -> PullRequestRef:
        with translate_errors(f"create pull request for {owner}/{repo}"):
            pr = self.github.get_repo(f"{owner}/{repo}").create_pull(
                title=title, body="", head=head, base=base
            )
        return _pull_request_ref(pr)

    def requested_reviewers(self, owner: str, repo: str, number: int) -> List[str]:
        with translate_errors(f"list review requests for {owner}/{repo}#{number}"):
            users, _teams = self._pull(owner, repo, number).get_review_requests()
            return [user.login for user in users]

    def request_reviewers(
        self, owner: str, repo: str, number: int, reviewers: Sequence[str]
    ) -> None:
        with translate_errors(f"request reviewers for {owner}/{repo}#{number}"):
            self._pull(owner, repo, number).create_review_request(
                reviewers=list(reviewers)
            )

    def list_reviews(self, owner: str, repo: str, number: int) -> List[ReviewEntry]:
        with translate_errors(f"list reviews for {owner}/{repo}#{number}"):
            return [
                ReviewEntry(
                    author=review.user.login if review.user else "",
                    state=_review_state(review.state),
                )
                for review in self._pull(owner, repo, number).get_reviews()
            ]

    def merge_pull_request(self, owner: str, repo: str, number: int) -> bool:
        with translate_errors(f"merge {owner}/{repo}#{number}", merge=True):
            status = self._pull(owner, repo, number).merge()
        if not status.merged:
            raise MergeRejectedError(
                f"merge {owner}/{repo}#{number}: {status.message}"
            )
        return True
