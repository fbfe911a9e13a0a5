from __future__ import annotations

from types import SimpleNamespace

import pytest
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
from slider.github_client import GithubClient, has_next_page, translate_errors
from slider.models import ReviewState

NEXT_LINK = (
    '<https://api.github.com/organizations/1/repos?page=2>; rel="next", '
    '<https://api.github.com/organizations/1/repos?page=5>; rel="last"'
)
LAST_LINK = '<https://api.github.com/organizations/1/repos?page=1>; rel="first"'


def _repo_json(name: str, branch: str = "main") -> dict:
    return {
        "ssh_url": f"git@github.com:acme/{name}.git",
        "name": name,
        "owner": {"login": "acme"},
        "default_branch": branch,
    }


def test_has_next_page() -> None:
    assert has_next_page(NEXT_LINK) is True
    assert has_next_page(LAST_LINK) is False
    assert has_next_page(None) is False
    assert has_next_page("") is False


@pytest.mark.parametrize(
    "raised, expected",
    [
        (UnknownObjectException(404, {"message": "Not Found"}, {}), NotFoundError),
        (RateLimitExceededException(403, {"message": "rate"}, {}), RateLimitedError),
        (BadCredentialsException(401, {"message": "bad"}, {}), AuthenticationError),
        (GithubException(429, {"message": "slow down"}, {}), RateLimitedError),
        (GithubException(500, {"message": "boom"}, {}), RemoteError),
    ],
)
def test_translate_errors(raised, expected) -> None:
    with pytest.raises(expected) as excinfo:
        with translate_errors("do something"):
            raise raised
    assert excinfo.value.status == raised.status
    assert excinfo.value.__cause__ is raised


def test_merge_rejections_only_translate_for_merges() -> None:
    with pytest.raises(MergeRejectedError):
        with translate_errors("merge", merge=True):
            raise GithubException(405, {"message": "Pull Request is not mergeable"}, {})

    with pytest.raises(RemoteError) as excinfo:
        with translate_errors("create"):
            raise GithubException(405, {"message": "nope"}, {})
    assert not isinstance(excinfo.value, MergeRejectedError)


def test_organization_listing_reads_one_page() -> None:
    requests = []

    def request_json_and_check(verb, url, parameters=None):
        requests.append((verb, url, parameters))
        return {"link": NEXT_LINK}, [_repo_json("a"), _repo_json("b", branch="trunk")]

    github = SimpleNamespace(requester=SimpleNamespace(requestJsonAndCheck=request_json_and_check))
    client = GithubClient("token", github=github)

    page = client.list_organization_repositories("acme", page=2, per_page=50)

    assert requests == [("GET", "/orgs/acme/repos", {"per_page": 50, "page": 2})]
    assert [r.url for r in page.repositories] == [
        "git@github.com:acme/a.git",
        "git@github.com:acme/b.git",
    ]
    assert page.repositories[1].default_branch == "trunk"
    assert page.has_next is True


def _pull(**overrides):
    values = dict(
        number=12,
        html_url="https://github.com/acme/widgets/pull/12",
        head=SimpleNamespace(ref="slider/op"),
        base=SimpleNamespace(ref="main"),
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def _client_with_repo(repo) -> GithubClient:
    github = SimpleNamespace(
        get_repo=lambda slug: repo,
        get_user=lambda: SimpleNamespace(login="slider-bot"),
    )
    return GithubClient("token", github=github)


def test_find_pull_request_returns_first_open_match() -> None:
    seen = {}

    def get_pulls(state, head):
        seen.update(state=state, head=head)
        return iter([_pull()])

    client = _client_with_repo(SimpleNamespace(get_pulls=get_pulls))
    pr = client.find_pull_request("acme", "widgets", "slider-bot:slider/op")

    assert seen == {"state": "open", "head": "slider-bot:slider/op"}
    assert pr.number == 12
    assert pr.base == "main"


def test_find_pull_request_without_match() -> None:
    client = _client_with_repo(SimpleNamespace(get_pulls=lambda state, head: iter([])))
    assert client.find_pull_request("acme", "widgets", "me:slider/op") is None


def test_reviews_and_requests_are_mapped() -> None:
    reviews = [
        SimpleNamespace(user=SimpleNamespace(login="alice"), state="APPROVED"),
        SimpleNamespace(user=SimpleNamespace(login="bob"), state="changes_requested"),
        SimpleNamespace(user=None, state="SOMETHING_NEW"),
    ]
    pr = _pull(
        get_reviews=lambda: reviews,
        get_review_requests=lambda: ([SimpleNamespace(login="carol")], []),
    )
    client = _client_with_repo(SimpleNamespace(get_pull=lambda number: pr))

    assert [(r.author, r.state) for r in client.list_reviews("acme", "widgets", 12)] == [
        ("alice", ReviewState.APPROVED),
        ("bob", ReviewState.CHANGES_REQUESTED),
        ("", ReviewState.COMMENTED),
    ]
    assert client.requested_reviewers("acme", "widgets", 12) == ["carol"]


def test_merge_that_reports_not_merged_is_rejected() -> None:
    pr = _pull(merge=lambda: SimpleNamespace(merged=False, message="Base branch was modified"))
    client = _client_with_repo(SimpleNamespace(get_pull=lambda number: pr))

    with pytest.raises(MergeRejectedError, match="Base branch was modified"):
        client.merge_pull_request("acme", "widgets", 12)


def test_merge_success() -> None:
    pr = _pull(merge=lambda: SimpleNamespace(merged=True, message="merged"))
    client = _client_with_repo(SimpleNamespace(get_pull=lambda number: pr))
    assert client.merge_pull_request("acme", "widgets", 12) is True


def test_current_login_is_cached() -> None:
    calls = []

    def get_user():
        calls.append(1)
        return SimpleNamespace(login="slider-bot")

    client = GithubClient("token", github=SimpleNamespace(get_user=get_user))
    assert client.current_login() == "slider-bot"
    assert client.current_login() == "slider-bot"
    assert len(calls) == 1
