from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple, Union


@dataclass(frozen=True)
class RemoteRepository:
    """A repository as listed by the code host."""

    url: str
    name: str
    owner: str
    default_branch: str = "master"


@dataclass(frozen=True)
class RepositoryRef:
    url: str
    name: str
    owner: str
    default_branch: str
    path: Path

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True)
class FileChange:
    path: str
    diff: str


@dataclass(frozen=True)
class FileRename:
    old_path: str
    new_path: str


DiffEntry = Union[FileChange, FileRename]
DiffStatus = Tuple[DiffEntry, ...]


@dataclass(frozen=True)
class PullRequestRef:
    number: int
    url: str
    head: str
    base: str


class ReviewState(str, Enum):
    APPROVED = "APPROVED"
    CHANGES_REQUESTED = "CHANGES_REQUESTED"
    COMMENTED = "COMMENTED"
    PENDING = "PENDING"
    DISMISSED = "DISMISSED"


@dataclass(frozen=True)
class ReviewEntry:
    author: str
    state: ReviewState


@dataclass(frozen=True)
class RepositoryPage:
    """One page of a paginated repository listing."""

    repositories: Tuple[RemoteRepository, ...]
    has_next: bool


@dataclass(frozen=True)
class RepositoryOutcome:
    """
    Result of running the pipeline against one repository.

    - `pull_request`, `merge_result` and `has_pending_comments` stay `None` when the
      pipeline short-circuits (dry run or no changes).
    - `error` is set only for repositories whose pipeline failed.
    """

    operation_result: Any = None
    diff: DiffStatus = field(default_factory=tuple)
    reviewers: Tuple[str, ...] = field(default_factory=tuple)
    pull_request: Optional[PullRequestRef] = None
    merge_result: Optional[bool] = None
    has_pending_comments: Optional[bool] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    @classmethod
    def failure(cls, error: BaseException) -> RepositoryOutcome:
        return cls(error=f"{type(error).__name__}: {error}")
