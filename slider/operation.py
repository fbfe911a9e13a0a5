from __future__ import annotations

import importlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from slider.errors import ConfigurationError

BRANCH_PREFIX = "slider/"
DEFAULT_COMMIT_MESSAGE = "Committing a bulk modification using slider"


def branch_name(operation_id: str) -> str:
    return f"{BRANCH_PREFIX}{operation_id}"


@dataclass(frozen=True)
class OperationSpec:
    id: str
    review_title: str
    commit_message: Optional[str] = None

    def __post_init__(self) -> None:
        if not isinstance(self.id, str) or not self.id.strip():
            raise ConfigurationError("Operation id must be set.")
        if not isinstance(self.review_title, str) or not self.review_title.strip():
            raise ConfigurationError("Operation review_title must be set.")

    @property
    def branch(self) -> str:
        return branch_name(self.id)

    @property
    def effective_commit_message(self) -> str:
        return self.commit_message or DEFAULT_COMMIT_MESSAGE


class Operation(ABC):
    """
    A bulk modification applied to every matched repository.

    - `apply` mutates the checkout at `repo_path` and returns any JSON-friendly value.
    - `reviewers` runs after `apply` and may read what it wrote.
    - `reduce` folds per-repository results, starting from `zero`; it receives `None`
      for repositories without a result.
    """

    zero: Any = None

    def __init__(self, spec: OperationSpec) -> None:
        if not isinstance(spec, OperationSpec):
            raise ConfigurationError("An operation requires an OperationSpec.")
        self.spec = spec

    @abstractmethod
    def apply(self, repo_path: Path) -> Any:
        raise NotImplementedError

    @abstractmethod
    def reviewers(self, repo_path: Path) -> list[str]:
        raise NotImplementedError

    @abstractmethod
    def reduce(self, accumulator: Any, result: Any) -> Any:
        raise NotImplementedError


def dedupe(items: list[str]) -> list[str]:
    # Deduplicate while preserving order
    seen = set()
    out: list[str] = []
    for item in items:
        if item and item not in seen:
            out.append(item)
            seen.add(item)
    return out


def _import_attribute(target: str) -> Any:
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(
            f"Operation path must look like 'package.module:attribute': {target!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import operation module {module_name!r}: {exc}") from exc
    try:
        return getattr(module, attribute)
    except AttributeError as exc:
        raise ConfigurationError(f"{module_name!r} has no attribute {attribute!r}") from exc


def load_operation(target: str, **options: Any) -> Operation:
    """Resolve a registered operation name or a `module:attribute` path."""
    if ":" not in target:
        from slider.operations import get_operation

        return get_operation(target, **options)

    candidate = _import_attribute(target)
    # Operation subclasses and factories are called with no arguments.
    if not isinstance(candidate, Operation) and callable(candidate):
        candidate = candidate()
    if not isinstance(candidate, Operation):
        raise ConfigurationError(f"{target!r} does not provide an Operation")
    return candidate
