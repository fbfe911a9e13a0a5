from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from slider.operation import Operation, OperationSpec, dedupe

logger = logging.getLogger(__name__)

SPEC = OperationSpec(
    id="rename-owners",
    commit_message="Rename OWNERS to CODEOWNERS",
    review_title="Rename OWNERS to CODEOWNERS to allow us to require reviews by OWNERS",
)


def _is_path_pattern(token: str) -> bool:
    if token.startswith("@"):
        return False
    return token.startswith(("*", "/")) or "/" in token or "." in token


def _first_owners(text: str) -> list[str]:
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        tokens = line.split()
        # CODEOWNERS lines start with a path pattern; plain OWNERS lines are all owners.
        owners = tokens[1:] if _is_path_pattern(tokens[0]) else tokens
        return [o.lstrip("@") for o in owners if "/" not in o]
    return []


class RenameOwnersOperation(Operation):
    zero = 0

    def __init__(
        self,
        default_reviewers: Optional[Iterable[str]] = None,
        spec: OperationSpec = SPEC,
    ) -> None:
        super().__init__(spec)
        self.default_reviewers = list(default_reviewers or [])

    def apply(self, repo_path: Path) -> bool:
        owners = Path(repo_path) / "OWNERS"
        if not owners.exists():
            return False
        owners.rename(Path(repo_path) / "CODEOWNERS")
        logger.info("[rename-owners] renamed OWNERS in %s", repo_path)
        return True

    def reviewers(self, repo_path: Path) -> list[str]:
        codeowners = Path(repo_path) / "CODEOWNERS"
        if codeowners.exists():
            owners = _first_owners(codeowners.read_text(encoding="utf-8"))
            if owners:
                return dedupe(owners)
        return dedupe(self.default_reviewers)

    def reduce(self, accumulator: Any, result: Any) -> int:
        count = accumulator or 0
        return count + 1 if result else count
