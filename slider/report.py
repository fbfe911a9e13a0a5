from __future__ import annotations

import json
import sys
from enum import Enum
from functools import reduce
from typing import Any, Iterable, Mapping, Optional, TextIO

from slider.models import FileChange, FileRename, RepositoryOutcome
from slider.operation import Operation

INDENT = " " * 4
DETAIL_INDENT = " " * 8


class RepositoryStatus(str, Enum):
    FAILED = "FAILED"
    MERGED = "MERGED"
    DRY_RUN = "DRY RUN"
    NO_REVIEWERS_FOUND = "NO REVIEWERS FOUND"
    AWAITING_REPLY = "AWAITING REPLY FROM YOU"
    PENDING_REVIEW = "PENDING REVIEW"
    COMPLETE = "COMPLETE"


def classify(outcome: RepositoryOutcome, *, dry_run: bool) -> RepositoryStatus:
    """First matching rule wins; isolated failures are reported before anything else."""
    if outcome.failed:
        return RepositoryStatus.FAILED
    if outcome.merge_result:
        return RepositoryStatus.MERGED
    if dry_run:
        return RepositoryStatus.DRY_RUN
    if not outcome.reviewers:
        return RepositoryStatus.NO_REVIEWERS_FOUND
    if outcome.has_pending_comments:
        return RepositoryStatus.AWAITING_REPLY
    if outcome.pull_request is not None:
        return RepositoryStatus.PENDING_REVIEW
    return RepositoryStatus.COMPLETE


def fold_results(operation: Operation, outcomes: Iterable[RepositoryOutcome]) -> Any:
    return reduce(
        lambda memo, outcome: operation.reduce(memo, outcome.operation_result),
        outcomes,
        operation.zero,
    )


def _format_result(value: Any) -> str:
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)


def _write_diff(out: TextIO, outcome: RepositoryOutcome) -> None:
    for entry in outcome.diff:
        if isinstance(entry, FileRename):
            out.write(f"{INDENT}{entry.old_path}\n")
            out.write(f"{DETAIL_INDENT}Renamed {entry.old_path} to {entry.new_path}\n")
        elif isinstance(entry, FileChange):
            out.write(f"{INDENT}{entry.path}\n")
            for line in entry.diff.splitlines():
                out.write(f"{DETAIL_INDENT}{line}\n")


def _table(rows: list[tuple[str, ...]]) -> str:
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    return "\n".join(
        "  ".join(cell.ljust(width) for cell, width in zip(row, widths)).rstrip()
        for row in rows
    )


def render_report(
    outcomes: Mapping[str, RepositoryOutcome],
    operation: Operation,
    *,
    dry_run: bool,
    out: Optional[TextIO] = None,
) -> Any:
    """Print the per-repository details, the status table and the reduced value."""
    out = out or sys.stdout
    for url, outcome in outcomes.items():
        out.write(f"{url}\n")
        if outcome.failed:
            out.write(f"{INDENT}Error\n{DETAIL_INDENT}{outcome.error}\n\n")
        _write_diff(out, outcome)
        out.write("\n")

        out.write(f"{INDENT}Reviewers\n")
        out.write(f"{DETAIL_INDENT}{', '.join(outcome.reviewers) or 'NONE'}\n\n")

        out.write(f"{INDENT}Slider Output\n")
        out.write(f"{DETAIL_INDENT}{_format_result(outcome.operation_result)}\n\n")

    rows = [
        (
            url,
            classify(outcome, dry_run=dry_run).value,
            outcome.pull_request.url if outcome.pull_request else "",
        )
        for url, outcome in outcomes.items()
    ]
    if rows:
        out.write(_table(rows) + "\n")

    reduced = fold_results(operation, outcomes.values())
    out.write(f"\nReduced: {_format_result(reduced)}\n")
    return reduced
