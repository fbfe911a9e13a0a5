from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Pattern

from slider.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_WORKING_DIR = Path.home() / ".slider"
DEFAULT_PAGE_SIZE = 100
DEFAULT_CLONE_DEPTH = 5
# GitHub rejects merges on PRs modified in the last few seconds; these bound the retry.
DEFAULT_MERGE_MAX_ATTEMPTS = 10
DEFAULT_MERGE_RETRY_SECONDS = 10.0
DEFAULT_AUTHOR_NAME = "slider"
DEFAULT_AUTHOR_EMAIL = "slider@localhost"


@dataclass(frozen=True)
class SliderConfig:
    working_dir: Path = DEFAULT_WORKING_DIR
    dry_run: bool = False
    pattern: Pattern[str] = field(default_factory=lambda: re.compile(".*"))
    page_size: int = DEFAULT_PAGE_SIZE
    # None means a full clone.
    clone_depth: Optional[int] = DEFAULT_CLONE_DEPTH
    merge_max_attempts: int = DEFAULT_MERGE_MAX_ATTEMPTS
    merge_retry_seconds: float = DEFAULT_MERGE_RETRY_SECONDS
    author: str = f"{DEFAULT_AUTHOR_NAME} <{DEFAULT_AUTHOR_EMAIL}>"


def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int) -> int:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return max(minimum, int(raw))
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %s", name, raw, default)
        return default


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = (env.get(name) or "").strip()
    if not raw:
        return default
    try:
        return max(0.0, float(raw))
    except ValueError:
        logger.warning("Invalid %s=%r; defaulting to %s", name, raw, default)
        return default


def compile_pattern(pattern: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise ConfigurationError(f"Invalid repository pattern {pattern!r}: {exc}") from exc


def load_config(
    *,
    working_dir: Path | None = None,
    dry_run: bool = False,
    pattern: str = ".*",
    environ: Mapping[str, str] | None = None,
) -> SliderConfig:
    """
    Build the run configuration from CLI values plus environment overrides.

    - SLIDER_PAGE_SIZE, SLIDER_CLONE_DEPTH (0 = full clone)
    - SLIDER_MERGE_MAX_ATTEMPTS, SLIDER_MERGE_RETRY_SECONDS
    - GIT_AUTHOR_NAME / GIT_AUTHOR_EMAIL for the commit identity
    """
    env = os.environ if environ is None else environ
    depth = _env_int(env, "SLIDER_CLONE_DEPTH", DEFAULT_CLONE_DEPTH, minimum=0)
    name = env.get("GIT_AUTHOR_NAME") or DEFAULT_AUTHOR_NAME
    email = env.get("GIT_AUTHOR_EMAIL") or DEFAULT_AUTHOR_EMAIL
    return SliderConfig(
        working_dir=Path(working_dir or DEFAULT_WORKING_DIR).expanduser(),
        dry_run=dry_run,
        pattern=compile_pattern(pattern),
        page_size=_env_int(env, "SLIDER_PAGE_SIZE", DEFAULT_PAGE_SIZE, minimum=1),
        clone_depth=depth or None,
        merge_max_attempts=_env_int(
            env, "SLIDER_MERGE_MAX_ATTEMPTS", DEFAULT_MERGE_MAX_ATTEMPTS, minimum=1
        ),
        merge_retry_seconds=_env_float(
            env, "SLIDER_MERGE_RETRY_SECONDS", DEFAULT_MERGE_RETRY_SECONDS
        ),
        author=f"{name} <{email}>",
    )
