from __future__ import annotations

from typing import Any

from slider.errors import ConfigurationError
from slider.operation import Operation

from .rename_owners import RenameOwnersOperation

DEFAULT_OPERATION = "rename-owners"


def get_operation(name: str | None = None, **options: Any) -> Operation:
    operation_name = (name or DEFAULT_OPERATION).lower().strip()
    if operation_name == "rename-owners":
        return RenameOwnersOperation(**options)
    raise ConfigurationError(f"Unknown operation: {operation_name}")


__all__ = ["DEFAULT_OPERATION", "RenameOwnersOperation", "get_operation"]
