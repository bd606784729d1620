from __future__ import annotations

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    OK = 0
    CONFIG_ERROR = 2
    INPUT_ERROR = 3
    RUNTIME_ERROR = 5


class ConstructMapError(Exception):
    """Base error for the construct map pipeline."""


class ConfigError(ConstructMapError):
    """Raised for configuration or argument issues."""


class InputError(ConstructMapError):
    """Raised when a snapshot cannot be turned into a typed tree and connection list."""


class InvalidConnectionError(InputError):
    """Raised for a connection record that does not match the expected shape."""

    def __init__(self, reason: str, *, index: Optional[int] = None) -> None:
        self.index = index
        self.reason = reason
        where = f" at index {index}" if index is not None else ""
        super().__init__(f"invalid connection record{where}: {reason}")


class MalformedTreeError(InputError):
    """Raised for trees with missing or duplicate paths, or a node reachable twice."""

    def __init__(self, reason: str, *, path: Optional[str] = None) -> None:
        self.path = path
        self.reason = reason
        where = f" at {path!r}" if path else ""
        super().__init__(f"malformed tree{where}: {reason}")


class ExportError(ConstructMapError):
    """Raised when exporting artifacts fails."""


def as_exit_code(exc: BaseException) -> int:
    if isinstance(exc, (ConfigError, ValueError)):
        return int(ExitCode.CONFIG_ERROR)
    if isinstance(exc, InputError):
        return int(ExitCode.INPUT_ERROR)
    if isinstance(exc, (ExportError, ConstructMapError)):
        return int(ExitCode.RUNTIME_ERROR)
    return 1
