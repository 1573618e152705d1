"""Error taxonomy for the tile build pipeline.

Every failure the pipeline knows how to classify derives from PipelineError:

- WorkspaceError: the scratch directory could not be acquired. Fatal before
  any chunk is attempted.
- StorageError: a download or upload against the chunk store failed. Fatal
  to the run, no retry is attempted.
- CompileError: tippecanoe failed. A failed primary compile is recovered
  once with the fallback profile; a failed fallback compile is fatal.

Example:
    Inspect the kind of a storage failure:
        >>> from tilebuild.core import exceptions
        >>> try:
        ...     store.download("prefix/chunk1.geojson")
        ... except exceptions.StorageError as e:
        ...     if e.kind is exceptions.StorageErrorKind.NOT_FOUND:
        ...         print(f"missing source chunk: {e.key}")
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tilebuild import models


class StorageErrorKind(enum.StrEnum):
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    AUTH = "auth"


class CompileFailure(enum.StrEnum):
    NON_ZERO_EXIT = "non_zero_exit"
    OUTPUT_TOO_LARGE = "output_too_large"
    SIGNAL_TERMINATED = "signal_terminated"
    EXECUTABLE_NOT_FOUND = "executable_not_found"


class PipelineError(RuntimeError):
    """Base class for classified pipeline failures."""


class WorkspaceError(PipelineError):
    """Raised when the scratch workspace cannot be created or written."""


class StorageError(PipelineError):
    """Raised by a chunk store when a GET or PUT fails.

    Attributes:
        kind: Classification of the failure (not found, transient, auth).
        key: Object key the operation was addressing.
    """

    def __init__(self, kind: StorageErrorKind, key: str, message: str) -> None:
        super().__init__(f"{kind.value} error for {key!r}: {message}")
        self.kind = kind
        self.key = key


class CompileError(PipelineError):
    """Raised when tippecanoe cannot produce a tileset.

    Attributes:
        failure: How the compiler invocation failed.
        result: The CompileResult of the failing attempt, when the process
            actually ran.
    """

    def __init__(
        self,
        failure: CompileFailure,
        message: str,
        result: models.CompileResult | None = None,
    ) -> None:
        super().__init__(f"{failure.value}: {message}")
        self.failure = failure
        self.result = result
