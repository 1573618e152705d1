"""Data models for the tile build pipeline.

This module defines the core data structures passed between the workspace
manager, the tile compiler, the chunk builder and the orchestrator. A
ChunkDescriptor carries everything needed to build one chunk: its storage
keys and the local scratch paths of its input GeoJSON and output MBTiles.
A CompileProfile is a static set of tippecanoe parameters, and a
CompileResult records what one compiler invocation produced.

Example:
    Creating a ChunkDescriptor for the second chunk of a dataset:
        >>> from tilebuild.models import ChunkDescriptor
        >>> chunk = ChunkDescriptor(
        ...     index=2,
        ...     source_key="epa-ira-disadvantaged-communities/chunk2.geojson",
        ...     local_input_path=Path("temp_processing/chunk2.geojson"),
        ...     local_output_path=Path("temp_processing/chunk2.mbtiles"),
        ...     destination_key=(
        ...         "epa-ira-disadvantaged-communities/vector-tiles/"
        ...         "chunk2.mbtiles"
        ...     ),
        ... )
        >>> chunk.layer_name
        'epa-disadvantaged-2'
"""

from __future__ import annotations

import dataclasses
import enum
import pathlib
from typing import Literal

from tilebuild.core import exceptions

ProfileName = Literal["primary", "fallback"]


class ChunkState(enum.StrEnum):
    """Lifecycle states of one chunk.

    DONE and FAILED_FATAL are terminal. FAILED_RECOVERABLE is kept for
    failures that should not stop the batch; the current policy treats every
    unrecovered failure as fatal, so builders never enter it.
    """

    PENDING = "pending"
    DOWNLOADING = "downloading"
    COMPILING_PRIMARY = "compiling_primary"
    COMPILING_FALLBACK = "compiling_fallback"
    UPLOADING = "uploading"
    DONE = "done"
    FAILED_RECOVERABLE = "failed_recoverable"
    FAILED_FATAL = "failed_fatal"

    @property
    def is_terminal(self) -> bool:
        return self in (
            ChunkState.DONE,
            ChunkState.FAILED_RECOVERABLE,
            ChunkState.FAILED_FATAL,
        )


@dataclasses.dataclass(frozen=True)
class ChunkDescriptor:
    """One partition of the dataset and its scratch paths.

    Attributes:
        index: 1-based chunk number.
        source_key: Object key of the input GeoJSON.
        local_input_path: Where the input is written inside the workspace.
        local_output_path: Where tippecanoe writes the MBTiles archive.
        destination_key: Object key the archive is published under.
        tileset_display_name: Prefix of the human-readable tileset name.
        layer_prefix: Prefix of the vector layer name.
    """

    index: int
    source_key: str
    local_input_path: pathlib.Path
    local_output_path: pathlib.Path
    destination_key: str
    tileset_display_name: str = "EPA Disadvantaged Communities"
    layer_prefix: str = "epa-disadvantaged"

    @property
    def tileset_name(self) -> str:
        return f"{self.tileset_display_name} {self.index}"

    @property
    def layer_name(self) -> str:
        return f"{self.layer_prefix}-{self.index}"


@dataclasses.dataclass(frozen=True)
class CompileProfile:
    """Static tippecanoe parameters for one fidelity level.

    Attributes:
        name: "primary" for the precise profile, "fallback" for the
            degraded one.
        max_zoom: Highest zoom level generated (``--maximum-zoom``).
        min_zoom: Lowest zoom level generated (``--minimum-zoom``).
        simplification: Geometry simplification factor.
        buffer: Tile buffer in screen pixels.
        base_zoom: Zoom at and above which no features are dropped.
        drop_policy: Feature dropping flags, e.g.
            ``"drop-densest-as-needed"``.
        extra_flags: Additional flags passed verbatim, in order.
        force: Overwrite an existing output file.
    """

    name: ProfileName
    max_zoom: int
    min_zoom: int
    simplification: int
    buffer: int
    base_zoom: int
    drop_policy: frozenset[str] = frozenset()
    extra_flags: tuple[str, ...] = ()
    force: bool = True

    def describe(self) -> dict[str, str]:
        """Summarise the parameters as string pairs for logs and metadata."""
        return {
            "profile": self.name,
            "max-zoom": str(self.max_zoom),
            "min-zoom": str(self.min_zoom),
            "simplification": str(self.simplification),
            "buffer": str(self.buffer),
            "base-zoom": str(self.base_zoom),
        }


@dataclasses.dataclass
class CompileResult:
    """Outcome of a single tippecanoe invocation.

    ``diagnostic_output`` holds the combined stdout and stderr whether or not
    the compile succeeded; ``artifact_path`` is only set on success.
    """

    profile_used: ProfileName
    success: bool
    diagnostic_output: str
    artifact_path: pathlib.Path | None = None
    failure: exceptions.CompileFailure | None = None
    returncode: int | None = None
    duration_seconds: float = 0.0


@dataclasses.dataclass
class WorkspaceHandle:
    root_path: pathlib.Path
    created: bool = False


@dataclasses.dataclass
class ChunkOutcome:
    """Terminal record of one chunk's trip through the builder.

    Attributes:
        descriptor: The chunk that was built.
        state: Terminal state reached (DONE or FAILED_FATAL).
        history: Every state visited, in order, starting with PENDING.
        compile_result: Result of the compile that produced the uploaded
            artifact, or of the last failing attempt.
        failed_stage: State in which the fatal error happened.
        error: The classified error that stopped the chunk.
    """

    descriptor: ChunkDescriptor
    state: ChunkState
    history: list[ChunkState] = dataclasses.field(default_factory=list)
    compile_result: CompileResult | None = None
    failed_stage: ChunkState | None = None
    error: exceptions.PipelineError | None = None

    @property
    def used_fallback(self) -> bool:
        return ChunkState.COMPILING_FALLBACK in self.history


@dataclasses.dataclass
class RunSummary:
    """Aggregate result of one pipeline run."""

    chunk_count: int
    outcomes: list[ChunkOutcome] = dataclasses.field(default_factory=list)
    error: exceptions.PipelineError | None = None

    @property
    def failed(self) -> ChunkOutcome | None:
        for outcome in self.outcomes:
            if outcome.state is ChunkState.FAILED_FATAL:
                return outcome
        return None

    @property
    def succeeded(self) -> bool:
        return (
            self.error is None
            and len(self.outcomes) == self.chunk_count
            and all(o.state is ChunkState.DONE for o in self.outcomes)
        )

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1
