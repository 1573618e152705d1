"""Pipeline orchestration across all chunks of a dataset.

The orchestrator acquires the scratch workspace, builds chunks 1..N and
releases the workspace on every exit path. With the default single worker,
chunk K+1 is only downloaded after chunk K has reached a terminal state, and
the first fatal chunk stops the run. With more workers, chunks are built in a
bounded thread pool, each in its own workspace subdirectory, and the first
fatal chunk stops new chunks from being started.

Example:
    Run the whole dataset with settings from the environment:
        >>> from tilebuild.core.config import get_settings
        >>> from tilebuild.services.orchestrator import PipelineOrchestrator
        >>> orchestrator = PipelineOrchestrator.from_settings(get_settings())
        >>> summary = orchestrator.run()
        >>> summary.exit_code
        0
"""

from __future__ import annotations

import logging
import threading
from concurrent import futures
from typing import TYPE_CHECKING

from tilebuild import models
from tilebuild.core import exceptions
from tilebuild.services import builder as chunk_builder
from tilebuild.services import compiler as tile_compiler
from tilebuild.services import workspace as workspace_service
from tilebuild.storage import chunk_store, keys

if TYPE_CHECKING:
    import pathlib

    from tilebuild.core import config

logger = logging.getLogger(__name__)


def describe_chunk(
    directory: pathlib.Path,
    index: int,
    *,
    dataset_prefix: str,
    tileset_display_name: str = "EPA Disadvantaged Communities",
    layer_prefix: str = "epa-disadvantaged",
) -> models.ChunkDescriptor:
    """Build the descriptor for chunk ``index`` with files in directory."""
    source = keys.source_key(dataset_prefix, index)
    basename = keys.chunk_basename(index)
    return models.ChunkDescriptor(
        index=index,
        source_key=source,
        local_input_path=directory / (basename + keys.SOURCE_SUFFIX),
        local_output_path=directory / (basename + keys.TILESET_SUFFIX),
        destination_key=keys.destination_key_for(source),
        tileset_display_name=tileset_display_name,
        layer_prefix=layer_prefix,
    )


class PipelineOrchestrator:
    """Drives one ChunkBuilder per chunk and aggregates the result."""

    def __init__(
        self,
        builder: chunk_builder.ChunkBuilder,
        workspace: workspace_service.WorkspaceManager,
        dataset_prefix: str,
        chunk_count: int = 7,
        max_workers: int = 1,
        tileset_display_name: str = "EPA Disadvantaged Communities",
        layer_prefix: str = "epa-disadvantaged",
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.builder = builder
        self.workspace = workspace
        self.dataset_prefix = dataset_prefix
        self.chunk_count = chunk_count
        self.max_workers = max_workers
        self.tileset_display_name = tileset_display_name
        self.layer_prefix = layer_prefix

    @classmethod
    def from_settings(
        cls,
        settings: config.Settings,
        store: chunk_store.ChunkStoreProtocol | None = None,
    ) -> PipelineOrchestrator:
        """Wire the production collaborators from settings.

        Args:
            settings: Pipeline settings.
            store: Chunk store to use instead of the S3 store.
        """
        builder = chunk_builder.ChunkBuilder(
            store or chunk_store.get_chunk_store(settings),
            tile_compiler.TileCompiler.from_settings(settings),
        )
        return cls(
            builder,
            workspace_service.WorkspaceManager(settings.workspace_dir),
            dataset_prefix=settings.dataset_prefix,
            chunk_count=settings.chunk_count,
            max_workers=settings.max_workers,
            tileset_display_name=settings.tileset_display_name,
            layer_prefix=settings.layer_prefix,
        )

    def describe_chunk(
        self, directory: pathlib.Path, index: int
    ) -> models.ChunkDescriptor:
        return describe_chunk(
            directory,
            index,
            dataset_prefix=self.dataset_prefix,
            tileset_display_name=self.tileset_display_name,
            layer_prefix=self.layer_prefix,
        )

    def run(self, chunk_count: int | None = None) -> models.RunSummary:
        """Build every chunk and release the workspace.

        Args:
            chunk_count: Number of chunks to build, defaults to the
                configured count.

        Returns:
            RunSummary with one outcome per attempted chunk, in index order.
            Its ``exit_code`` is 0 only if every chunk was published.
        """
        count = self.chunk_count if chunk_count is None else chunk_count
        if count < 1:
            raise ValueError("chunk_count must be at least 1")

        summary = models.RunSummary(chunk_count=count)
        try:
            with self.workspace.session() as handle:
                if self.max_workers == 1:
                    self._run_sequential(handle, count, summary)
                else:
                    self._run_pool(handle, count, summary)
        except exceptions.WorkspaceError as e:
            logger.error("Workspace unavailable: %s", e)
            summary.error = e

        self._report(summary)
        return summary

    def _run_sequential(
        self,
        handle: models.WorkspaceHandle,
        count: int,
        summary: models.RunSummary,
    ) -> None:
        for index in range(1, count + 1):
            chunk = self.describe_chunk(handle.root_path, index)
            outcome = self._finish(self.builder.build(chunk))
            summary.outcomes.append(outcome)
            if outcome.state is models.ChunkState.FAILED_FATAL:
                break

    def _finish(self, outcome: models.ChunkOutcome) -> models.ChunkOutcome:
        if not outcome.state.is_terminal:
            raise exceptions.PipelineError(
                f"chunk {outcome.descriptor.index} stopped in state"
                f" {outcome.state}"
            )
        return outcome

    def _build_isolated(
        self, handle: models.WorkspaceHandle, index: int
    ) -> models.ChunkOutcome:
        directory = self.workspace.chunk_dir(handle, index)
        return self.builder.build(self.describe_chunk(directory, index))

    def _run_pool(
        self,
        handle: models.WorkspaceHandle,
        count: int,
        summary: models.RunSummary,
    ) -> None:
        cancelled = threading.Event()
        remaining = iter(range(1, count + 1))
        outcomes: dict[int, models.ChunkOutcome] = {}
        in_flight: set[futures.Future[models.ChunkOutcome]] = set()

        with futures.ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="tilebuild"
        ) as pool:

            def submit_next() -> bool:
                if cancelled.is_set():
                    return False
                index = next(remaining, None)
                if index is None:
                    return False
                in_flight.add(pool.submit(self._build_isolated, handle, index))
                return True

            while len(in_flight) < self.max_workers and submit_next():
                pass

            while in_flight:
                done, _ = futures.wait(
                    in_flight, return_when=futures.FIRST_COMPLETED
                )
                for future in done:
                    in_flight.discard(future)
                    outcome = self._finish(future.result())
                    outcomes[outcome.descriptor.index] = outcome
                    if outcome.state is models.ChunkState.FAILED_FATAL:
                        cancelled.set()
                while len(in_flight) < self.max_workers and submit_next():
                    pass

        summary.outcomes.extend(outcomes[index] for index in sorted(outcomes))

    def _report(self, summary: models.RunSummary) -> None:
        for outcome in summary.outcomes:
            result = outcome.compile_result
            logger.info(
                "chunk %d: %s%s",
                outcome.descriptor.index,
                outcome.state.value,
                f" ({result.profile_used} profile)"
                if result is not None and result.success
                else "",
            )

        if summary.succeeded:
            logger.info("All chunks processed successfully!")
            return

        failed = summary.failed
        if failed is not None:
            logger.error(
                "Run failed at chunk %d while %s: %s",
                failed.descriptor.index,
                failed.failed_stage,
                failed.error,
            )
        elif summary.error is not None:
            logger.error("Run failed before any chunk: %s", summary.error)
