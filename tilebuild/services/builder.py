"""Per-chunk build: download, compile with fallback, upload.

A ChunkBuilder drives one chunk through its lifecycle:

    PENDING -> DOWNLOADING -> COMPILING_PRIMARY -> [COMPILING_FALLBACK]
            -> UPLOADING -> DONE

A failed primary compile is retried once with the fallback profile against
the same downloaded input. A download or upload error, or a failed fallback
compile, ends the chunk in FAILED_FATAL and no artifact is published for it.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tilebuild import models
from tilebuild.core import config as core_config
from tilebuild.core import exceptions
from tilebuild.services import profiles

if TYPE_CHECKING:
    from tilebuild.services import compiler as tile_compiler
    from tilebuild.storage import chunk_store

logger = logging.getLogger(__name__)

State = models.ChunkState


class ChunkBuilder:
    """Builds one chunk at a time and owns the fallback policy."""

    def __init__(
        self,
        store: chunk_store.ChunkStoreProtocol,
        compiler: tile_compiler.TileCompiler,
        primary: models.CompileProfile = profiles.PRIMARY,
        fallback: models.CompileProfile = profiles.FALLBACK,
    ) -> None:
        if not profiles.is_degradation_of(fallback, primary):
            raise ValueError(
                "fallback profile must not be more precise than the primary"
            )
        self.store = store
        self.compiler = compiler
        self.primary = primary
        self.fallback = fallback

    def build(self, chunk: models.ChunkDescriptor) -> models.ChunkOutcome:
        """Run one chunk to a terminal state.

        Args:
            chunk: Descriptor whose local paths live inside the workspace.

        Returns:
            ChunkOutcome in state DONE or FAILED_FATAL. Classified pipeline
            errors are captured on the outcome; anything else propagates.
        """
        outcome = models.ChunkOutcome(
            descriptor=chunk, state=State.PENDING, history=[State.PENDING]
        )
        logger.info("Processing chunk %d...", chunk.index)

        self._enter(outcome, State.DOWNLOADING)
        try:
            self._download(chunk)
        except (exceptions.StorageError, exceptions.WorkspaceError) as e:
            return self._fail(outcome, e)

        self._enter(outcome, State.COMPILING_PRIMARY)
        try:
            result = self._compile(chunk, self.primary)
            if not result.success:
                self._enter(outcome, State.COMPILING_FALLBACK)
                result = self._compile(chunk, self.fallback)
        except exceptions.CompileError as e:
            return self._fail(outcome, e)

        outcome.compile_result = result
        if result.failure is not None:
            error = exceptions.CompileError(
                result.failure,
                f"chunk {chunk.index} failed with both profiles",
                result,
            )
            return self._fail(outcome, error)

        if result.profile_used == self.fallback.name:
            logger.warning(
                "Chunk %d built with fallback settings %s",
                chunk.index,
                self.fallback.describe(),
            )

        self._enter(outcome, State.UPLOADING)
        try:
            self._upload(chunk, result)
        except (exceptions.StorageError, exceptions.WorkspaceError) as e:
            return self._fail(outcome, e)

        self._enter(outcome, State.DONE)
        logger.info("Completed chunk %d", chunk.index)
        return outcome

    def _enter(self, outcome: models.ChunkOutcome, state: State) -> None:
        outcome.state = state
        outcome.history.append(state)

    def _fail(
        self,
        outcome: models.ChunkOutcome,
        error: exceptions.PipelineError,
    ) -> models.ChunkOutcome:
        outcome.failed_stage = outcome.state
        outcome.error = error
        self._enter(outcome, State.FAILED_FATAL)
        logger.error(
            "Chunk %d failed while %s: %s",
            outcome.descriptor.index,
            outcome.failed_stage.value,
            error,
        )
        return outcome

    def _download(self, chunk: models.ChunkDescriptor) -> None:
        data = self.store.download(chunk.source_key)
        try:
            chunk.local_input_path.parent.mkdir(parents=True, exist_ok=True)
            chunk.local_input_path.write_bytes(data)
        except OSError as e:
            raise exceptions.WorkspaceError(
                f"cannot write {chunk.local_input_path}: {e}"
            ) from e
        logger.debug(
            "Downloaded %s (%d bytes)", chunk.source_key, len(data)
        )

    def _compile(
        self,
        chunk: models.ChunkDescriptor,
        profile: models.CompileProfile,
    ) -> models.CompileResult:
        if profile is self.primary:
            logger.info("Generating tiles for chunk %d...", chunk.index)
        else:
            logger.info(
                "Retrying chunk %d with more aggressive simplification...",
                chunk.index,
            )
        result = self.compiler.compile(
            chunk.local_input_path,
            profile,
            output_path=chunk.local_output_path,
            tileset_name=chunk.tileset_name,
            layer_name=chunk.layer_name,
        )
        if result.success:
            logger.info(
                "Successfully generated tiles for chunk %d (%s profile, %.1fs)",
                chunk.index,
                profile.name,
                result.duration_seconds,
            )
            if result.diagnostic_output:
                logger.debug("tippecanoe output:\n%s", result.diagnostic_output)
        else:
            logger.warning(
                "%s tiling failed for chunk %d (%s, exit %s):\n%s",
                profile.name.capitalize(),
                chunk.index,
                result.failure,
                result.returncode,
                result.diagnostic_output,
            )
        return result

    def _upload(
        self,
        chunk: models.ChunkDescriptor,
        result: models.CompileResult,
    ) -> None:
        logger.info("Uploading chunk %d...", chunk.index)
        if result.artifact_path is None:
            raise exceptions.WorkspaceError(
                f"chunk {chunk.index} has no compiled archive to upload"
            )
        profile = (
            self.primary if result.profile_used == self.primary.name
            else self.fallback
        )
        metadata = {"chunk": str(chunk.index), **profile.describe()}
        try:
            data = result.artifact_path.read_bytes()
        except OSError as e:
            raise exceptions.WorkspaceError(
                f"cannot read {result.artifact_path}: {e}"
            ) from e
        self.store.upload(
            chunk.destination_key,
            data,
            core_config.MBTILES_CONTENT_TYPE,
            metadata=metadata,
        )
