"""Vector tile compilation service using tippecanoe.

This module runs the tippecanoe command-line compiler against one local
GeoJSON file with a given parameter profile and reports whether an MBTiles
archive was produced. The compiler can fail on pathological geometry, run
out of memory, or print hundreds of megabytes of progress output; each case
is classified rather than raised, so the chunk builder can retry with a
degraded profile.

Example:
    Compile a chunk with the primary profile:
        >>> from tilebuild.services.compiler import TileCompiler
        >>> from tilebuild.services import profiles

        >>> compiler = TileCompiler()
        >>> result = compiler.compile(
        ...     Path("temp_processing/chunk1.geojson"),
        ...     profiles.PRIMARY,
        ...     output_path=Path("temp_processing/chunk1.mbtiles"),
        ...     tileset_name="EPA Disadvantaged Communities 1",
        ...     layer_name="epa-disadvantaged-1",
        ... )
        >>> result.success
        True
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from tilebuild import models
from tilebuild.core import exceptions
from tilebuild.services import profiles
from tilebuild.utils import command

if TYPE_CHECKING:
    import pathlib

    from tilebuild.core import config

logger = logging.getLogger(__name__)

DEFAULT_MAX_OUTPUT_BYTES = 500 * 1024 * 1024


def classify(result: command.CommandResult) -> exceptions.CompileFailure | None:
    """Map a finished process onto the compile failure taxonomy.

    Returns:
        None when the process succeeded, otherwise the failure kind.
        Exceeding the output ceiling takes precedence over the signal the
        process was killed with.
    """
    if result.output_exceeded:
        return exceptions.CompileFailure.OUTPUT_TOO_LARGE
    if result.signalled:
        return exceptions.CompileFailure.SIGNAL_TERMINATED
    if result.returncode != 0:
        return exceptions.CompileFailure.NON_ZERO_EXIT
    return None


class TileCompiler:
    """Runs tippecanoe with bounded output and an optional deadline."""

    def __init__(
        self,
        executable: str = "tippecanoe",
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        timeout: float | None = None,
    ) -> None:
        if timeout is not None and timeout <= 0:
            raise ValueError("timeout must be positive")
        self.executable = executable
        self.max_output_bytes = max_output_bytes
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: config.Settings) -> TileCompiler:
        return cls(
            executable=settings.tippecanoe_bin,
            max_output_bytes=settings.max_output_bytes,
            timeout=settings.compile_timeout_seconds,
        )

    def compile(
        self,
        input_path: pathlib.Path,
        profile: models.CompileProfile,
        *,
        output_path: pathlib.Path,
        tileset_name: str,
        layer_name: str,
    ) -> models.CompileResult:
        """Compile one GeoJSON file into an MBTiles archive.

        Args:
            input_path: Local GeoJSON file.
            profile: Parameter profile to compile with.
            output_path: Where the archive is written (overwritten).
            tileset_name: Human-readable tileset name.
            layer_name: Vector layer name.

        Returns:
            CompileResult carrying the combined compiler output. On failure
            ``failure`` says how the process ended and ``artifact_path`` is
            None.

        Raises:
            CompileError: EXECUTABLE_NOT_FOUND if tippecanoe cannot be
                started. Retrying with another profile cannot help then.
        """
        args = profiles.build_arguments(
            profile,
            input_path=input_path,
            output_path=output_path,
            tileset_name=tileset_name,
            layer_name=layer_name,
            executable=self.executable,
        )
        # a partial archive from an earlier attempt must not look like success
        output_path.unlink(missing_ok=True)
        logger.debug("Running %s", " ".join(args))
        try:
            run = command.run_command(
                args,
                max_output_bytes=self.max_output_bytes,
                timeout=self.timeout,
            )
        except command.CommandError as e:
            raise exceptions.CompileError(
                exceptions.CompileFailure.EXECUTABLE_NOT_FOUND, str(e)
            ) from e

        failure = classify(run)
        if failure is None and not output_path.exists():
            # tippecanoe exited cleanly but wrote nothing
            failure = exceptions.CompileFailure.NON_ZERO_EXIT

        diagnostic = run.output
        if run.timed_out:
            diagnostic += f"\n[killed after {self.timeout}s deadline]"
        if run.output_exceeded:
            diagnostic += (
                f"\n[killed after exceeding {self.max_output_bytes} bytes"
                " of output]"
            )

        return models.CompileResult(
            profile_used=profile.name,
            success=failure is None,
            diagnostic_output=diagnostic.strip(),
            artifact_path=output_path if failure is None else None,
            failure=failure,
            returncode=run.returncode,
            duration_seconds=run.duration_seconds,
        )
