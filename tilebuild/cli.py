"""Command-line entry point.

Example:
    Build all chunks of the configured dataset:
        $ tilebuild run

    Build three chunks two at a time with a 30 minute compiler deadline:
        $ tilebuild run --chunk-count 3 --workers 2 --timeout 1800
"""

from __future__ import annotations

import logging
import pathlib
import shlex
from typing import Annotated, Optional

import pydantic
import typer

from tilebuild.core import config
from tilebuild.core import logger_setup
from tilebuild.services import orchestrator as pipeline
from tilebuild.services import profiles

app = typer.Typer(
    help="Build vector tilesets from GeoJSON chunks in object storage.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)


@app.command()
def run(
    chunk_count: Annotated[
        Optional[int],
        typer.Option("--chunk-count", "-n", min=1, help="Chunks to build."),
    ] = None,
    workers: Annotated[
        Optional[int],
        typer.Option(min=1, help="Chunks built concurrently."),
    ] = None,
    timeout: Annotated[
        Optional[float],
        typer.Option(
            min=0,
            min_open=True,
            help="Seconds before a tippecanoe run is killed.",
        ),
    ] = None,
    bucket: Annotated[
        Optional[str], typer.Option(help="Object storage bucket.")
    ] = None,
    prefix: Annotated[
        Optional[str], typer.Option(help="Dataset key prefix.")
    ] = None,
    workspace: Annotated[
        Optional[pathlib.Path], typer.Option(help="Scratch directory.")
    ] = None,
    log_file: Annotated[
        Optional[pathlib.Path], typer.Option(help="Also log to this file.")
    ] = None,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Debug logging.")
    ] = False,
) -> None:
    """Download, compile and republish every chunk."""
    overrides = {
        "chunk_count": chunk_count,
        "max_workers": workers,
        "compile_timeout_seconds": timeout,
        "bucket": bucket,
        "dataset_prefix": prefix,
        "workspace_dir": workspace,
    }
    base = config.get_settings()
    try:
        settings = config.Settings.model_validate(
            {
                **base.model_dump(),
                **{k: v for k, v in overrides.items() if v is not None},
            }
        )
    except pydantic.ValidationError as e:
        typer.echo(f"Invalid settings: {e}", err=True)
        raise typer.Exit(code=2) from e
    logger_setup.configure_logging(
        logging.DEBUG if verbose else settings.log_level.upper(),
        log_file,
    )
    logger.info(
        "Building %d chunks of s3://%s/%s",
        settings.chunk_count,
        settings.bucket,
        settings.dataset_prefix,
    )

    summary = pipeline.PipelineOrchestrator.from_settings(settings).run()
    raise typer.Exit(code=summary.exit_code)


@app.command("profiles")
def show_profiles(
    index: Annotated[int, typer.Option(min=1, help="Sample chunk.")] = 1,
) -> None:
    """Print the tippecanoe command each profile runs."""
    settings = config.get_settings()
    chunk = pipeline.describe_chunk(
        settings.workspace_dir,
        index,
        dataset_prefix=settings.dataset_prefix,
        tileset_display_name=settings.tileset_display_name,
        layer_prefix=settings.layer_prefix,
    )
    for profile in (profiles.PRIMARY, profiles.FALLBACK):
        args = profiles.build_arguments(
            profile,
            input_path=chunk.local_input_path,
            output_path=chunk.local_output_path,
            tileset_name=chunk.tileset_name,
            layer_name=chunk.layer_name,
            executable=settings.tippecanoe_bin,
        )
        typer.echo(f"{profile.name}: {shlex.join(args)}")


def main() -> None:
    app()
