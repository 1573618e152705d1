"""Shared pytest fixtures for the tile build pipeline tests."""

from __future__ import annotations

import pathlib
import sys
import time

import pytest

PROJECT_ROOT = pathlib.Path(__file__).resolve().parent

if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from tilebuild import models  # noqa: E402
from tilebuild.core import exceptions  # noqa: E402
from tilebuild.storage import chunk_store  # noqa: E402

DATASET_PREFIX = "epa-ira-disadvantaged-communities"


@pytest.fixture
def seeded_store() -> chunk_store.InMemoryChunkStore:
    """In-memory store holding seven small source chunks."""
    return chunk_store.InMemoryChunkStore(
        {
            f"{DATASET_PREFIX}/chunk{i}.geojson": (
                b'{"type":"FeatureCollection","features":[],"chunk":%d}' % i
            )
            for i in range(1, 8)
        }
    )


@pytest.fixture
def workspace_dir(tmp_path: pathlib.Path) -> pathlib.Path:
    return tmp_path / "temp_processing"


class FakeCompiler:
    """Stand-in for TileCompiler that writes a small marker archive.

    ``failures`` maps ``(chunk index, profile name)`` to the failure the
    compile should report instead of succeeding. Successful compiles sleep
    for ``delay`` seconds first.
    """

    def __init__(
        self,
        failures: dict[tuple[int, str], exceptions.CompileFailure] | None = None,
        delay: float = 0.0,
    ) -> None:
        self.failures = failures or {}
        self.delay = delay
        self.calls: list[tuple[int, str, pathlib.Path]] = []

    def compile(
        self,
        input_path: pathlib.Path,
        profile: models.CompileProfile,
        *,
        output_path: pathlib.Path,
        tileset_name: str,
        layer_name: str,
    ) -> models.CompileResult:
        index = int(layer_name.rsplit("-", 1)[1])
        assert input_path.exists(), "compile ran without a downloaded input"
        self.calls.append((index, profile.name, input_path))
        failure = self.failures.get((index, profile.name))
        if failure is not None:
            return models.CompileResult(
                profile_used=profile.name,
                success=False,
                diagnostic_output=f"tippecanoe: {failure.value}",
                failure=failure,
                returncode=1,
            )
        if self.delay:
            time.sleep(self.delay)
        output_path.write_bytes(
            f"mbtiles chunk={index} profile={profile.name} "
            f"maxzoom={profile.max_zoom} "
            f"simplification={profile.simplification}".encode()
        )
        return models.CompileResult(
            profile_used=profile.name,
            success=True,
            diagnostic_output="ok",
            artifact_path=output_path,
            returncode=0,
        )


@pytest.fixture
def fake_compiler() -> FakeCompiler:
    return FakeCompiler()


@pytest.fixture
def make_compiler() -> type[FakeCompiler]:
    """Factory for FakeCompiler instances with scripted failures."""
    return FakeCompiler
