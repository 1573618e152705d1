"""Tests for the tippecanoe compilation service.

The subprocess layer is replaced with a fake run_command so these tests
exercise argument wiring and failure classification without tippecanoe
installed.

See Also:
    - tilebuild/services/compiler.py for the implementation under test.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest

from tilebuild.core import exceptions
from tilebuild.services import compiler, profiles
from tilebuild.utils import command

if TYPE_CHECKING:
    import pathlib


def _compile(
    tmp_path: pathlib.Path,
    tile_compiler: compiler.TileCompiler | None = None,
) -> Any:
    source = tmp_path / "chunk2.geojson"
    source.write_text('{"type":"FeatureCollection","features":[]}')
    return (tile_compiler or compiler.TileCompiler()).compile(
        source,
        profiles.PRIMARY,
        output_path=tmp_path / "chunk2.mbtiles",
        tileset_name="EPA Disadvantaged Communities 2",
        layer_name="epa-disadvantaged-2",
    )


def _fake_run(
    monkeypatch: pytest.MonkeyPatch,
    result: command.CommandResult,
    write_output: bool = True,
) -> dict[str, Any]:
    seen: dict[str, Any] = {}

    def fake_run_command(args: Any, **kwargs: Any) -> command.CommandResult:
        seen["args"] = list(args)
        seen.update(kwargs)
        if write_output:
            output = args[args.index("-o") + 1]
            with open(output, "wb") as f:
                f.write(b"mbtiles")
        return result

    monkeypatch.setattr(compiler.command, "run_command", fake_run_command)
    return seen


def test_compile_success(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    seen = _fake_run(
        monkeypatch, command.CommandResult(returncode=0, output="done")
    )
    result = _compile(tmp_path)
    assert result.success
    assert result.failure is None
    assert result.profile_used == "primary"
    assert result.artifact_path == tmp_path / "chunk2.mbtiles"
    assert result.diagnostic_output == "done"
    assert seen["max_output_bytes"] == 500 * 1024 * 1024
    assert seen["timeout"] is None
    assert seen["args"][0] == "tippecanoe"


def test_compile_passes_settings(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    seen = _fake_run(monkeypatch, command.CommandResult(returncode=0, output=""))
    tile_compiler = compiler.TileCompiler(
        executable="/opt/bin/tippecanoe", max_output_bytes=1024, timeout=60
    )
    _compile(tmp_path, tile_compiler)
    assert seen["args"][0] == "/opt/bin/tippecanoe"
    assert seen["max_output_bytes"] == 1024
    assert seen["timeout"] == 60


@pytest.mark.parametrize(
    ("run", "expected"),
    [
        (
            command.CommandResult(returncode=1, output="bad polygon"),
            exceptions.CompileFailure.NON_ZERO_EXIT,
        ),
        (
            command.CommandResult(returncode=-9, output=""),
            exceptions.CompileFailure.SIGNAL_TERMINATED,
        ),
        (
            command.CommandResult(returncode=-9, output="", timed_out=True),
            exceptions.CompileFailure.SIGNAL_TERMINATED,
        ),
        (
            command.CommandResult(
                returncode=-9, output="", output_exceeded=True
            ),
            exceptions.CompileFailure.OUTPUT_TOO_LARGE,
        ),
    ],
)
def test_compile_failure_classified(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: pathlib.Path,
    run: command.CommandResult,
    expected: exceptions.CompileFailure,
) -> None:
    """Every failure mode is reported on the result, never raised."""
    _fake_run(monkeypatch, run, write_output=False)
    result = _compile(tmp_path)
    assert not result.success
    assert result.failure is expected
    assert result.artifact_path is None


def test_compile_diagnostics_kept_on_failure(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    _fake_run(
        monkeypatch,
        command.CommandResult(returncode=-9, output="tile 9/3/4", timed_out=True),
        write_output=False,
    )
    result = _compile(tmp_path, compiler.TileCompiler(timeout=5))
    assert "tile 9/3/4" in result.diagnostic_output
    assert "deadline" in result.diagnostic_output


def test_compile_clean_exit_without_archive(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    """A zero exit that leaves no archive is still a failure."""
    _fake_run(
        monkeypatch,
        command.CommandResult(returncode=0, output=""),
        write_output=False,
    )
    result = _compile(tmp_path)
    assert not result.success
    assert result.failure is exceptions.CompileFailure.NON_ZERO_EXIT


def test_compile_removes_stale_archive(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    (tmp_path / "chunk2.mbtiles").write_bytes(b"partial")
    _fake_run(
        monkeypatch,
        command.CommandResult(returncode=1, output=""),
        write_output=False,
    )
    _compile(tmp_path)
    assert not (tmp_path / "chunk2.mbtiles").exists()


def test_compile_missing_executable(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    def fake_run_command(*args: Any, **kwargs: Any) -> command.CommandResult:
        raise command.CommandError("cannot run 'tippecanoe'")

    monkeypatch.setattr(compiler.command, "run_command", fake_run_command)
    with pytest.raises(exceptions.CompileError) as excinfo:
        _compile(tmp_path)
    assert excinfo.value.failure is exceptions.CompileFailure.EXECUTABLE_NOT_FOUND


def test_classify_success() -> None:
    assert compiler.classify(command.CommandResult(0, "")) is None


@pytest.mark.parametrize("timeout", [0, -5.0])
def test_compiler_rejects_non_positive_timeout(timeout: float) -> None:
    with pytest.raises(ValueError):
        compiler.TileCompiler(timeout=timeout)
