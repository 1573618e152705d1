"""Tippecanoe parameter profiles.

Two profiles exist per run. The primary profile keeps geometry detail up to
zoom 10; the fallback profile simplifies twice as hard, stops at zoom 8 and
drops features more aggressively, and is used only after the primary profile
has failed on a chunk.

Example:
    Render the tippecanoe argv for a chunk:
        >>> from tilebuild.services import profiles
        >>> profiles.build_arguments(
        ...     profiles.PRIMARY,
        ...     input_path=Path("chunk1.geojson"),
        ...     output_path=Path("chunk1.mbtiles"),
        ...     tileset_name="EPA Disadvantaged Communities 1",
        ...     layer_name="epa-disadvantaged-1",
        ... )[:3]
        ['tippecanoe', '-o', 'chunk1.mbtiles']
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from tilebuild import models

if TYPE_CHECKING:
    import pathlib

DROP_DENSEST = "drop-densest-as-needed"
EXTEND_ZOOMS = "extend-zooms-if-still-dropping"
DROP_FRACTION = "drop-fraction-as-needed"

# Flag order tippecanoe receives drop policies in.
_DROP_ORDER = (DROP_DENSEST, EXTEND_ZOOMS, DROP_FRACTION)

PRIMARY = models.CompileProfile(
    name="primary",
    max_zoom=10,
    min_zoom=2,
    simplification=10,
    buffer=32,
    base_zoom=8,
    drop_policy=frozenset({DROP_DENSEST, EXTEND_ZOOMS}),
    extra_flags=("--hilbert",),
)

FALLBACK = models.CompileProfile(
    name="fallback",
    max_zoom=8,
    min_zoom=2,
    simplification=20,
    buffer=16,
    base_zoom=6,
    drop_policy=frozenset({DROP_DENSEST, DROP_FRACTION}),
    extra_flags=("--hilbert",),
)


def is_degradation_of(
    fallback: models.CompileProfile, primary: models.CompileProfile
) -> bool:
    """Check that ``fallback`` is no more precise than ``primary``.

    The fallback must simplify at least as hard, cover an equal or lower
    zoom range, and keep every drop policy except zoom extension, which
    only adds detail.
    """
    return (
        fallback.simplification >= primary.simplification
        and fallback.max_zoom <= primary.max_zoom
        and fallback.base_zoom <= primary.base_zoom
        and fallback.min_zoom >= primary.min_zoom
        and fallback.buffer <= primary.buffer
        and (primary.drop_policy - {EXTEND_ZOOMS}) <= fallback.drop_policy
    )


def _drop_flags(policy: frozenset[str]) -> list[str]:
    known = [f"--{flag}" for flag in _DROP_ORDER if flag in policy]
    unknown = sorted(f"--{flag}" for flag in policy - set(_DROP_ORDER))
    return known + unknown


def build_arguments(
    profile: models.CompileProfile,
    *,
    input_path: pathlib.Path,
    output_path: pathlib.Path,
    tileset_name: str,
    layer_name: str,
    executable: str = "tippecanoe",
) -> list[str]:
    """Translate a profile into a tippecanoe command line.

    Args:
        profile: Parameter profile to render.
        input_path: GeoJSON file to compile.
        output_path: MBTiles archive to write.
        tileset_name: Human-readable tileset name (``--name``).
        layer_name: Vector layer name (``--layer``).
        executable: tippecanoe binary name or path.

    Returns:
        Argument list ready for subprocess execution.
    """
    args = [
        executable,
        "-o",
        str(output_path),
        f"--maximum-zoom={profile.max_zoom}",
        f"--minimum-zoom={profile.min_zoom}",
        f"--simplification={profile.simplification}",
    ]
    if profile.force:
        args.append("--force")
    args += [
        f"--name={tileset_name}",
        f"--layer={layer_name}",
        f"--buffer={profile.buffer}",
        f"--base-zoom={profile.base_zoom}",
        *profile.extra_flags,
        *_drop_flags(profile.drop_policy),
        str(input_path),
    ]
    return args
