"""Object key naming for source chunks and published tilesets.

Input chunks live at ``<prefix>/chunk<N>.geojson``; the tileset built from
one is published beside them under ``<prefix>/vector-tiles/chunk<N>.mbtiles``.
"""

from __future__ import annotations

import posixpath

SOURCE_SUFFIX = ".geojson"
TILESET_SUFFIX = ".mbtiles"
TILESET_DIRNAME = "vector-tiles"


def chunk_basename(index: int) -> str:
    if index < 1:
        raise ValueError(f"chunk index must be >= 1, got {index}")
    return f"chunk{index}"


def source_key(dataset_prefix: str, index: int) -> str:
    """Key of the raw GeoJSON for chunk ``index``."""
    return posixpath.join(
        dataset_prefix.strip("/"), chunk_basename(index) + SOURCE_SUFFIX
    )


def destination_key_for(source: str) -> str:
    """Rewrite a source key into the key its tileset is published under.

    The directory part gains a ``vector-tiles`` child and the extension is
    swapped for ``.mbtiles``; the basename stem is kept.

    Example:
        >>> destination_key_for("epa/chunk3.geojson")
        'epa/vector-tiles/chunk3.mbtiles'
    """
    directory, filename = posixpath.split(source)
    stem, _ = posixpath.splitext(filename)
    if not stem:
        raise ValueError(f"source key has no basename: {source!r}")
    return posixpath.join(directory, TILESET_DIRNAME, stem + TILESET_SUFFIX)
