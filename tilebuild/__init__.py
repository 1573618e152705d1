"""Vector tile build pipeline for chunked GeoJSON datasets.

This package downloads GeoJSON chunks from object storage, compiles each one
into an MBTiles archive with tippecanoe, and republishes the archives next to
their sources under a ``vector-tiles/`` prefix.

- A scratch workspace is acquired per run and removed on every exit path
- tippecanoe runs with bounded output capture and an optional deadline
- A chunk whose precise compile fails is retried once with a degraded profile
- The first chunk that cannot be built stops the run with a non-zero exit

See the module docstrings under ``tilebuild.services`` for details.
"""

__version__ = "0.1.0"
