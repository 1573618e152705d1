"""Scratch workspace lifecycle for a pipeline run.

The workspace is a single directory that holds every chunk's downloaded
GeoJSON and compiled MBTiles while a run is in progress. It is acquired once
at the start of the run and must not exist once the run ends, whatever the
outcome. ``WorkspaceManager.session`` is the guaranteed-release block used by
the orchestrator:

Example:
    >>> from tilebuild.services.workspace import WorkspaceManager
    >>> manager = WorkspaceManager(Path("temp_processing"))
    >>> with manager.session() as handle:
    ...     (handle.root_path / "chunk1.geojson").write_bytes(b"{}")
    >>> handle.root_path.exists()
    False
"""

from __future__ import annotations

import contextlib
import logging
import shutil
import uuid
from typing import TYPE_CHECKING

from tilebuild import models
from tilebuild.core import exceptions

if TYPE_CHECKING:
    import pathlib
    from collections.abc import Iterator

logger = logging.getLogger(__name__)


class WorkspaceManager:
    """Owns the scratch directory for the lifetime of one run."""

    def __init__(self, root_path: pathlib.Path) -> None:
        self.root_path = root_path

    def acquire(self) -> models.WorkspaceHandle:
        """Create the scratch directory, replacing a stale one.

        A directory left behind by a crashed run is removed first so the
        new run never sees old chunk files.

        Returns:
            Handle owning the workspace root.

        Raises:
            WorkspaceError: if the directory cannot be created or written.
        """
        root = self.root_path.resolve()
        try:
            if root.exists():
                logger.warning("Removing stale workspace %s", root)
                shutil.rmtree(root)
            root.mkdir(parents=True, exist_ok=True)
            probe = root / f".probe-{uuid.uuid4().hex}"
            probe.write_bytes(b"")
            probe.unlink()
        except OSError as e:
            raise exceptions.WorkspaceError(
                f"workspace {root} is not writable: {e}"
            ) from e

        logger.debug("Workspace ready at %s", root)
        return models.WorkspaceHandle(root_path=root, created=True)

    def release(self, handle: models.WorkspaceHandle) -> None:
        """Remove the workspace tree.

        Never raises: a removal failure is logged so that it cannot mask the
        result of the run.
        """
        logger.info("Cleaning up...")
        try:
            shutil.rmtree(handle.root_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error(
                "Could not remove workspace %s: %s", handle.root_path, e
            )
        handle.created = False

    @contextlib.contextmanager
    def session(self) -> Iterator[models.WorkspaceHandle]:
        """Acquire the workspace and release it on every exit path."""
        handle = self.acquire()
        try:
            yield handle
        finally:
            self.release(handle)

    @staticmethod
    def chunk_dir(
        handle: models.WorkspaceHandle, index: int
    ) -> pathlib.Path:
        """Isolated subdirectory for one chunk, used by the worker pool."""
        path = handle.root_path / f"chunk{index}"
        path.mkdir(parents=True, exist_ok=True)
        return path
