"""Request-scoped temporary directories for PDF operations."""

from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import List

from .errors import WorkspaceError

logger = logging.getLogger(__name__)


def safe_filename(filename: str | None, default: str = "document.pdf") -> str:
    """Reduce an uploaded filename to a header- and filesystem-safe base name."""
    name = Path(filename or "").name
    cleaned = "".join(
        char if char.isascii() and (char.isalnum() or char in "-_.") else "_"
        for char in name
    )
    cleaned = cleaned.strip("._")
    return cleaned or default


class DocumentWorkspace:
    """
    A uniquely named temporary directory owned by one request.

    Use as a context manager; the directory and everything written into it is
    removed on exit, whether the block succeeded or raised.
    """

    def __init__(self, prefix: str = "fileconv-", root: Path | None = None) -> None:
        self.prefix = prefix
        self.root = root
        self.path: Path | None = None
        self.sources: List[Path] = []

    def __enter__(self) -> "DocumentWorkspace":
        try:
            if self.root is not None:
                self.root.mkdir(parents=True, exist_ok=True)
            self.path = Path(tempfile.mkdtemp(prefix=self.prefix, dir=self.root))
        except OSError as error:
            raise WorkspaceError("Error creating temporary directory") from error
        logger.debug("Created workspace %s", self.path)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.cleanup()
        return False

    def cleanup(self) -> None:
        """Remove the workspace directory if it still exists."""
        if self.path is None:
            return
        path, self.path = self.path, None
        try:
            shutil.rmtree(path)
            logger.debug("Removed workspace %s", path)
        except FileNotFoundError:
            pass
        except OSError as error:
            logger.warning("Failed to remove workspace %s: %s", path, error)

    def _require_path(self) -> Path:
        if self.path is None:
            raise WorkspaceError("Workspace is not open")
        return self.path

    def save(self, filename: str | None, content: bytes, index: int | None = None) -> Path:
        """
        Write an uploaded file into the workspace and record it as a source.

        Parameters:
            filename (str | None): Client-supplied name; only its base name is kept.
            content (bytes): File content.
            index (int | None): When given, prefixes the name so several uploads
                with the same name land on distinct paths.

        Returns:
            Path: Where the content was written.
        """
        name = safe_filename(filename)
        if index is not None:
            name = f"{index:02d}_{name}"
        target = self._require_path() / name
        try:
            target.write_bytes(content)
        except OSError as error:
            raise WorkspaceError("Error saving uploaded file") from error
        self.sources.append(target)
        return target

    @property
    def directory(self) -> Path:
        return self._require_path()

    def file(self, name: str) -> Path:
        """Return a path inside the workspace for an output file."""
        return self._require_path() / name

    def read(self, path: Path) -> bytes:
        try:
            return path.read_bytes()
        except OSError as error:
            raise WorkspaceError(f"Error reading {path.name}") from error

    def outputs(self) -> List[Path]:
        """List regular files written by operations, excluding saved sources, by name."""
        root = self._require_path()
        sources = set(self.sources)
        found = [
            path
            for path in root.rglob("*")
            if path.is_file() and path not in sources
        ]
        return sorted(found, key=lambda path: path.name)
