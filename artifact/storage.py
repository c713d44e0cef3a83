"""
Local filesystem storage for the fetched artifact
"""
import os
import tempfile
from pathlib import Path

import structlog

from .errors import PersistError

logger = structlog.get_logger(__name__)


class ArtifactStorage:
    def __init__(self, destination):
        if not destination:
            raise ValueError("A destination path must be provided")
        self.destination = Path(destination).expanduser()

    @property
    def directory(self) -> Path:
        return self.destination.parent

    def exists(self) -> bool:
        return self.destination.is_file()

    def read(self) -> bytes:
        try:
            return self.destination.read_bytes()
        except OSError as e:
            raise PersistError(f"Cannot read {self.destination}: {e.strerror or e}")

    def write(self, data: bytes) -> int:
        """Atomically replace the destination with ``data`` and verify the size on disk.

        Returns the number of bytes written.
        """
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistError(f"Cannot create directory {self.directory}: {e.strerror or e}")

        tmp_path = None
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.destination.name}.",
                suffix=".tmp",
                dir=str(self.directory),
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, 'wb') as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.destination)
            tmp_path = None
        except OSError as e:
            raise PersistError(f"Cannot write {self.destination}: {e.strerror or e}")
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()

        written = len(self.read())
        if written != len(data):
            raise PersistError(
                f"Size mismatch after write: {written} bytes on disk, expected {len(data)}"
            )

        logger.info("artifact_saved", path=str(self.destination), size=written)
        return written
