"""JSON file storage for collections."""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
import time
from pathlib import Path
from typing import Any

from pipestore.errors import InvalidFormatError, MissingDirectoryError

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class FileLock:
    """Exclusive inter-process lock held on a sidecar ``.lock`` file."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.lock_path = path.with_name(path.name + LOCK_SUFFIX)
        self._handle: Any = None

    def acquire(self) -> None:
        if platform.system() == "Windows":
            import msvcrt

            while True:
                handle = open(self.lock_path, "wb")
                try:
                    msvcrt.locking(handle.fileno(), msvcrt.LK_NBLCK, 1)
                except OSError:
                    handle.close()
                    time.sleep(0.01)
                    continue
                self._handle = handle
                break
        else:
            import fcntl

            self._handle = open(self.lock_path, "wb")
            fcntl.lockf(self._handle, fcntl.LOCK_EX)

    def release(self) -> None:
        if self._handle is None:
            return
        if platform.system() == "Windows":
            import msvcrt

            try:
                msvcrt.locking(self._handle.fileno(), msvcrt.LK_UNLCK, 1)
            except OSError:
                logger.debug("Unlock of %s failed; closing handle", self.lock_path)
        self._handle.close()
        self._handle = None

    def __enter__(self) -> FileLock:
        self.acquire()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()


class JsonFileStorage:
    """Reads and writes a document map as one JSON object.

    An absent file reads as an empty map. Writes go to a temporary file in
    the same directory which then replaces the target, all under an
    exclusive lock.
    """

    def __init__(self, path: Path | str, pretty: bool = True) -> None:
        self.path = Path(path)
        self.pretty = pretty

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> dict[str, Any]:
        """Read the document map from disk.

        Raises:
            InvalidFormatError: If the file is not a JSON object.
        """
        if not self.path.is_file():
            logger.debug("No file at %s; starting empty", self.path)
            return {}

        try:
            with open(self.path, encoding="utf-8") as f:
                content = f.read()
            if not content.strip():
                return {}
            data = json.loads(content)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise InvalidFormatError(f"Invalid JSON in {self.path}: {e}") from e

        # An empty array is how some writers encode an empty map
        if data == []:
            return {}
        if not isinstance(data, dict):
            raise InvalidFormatError(
                f"Expected a JSON object in {self.path}, got {type(data).__name__}"
            )
        logger.debug("Loaded %d records from %s", len(data), self.path)
        return data

    def dumps(self, data: dict[str, Any]) -> str:
        if self.pretty:
            return json.dumps(data, indent=4, ensure_ascii=False)
        return json.dumps(data, ensure_ascii=False, separators=(",", ":"))

    def save(self, data: dict[str, Any]) -> bool:
        """Write the document map to disk.

        Returns:
            True on success, False if the filesystem rejected the write.

        Raises:
            MissingDirectoryError: If the target directory does not exist.
        """
        directory = self.path.parent
        if not directory.is_dir():
            raise MissingDirectoryError(f"Directory {directory} does not exist")

        content = self.dumps(data)
        try:
            with FileLock(self.path):
                fd, temp_path = tempfile.mkstemp(dir=directory, prefix=f".{self.path.name}.", suffix=".tmp")
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(content)
                    os.replace(temp_path, self.path)
                except BaseException:
                    if os.path.exists(temp_path):
                        os.remove(temp_path)
                    raise
        except OSError as e:
            logger.warning("Failed to write %s: %s", self.path, e)
            return False

        logger.debug("Wrote %d records to %s", len(data), self.path)
        return True

    def delete(self) -> bool:
        """Remove the backing file and its lock file. Returns whether the data file existed."""
        existed = self.path.is_file()
        if existed:
            self.path.unlink()
        lock_path = self.path.with_name(self.path.name + LOCK_SUFFIX)
        if lock_path.exists():
            lock_path.unlink()
        return existed
