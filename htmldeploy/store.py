"""Deployment store: write, list and delete HTML documents under one root.

The store owns the storage root directory. Every deployed file is a direct
child of it, and every operation re-checks that with is_within_root() after
joining a name onto the root, even though sanitized names should never escape.

Write discipline:
    - Random names are written with a plain truncating write.
    - Explicit names are created with an exclusive open ("xb"). If the file
      appeared between the existence check and the create, a fresh
      timestamped name is derived and the create retried.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from .config import Settings
from .errors import InvalidName, NotFound, PathViolation, StorageError, ValidationError
from .naming import disambiguate, normalize_name, resolve_unique_name
from .paths import is_clean_name, is_within_root

_LOG = logging.getLogger(__name__)

MAX_CREATE_ATTEMPTS: int = 5
"""How many disambiguated names to try when an exclusive create collides."""

HEALTH_CHECK_FILE: str = ".health-check"
"""Probe file written and removed by check_writable()."""


@dataclass(slots=True)
class DeployedFile:
    """A file present in the storage root.

    Attributes:
        name: File name, unique within the root.
        size: Size in bytes.
        modified: Last modification time (UTC).
    """

    name: str
    size: int
    modified: datetime


@dataclass(slots=True)
class DeployResult:
    """Outcome of a successful deploy.

    Attributes:
        filename: Name actually used, which may differ from the request.
        size: Number of bytes written.
    """

    filename: str
    size: int


class DeploymentStore:
    """Filesystem-backed store of deployed HTML documents.

    Attributes:
        settings: Service configuration.
        root: Storage root directory.
    """

    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.root = settings.storage_root
        self.extension = settings.extension

    # =========================================================================
    # Helpers
    # =========================================================================

    def ensure_root(self) -> Path:
        """Create the storage root if it does not exist yet."""
        try:
            self.root.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create storage root: {e}") from e
        return self.root

    def _guarded_path(self, name: str) -> Path:
        """Join a name onto the root and verify it stays inside."""
        path = self.root / name
        if not is_within_root(path, self.root):
            _LOG.warning("Path violation for name %r", name)
            raise PathViolation("Illegal file path")
        return path

    def _validate_existing_name(self, name: str) -> None:
        if not name:
            raise InvalidName("Filename is required")
        if not is_clean_name(name):
            raise InvalidName("Invalid filename")

    def _encode(self, content: str | bytes | None) -> bytes:
        if not isinstance(content, (str, bytes, bytearray)):
            raise ValidationError("HTML content is required")
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        if not data:
            raise ValidationError("HTML content is required")
        if len(data) > self.settings.max_content_size:
            limit_mb = self.settings.max_content_size // (1024 * 1024)
            raise ValidationError(f"HTML content exceeds {limit_mb} MB limit")
        return data

    # =========================================================================
    # Operations
    # =========================================================================

    def deploy(self, content: str | bytes | None, requested_name: str | None = None) -> DeployResult:
        """Write a document under a unique, sanitized name.

        Args:
            content: HTML text or bytes. Text is encoded as UTF-8.
            requested_name: Optional caller-chosen name, with or without ".html".

        Returns:
            DeployResult with the final name and byte count.

        Raises:
            ValidationError: Content is empty or larger than the limit.
            PathViolation: Resolved path escapes the root.
            StorageError: The write failed.
        """
        data = self._encode(content)
        self.ensure_root()

        try:
            name, explicit = resolve_unique_name(self.root, requested_name, self.extension)
        except OSError as e:
            raise StorageError(f"Failed to check name {requested_name!r}: {e}") from e
        path = self._guarded_path(name)

        try:
            if explicit:
                base_name = normalize_name(requested_name, self.extension)
                name = self._create_exclusive(base_name, name, path, data)
            else:
                path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to write {name}: {e}") from e

        _LOG.info("Deployed %s (%d bytes)", name, len(data))
        return DeployResult(filename=name, size=len(data))

    def _create_exclusive(self, base_name: str, name: str, path: Path, data: bytes) -> str:
        """Create a new file without ever replacing an existing one.

        Args:
            base_name: Normalized requested name, used to derive new candidates.
            name: First candidate (base_name, or already disambiguated).
            path: Guarded path of the first candidate.
            data: Bytes to write.

        Returns:
            The name the file was finally created under.
        """
        last_ms = 0
        for attempt in range(MAX_CREATE_ATTEMPTS):
            try:
                with path.open("xb") as f:
                    f.write(data)
                return name
            except FileExistsError:
                _LOG.info("Name %s taken during deploy (attempt %d), renaming", name, attempt + 1)
                # Never reuse a timestamp within one deploy
                last_ms = max(time.time_ns() // 1_000_000, last_ms + 1)
                name = disambiguate(base_name, now_ms=last_ms, extension=self.extension)
                path = self._guarded_path(name)
        raise StorageError(f"Could not find a free name for {base_name}")

    def list_files(self) -> list[DeployedFile]:
        """List deployed files directly under the root, sorted by name.

        Raises:
            StorageError: The root could not be read.
        """
        self.ensure_root()
        files = []
        try:
            for entry in sorted(self.root.iterdir(), key=lambda p: p.name):
                if not entry.name.endswith(self.extension) or not entry.is_file():
                    continue
                stat = entry.stat()
                files.append(DeployedFile(
                    name=entry.name,
                    size=stat.st_size,
                    modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
                ))
        except OSError as e:
            raise StorageError(f"Failed to list files: {e}") from e
        return files

    def delete(self, name: str) -> None:
        """Remove a deployed file.

        The name is rejected before any filesystem access if it contains a
        separator or parent reference, or if sanitizing it would change it.

        Raises:
            InvalidName: The name is empty or unsafe.
            PathViolation: Resolved path escapes the root.
            NotFound: No such file.
            StorageError: Removal failed for another reason.
        """
        self._validate_existing_name(name)
        path = self._guarded_path(name)
        try:
            path.unlink()
        except (FileNotFoundError, IsADirectoryError) as e:
            raise NotFound(f"File not found: {name}") from e
        except OSError as e:
            raise StorageError(f"Failed to delete {name}: {e}") from e
        _LOG.info("Deleted %s", name)

    def resolve(self, name: str) -> Path:
        """Return the path of an existing deployed file for static serving.

        Raises:
            NotFound: The name is unsafe or no such regular file exists.
            PathViolation: Resolved path escapes the root.
        """
        if not is_clean_name(name):
            raise NotFound("File not found")
        path = self._guarded_path(name)
        if not path.is_file():
            raise NotFound("File not found")
        return path

    def check_writable(self) -> None:
        """Verify the root accepts writes by creating and removing a probe file.

        Raises:
            StorageError: The probe could not be written or removed.
        """
        self.ensure_root()
        probe = self.root / HEALTH_CHECK_FILE
        try:
            probe.write_text("ok")
            probe.unlink()
        except OSError as e:
            raise StorageError(f"Storage root not writable: {e}") from e
