"""Unique file name generation for deployed documents.

Two cases:

1. No name supplied: a random 8-byte hex token plus the extension. Collisions
   are negligible and never re-checked.
2. Explicit name: sanitized, extension appended if absent, and if that file
   already exists the current epoch milliseconds are inserted before the
   extension ("demo.html" -> "demo-1718000000000.html").

The existence check is best-effort. DeploymentStore narrows the window with an
exclusive create, but two requests racing on the same explicit name can still
both see it as free.
"""

from __future__ import annotations

import secrets
import time
from pathlib import Path

from .paths import sanitize_filename

DEFAULT_EXTENSION: str = ".html"
"""Extension every deployed file carries."""

RANDOM_NAME_BYTES: int = 8
"""Entropy of auto-generated names, in bytes."""

MAX_NAME_BYTES: int = 255
"""Longest file name most filesystems accept."""

TIMESTAMP_SUFFIX_RESERVE: int = 24
"""Room kept for a "-<epoch ms>" suffix so a disambiguated name still fits."""


def random_name(extension: str = DEFAULT_EXTENSION) -> str:
    """Generate a random file name, e.g. "3f9a0c1b2d4e5f60.html"."""
    return f"{secrets.token_hex(RANDOM_NAME_BYTES)}{extension}"


def normalize_name(requested: str | None, extension: str = DEFAULT_EXTENSION) -> str | None:
    """Sanitize a requested name and make sure it ends with the extension.

    Args:
        requested: Caller-supplied name, possibly with or without extension.
        extension: Extension to append when missing.

    The base is capped so that base, "-<epoch ms>" and extension together
    stay within MAX_NAME_BYTES, and trailing dots are dropped so appending the
    extension can never form "..".

    Returns:
        The normalized name, or None if nothing usable survived sanitizing.
    """
    if not requested:
        return None
    safe = sanitize_filename(requested)
    base = safe[: -len(extension)] if safe.endswith(extension) else safe
    # Sanitized names are ASCII, so characters and bytes agree
    limit = MAX_NAME_BYTES - len(extension) - TIMESTAMP_SUFFIX_RESERVE
    base = base[:limit].rstrip(".")
    if not base:
        return None
    return f"{base}{extension}"


def split_extension(name: str, extension: str = DEFAULT_EXTENSION) -> tuple[str, str]:
    """Split a name into (base, extension) using the fixed extension when present."""
    if name.endswith(extension) and len(name) > len(extension):
        return name[: -len(extension)], extension
    path = Path(name)
    return path.stem, path.suffix


def disambiguate(name: str, now_ms: int | None = None, extension: str = DEFAULT_EXTENSION) -> str:
    """Insert a millisecond timestamp between base name and extension.

    Args:
        name: An already-normalized name such as "demo.html".
        now_ms: Timestamp to use; defaults to the current epoch milliseconds.
        extension: The fixed extension.

    Returns:
        e.g. "demo-1718000000000.html"
    """
    if now_ms is None:
        now_ms = time.time_ns() // 1_000_000
    base, ext = split_extension(name, extension)
    return f"{base}-{now_ms}{ext}"


def resolve_unique_name(
    root: Path,
    requested: str | None,
    extension: str = DEFAULT_EXTENSION,
) -> tuple[str, bool]:
    """Pick the name a new deployment will be written under.

    Args:
        root: Storage root directory.
        requested: Caller-supplied name, or None.
        extension: The fixed extension.

    Returns:
        Tuple of (name, explicit). explicit is False when the name was
        randomly generated, True when it came from the caller.
    """
    name = normalize_name(requested, extension)
    if name is None:
        return random_name(extension), False

    if (root / name).exists():
        name = disambiguate(name, extension=extension)
    return name, True
