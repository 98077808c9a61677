"""Filename sanitizing and storage-root containment checks.

Every name that reaches the filesystem goes through this module twice: once
through sanitize_filename() to collapse it to a single safe path segment, and
once through is_within_root() after it has been joined onto the storage root.

Usage:
    from htmldeploy.paths import sanitize_filename, is_within_root

    safe = sanitize_filename("../../etc/passwd")  # "passwd"
    is_within_root(root / safe, root)             # True
"""

from __future__ import annotations

import os
import re
from pathlib import Path

# =============================================================================
# Sanitizer
# =============================================================================

UNSAFE_CHARS_PATTERN: re.Pattern = re.compile(r"[^a-zA-Z0-9_.\-]")
"""Characters not allowed in a deployed file name."""

DOT_RUN_PATTERN: re.Pattern = re.compile(r"\.{2,}")
"""Runs of two or more dots, which could form a parent reference."""

TRAVERSAL_TOKENS: tuple[str, ...] = ("/", "\\", "..")
"""Raw substrings that are never accepted in a name given to delete."""


def _final_segment(name: str) -> str:
    """Return the last path component, treating both / and \\ as separators."""
    return re.split(r"[/\\]", name)[-1]


def sanitize_filename(name: str) -> str:
    """Collapse an arbitrary string into a safe, single-segment file name.

    Leading path components are dropped first, then every character outside
    letters, digits, underscore, hyphen and dot is replaced with "_". Runs of
    dots are collapsed to a single dot so the result can never be "..".

    Args:
        name: Untrusted name, possibly a full path.

    Returns:
        The sanitized name. An empty string means no usable name was supplied.
    """
    if not name:
        return ""
    segment = _final_segment(str(name))
    segment = UNSAFE_CHARS_PATTERN.sub("_", segment)
    segment = DOT_RUN_PATTERN.sub(".", segment)
    if segment.strip(".") == "":
        return ""
    return segment


def has_traversal_tokens(name: str) -> bool:
    """Check whether a raw name contains a separator or parent reference."""
    return any(token in name for token in TRAVERSAL_TOKENS)


def is_clean_name(name: str) -> bool:
    """Check that a name survives the sanitizer unchanged.

    Used by delete and by the static responder, which must refuse anything
    that is not already a name the store could have produced.
    """
    if not name or has_traversal_tokens(name):
        return False
    return sanitize_filename(name) == name


# =============================================================================
# Path Guard
# =============================================================================


def is_within_root(candidate: Path | str, root: Path | str) -> bool:
    """Check that a path resolves to the storage root or somewhere beneath it.

    Both paths are fully resolved (symlinks and ".." removed) before the
    comparison, so a symlink inside the root that points elsewhere fails.

    Args:
        candidate: Path to check, typically root / name.
        root: The storage root directory.

    Returns:
        True if candidate is the root itself or nested inside it.
    """
    resolved = str(Path(candidate).resolve())
    base = str(Path(root).resolve())
    return resolved == base or resolved.startswith(base + os.sep)
