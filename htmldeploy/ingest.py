"""Ingestion adapters: the three ways an HTML document reaches the store.

    deploy_inline        - text posted directly in a JSON body
    deploy_staged_upload - multipart upload staged to a temporary file
    deploy_from_url      - document fetched from a remote http(s) URL

Each adapter only obtains bytes and a candidate name; naming, size limits and
path checks all live in DeploymentStore.deploy().
"""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

import httpx

from .errors import FetchError, FetchTimeout, ValidationError
from .store import DeploymentStore, DeployResult

_LOG = logging.getLogger(__name__)

ALLOWED_UPLOAD_TYPES: frozenset[str] = frozenset({"text/html"})
"""Content types accepted for multipart uploads (besides any *.html file)."""

ALLOWED_URL_SCHEMES: frozenset[str] = frozenset({"http", "https"})
"""URL schemes the remote-fetch adapter will request."""


# =============================================================================
# Inline Content
# =============================================================================


def deploy_inline(store: DeploymentStore, html: object, filename: str | None = None) -> DeployResult:
    """Deploy HTML text received directly in a request body.

    Raises:
        ValidationError: html is missing, empty or not a string.
    """
    if not html or not isinstance(html, str):
        raise ValidationError("HTML content is required and must be a string")
    return store.deploy(html, filename)


# =============================================================================
# Multipart Upload
# =============================================================================


def check_upload_type(original_name: str | None, content_type: str | None) -> None:
    """Accept only HTML uploads, judged by content type or file extension.

    Raises:
        ValidationError: The upload is not an HTML file.
    """
    media_type = (content_type or "").split(";")[0].strip().lower()
    if media_type in ALLOWED_UPLOAD_TYPES:
        return
    if original_name and original_name.lower().endswith(".html"):
        return
    raise ValidationError("Only HTML files are supported")


def deploy_staged_upload(
    store: DeploymentStore,
    tmp_path: Path,
    filename: str | None = None,
    original_name: str | None = None,
) -> DeployResult:
    """Deploy an uploaded file that has been staged on disk.

    The declared filename wins; otherwise the uploaded file's own name is
    used. The temporary file is removed on every exit path, and a failure to
    remove it is only logged.

    Args:
        store: Target store.
        tmp_path: Path of the staged temporary file.
        filename: Optional name declared in the form.
        original_name: Name the client gave the uploaded file.

    Returns:
        DeployResult from the store.
    """
    try:
        content = tmp_path.read_bytes()
        requested = filename or _upload_stem(original_name)
        return store.deploy(content, requested)
    finally:
        try:
            tmp_path.unlink(missing_ok=True)
        except OSError as e:
            _LOG.warning("Failed to clean up temp file %s: %s", tmp_path, e)


def _upload_stem(original_name: str | None) -> str | None:
    """Strip whatever extension an uploaded file carries, e.g. "page.htm" -> "page"."""
    if not original_name:
        return None
    stem = PurePosixPath(original_name.replace("\\", "/")).stem
    return stem or None


# =============================================================================
# Remote Fetch
# =============================================================================


def name_from_url(url: str, extension: str = ".html") -> str | None:
    """Derive a candidate name from a URL's final path segment.

    Example:
        >>> name_from_url("https://example.com/pages/about.html")
        'about'
    """
    segment = unquote(urlparse(url).path.rstrip("/").rsplit("/", 1)[-1])
    if segment.endswith(extension):
        segment = segment[: -len(extension)]
    return segment or None


async def fetch_remote(
    url: str,
    timeout: float,
    max_size: int,
    client: httpx.AsyncClient | None = None,
) -> bytes:
    """Fetch a document over HTTP with a hard timeout.

    Args:
        url: http or https URL.
        timeout: Timeout in seconds applied to the whole request.
        max_size: Largest body accepted, in bytes.
        client: Optional client to reuse (tests inject a mock transport).

    Returns:
        The response body.

    Raises:
        ValidationError: URL scheme not allowed, or body too large.
        FetchTimeout: The request timed out.
        FetchError: Connection failure or non-success upstream status.
    """
    parsed = urlparse(url)
    if parsed.scheme not in ALLOWED_URL_SCHEMES or not parsed.netloc:
        raise ValidationError("URL must be an absolute http or https URL")

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(timeout=timeout, follow_redirects=True)

    try:
        response = await client.get(url, timeout=timeout)
    except httpx.TimeoutException as e:
        raise FetchTimeout(f"Timed out fetching {url} after {timeout}s") from e
    except httpx.RequestError as e:
        raise FetchError(f"Failed to fetch {url}: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if not response.is_success:
        raise FetchError(
            f"Failed to fetch URL: HTTP {response.status_code}",
            upstream_status=response.status_code,
        )

    body = response.content
    if len(body) > max_size:
        raise ValidationError(f"Fetched content exceeds {max_size // (1024 * 1024)} MB limit")
    _LOG.info("Fetched %s (%d bytes)", url, len(body))
    return body


async def deploy_from_url(
    store: DeploymentStore,
    url: str,
    filename: str | None = None,
    client: httpx.AsyncClient | None = None,
) -> DeployResult:
    """Fetch a remote document and deploy it.

    When no filename is supplied, the URL's last path segment is used.
    """
    settings = store.settings
    body = await fetch_remote(url, settings.fetch_timeout, settings.max_content_size, client)
    requested = filename or name_from_url(url, settings.extension)
    return store.deploy(body, requested)
