"""Process-wide configuration for the HTML deploy service.

Settings are read from the environment exactly once, at startup, and the
resulting frozen Settings object is passed into DeploymentStore and
create_app(). Nothing else reads os.environ.

Environment Variables:
    PORT: Listening port (default: 3007)
    HOST: Bind address (default: 0.0.0.0)
    WEBSITE_DIR: Storage root for deployed files (default: ./public)
    API_KEY: Shared secret expected in the X-API-Key header
    REQUIRE_AUTH: Require X-API-Key on mutating endpoints (default: true)
    ALLOW_REMOTE_FETCH: Allow deploying by URL (default: false)
    CORS_ORIGIN: Comma-separated allowed origins (default: *)
    SERVER_IP: Public host or IP used in returned URLs (default: detected)
    BASE_URL: Public base URL (default: http://{SERVER_IP}:{PORT})
    NODE_ENV / APP_ENV: "development" or "production" (default: development)
    FETCH_TIMEOUT: Remote fetch timeout in seconds (default: 30)
    MAX_CONTENT_SIZE: Maximum document size in bytes (default: 50 MB)
"""

from __future__ import annotations

import logging
import os
import secrets
import socket
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

_LOG = logging.getLogger(__name__)

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_PORT: int = 3007
"""Port the service listens on when PORT is unset."""

DEFAULT_STORAGE_ROOT: Path = Path("public")
"""Storage root when WEBSITE_DIR is unset, relative to the working directory."""

MAX_CONTENT_SIZE: int = 50 * 1024 * 1024
"""Maximum document size in bytes (50 MB)."""

DEFAULT_FETCH_TIMEOUT: float = 30.0
"""Upper bound in seconds for a remote fetch."""

SERVICE_NAME: str = "deploy-website-api"
"""Service identifier reported by /health."""

SERVICE_VERSION: str = "2.0.0"
"""Version reported by /, /health and the MCP initialize handshake."""

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


def _parse_bool(value: str | None, default: bool) -> bool:
    """Parse an environment flag, falling back to default when unset or garbled."""
    if value is None:
        return default
    lowered = value.strip().lower()
    if lowered in _TRUTHY:
        return True
    if lowered in _FALSY:
        return False
    _LOG.warning("Unrecognized boolean value %r, using default %s", value, default)
    return default


def detect_local_ip() -> str:
    """Find this host's primary non-loopback IPv4 address.

    Connecting a UDP socket sends no packets; it only makes the kernel pick the
    outbound interface, whose address we then read back.

    Returns:
        The IPv4 address, or "localhost" if none could be determined.
    """
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            address = sock.getsockname()[0]
    except OSError:
        return "localhost"
    if not address or address.startswith("127.") or address == "0.0.0.0":
        return "localhost"
    return address


# =============================================================================
# Settings
# =============================================================================


@dataclass(frozen=True)
class Settings:
    """Immutable service configuration.

    Attributes:
        storage_root: Directory holding every deployed file.
        port: Listening port.
        host: Bind address.
        api_key: Shared secret for X-API-Key, or "" when auth is off.
        require_auth: Whether mutating endpoints need X-API-Key.
        allow_remote_fetch: Whether documents may be deployed by URL.
        cors_origins: Allowed CORS origins.
        server_ip: Host or IP advertised in responses.
        base_url: Public URL prefix; files live under {base_url}/files/.
        environment: "development" exposes raw error text, anything else hides it.
        fetch_timeout: Remote fetch timeout in seconds.
        max_content_size: Maximum document size in bytes.
        extension: Extension every deployed file carries.
    """

    storage_root: Path = DEFAULT_STORAGE_ROOT
    port: int = DEFAULT_PORT
    host: str = "0.0.0.0"
    api_key: str = field(default="", repr=False)
    require_auth: bool = False
    allow_remote_fetch: bool = False
    cors_origins: tuple[str, ...] = ("*",)
    server_ip: str = "localhost"
    base_url: str = ""
    environment: str = "development"
    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    max_content_size: int = MAX_CONTENT_SIZE
    extension: str = ".html"
    generated_api_key: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "storage_root", Path(self.storage_root))
        if not self.base_url:
            object.__setattr__(self, "base_url", f"http://{self.server_ip}:{self.port}")
        object.__setattr__(self, "base_url", self.base_url.rstrip("/"))

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def files_url(self) -> str:
        """URL prefix under which deployed files are served."""
        return f"{self.base_url}/files"

    def file_url(self, name: str) -> str:
        """Public URL of a deployed file."""
        return f"{self.files_url}/{name}"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build Settings from environment variables.

        When auth is required and API_KEY is unset, a random key is generated
        so the service never runs with an empty secret. The caller decides
        whether to print it (only in development).

        Args:
            environ: Mapping to read from; defaults to os.environ.

        Returns:
            A populated Settings instance.
        """
        env = os.environ if environ is None else environ

        port = int(env.get("PORT", DEFAULT_PORT))
        require_auth = _parse_bool(env.get("REQUIRE_AUTH"), True)
        api_key = env.get("API_KEY", "")
        generated = False
        if require_auth and not api_key:
            api_key = secrets.token_hex(32)
            generated = True

        origins = tuple(
            origin.strip() for origin in env.get("CORS_ORIGIN", "*").split(",") if origin.strip()
        ) or ("*",)

        server_ip = env.get("SERVER_IP") or detect_local_ip()

        return cls(
            storage_root=Path(env.get("WEBSITE_DIR", str(DEFAULT_STORAGE_ROOT))),
            port=port,
            host=env.get("HOST", "0.0.0.0"),
            api_key=api_key,
            require_auth=require_auth,
            allow_remote_fetch=_parse_bool(env.get("ALLOW_REMOTE_FETCH"), False),
            cors_origins=origins,
            server_ip=server_ip,
            base_url=env.get("BASE_URL", ""),
            environment=env.get("NODE_ENV") or env.get("APP_ENV") or "development",
            fetch_timeout=float(env.get("FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT)),
            max_content_size=int(env.get("MAX_CONTENT_SIZE", MAX_CONTENT_SIZE)),
            generated_api_key=generated,
        )
