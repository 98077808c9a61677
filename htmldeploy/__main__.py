"""Deploy Website API - service entry point."""

import logging
import sys

import uvicorn

from .config import Settings
from .main import create_app

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

_LOG = logging.getLogger("htmldeploy")


def main() -> None:
    """Read configuration, build the app and serve it."""
    settings = Settings.from_env()
    app = create_app(settings)

    _LOG.info("Deploy Website API starting")
    _LOG.info("Server address: %s", settings.server_ip)
    _LOG.info("API base URL: %s", settings.base_url)
    _LOG.info("Storage root: %s", settings.storage_root.resolve())
    _LOG.info("Files served at: %s/", settings.files_url)
    _LOG.info("Authentication: %s", "X-API-Key header" if settings.require_auth else "disabled")
    _LOG.info("Remote fetch: %s", "enabled" if settings.allow_remote_fetch else "disabled")
    if settings.generated_api_key:
        if settings.is_development:
            _LOG.warning("API_KEY not set, using generated key: %s", settings.api_key)
        else:
            _LOG.warning("API_KEY not set, generated a random key; set API_KEY to call mutating endpoints")

    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
