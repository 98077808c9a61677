"""Deploy Website API - publish HTML documents over plain HTTP.

This FastAPI service stores HTML documents under a single storage root and
serves them back as static files. Documents arrive three ways:

1. **Inline**: POST /api/deploy with {"html": "...", "filename": "..."}
2. **Upload**: POST /api/upload with a multipart "file" field
3. **Remote fetch**: POST /api/deploy with {"url": "..."} (when enabled)

Endpoints:
    GET    /                       - Service description
    POST   /api/deploy, /deploy    - Deploy inline HTML or a URL
    POST   /api/upload             - Deploy an uploaded HTML file
    GET    /api/list, /list        - List deployed files
    DELETE /api/delete/{filename}  - Delete a deployed file
    GET    /files/{name}           - Serve a deployed file (also /website/{name})
    GET    /health                 - Health check (503 if storage not writable)
    POST   /mcp                    - MCP JSON-RPC façade

Security:
    - Mutating endpoints require X-API-Key when require_auth is on
    - Every file name is sanitized and every path checked against the root
    - Raw error text is hidden outside development
"""

from __future__ import annotations

import hmac
import json
import logging
import shutil
import tempfile
import time
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from fastapi import Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from . import mcp
from .config import SERVICE_NAME, SERVICE_VERSION, Settings
from .errors import AuthError, DeployError, StorageError, ValidationError
from .ingest import check_upload_type, deploy_from_url, deploy_inline, deploy_staged_upload
from .store import DeploymentStore, DeployResult

_LOG = logging.getLogger(__name__)

GENERIC_ERROR: str = "Internal server error"
"""Message substituted for unexposed errors outside development."""

STATIC_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "SAMEORIGIN",
}
"""Headers added to every served deployed file."""


# =============================================================================
# Request Models
# =============================================================================


class DeployRequest(BaseModel):
    """Request body for JSON deployment.

    Attributes:
        html: HTML content. Typed loosely so a non-string gets a 400, not a 422.
        filename: Optional name, with or without ".html".
        url: Optional URL to fetch the HTML from (remote fetch only).
    """

    html: Any = None
    filename: str | None = None
    url: str | None = None


# =============================================================================
# Application Factory
# =============================================================================


def create_app(settings: Settings, store: DeploymentStore | None = None) -> FastAPI:
    """Build the FastAPI application for the given configuration.

    Args:
        settings: Immutable service configuration.
        store: Optional pre-built store (defaults to one over settings.storage_root).

    Returns:
        The configured FastAPI app.
    """
    store = store or DeploymentStore(settings)
    store.ensure_root()

    app = FastAPI(title="Deploy Website API", version=SERVICE_VERSION)
    app.state.settings = settings
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials="*" not in settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE"],
        allow_headers=["*"],
    )

    def error_message(exc: DeployError) -> str:
        if exc.expose or settings.is_development:
            return exc.message
        return GENERIC_ERROR

    # =========================================================================
    # Error Handling
    # =========================================================================

    @app.exception_handler(DeployError)
    async def deploy_error_handler(request: Request, exc: DeployError) -> JSONResponse:
        if exc.status_code >= 500:
            _LOG.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": error_message(exc)},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        detail = "; ".join(str(err.get("msg", "")) for err in exc.errors()) or "Invalid request"
        return JSONResponse(status_code=400, content={"success": False, "error": detail})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        _LOG.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if settings.is_development else GENERIC_ERROR
        return JSONResponse(status_code=500, content={"success": False, "error": message})

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration_ms = (time.monotonic() - start) * 1000
        client = request.client.host if request.client else "-"
        _LOG.info(
            "%s %s - %d - %.0fms - %s",
            request.method, request.url.path, response.status_code, duration_ms, client,
        )
        return response

    # =========================================================================
    # Authentication
    # =========================================================================

    async def verify_api_key(request: Request, x_api_key: str | None = Header(None)) -> None:
        """Check the X-API-Key header when auth is enabled.

        Raises:
            AuthError: Missing or wrong key.
        """
        if not settings.require_auth:
            return
        if not x_api_key or not hmac.compare_digest(x_api_key.encode(), settings.api_key.encode()):
            client = request.client.host if request.client else "-"
            _LOG.warning("Unauthorized access attempt: %s - %s %s", client, request.method, request.url.path)
            raise AuthError("Unauthorized - API Key required")

    def deployed_response(result: DeployResult, message: str) -> dict:
        return {
            "success": True,
            "filename": result.filename,
            "url": settings.file_url(result.filename),
            "message": message,
            "server": settings.server_ip,
        }

    # =========================================================================
    # Service Description
    # =========================================================================

    @app.get("/")
    async def describe() -> dict:
        """Describe the service and its endpoints."""
        auth = settings.require_auth
        endpoints = {
            "deploy": {"method": "POST", "path": "/api/deploy", "auth": auth,
                       "body": {"html": "string (required unless url)", "filename": "string (optional)"}},
            "upload": {"method": "POST", "path": "/api/upload", "auth": auth,
                       "body": {"file": "multipart HTML file", "filename": "string (optional)"}},
            "list": {"method": "GET", "path": "/api/list", "auth": False},
            "delete": {"method": "DELETE", "path": "/api/delete/{filename}", "auth": auth},
            "files": {"method": "GET", "path": "/files/{filename}", "auth": False},
            "mcp": {"method": "POST", "path": "/mcp", "auth": auth},
        }
        if settings.allow_remote_fetch:
            endpoints["deploy"]["body"]["url"] = "string (optional) - fetch HTML from this URL"
        return {
            "service": "Deploy Website API",
            "version": SERVICE_VERSION,
            "server": settings.server_ip,
            "baseUrl": settings.base_url,
            "security": {
                "authentication": "API Key required (X-API-Key header)" if auth else "disabled",
                "maxFileSize": f"{settings.max_content_size // (1024 * 1024)}MB",
            },
            "endpoints": endpoints,
        }

    # =========================================================================
    # Deployment Endpoints
    # =========================================================================

    @app.post("/api/deploy", dependencies=[Depends(verify_api_key)])
    @app.post("/deploy", dependencies=[Depends(verify_api_key)], include_in_schema=False)
    async def deploy(body: DeployRequest) -> dict:
        """Deploy inline HTML, or fetch it from a URL when remote fetch is on."""
        if body.url and not body.html:
            if not settings.allow_remote_fetch:
                raise ValidationError("Deploying by URL is disabled")
            result = await deploy_from_url(store, body.url, body.filename)
        else:
            result = deploy_inline(store, body.html, body.filename)
        return deployed_response(result, "Website deployed successfully")

    @app.post("/api/upload", dependencies=[Depends(verify_api_key)])
    async def upload(
        file: UploadFile | None = File(None),
        filename: str | None = Form(None),
    ) -> dict:
        """Deploy an uploaded HTML file (multipart field "file")."""
        if file is None:
            raise ValidationError("Please upload a file")
        check_upload_type(file.filename, file.content_type)

        # Stage the upload on disk; deploy_staged_upload removes it on every path
        with tempfile.NamedTemporaryFile(prefix="upload_", suffix=".html", delete=False) as tmp:
            tmp_path = Path(tmp.name)
            try:
                shutil.copyfileobj(file.file, tmp)
            except OSError as e:
                tmp_path.unlink(missing_ok=True)
                raise StorageError(f"Failed to stage upload: {e}") from e

        if tmp_path.stat().st_size > settings.max_content_size:
            tmp_path.unlink(missing_ok=True)
            raise ValidationError(
                f"Upload too large. Maximum size is {settings.max_content_size // (1024 * 1024)} MB"
            )

        result = deploy_staged_upload(store, tmp_path, filename, file.filename)
        return deployed_response(result, "File uploaded and deployed successfully")

    @app.get("/api/list")
    @app.get("/list", include_in_schema=False)
    async def list_files() -> dict:
        """List all deployed files with their URLs."""
        files = [
            {
                "filename": f.name,
                "url": settings.file_url(f.name),
                "size": f.size,
                "modified": f.modified.isoformat(),
            }
            for f in store.list_files()
        ]
        return {"success": True, "count": len(files), "files": files, "server": settings.server_ip}

    @app.delete("/api/delete/{filename:path}", dependencies=[Depends(verify_api_key)])
    async def delete_file(filename: str) -> dict:
        """Delete a deployed file by name.

        The path converter lets separators through so store.delete rejects
        traversal payloads with 400 instead of the router answering 404.
        """
        store.delete(filename)
        return {"success": True, "message": f"File {filename} deleted"}

    # =========================================================================
    # MCP Façade
    # =========================================================================

    @app.post("/mcp", dependencies=[Depends(verify_api_key)])
    async def mcp_endpoint(request: Request) -> JSONResponse:
        """MCP JSON-RPC endpoint (initialize, tools/list, tools/call)."""
        try:
            payload = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({
                "jsonrpc": "2.0",
                "id": None,
                "error": {"code": -32700, "message": "Parse error"},
            })
        return JSONResponse(await mcp.handle_rpc(store, settings, payload))

    # =========================================================================
    # Health Check
    # =========================================================================

    @app.get("/health")
    async def health() -> JSONResponse:
        """Health check: verifies the storage root accepts writes."""
        try:
            store.check_writable()
        except StorageError as e:
            _LOG.error("Health check failed: %s", e.message)
            return JSONResponse(status_code=503, content={"status": "error", "error": "Service unavailable"})
        return JSONResponse({
            "status": "ok",
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "server": settings.server_ip,
            "baseUrl": settings.base_url,
            "timestamp": datetime.now(UTC).isoformat(),
        })

    # =========================================================================
    # Static File Serving
    # =========================================================================

    @app.get("/files/{name}")
    @app.get("/website/{name}", include_in_schema=False)
    async def serve_file(name: str) -> FileResponse:
        """Serve a deployed file with anti-sniffing and framing headers."""
        return FileResponse(store.resolve(name), media_type="text/html", headers=STATIC_HEADERS)

    return app


def get_app() -> FastAPI:
    """Factory for `uvicorn --factory htmldeploy.main:get_app`."""
    return create_app(Settings.from_env())
