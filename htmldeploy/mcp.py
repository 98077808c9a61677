"""MCP JSON-RPC façade over the deployment store.

Exposes deploy, list and delete as MCP tools on a single JSON-RPC 2.0
endpoint, so an agent can publish HTML without speaking the REST API.

Supported methods:
    initialize                - protocol and capability metadata
    notifications/initialized - acknowledged with an empty result
    tools/list                - deploy_html, list_deployed, delete_deployed
    tools/call                - run one of the tools

Tool results are wrapped as {"content": [{"type": "text", "text": <json>}]}.
Domain failures (bad name, missing file, ...) come back as tool results with
"isError": true; protocol failures use JSON-RPC error codes.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from .config import SERVICE_VERSION, Settings
from .errors import DeployError, ValidationError
from .ingest import deploy_from_url, deploy_inline
from .store import DeploymentStore

_LOG = logging.getLogger(__name__)

PROTOCOL_VERSION: str = "2024-11-05"
SERVER_NAME: str = "deploy-website-mcp"

# JSON-RPC error codes
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RpcError(Exception):
    """A JSON-RPC level failure with its error code."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message


# =============================================================================
# Tool Descriptors
# =============================================================================


def tool_descriptors(settings: Settings) -> list[dict[str, Any]]:
    """Build the tools/list payload.

    The url property on deploy_html is only advertised when remote fetch is
    enabled.
    """
    deploy_properties: dict[str, Any] = {
        "html": {"type": "string", "description": "HTML content to deploy"},
        "filename": {
            "type": "string",
            "description": "Optional file name (without extension); random if omitted",
        },
    }
    if settings.allow_remote_fetch:
        deploy_properties["url"] = {
            "type": "string",
            "description": "Fetch the HTML from this http(s) URL instead of passing it inline",
        }

    return [
        {
            "name": "deploy_html",
            "description": "Deploy an HTML document and return its public URL",
            "inputSchema": {
                "type": "object",
                "properties": deploy_properties,
                "required": [] if settings.allow_remote_fetch else ["html"],
            },
        },
        {
            "name": "list_deployed",
            "description": "List all deployed HTML files with their URLs",
            "inputSchema": {"type": "object", "properties": {}},
        },
        {
            "name": "delete_deployed",
            "description": "Delete a deployed HTML file by name",
            "inputSchema": {
                "type": "object",
                "properties": {
                    "filename": {"type": "string", "description": "File name, e.g. demo.html"},
                },
                "required": ["filename"],
            },
        },
    ]


# =============================================================================
# Tool Implementations
# =============================================================================


async def _tool_deploy_html(store: DeploymentStore, settings: Settings, args: dict) -> dict:
    html = args.get("html")
    url = args.get("url")
    filename = args.get("filename")
    if url and not html:
        if not settings.allow_remote_fetch:
            raise ValidationError("Deploying by URL is disabled")
        result = await deploy_from_url(store, url, filename)
    else:
        result = deploy_inline(store, html, filename)
    return {
        "success": True,
        "filename": result.filename,
        "url": settings.file_url(result.filename),
        "size": result.size,
    }


async def _tool_list_deployed(store: DeploymentStore, settings: Settings, args: dict) -> dict:
    files = store.list_files()
    return {
        "success": True,
        "count": len(files),
        "files": [
            {
                "filename": f.name,
                "url": settings.file_url(f.name),
                "size": f.size,
                "modified": f.modified.isoformat(),
            }
            for f in files
        ],
    }


async def _tool_delete_deployed(store: DeploymentStore, settings: Settings, args: dict) -> dict:
    filename = args.get("filename")
    if not isinstance(filename, str):
        raise RpcError(INVALID_PARAMS, "filename must be a string")
    store.delete(filename)
    return {"success": True, "message": f"File {filename} deleted"}


TOOLS = {
    "deploy_html": _tool_deploy_html,
    "list_deployed": _tool_list_deployed,
    "delete_deployed": _tool_delete_deployed,
}


# =============================================================================
# Dispatcher
# =============================================================================


def _text_result(payload: dict, is_error: bool = False) -> dict:
    return {
        "content": [{"type": "text", "text": json.dumps(payload, ensure_ascii=False)}],
        "isError": is_error,
    }


async def _call_tool(store: DeploymentStore, settings: Settings, params: dict) -> dict:
    name = params.get("name")
    args = params.get("arguments") or {}
    if name not in TOOLS:
        raise RpcError(INVALID_PARAMS, f"Unknown tool: {name}")
    if not isinstance(args, dict):
        raise RpcError(INVALID_PARAMS, "arguments must be an object")

    try:
        payload = await TOOLS[name](store, settings, args)
    except DeployError as e:
        message = e.message if (e.expose or settings.is_development) else "Internal server error"
        _LOG.warning("Tool %s failed: %s", name, e.message)
        return _text_result({"success": False, "error": message}, is_error=True)
    return _text_result(payload)


async def dispatch(store: DeploymentStore, settings: Settings, method: str, params: dict) -> dict:
    """Run one JSON-RPC method and return its result object.

    Raises:
        RpcError: Unknown method or invalid parameters.
    """
    if method == "initialize":
        return {
            "protocolVersion": PROTOCOL_VERSION,
            "capabilities": {"tools": {"listChanged": False}},
            "serverInfo": {"name": SERVER_NAME, "version": SERVICE_VERSION},
        }
    if method == "notifications/initialized":
        return {}
    if method == "tools/list":
        return {"tools": tool_descriptors(settings)}
    if method == "tools/call":
        return await _call_tool(store, settings, params)
    raise RpcError(METHOD_NOT_FOUND, f"Method not found: {method}")


async def handle_rpc(store: DeploymentStore, settings: Settings, payload: Any) -> dict:
    """Handle one JSON-RPC request body and build the response envelope.

    Args:
        store: Deployment store the tools operate on.
        settings: Service configuration.
        payload: Decoded JSON body.

    Returns:
        A JSON-RPC 2.0 response dict with either "result" or "error".
    """
    request_id = payload.get("id") if isinstance(payload, dict) else None

    if not isinstance(payload, dict) or not isinstance(payload.get("method"), str):
        return _error(request_id, INVALID_REQUEST, "Invalid Request")

    params = payload.get("params") or {}
    if not isinstance(params, dict):
        return _error(request_id, INVALID_PARAMS, "params must be an object")

    try:
        result = await dispatch(store, settings, payload["method"], params)
    except RpcError as e:
        return _error(request_id, e.code, e.message)
    except Exception as e:
        _LOG.exception("JSON-RPC method %s failed", payload["method"])
        message = str(e) if settings.is_development else "Internal error"
        return _error(request_id, INTERNAL_ERROR, message)

    return {"jsonrpc": "2.0", "id": request_id, "result": result}


def _error(request_id: Any, code: int, message: str) -> dict:
    return {"jsonrpc": "2.0", "id": request_id, "error": {"code": code, "message": message}}
