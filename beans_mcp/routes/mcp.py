"""
MCP over HTTP (JSON-RPC 2.0).

A single ``POST /mcp`` endpoint accepting one request or a batch. Supported
methods: ``initialize``, ``ping``, ``tools/list``, ``tools/call`` and any
``notifications/*``. Notifications get no response body.
"""

from __future__ import annotations

import json
import time
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from ..mcp.tools import ToolRegistry
from ..utils.errors import (
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_ERROR,
    BeansError,
    ValidationFailure,
    jsonrpc_error,
)
from ..utils.logging import get_logger

logger = get_logger("http")

router = APIRouter()

PROTOCOL_VERSION = "2025-06-18"


def get_registry(request: Request) -> ToolRegistry:
    return request.app.state.registry


def _result(req_id: Any, result: Dict[str, Any]) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "result": result, "id": req_id}


def _initialize_result(request: Request, params: Dict[str, Any]) -> Dict[str, Any]:
    settings = request.app.state.settings
    return {
        "protocolVersion": params.get("protocolVersion") or PROTOCOL_VERSION,
        "serverInfo": {"name": settings.server_name, "version": settings.server_version},
        "capabilities": {"tools": {"listChanged": False}},
    }


async def _call_tool(registry: ToolRegistry, req_id: Any, params: Dict[str, Any]) -> Dict[str, Any]:
    name = params.get("name")
    arguments = params.get("arguments") or {}
    if not isinstance(name, str) or name not in registry:
        return jsonrpc_error(INVALID_PARAMS, "Invalid params", req_id=req_id, data=f"Unknown tool: {name}")
    if not isinstance(arguments, dict):
        return jsonrpc_error(INVALID_PARAMS, "Invalid params", req_id=req_id, data="arguments must be an object")

    try:
        result = await registry.call(name, arguments)
    except ValidationFailure as exc:
        return jsonrpc_error(INVALID_PARAMS, "Invalid params", req_id=req_id, data=exc.message)
    except BeansError as exc:
        return jsonrpc_error(SERVER_ERROR, exc.message, req_id=req_id, data={"code": exc.code})
    except OSError as exc:
        return jsonrpc_error(SERVER_ERROR, str(exc), req_id=req_id, data={"code": "io_error"})
    except Exception as exc:
        return jsonrpc_error(
            SERVER_ERROR,
            "Internal error",
            req_id=req_id,
            internal_message=f"tools/call {name} failed: {exc!r}",
        )

    return _result(
        req_id,
        {
            "content": [{"type": "text", "text": json.dumps(result, indent=2, default=str)}],
            "isError": False,
        },
    )


async def handle_message(request: Request, message: Any) -> Optional[Dict[str, Any]]:
    """Process one JSON-RPC message. Returns ``None`` for notifications."""
    if not isinstance(message, dict):
        return jsonrpc_error(INVALID_REQUEST, "Invalid Request", data="message must be an object")

    req_id = message.get("id")
    method = message.get("method")
    is_notification = "id" not in message

    if message.get("jsonrpc") != "2.0":
        return jsonrpc_error(INVALID_REQUEST, "Invalid Request", req_id=req_id, data="jsonrpc field must be '2.0'")
    if not isinstance(method, str) or not method:
        return jsonrpc_error(INVALID_REQUEST, "Invalid Request", req_id=req_id, data="method field is required")

    params = message.get("params") or {}
    if not isinstance(params, dict):
        return jsonrpc_error(INVALID_PARAMS, "Invalid params", req_id=req_id, data="params must be an object")

    if method.startswith("notifications/"):
        logger.debug(f"MCP_NOTIFICATION | {method}")
        return None

    logger.info(f"MCP_METHOD | {method}")
    registry = get_registry(request)

    if method == "initialize":
        response = _result(req_id, _initialize_result(request, params))
    elif method == "ping":
        response = _result(req_id, {})
    elif method == "tools/list":
        response = _result(req_id, {"tools": [spec.to_dict() for spec in registry.specs]})
    elif method == "tools/call":
        response = await _call_tool(registry, req_id, params)
    else:
        response = jsonrpc_error(METHOD_NOT_FOUND, "Method not found", req_id=req_id, data=f"Method '{method}' not supported")

    return None if is_notification else response


@router.post("/mcp", tags=["MCP"], summary="MCP JSON-RPC endpoint")
async def mcp_jsonrpc(request: Request):
    start = time.perf_counter()
    raw = await request.body()
    try:
        body = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        return JSONResponse(
            content=jsonrpc_error(PARSE_ERROR, "Parse error", data=str(exc)),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    if isinstance(body, list):
        if not body:
            return JSONResponse(
                content=jsonrpc_error(INVALID_REQUEST, "Invalid Request", data="empty batch"),
                status_code=status.HTTP_400_BAD_REQUEST,
            )
        responses: List[Dict[str, Any]] = []
        for message in body:
            response = await handle_message(request, message)
            if response is not None:
                responses.append(response)
        logger.debug(f"MCP_BATCH | size={len(body)} | {(time.perf_counter() - start) * 1000:.1f}ms")
        if not responses:
            return Response(status_code=status.HTTP_202_ACCEPTED)
        return JSONResponse(content=responses)

    response = await handle_message(request, body)
    if response is None:
        return Response(status_code=status.HTTP_202_ACCEPTED)

    error = response.get("error")
    if error and error["code"] in (INVALID_REQUEST, PARSE_ERROR):
        return JSONResponse(content=response, status_code=status.HTTP_400_BAD_REQUEST)
    return JSONResponse(content=response)
