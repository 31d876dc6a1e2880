from __future__ import annotations

from typing import Any, Dict, Optional

from .logging import get_logger

logger = get_logger("errors")

# JSON-RPC 2.0 error codes used by the HTTP transport
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
SERVER_ERROR = -32000


class BeansError(Exception):
    """Base class for every failure reported to an MCP client."""

    code = "beans_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationFailure(BeansError):
    """Malformed or out-of-range input, rejected before any backend call."""

    code = "validation_error"


class SandboxViolation(BeansError):
    """A resolved path escapes the directory it is confined to."""

    code = "sandbox_violation"


class CliError(BeansError):
    """The beans CLI could not be run or reported a failure."""

    code = "cli_error"


class CliTimeout(CliError):
    code = "cli_timeout"


class CliOutputTooLarge(CliError):
    code = "cli_output_too_large"


class CliOutputParseError(CliError):
    code = "cli_output_invalid"


class BusinessRuleError(BeansError):
    """The request is well formed but the bean's current state forbids it."""

    code = "business_rule"


class BeanNotFound(BeansError):
    code = "not_found"


class ConfigurationError(BeansError):
    code = "configuration_error"


def jsonrpc_error(
    code: int,
    message: str,
    *,
    req_id: Any = None,
    data: Optional[Any] = None,
    internal_message: Optional[str] = None,
) -> Dict[str, Any]:
    """Build a JSON-RPC error response.

    Args:
        code: JSON-RPC error code
        message: Short error description shown to the client
        req_id: Id of the request being answered
        data: Optional extra detail for the client
        internal_message: Optional detailed message for logging only
    """
    if internal_message:
        logger.error(f"[{code}] Internal: {internal_message}")

    error: Dict[str, Any] = {"code": code, "message": message}
    if data is not None:
        error["data"] = data
    return {"jsonrpc": "2.0", "error": error, "id": req_id}
