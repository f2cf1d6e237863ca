"""
JSON-RPC Protocol Helpers

Parsing and encoding of the newline-delimited JSON-RPC 2.0 messages
exchanged between an MCP client and server.
"""

import json
from typing import Any

from mcpfirewall.policy.models import ACCESS_DENIED_CODE, ACCESS_DENIED_MESSAGE


class MalformedMessage(ValueError):
    """A frame that is not a JSON message object."""


def _reject_constant(name: str) -> Any:
    raise MalformedMessage(f"Non-standard JSON constant: {name}")


class JsonRpcProtocol:
    """
    JSON-RPC 2.0 constants and message helpers.

    Reference: https://www.jsonrpc.org/specification
    """

    VERSION = "2.0"

    # Error codes
    PARSE_ERROR = -32700
    ACCESS_DENIED = ACCESS_DENIED_CODE

    @staticmethod
    def parse_message(line: str) -> dict[str, Any]:
        """
        Parse one frame into a message object.

        Raises:
            MalformedMessage: If the frame is not valid JSON, uses NaN or
                Infinity, or is not a JSON object.
        """
        try:
            message = json.loads(line, parse_constant=_reject_constant)
        except json.JSONDecodeError as e:
            raise MalformedMessage(f"Invalid JSON: {e}") from e
        except RecursionError as e:
            raise MalformedMessage("JSON nested too deeply") from e

        if not isinstance(message, dict):
            raise MalformedMessage(
                f"Expected a JSON object, got {type(message).__name__}"
            )
        return message

    @staticmethod
    def encode_message(message: dict[str, Any]) -> bytes:
        """Serialize a message as one compact newline-terminated line."""
        line = json.dumps(message, separators=(",", ":"))
        return line.encode("utf-8") + b"\n"

    @staticmethod
    def create_error_response(
        request_id: Any,
        code: int,
        message: str,
    ) -> dict[str, Any]:
        """Build a JSON-RPC error response."""
        return {
            "jsonrpc": JsonRpcProtocol.VERSION,
            "id": request_id,
            "error": {
                "code": code,
                "message": message,
            },
        }

    @classmethod
    def create_access_denied(cls, request_id: Any) -> dict[str, Any]:
        return cls.create_error_response(
            request_id, ACCESS_DENIED_CODE, ACCESS_DENIED_MESSAGE
        )

    @classmethod
    def create_parse_error(cls) -> dict[str, Any]:
        return cls.create_error_response(None, cls.PARSE_ERROR, "Parse error")
