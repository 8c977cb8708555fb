"""
Deal Desk — JSON-RPC Pydantic Models
======================================

Request/response envelopes for the line-delimited JSON-RPC 2.0 tool server.
"""
from __future__ import annotations

from datetime import datetime, timezone
from enum import IntEnum
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class RpcErrorCode(IntEnum):
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    APPLICATION_ERROR = -32000
    NOT_FOUND = -32001


ERROR_KINDS = {
    RpcErrorCode.PARSE_ERROR: "ParseError",
    RpcErrorCode.INVALID_REQUEST: "InvalidRequest",
    RpcErrorCode.METHOD_NOT_FOUND: "MethodNotFound",
    RpcErrorCode.INVALID_PARAMS: "InvalidParams",
    RpcErrorCode.INTERNAL_ERROR: "InternalError",
    RpcErrorCode.APPLICATION_ERROR: "ApplicationError",
    RpcErrorCode.NOT_FOUND: "NotFound",
}


class JsonRpcRequest(BaseModel):
    """One request line. A missing id marks a notification."""
    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = "2.0"
    id: Optional[Union[int, str]] = None
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None


class JsonRpcError(BaseModel):
    code: int
    message: str
    kind: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Optional[dict[str, Any]] = None

    @classmethod
    def build(cls, code: RpcErrorCode, message: str, data: dict = None) -> "JsonRpcError":
        return cls(code=int(code), message=message, kind=ERROR_KINDS[code], data=data)


class JsonRpcResponse(BaseModel):
    jsonrpc: str = "2.0"
    id: Optional[Union[int, str]] = None
    result: Any = None
    error: Optional[JsonRpcError] = None

    def to_payload(self) -> dict:
        if self.error is not None:
            body = self.model_dump(mode="json", exclude={"result"})
            body["error"] = self.error.model_dump(mode="json", exclude_none=True)
        else:
            body = self.model_dump(mode="json", exclude={"error"})
        return body


class ToolDefinition(BaseModel):
    """Tool metadata advertised through tools/list."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )
