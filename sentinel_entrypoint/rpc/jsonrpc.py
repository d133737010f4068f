import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RPCErrorCode(Enum):
    ParseError = -32700
    InvalidRequest = -32600
    MethodNotFound = -32601
    InvalidMethodParams = -32602


@dataclass
class RPCFault(Exception):
    error_code: RPCErrorCode
    error_message: str


@dataclass
class JsonRpcRequest:
    method: str
    params: list | dict = field(default_factory=list)
    # None for notifications
    id: Any = None

    @property
    def is_notification(self) -> bool:
        return self.id is None or self.id == "null"


REQUEST_KEYS = {"jsonrpc", "method", "params", "id"}


def parse_json_rpc_request(
    body: str, methods: dict[str, Any]
) -> JsonRpcRequest:
    """
    Decodes a JSON-RPC 2.0 request envelope and checks the method is served.
    Batch requests are not supported.
    """
    try:
        request = json.loads(body)
    except ValueError as err:
        raise RPCFault(RPCErrorCode.ParseError, f"Invalid JSON: {err}")

    if not isinstance(request, dict):
        raise RPCFault(
            RPCErrorCode.InvalidRequest, "Request must be a JSON object")
    if request.get("jsonrpc") != "2.0":
        raise RPCFault(
            RPCErrorCode.InvalidRequest, "Request 'jsonrpc' must be \"2.0\"")
    if not REQUEST_KEYS.issuperset(request):
        unknown_keys = sorted(set(request) - REQUEST_KEYS)
        raise RPCFault(
            RPCErrorCode.InvalidRequest, f"Unknown request fields: {unknown_keys}")

    method = request.get("method")
    if not isinstance(method, str):
        raise RPCFault(
            RPCErrorCode.InvalidRequest, "Request 'method' must be a string")
    if method not in methods:
        raise RPCFault(
            RPCErrorCode.MethodNotFound, f"Method {method} not found")

    params = request.get("params", [])
    if isinstance(params, dict):
        # named params are forwarded as keyword arguments
        if not all(
            isinstance(name, str) and name.isidentifier() for name in params
        ):
            raise RPCFault(
                RPCErrorCode.InvalidMethodParams,
                "Parameter names must be identifiers",
            )
    elif not isinstance(params, list):
        raise RPCFault(
            RPCErrorCode.InvalidRequest,
            "Request 'params' must be an array or an object",
        )

    return JsonRpcRequest(method, params, request.get("id"))
