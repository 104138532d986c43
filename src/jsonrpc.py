"""JSON-RPC 2.0 wire models and a small async client."""

import itertools
import logging
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import BaseModel

logger = logging.getLogger(__name__)

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603

RequestId = Union[int, str, None]


class JsonRpcRequest(BaseModel):
    jsonrpc: str
    method: str
    params: Optional[Any] = None
    id: RequestId = None


class JsonRpcErrorObject(BaseModel):
    code: int
    message: str
    data: Optional[Any] = None


class JsonRpcError(Exception):
    """An error object returned by the remote end."""

    def __init__(self, code: int, message: str, data: Any = None) -> None:
        super().__init__(f"{message} (code {code})")
        self.code = code
        self.message = message
        self.data = data

    @property
    def is_client_error(self) -> bool:
        return self.code in (INVALID_REQUEST, METHOD_NOT_FOUND, INVALID_PARAMS)


def success(request_id: RequestId, result: Any) -> Dict[str, Any]:
    return {"jsonrpc": "2.0", "result": result, "id": request_id}


def failure(request_id: RequestId, code: int, message: str, data: Any = None) -> Dict[str, Any]:
    error = JsonRpcErrorObject(code=code, message=message, data=data)
    return {
        "jsonrpc": "2.0",
        "error": error.model_dump(exclude_none=True),
        "id": request_id,
    }


class JsonRpcClient:
    def __init__(
        self,
        url: str,
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.transport = transport
        self._ids = itertools.count(1)

    async def call(self, method: str, params: Optional[Dict[str, Any]] = None) -> Any:
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params or {},
            "id": next(self._ids),
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.url, json=payload)
            response.raise_for_status()
            data = response.json()

        if not isinstance(data, dict):
            raise JsonRpcError(INTERNAL_ERROR, f"Response to {method} is not a JSON object")
        error = data.get("error")
        if error:
            logger.error(f"JSON-RPC {method} returned error: {error}")
            raise JsonRpcError(
                code=int(error.get("code", INTERNAL_ERROR)),
                message=str(error.get("message", "Unknown error")),
                data=error.get("data"),
            )
        if "result" not in data:
            raise JsonRpcError(INTERNAL_ERROR, f"Response to {method} has no result")
        return data["result"]
