"""
Agent backend: JSON-RPC 2.0 facade in front of the LLM.

Methods:
- list_agents: the static agent catalog
- process_text: resolve agent_id to its system prompt and ask the LLM

Run with:
    uvicorn agent_server:create_app --factory --port 3000
"""

import logging
import os
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ValidationError

import jsonrpc
from agents import AgentCatalog
from llm_client import LLMClient, LLMError

logger = logging.getLogger(__name__)

CONFIDENCE = 0.95


@dataclass
class AgentServerConfig:
    """Agent server configuration."""
    host: str = "0.0.0.0"
    port: int = 3000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "AgentServerConfig":
        return cls(
            host=os.environ.get("AGENT_SERVER_HOST", "0.0.0.0"),
            port=int(os.environ.get("AGENT_SERVER_PORT", "3000")),
            cors_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()],
        )


class HistoryMessage(BaseModel):
    role: str
    content: str


class ProcessTextParams(BaseModel):
    agent_id: str
    user_text: str
    conversation_history: Optional[List[HistoryMessage]] = None


class AgentDispatcher:
    """Maps JSON-RPC method names to handlers."""

    def __init__(self, catalog: AgentCatalog, llm: LLMClient) -> None:
        self.catalog = catalog
        self.llm = llm
        self.methods = {
            "list_agents": self.list_agents,
            "process_text": self.process_text,
        }

    async def dispatch(self, payload: Any) -> Dict[str, Any]:
        if not isinstance(payload, dict):
            return jsonrpc.failure(None, jsonrpc.INVALID_REQUEST, "Invalid Request: expected a JSON object")
        request_id = payload.get("id")
        try:
            request = jsonrpc.JsonRpcRequest.model_validate(payload)
        except ValidationError as e:
            return jsonrpc.failure(request_id, jsonrpc.INVALID_REQUEST, f"Invalid Request: {e.errors()[0]['msg']}")
        if request.jsonrpc != "2.0":
            return jsonrpc.failure(request.id, jsonrpc.INVALID_REQUEST, "Invalid Request: jsonrpc must be '2.0'")

        logger.info(f"Received JSON-RPC request: method={request.method}")
        handler = self.methods.get(request.method)
        if handler is None:
            return jsonrpc.failure(request.id, jsonrpc.METHOD_NOT_FOUND, f"Method not found: {request.method}")
        return await handler(request)

    async def list_agents(self, request: jsonrpc.JsonRpcRequest) -> Dict[str, Any]:
        agents = [agent.public_info() for agent in self.catalog]
        return jsonrpc.success(request.id, {"agents": agents})

    async def process_text(self, request: jsonrpc.JsonRpcRequest) -> Dict[str, Any]:
        if request.params is None:
            return jsonrpc.failure(
                request.id,
                jsonrpc.INVALID_PARAMS,
                "Invalid params: agent_id and user_text are required",
            )
        try:
            params = ProcessTextParams.model_validate(request.params)
        except ValidationError as e:
            return jsonrpc.failure(request.id, jsonrpc.INVALID_PARAMS, f"Invalid params: {e}")

        agent = self.catalog.get(params.agent_id)
        if agent is None:
            return jsonrpc.failure(request.id, jsonrpc.INVALID_PARAMS, f"Agent not found: {params.agent_id}")

        history = [m.model_dump() for m in params.conversation_history or []]
        start = time.monotonic()
        try:
            completion = await self.llm.generate(
                model=agent.model,
                system_prompt=agent.system_prompt,
                user_text=params.user_text,
                history=history,
            )
        except LLMError as e:
            logger.error(f"LLM call for {agent.id} failed: {e} status={e.status} body={e.body}")
            data: Dict[str, Any] = {"details": str(e)}
            if e.status is not None:
                data["status"] = e.status
                data["body"] = e.body
            return jsonrpc.failure(request.id, jsonrpc.INTERNAL_ERROR, f"Internal error: {e}", data)

        elapsed_ms = int((time.monotonic() - start) * 1000)
        result = {
            "agent_id": agent.id,
            "reply_text": completion.text,
            "metadata": {
                "model": agent.model,
                "tokens_used": completion.tokens_used,
                "processing_time_ms": elapsed_ms,
                "confidence": CONFIDENCE,
            },
        }
        return jsonrpc.success(request.id, result)


def create_app(
    catalog: Optional[AgentCatalog] = None,
    llm: Optional[LLMClient] = None,
    config: Optional[AgentServerConfig] = None,
) -> FastAPI:
    config = config or AgentServerConfig.from_env()
    dispatcher = AgentDispatcher(catalog or AgentCatalog.load(), llm or LLMClient())

    app = FastAPI(
        title="Agent Server",
        description="JSON-RPC agent backend",
        version="0.1.0",
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.dispatcher = dispatcher

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Agent server ready with {len(dispatcher.catalog)} agents")
        logger.info(f"Supported JSON-RPC methods: {', '.join(dispatcher.methods)}")

    @app.post("/")
    async def handle_jsonrpc(request: Request):
        try:
            payload = await request.json()
        except ValueError:
            return jsonrpc.failure(None, jsonrpc.PARSE_ERROR, "Parse error")
        return await dispatcher.dispatch(payload)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "agent-server"}

    return app
