import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, PlainTextResponse
from pydantic import BaseModel

from audio_store import AudioStore
from jsonrpc import JsonRpcClient, JsonRpcError
from pipeline import PipelineResult, PipelineStatus, VoicePipeline
from stt import create_stt
from tts import create_tts

logger = logging.getLogger(__name__)


@dataclass
class GatewayConfig:
    """Gateway configuration."""
    agent_server_url: str = "http://localhost:3000"
    audio_dir: str = "public/audio"
    max_upload_bytes: int = 25 * 1024 * 1024
    host: str = "127.0.0.1"
    port: int = 8000
    cors_origins: List[str] = field(default_factory=lambda: ["*"])

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        return cls(
            agent_server_url=os.environ.get(
                "AGENT_SERVER_URL", os.environ.get("MCP_SERVER_URL", "http://localhost:3000")
            ),
            audio_dir=os.environ.get("AUDIO_DIR", "public/audio"),
            max_upload_bytes=int(os.environ.get("MAX_UPLOAD_BYTES", str(25 * 1024 * 1024))),
            host=os.environ.get("GATEWAY_HOST", "127.0.0.1"),
            port=int(os.environ.get("GATEWAY_PORT", "8000")),
            cors_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",") if o.strip()],
        )


# --- Pydantic Models ---
class InputTextRequest(BaseModel):
    agent_id: str
    user_text: str

class AgentInfo(BaseModel):
    id: str
    name: str
    description: str

class AgentReplyResponse(BaseModel):
    reply_text: str
    audio_url: str
# ---------------------


def _raise_for_result(result: PipelineResult) -> AgentReplyResponse:
    if result.ok and result.reply:
        return AgentReplyResponse(reply_text=result.reply.reply_text, audio_url=result.reply.audio_url)
    status = result.status
    if status is PipelineStatus.TRANSCRIPTION_FAILED:
        code = 422 if result.client_error else 502
        raise HTTPException(status_code=code, detail=f"Transcription failed: {result.error}")
    if status is PipelineStatus.UPSTREAM_FAILED:
        code = 400 if result.client_error else 502
        raise HTTPException(status_code=code, detail=f"Agent call failed: {result.error}")
    if status is PipelineStatus.SYNTHESIS_FAILED:
        raise HTTPException(status_code=502, detail=f"Speech synthesis failed: {result.error}")
    raise HTTPException(status_code=500, detail=f"Failed to save audio file: {result.error}")


def create_app(
    config: Optional[GatewayConfig] = None,
    pipeline: Optional[VoicePipeline] = None,
) -> FastAPI:
    config = config or GatewayConfig.from_env()
    store = pipeline.store if pipeline else AudioStore(config.audio_dir)
    if pipeline is None:
        pipeline = VoicePipeline(
            rpc=JsonRpcClient(config.agent_server_url),
            stt=create_stt(),
            tts=create_tts(),
            store=store,
        )

    app = FastAPI(title="Voice Gateway", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.pipeline = pipeline
    app.state.config = config

    @app.on_event("startup")
    async def startup_event():
        logger.info(f"Gateway forwarding to agent server at {config.agent_server_url}")
        logger.info(f"Audio files will be stored in: {store.directory}")

    @app.get("/health", response_class=PlainTextResponse)
    async def health_check():
        return "OK"

    @app.get("/agents", response_model=List[AgentInfo])
    async def list_agents():
        try:
            agents = await pipeline.list_agents()
        except (JsonRpcError, httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to call agent server list_agents: {e}")
            raise HTTPException(status_code=502, detail="Failed to call agent service")
        logger.info(f"Got {len(agents)} agents from agent server")
        return [AgentInfo(id=a["id"], name=a["name"], description=a.get("description", "")) for a in agents]

    @app.post("/input/text", response_model=AgentReplyResponse)
    async def handle_text_input(request: InputTextRequest):
        logger.info(f"Text input for agent: {request.agent_id}")
        result = await pipeline.run_text(request.agent_id, request.user_text)
        return _raise_for_result(result)

    @app.post("/input/audio", response_model=AgentReplyResponse)
    async def handle_audio_input(
        audio_file: Optional[UploadFile] = File(None),
        agent_id: Optional[str] = Form(None),
    ):
        if audio_file is None or not agent_id:
            raise HTTPException(status_code=400, detail="Missing 'audio_file' or 'agent_id'")
        data = await audio_file.read(config.max_upload_bytes + 1)
        if len(data) > config.max_upload_bytes:
            raise HTTPException(
                status_code=413,
                detail=f"Audio file exceeds {config.max_upload_bytes} bytes",
            )
        if not data:
            raise HTTPException(status_code=400, detail="Audio file is empty")
        logger.info(f"Audio input for agent: {agent_id} ({len(data)} bytes)")
        result = await pipeline.run_audio(
            agent_id,
            data,
            filename=audio_file.filename or "audio.mp3",
            content_type=audio_file.content_type or "audio/mpeg",
        )
        return _raise_for_result(result)

    @app.get("/public/audio/{filename}")
    async def get_audio(filename: str):
        try:
            path = store.resolve(filename)
        except (ValueError, FileNotFoundError):
            raise HTTPException(status_code=404, detail="Audio file not found")
        media_type = "audio/wav" if path.suffix == ".wav" else "audio/mpeg"
        return FileResponse(path, media_type=media_type)

    return app
