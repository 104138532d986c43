"""Result types for the gateway's reply pipeline.

Every stage (transcribe, forward to the agent server, synthesize, store)
reports its outcome through one tagged result so handlers and tests can tell
which stage failed.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import httpx

from audio_store import AudioStore
from jsonrpc import JsonRpcClient, JsonRpcError
from stt import TranscriptionError
from tts import SynthesisError

logger = logging.getLogger(__name__)


class PipelineStatus(Enum):
    """Outcome of a single gateway request."""
    OK = "ok"
    TRANSCRIPTION_FAILED = "transcription_failed"
    UPSTREAM_FAILED = "upstream_failed"
    SYNTHESIS_FAILED = "synthesis_failed"
    STORAGE_FAILED = "storage_failed"


@dataclass
class AgentReply:
    reply_text: str
    audio_url: str


@dataclass
class PipelineResult:
    status: PipelineStatus
    reply: Optional[AgentReply] = None
    transcript: Optional[str] = None
    error: Optional[str] = None
    # set when the agent server rejected the request itself (bad agent id, bad params)
    client_error: bool = False

    @property
    def ok(self) -> bool:
        return self.status is PipelineStatus.OK


class VoicePipeline:
    """Transcribe (optional) -> agent server -> TTS -> audio store."""

    def __init__(self, rpc: JsonRpcClient, stt, tts, store: AudioStore) -> None:
        self.rpc = rpc
        self.stt = stt
        self.tts = tts
        self.store = store

    async def list_agents(self) -> list:
        result = await self.rpc.call("list_agents")
        agents = result.get("agents") if isinstance(result, dict) else None
        if not isinstance(agents, list) or not all(isinstance(a, dict) and "id" in a and "name" in a for a in agents):
            raise ValueError("Agent server returned a malformed agent list")
        return agents

    async def run_text(self, agent_id: str, user_text: str) -> PipelineResult:
        try:
            reply_text = await self._ask_agent(agent_id, user_text)
        except JsonRpcError as e:
            return PipelineResult(
                PipelineStatus.UPSTREAM_FAILED,
                error=e.message,
                client_error=e.is_client_error,
            )
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Failed to call agent server: {e}")
            return PipelineResult(PipelineStatus.UPSTREAM_FAILED, error=str(e))

        try:
            audio = await self.tts.synthesize(reply_text)
        except SynthesisError as e:
            return PipelineResult(PipelineStatus.SYNTHESIS_FAILED, error=str(e))

        try:
            filename = self.store.save(audio, self.tts.extension)
        except OSError as e:
            logger.error(f"Failed to save audio file: {e}")
            return PipelineResult(PipelineStatus.STORAGE_FAILED, error=str(e))

        audio_url = self.store.url_for(filename)
        logger.info(f"Audio saved to: {audio_url}")
        return PipelineResult(PipelineStatus.OK, reply=AgentReply(reply_text, audio_url))

    async def run_audio(
        self,
        agent_id: str,
        audio: bytes,
        filename: str,
        content_type: str,
    ) -> PipelineResult:
        try:
            transcript = await self.stt.transcribe(audio, filename=filename, content_type=content_type)
        except TranscriptionError as e:
            logger.error(f"Transcription failed: {e}")
            return PipelineResult(PipelineStatus.TRANSCRIPTION_FAILED, error=str(e))
        if not transcript:
            return PipelineResult(
                PipelineStatus.TRANSCRIPTION_FAILED,
                error="Transcription produced no text",
                client_error=True,
            )

        result = await self.run_text(agent_id, transcript)
        result.transcript = transcript
        return result

    async def _ask_agent(self, agent_id: str, user_text: str) -> str:
        params: Dict[str, Any] = {"agent_id": agent_id, "user_text": user_text}
        result = await self.rpc.call("process_text", params)
        reply = result.get("reply_text")
        if not isinstance(reply, str):
            raise ValueError("Agent server response is missing reply_text")
        logger.info(f"Got agent reply ({len(reply)} chars) from {agent_id}")
        return reply
