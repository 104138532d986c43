import logging
import os
from dataclasses import dataclass
from typing import List, Optional

import httpx

from audio import AudioBlob

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    def __init__(self, status: int, detail: str) -> None:
        super().__init__(f"Gateway returned {status}: {detail}")
        self.status = status
        self.detail = detail


@dataclass(frozen=True)
class AgentDescriptor:
    id: str
    name: str
    description: str


@dataclass(frozen=True)
class AgentReplyResponse:
    reply_text: str
    audio_url: str


class GatewayClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        base_url = base_url or os.environ.get(
            "GATEWAY_URL", os.environ.get("VITE_API_BASE_URL", "http://localhost:8000")
        )
        self.base_url = base_url.rstrip("/")
        # None keeps httpx waiting for as long as the gateway takes
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    @staticmethod
    def _check(response: httpx.Response) -> None:
        if response.is_error:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise GatewayError(response.status_code, str(detail))

    @classmethod
    def _parse_reply(cls, response: httpx.Response) -> AgentReplyResponse:
        cls._check(response)
        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError(response.status_code, "Response is not valid JSON") from e
        if not isinstance(data, dict):
            raise GatewayError(response.status_code, "Response is not a JSON object")
        reply_text = data.get("reply_text")
        audio_url = data.get("audio_url")
        if not isinstance(reply_text, str) or not isinstance(audio_url, str):
            raise GatewayError(response.status_code, "Response is missing reply_text or audio_url")
        return AgentReplyResponse(reply_text=reply_text, audio_url=audio_url)

    async def check_health(self) -> bool:
        try:
            async with self._client() as client:
                response = await client.get("/health")
        except httpx.HTTPError as e:
            logger.error(f"Health check failed: {e}")
            return False
        return response.status_code == 200 and response.text == "OK"

    async def get_agents(self) -> List[AgentDescriptor]:
        async with self._client() as client:
            response = await client.get("/agents")
        self._check(response)
        data = response.json()
        if not isinstance(data, list) or not all(isinstance(a, dict) and "id" in a and "name" in a for a in data):
            raise GatewayError(response.status_code, "Malformed agent list")
        return [
            AgentDescriptor(id=a["id"], name=a["name"], description=a.get("description", ""))
            for a in data
        ]

    async def send_text(self, agent_id: str, user_text: str) -> AgentReplyResponse:
        async with self._client() as client:
            response = await client.post("/input/text", json={"agent_id": agent_id, "user_text": user_text})
        return self._parse_reply(response)

    async def send_audio(self, agent_id: str, audio: AudioBlob) -> AgentReplyResponse:
        files = {"audio_file": (audio.name, audio.data, audio.content_type)}
        async with self._client() as client:
            response = await client.post("/input/audio", data={"agent_id": agent_id}, files=files)
        return self._parse_reply(response)

    def audio_url(self, audio_path: str) -> str:
        """Absolute URL for an audio path returned by the gateway."""
        if audio_path.startswith(("http://", "https://")):
            return audio_path
        if audio_path.startswith("/"):
            return f"{self.base_url}{audio_path}"
        return f"{self.base_url}/{audio_path}"
