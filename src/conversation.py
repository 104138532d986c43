import itertools
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

import httpx

from api_client import AgentDescriptor, GatewayClient, GatewayError
from audio import AudioBlob

logger = logging.getLogger(__name__)

FALLBACK_REPLY = (
    "Sorry, I couldn't get a response from the agent. "
    "The backend may be unreachable, please try again in a moment."
)


class Role(Enum):
    USER = "user"
    AGENT = "agent"


class NoAgentSelectedError(RuntimeError):
    pass


@dataclass(frozen=True)
class Message:
    id: str
    role: Role
    text: str
    audio_url: Optional[str] = None


class ConversationController:
    """Message history for the selected agent plus the request round trip."""

    def __init__(self, client: GatewayClient) -> None:
        self.client = client
        self.agent_id: Optional[str] = None
        self.is_loading = False
        self._messages: List[Message] = []
        self._ids = itertools.count(1)

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    async def agents(self) -> List[AgentDescriptor]:
        return await self.client.get_agents()

    def select_agent(self, agent_id: Optional[str]) -> None:
        self.agent_id = agent_id
        self.reset()

    def reset(self) -> None:
        self._messages = []

    def _append(self, role: Role, text: str, audio_url: Optional[str] = None) -> Message:
        message = Message(
            id=f"{int(time.time() * 1000)}-{next(self._ids)}",
            role=role,
            text=text,
            audio_url=audio_url,
        )
        self._messages.append(message)
        return message

    async def submit(self, prompt: str, file: Optional[AudioBlob] = None) -> Message:
        """Send one user turn and append the agent's reply (or the fallback)."""
        if not self.agent_id:
            raise NoAgentSelectedError("No agent selected")

        self.is_loading = True
        try:
            user_text = f"{prompt} [Uploaded: {file.name}]" if file else prompt
            self._append(Role.USER, user_text)
            try:
                if file is not None:
                    reply = await self.client.send_audio(self.agent_id, file)
                else:
                    reply = await self.client.send_text(self.agent_id, prompt)
            except (GatewayError, httpx.HTTPError, KeyError, ValueError) as e:
                logger.error(f"Agent request failed: {e}")
                return self._append(Role.AGENT, FALLBACK_REPLY)
            return self._append(Role.AGENT, reply.reply_text, self.client.audio_url(reply.audio_url))
        finally:
            self.is_loading = False
