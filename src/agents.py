"""Agent catalog.

An agent pairs an id with a fixed system prompt and model. The catalog is
immutable and loaded once at startup, then injected into the agent server.
"""

import json
import logging
import os
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gemini-2.0-flash-exp"


@dataclass(frozen=True)
class Agent:
    id: str
    name: str
    description: str
    system_prompt: str
    model: str = DEFAULT_MODEL
    capabilities: Tuple[str, ...] = field(default_factory=tuple)

    def public_info(self) -> Dict[str, object]:
        """Descriptor without the system prompt."""
        info = asdict(self)
        info.pop("system_prompt")
        info["capabilities"] = list(self.capabilities)
        return info


DEFAULT_AGENTS: Tuple[Agent, ...] = (
    Agent(
        id="agent_001",
        name="General Assistant",
        description="A helpful general-purpose AI assistant powered by Gemini",
        capabilities=("text", "conversation", "reasoning"),
        system_prompt=(
            "You are a helpful, friendly, and knowledgeable AI assistant. "
            "Provide clear, accurate, and concise responses."
        ),
    ),
    Agent(
        id="agent_002",
        name="Web3 Expert",
        description="Specialized in blockchain, Web3, and cryptocurrency technologies",
        capabilities=("web3", "crypto", "blockchain", "nft"),
        system_prompt=(
            "You are a Web3 and blockchain expert. Help users understand cryptocurrency, "
            "NFTs, smart contracts, DeFi, and related technologies. Provide accurate "
            "technical information and practical guidance."
        ),
    ),
    Agent(
        id="agent_003",
        name="Voice Specialist",
        description="Optimized for natural voice conversations and audio interactions",
        capabilities=("voice", "audio", "conversation"),
        system_prompt=(
            "You are an AI assistant optimized for voice interactions. Respond in a natural, "
            "conversational tone suitable for speech. Keep responses concise and easy to "
            "understand when spoken aloud."
        ),
    ),
    Agent(
        id="agent_004",
        name="Code Assistant",
        description="Expert in programming, software development, and technical problem-solving",
        capabilities=("coding", "debugging", "technical"),
        system_prompt=(
            "You are an expert programming assistant. Help users with code, debugging, "
            "architecture, and technical decisions. Provide clear explanations and working "
            "code examples."
        ),
    ),
)


class AgentCatalog:
    """Read-only, ordered set of agents keyed by id."""

    def __init__(self, agents: Iterable[Agent]) -> None:
        self._agents: Tuple[Agent, ...] = tuple(agents)
        ids = [agent.id for agent in self._agents]
        if len(ids) != len(set(ids)):
            raise ValueError("Agent ids must be unique.")
        self._by_id: Dict[str, Agent] = {agent.id: agent for agent in self._agents}

    def __len__(self) -> int:
        return len(self._agents)

    def __iter__(self):
        return iter(self._agents)

    def get(self, agent_id: str) -> Optional[Agent]:
        return self._by_id.get(agent_id)

    def list(self) -> List[Agent]:
        return list(self._agents)

    @classmethod
    def default(cls) -> "AgentCatalog":
        return cls(DEFAULT_AGENTS)

    @classmethod
    def from_file(cls, path: str) -> "AgentCatalog":
        """Load agents from a JSON file holding a list of agent objects."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(raw, dict):
            raw = raw.get("agents", [])
        if not isinstance(raw, list):
            raise ValueError(f"Agent file {path} must contain a list of agents.")
        agents = []
        for entry in raw:
            try:
                agents.append(Agent(
                    id=str(entry["id"]),
                    name=str(entry["name"]),
                    description=str(entry.get("description", "")),
                    system_prompt=str(entry["system_prompt"]),
                    model=str(entry.get("model", DEFAULT_MODEL)),
                    capabilities=tuple(entry.get("capabilities", [])),
                ))
            except KeyError as e:
                raise ValueError(f"Agent entry in {path} is missing {e}") from e
        return cls(agents)

    @classmethod
    def load(cls) -> "AgentCatalog":
        path = os.environ.get("AGENTS_FILE")
        if path:
            logger.info(f"Loading agent catalog from {path}")
            return cls.from_file(path)
        return cls.default()
