"""Mocked NFT minting flow for a chat result. No chain is contacted."""

import asyncio
import logging
import secrets
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class MintState(Enum):
    IDLE = "idle"
    MINTING = "minting"
    SUCCESS = "success"
    ERROR = "error"


class MintFlow:
    def __init__(self, content: str, delay: float = 2.0) -> None:
        self.content = content
        self.delay = delay
        self.state = MintState.IDLE
        self.wallet_address = ""
        self.tx_hash: Optional[str] = None
        self.error: Optional[str] = None

    async def confirm(self, wallet_address: str) -> MintState:
        if self.state is MintState.MINTING:
            return self.state
        if not wallet_address.strip():
            self.state = MintState.ERROR
            self.error = "Please enter a wallet address"
            return self.state

        self.wallet_address = wallet_address.strip()
        self.error = None
        self.state = MintState.MINTING
        await asyncio.sleep(self.delay)
        self.tx_hash = "0x" + secrets.token_hex(32)
        self.state = MintState.SUCCESS
        logger.info(f"Mock mint to {self.wallet_address}: {self.tx_hash}")
        return self.state

    def reset(self) -> None:
        self.state = MintState.IDLE
        self.wallet_address = ""
        self.tx_hash = None
        self.error = None
