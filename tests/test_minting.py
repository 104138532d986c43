import asyncio
import re

from minting import MintFlow, MintState


def test_empty_wallet_is_rejected():
    flow = MintFlow("A blockchain is a shared ledger.", delay=0)
    assert asyncio.run(flow.confirm("   ")) is MintState.ERROR
    assert flow.error == "Please enter a wallet address"
    assert flow.tx_hash is None


def test_mint_produces_transaction_hash():
    flow = MintFlow("reply", delay=0)
    assert asyncio.run(flow.confirm("0xabc")) is MintState.SUCCESS
    assert flow.wallet_address == "0xabc"
    assert re.fullmatch(r"0x[0-9a-f]{64}", flow.tx_hash)

    flow.reset()
    assert flow.state is MintState.IDLE
    assert flow.tx_hash is None
