"""
On-chain proof for a settlement transaction on Base.

Looks up the receipt of the tx hash PayCrest reported. This is an audit aid
shown next to a verification result; it is never one of the three layers.
"""

import asyncio
from typing import Optional

from web3 import AsyncWeb3, AsyncHTTPProvider
from web3.exceptions import TransactionNotFound

from settlement.config import BASE_RPC_URL, BASE_CHAIN_ID

BASESCAN_BASE_URL = "https://basescan.org"
RECEIPT_TIMEOUT = 15.0   # seconds per lookup


def basescan_tx_url(tx_hash: Optional[str]) -> str:
    if not tx_hash:
        return ""
    return f"{BASESCAN_BASE_URL}/tx/{tx_hash}"


class ReceiptChecker:
    """Receipt lookups against one Base RPC endpoint."""

    def __init__(self, rpc_url: str = BASE_RPC_URL, w3: Optional[AsyncWeb3] = None):
        self.w3 = w3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))

    async def check_chain(self) -> bool:
        """True if the endpoint answers and is Base mainnet."""
        try:
            chain_id = await asyncio.wait_for(self.w3.eth.chain_id, timeout=RECEIPT_TIMEOUT)
        except Exception as e:
            print(f"[CHAIN] ❌ RPC unreachable: {e}")
            return False
        if chain_id != BASE_CHAIN_ID:
            print(f"[CHAIN] ⚠️  Expected chain_id {BASE_CHAIN_ID}, got {chain_id}")
            return False
        return True

    async def confirm(self, tx_hash: str) -> dict:
        """Receipt summary for tx_hash; confirmed only if mined with status 1."""
        result = {
            "confirmed": False,
            "status": None,
            "block": None,
            "url": basescan_tx_url(tx_hash),
        }
        if not tx_hash:
            result["error"] = "missing transaction hash"
            return result

        try:
            receipt = await asyncio.wait_for(
                self.w3.eth.get_transaction_receipt(tx_hash),
                timeout=RECEIPT_TIMEOUT,
            )
        except TransactionNotFound:
            result["error"] = "transaction not found"
            return result
        except asyncio.TimeoutError:
            result["error"] = f"receipt lookup timed out after {RECEIPT_TIMEOUT}s"
            return result
        except Exception as e:
            result["error"] = f"receipt lookup failed: {e}"
            return result

        result["status"] = receipt["status"]
        result["block"] = receipt["blockNumber"]
        result["confirmed"] = receipt["status"] == 1
        print(f"[CHAIN] {tx_hash[:10]}... status={receipt['status']} block={receipt['blockNumber']}")
        return result
