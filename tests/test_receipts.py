"""
tests/test_receipts.py
──────────────────────
ReceiptChecker with a mocked AsyncWeb3. No RPC calls.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from web3.exceptions import TransactionNotFound

from settlement.chain.receipts import ReceiptChecker, basescan_tx_url


def _w3(receipt=None, error=None, chain_id=8453):
    w3 = MagicMock()
    if error:
        w3.eth.get_transaction_receipt = AsyncMock(side_effect=error)
    else:
        w3.eth.get_transaction_receipt = AsyncMock(return_value=receipt)

    async def _chain_id():
        return chain_id

    # AsyncWeb3 exposes chain_id as an awaitable property
    type(w3.eth).chain_id = property(lambda self: _chain_id())
    return w3


def test_basescan_url():
    assert basescan_tx_url("0xabc") == "https://basescan.org/tx/0xabc"
    assert basescan_tx_url(None) == ""


@pytest.mark.asyncio
async def test_confirm_successful_receipt():
    checker = ReceiptChecker(w3=_w3({"status": 1, "blockNumber": 123}))

    result = await checker.confirm("0xabc")

    assert result["confirmed"] is True
    assert result["block"] == 123
    assert "error" not in result


@pytest.mark.asyncio
async def test_confirm_reverted_receipt():
    result = await ReceiptChecker(w3=_w3({"status": 0, "blockNumber": 5})).confirm("0xabc")

    assert result["confirmed"] is False
    assert result["status"] == 0


@pytest.mark.asyncio
async def test_confirm_unknown_transaction():
    checker = ReceiptChecker(w3=_w3(error=TransactionNotFound("not found")))

    result = await checker.confirm("0xabc")

    assert result["confirmed"] is False
    assert result["error"] == "transaction not found"


@pytest.mark.asyncio
async def test_confirm_without_hash_skips_lookup():
    w3 = _w3({"status": 1, "blockNumber": 1})
    result = await ReceiptChecker(w3=w3).confirm("")

    assert result["error"] == "missing transaction hash"
    w3.eth.get_transaction_receipt.assert_not_awaited()


@pytest.mark.asyncio
async def test_check_chain_rejects_wrong_network():
    assert await ReceiptChecker(w3=_w3(chain_id=8453)).check_chain() is True
    assert await ReceiptChecker(w3=_w3(chain_id=1)).check_chain() is False
