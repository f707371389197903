"""
tests/test_paycrest_client.py
─────────────────────────────
PaycrestClient against a fake aiohttp session: envelope unwrapping and
error surfacing. No network.
"""

import asyncio

import aiohttp
import pytest

from settlement.orders.models import OrderStatus
from settlement.paycrest.client import PaycrestClient
from settlement.paycrest.errors import PaycrestError


class FakeResponse:
    def __init__(self, status=200, body=None, reason="OK", json_error=None):
        self.status = status
        self.reason = reason
        self._body = body
        self._json_error = json_error

    async def json(self, content_type=None):
        if self._json_error:
            raise self._json_error
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False


class FakeSession:
    def __init__(self, response=None, error=None):
        self.closed = False
        self.urls = []
        self._response = response
        self._error = error

    def get(self, url):
        self.urls.append(url)
        if self._error:
            raise self._error
        return self._response

    async def close(self):
        self.closed = True


def _client(session) -> PaycrestClient:
    client = PaycrestClient("test-key", "https://api.paycrest.test/v1/")
    client._session = session
    return client


@pytest.mark.asyncio
async def test_unwraps_data_envelope():
    session = FakeSession(FakeResponse(body={
        "status": "success",
        "message": "OK",
        "data": {"id": "ord-1", "status": "settled", "amount": "10", "txHash": "0x1"},
    }))

    order = await _client(session).get_order_status("ord-1")

    assert session.urls == ["https://api.paycrest.test/v1/sender/orders/ord-1"]
    assert order.status is OrderStatus.SETTLED
    assert order.tx_hash == "0x1"


@pytest.mark.asyncio
async def test_non_2xx_uses_body_message():
    session = FakeSession(FakeResponse(status=404, reason="Not Found", body={"message": "Order not found"}))

    with pytest.raises(PaycrestError) as exc_info:
        await _client(session).get_order_status("missing")

    assert str(exc_info.value) == "Order not found"
    assert exc_info.value.status == 404


@pytest.mark.asyncio
async def test_non_2xx_without_json_falls_back_to_reason():
    session = FakeSession(FakeResponse(status=503, reason="Service Unavailable",
                                       json_error=ValueError("not json")))

    with pytest.raises(PaycrestError, match="PayCrest API error: Service Unavailable"):
        await _client(session).get_order_status("ord-1")


@pytest.mark.asyncio
async def test_transport_error_becomes_paycrest_error():
    client = _client(FakeSession(error=aiohttp.ClientConnectionError("refused")))

    with pytest.raises(PaycrestError, match="transport error"):
        await client.get_order_status("ord-1")

    assert client.metrics()["errors"] == 1


@pytest.mark.asyncio
async def test_timeout_becomes_paycrest_error():
    client = _client(FakeSession(error=asyncio.TimeoutError()))

    with pytest.raises(PaycrestError, match="timed out"):
        await client.get_order_status("ord-1")


@pytest.mark.asyncio
async def test_malformed_amount_is_an_api_error():
    session = FakeSession(FakeResponse(body={"data": {"id": "o", "status": "settled", "amount": "ten"}}))

    with pytest.raises(PaycrestError, match="Malformed amount"):
        await _client(session).get_order_status("o")


@pytest.mark.asyncio
async def test_empty_order_id_rejected():
    with pytest.raises(PaycrestError):
        await _client(FakeSession(FakeResponse(body={}))).get_order_status("")


@pytest.mark.asyncio
async def test_close_closes_session():
    session = FakeSession(FakeResponse(body={}))
    client = _client(session)

    await client.close()

    assert session.closed is True


def test_requires_api_key():
    with pytest.raises(ValueError):
        PaycrestClient("")
