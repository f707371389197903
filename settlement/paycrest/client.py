"""
PayCrest sender API client — one GET per call for order status.

API: GET {base_url}/sender/orders/{order_id}
Auth: `API-Key` header.
Envelope: {"status": "success", "message": "...", "data": {...order...}}

No retries here. Every failure (transport, timeout, non-2xx, malformed body)
surfaces as PaycrestError so the poller's error-retry path handles it.
"""

import asyncio
import time
from typing import Optional

import aiohttp

from settlement.config import PAYCREST_BASE_URL, STATUS_HTTP_TIMEOUT_SEC
from settlement.orders.models import OrderSnapshot
from settlement.paycrest.errors import PaycrestError


class PaycrestClient:
    """Async PayCrest status client with a lazily created shared session."""

    def __init__(self, api_key: str, base_url: str = PAYCREST_BASE_URL,
                 timeout_sec: float = STATUS_HTTP_TIMEOUT_SEC):
        if not api_key:
            raise ValueError("PayCrest API key is required")
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.timeout_sec = timeout_sec
        self._session: Optional[aiohttp.ClientSession] = None
        # Metrics
        self._request_count = 0
        self._request_errors = 0
        self._total_latency_ms = 0.0

    async def _ensure_session(self):
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.timeout_sec)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"API-Key": self.api_key, "Content-Type": "application/json"},
            )

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def get_order_status(self, order_id: str) -> OrderSnapshot:
        """Fetch the current state of one order."""
        if not order_id:
            raise PaycrestError("Order ID is required")
        data = await self._get(f"/sender/orders/{order_id}")
        return OrderSnapshot.from_api(data, order_id=order_id)

    async def ping(self) -> bool:
        """Reachability check for smoke tests. Any HTTP answer counts."""
        await self._ensure_session()
        try:
            async with self._session.get(f"{self.base_url}/currencies") as resp:
                return resp.status < 500
        except (aiohttp.ClientError, asyncio.TimeoutError):
            return False

    async def _get(self, endpoint: str):
        await self._ensure_session()
        url = f"{self.base_url}{endpoint}"
        t0 = time.monotonic()
        self._request_count += 1
        try:
            async with self._session.get(url) as resp:
                if resp.status < 200 or resp.status >= 300:
                    message = f"PayCrest API error: {resp.reason or resp.status}"
                    try:
                        body = await resp.json(content_type=None)
                        if isinstance(body, dict) and body.get("message"):
                            message = body["message"]
                    except (aiohttp.ContentTypeError, ValueError):
                        pass  # keep the status-text message
                    raise PaycrestError(message, status=resp.status)

                try:
                    body = await resp.json(content_type=None)
                except ValueError as e:
                    raise PaycrestError(f"Invalid JSON from PayCrest: {e}", status=resp.status)
        except PaycrestError:
            self._request_errors += 1
            raise
        except asyncio.TimeoutError:
            self._request_errors += 1
            raise PaycrestError(f"PayCrest request timed out after {self.timeout_sec}s")
        except aiohttp.ClientError as e:
            self._request_errors += 1
            raise PaycrestError(f"PayCrest transport error: {e}")
        finally:
            self._total_latency_ms += (time.monotonic() - t0) * 1000

        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body

    def metrics(self) -> dict:
        avg_lat = self._total_latency_ms / max(self._request_count, 1)
        return {
            "requests": self._request_count,
            "errors": self._request_errors,
            "avg_latency_ms": round(avg_lat, 1),
        }
