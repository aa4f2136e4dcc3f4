import httpx
import logging
from typing import List

from storefront.domain.exceptions import CartSyncError
from storefront.application.batch_cart import CartOperation, GuestCartItem
from storefront.client.interfaces import CartBackend
from storefront.client.models import CartLine, CartSnapshot, FlushResult

logger = logging.getLogger(__name__)


def _snapshot(data: dict) -> CartSnapshot:
    return CartSnapshot(items=[
        CartLine(product_id=item["product_id"], quantity=item["quantity"], unit_price=item.get("unit_price"))
        for item in data.get("items", [])
    ])


class HTTPCartBackend(CartBackend):
    """Talks to the storefront cart API on behalf of one signed-in user at a time"""

    def __init__(self, base_url: str, timeout: float = 10.0, transport: httpx.AsyncBaseTransport = None):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_cart(self, user_id: str) -> CartSnapshot:
        data = await self._request("GET", "/api/cart", user_id)
        return _snapshot(data)

    async def apply_batch(self, user_id: str, operations: List[CartOperation]) -> FlushResult:
        data = await self._request(
            "POST", "/api/cart/batch", user_id,
            json={"operations": [op.model_dump(exclude_none=True) for op in operations]}
        )
        return FlushResult(results=data["results"], cart=_snapshot(data))

    async def merge_guest_cart(self, user_id: str, items: List[GuestCartItem]) -> CartSnapshot:
        data = await self._request(
            "POST", "/api/cart/merge", user_id,
            json={"items": [item.model_dump() for item in items]}
        )
        return _snapshot(data)

    async def _request(self, method: str, path: str, user_id: str, json: dict = None) -> dict:
        try:
            async with httpx.AsyncClient(base_url=self._base_url, transport=self._transport) as client:
                response = await client.request(
                    method,
                    path,
                    json=json,
                    headers={"X-User-Id": user_id},
                    timeout=self._timeout
                )

                if response.status_code == 200:
                    return response.json()

                detail = response.json().get("detail") if response.content else None
                logger.warning(f"Cart API {method} {path} returned {response.status_code}: {detail}")
                raise CartSyncError(detail or f"Cart API error: {response.status_code}")

        except httpx.RequestError as e:
            logger.error(f"Cart API connection error: {e}")
            raise CartSyncError(f"Cart API unavailable: {str(e)}")
