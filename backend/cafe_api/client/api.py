"""Public (customer) API client."""

import logging
from typing import Any, Dict, List, Optional

import httpx

from cafe_api.client.geofence import VenueGeofence
from cafe_api.client.http import DEFAULT_TIMEOUT, json_or_raise

logger = logging.getLogger(__name__)


class CafeApiClient:
    """Unauthenticated endpoints used from a customer's table."""

    def __init__(
        self,
        base_url: str,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> "CafeApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_venue_geofence(self) -> VenueGeofence:
        """Current fence; the loader a GeofenceGate is built with."""
        data = json_or_raise(await self._client.get("/venue/public"))
        return VenueGeofence(
            latitude=data.get("latitude"),
            longitude=data.get("longitude"),
            radius_meters=data.get("radius_meters"),
            name=data.get("name", ""),
        )

    async def verify_table(self, table_number: int) -> bool:
        response = await self._client.get(f"/orders/verify-table/{table_number}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return False
        return bool(json_or_raise(response).get("valid"))

    async def place_order(
        self,
        table_number: int,
        customer_name: str,
        customer_phone: str,
        items: List[Dict[str, Any]],
        notes: Optional[str] = None,
    ) -> Dict[str, Any]:
        payload = {
            "table_number": table_number,
            "customer_name": customer_name,
            "customer_phone": customer_phone,
            "items": items,
        }
        if notes:
            payload["notes"] = notes
        order = json_or_raise(await self._client.post("/orders", json=payload))
        logger.info(f"Order {order['order_number']} placed for table {table_number}")
        return order

    async def table_orders(self, table_number: int, phone: str) -> List[Dict[str, Any]]:
        data = json_or_raise(
            await self._client.get(f"/orders/table/{table_number}", params={"phone": phone})
        )
        return data["items"]
