# app/services/shipping.py

from typing import Protocol

import httpx

from app.config import settings


class ShipmentError(Exception):
    pass


class ShipmentRegistrar(Protocol):
    async def create(self, order, address: dict | None) -> dict:
        """Registers the order with a carrier, returns at least {"trackingNumber": ...}."""


def shipment_payload(order, address: dict | None) -> dict:
    """Carrier request body built from an order and its shipping address."""
    address = address or {}
    return {
        "order_id": order.order_number,
        "payment_mode": "cod" if (order.payment_method or "").lower() == "cod" else "prepaid",
        "cod_amount": order.total if (order.payment_method or "").lower() == "cod" else 0,
        "delivery_address": {
            "name": address.get("name", ""),
            "phone": address.get("phone", ""),
            "address": address.get("address", ""),
            "city": address.get("city", ""),
            "state": address.get("state", ""),
            "pincode": address.get("pincode", ""),
            "country": address.get("country", "India"),
        },
        "items": [
            {"name": item.name, "sku": item.product_id or "", "quantity": item.quantity, "price": item.price}
            for item in order.items
        ],
    }


class HttpShipmentRegistrar:
    """
    Posts shipments to the aggregator configured by SHIPPING_API_URL.
    The aggregator answers with {"awb_number": ..., "courier": ...}.
    """

    def __init__(self, base_url: str | None = None, token: str | None = None,
                 carrier: str | None = None, transport: httpx.AsyncBaseTransport | None = None):
        self.base_url = (base_url if base_url is not None else settings.SHIPPING_API_URL).rstrip("/")
        self.token = token if token is not None else settings.SHIPPING_API_TOKEN
        self.carrier = carrier or settings.SHIPPING_CARRIER
        self.transport = transport

    async def create(self, order, address: dict | None) -> dict:
        if not self.base_url:
            raise ShipmentError("SHIPPING_API_URL is not configured")

        headers = {"Authorization": f"Bearer {self.token}"} if self.token else {}
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.SHIPPING_TIMEOUT_SECONDS,
            transport=self.transport,
        ) as client:
            response = await client.post("/shipments", json=shipment_payload(order, address), headers=headers)

        if response.status_code >= 400:
            raise ShipmentError(f"Carrier responded {response.status_code}: {response.text[:200]}")

        data = response.json()
        awb = data.get("awb_number") or data.get("trackingNumber")
        if not awb:
            raise ShipmentError("Carrier response has no AWB number")
        return {"trackingNumber": awb, "carrier": data.get("courier") or self.carrier}
