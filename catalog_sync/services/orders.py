# catalog_sync/services/orders.py
from typing import Callable, Dict, Optional

import requests

from ..clients import supplier
from ..config import get_store
from ..utils.logger import info, error


class OrderRelayError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


def format_intake_order(order: dict) -> dict:
    """Shopify ``orders/paid`` payload -> supplier order intake."""
    ship = order.get("shipping_address") or {}
    return {
        "comments": order.get("note"),
        "reference": order.get("name"),
        "is_draft": False,
        "items": [
            {"id": li.get("sku"), "type": "products", "qty": li.get("quantity")}
            for li in (order.get("line_items") or [])
        ],
        "delivery_address": {
            "date": order.get("updated_at"),
            "type": "HOME",
            "address": {
                "company": ship.get("company") or "",
                "address": ship.get("address1") or "",
                "address2": ship.get("address2") or "",
                "postal_code": ship.get("zip") or "",
                "city": ship.get("city") or "",
                "country": ship.get("country") or "",
                "contact_name": ship.get("name") or "",
                "telephone_number": ship.get("phone") or "",
                "deliverToCompanyAddress": True,
            },
        },
    }


# Both suppliers take the same intake schema today.
ORDER_FORMATTERS: Dict[str, Callable[[dict], dict]] = {
    "DIAMOND": format_intake_order,
    "HENDI": format_intake_order,
}


def format_order(store_name: str, order: dict) -> Optional[dict]:
    formatter = ORDER_FORMATTERS.get(store_name)
    return formatter(order) if formatter else None


def sync_order(store_name: str, order: dict) -> dict:
    """Login, format, upload. Any step failing raises OrderRelayError(500)."""
    store = get_store(store_name)
    try:
        token = supplier.login(store)
    except supplier.SupplierAuthError as e:
        error(f"[orders] {e}", store_name)
        raise OrderRelayError(f"Could not login to {store_name}", 500) from e

    formatted = format_order(store_name, order)
    if not formatted:
        raise OrderRelayError("Order Format Failed!", 500)

    try:
        result = supplier.upload_order(store, token, formatted)
    except requests.RequestException as e:
        error(f"[orders] upload failed: {e}", store_name)
        raise OrderRelayError(f"Could not upload to {store_name}", 500) from e
    if not result.get("data"):
        error(f"[orders] upload rejected: {result}", store_name)
        raise OrderRelayError(f"Could not upload to {store_name}", 500)

    info(f"[orders] {order.get('name')} uploaded", store_name)
    return result
