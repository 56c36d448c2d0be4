# catalog_sync/routes/orders.py
import json

from flask import Blueprint, request, jsonify
from werkzeug.exceptions import HTTPException

from ..config import store_for_domain
from ..services.orders import OrderRelayError, sync_order
from ..utils.logger import info, error
from ..utils.security import verify_webhook_hmac

bp = Blueprint("orders", __name__)


@bp.post("/upload")
def upload():
    try:
        store = store_for_domain(request.headers.get("X-Shopify-Shop-Domain"))
        if not store:
            raise OrderRelayError("Cannot find origin Store!", 400)

        raw = verify_webhook_hmac(store.webhook_secret)
        try:
            order = json.loads(raw.decode("utf-8")) if raw else {}
        except ValueError:
            raise OrderRelayError("Invalid order payload", 400)
        if not isinstance(order, dict):
            raise OrderRelayError("Invalid order payload", 400)
        info(f"[orders] webhook received. OID={order.get('id')}", store.name)

        if order.get("financial_status") != "paid":
            raise OrderRelayError("Order not paid yet!", 400)

        sync_order(store.name, order)
        return jsonify({"status": "success", "message": "Order Synced"}), 200
    except OrderRelayError as e:
        error(f"sync_order_error: {e.message}")
        return jsonify({"status": "error", "message": e.message}), e.status_code
    except HTTPException:
        raise
    except Exception as e:
        error(f"sync_order_error: {e!r}")
        return jsonify({"status": "error", "message": "Order Sync Failed!"}), 500
