# catalog_sync/routes/register.py
from typing import List, Tuple

import requests
from flask import Blueprint

from ..clients.shopify import admin_base, rest_headers
from ..config import BASE_URL, STORES, StoreConfig

bp = Blueprint("register", __name__)

ORDER_TOPIC = "orders/paid"


def order_subscriptions() -> List[Tuple[str, str]]:
    return [(ORDER_TOPIC, f"{BASE_URL}/api/orders/upload")]


def ensure_webhooks(store: StoreConfig, subs: List[Tuple[str, str]]) -> Tuple[List[str], int]:
    """Create or repoint one webhook per topic. Returns per-topic result lines."""
    if not BASE_URL:
        return ["Missing BASE_URL in env."], 500
    if not (store.shop_domain and store.access_token):
        return [f"Missing domain/token for {store.name}"], 500

    base = admin_base(store.shop_domain)
    headers = rest_headers(store.access_token)

    try:
        resp = requests.get(f"{base}/webhooks.json", headers=headers, timeout=20)
        resp.raise_for_status()
        existing = resp.json().get("webhooks", [])
    except (requests.RequestException, ValueError) as e:
        return [f"Failed to read existing webhooks: {e}"], 500

    out = []
    for topic, address in subs:
        found = [w for w in existing if w.get("topic") == topic]

        if any(w.get("address") == address for w in found):
            out.append(f"OK {topic}")
            continue

        try:
            if found:
                # repoint instead of adding a second subscription
                wid = found[0].get("id")
                r = requests.put(
                    f"{base}/webhooks/{wid}.json",
                    headers=headers,
                    json={"webhook": {"id": wid, "address": address, "format": "json"}},
                    timeout=20,
                )
                verb, ok = "UPDATED", r.status_code in (200, 201)
            else:
                r = requests.post(
                    f"{base}/webhooks.json",
                    headers=headers,
                    json={"webhook": {"topic": topic, "address": address, "format": "json"}},
                    timeout=20,
                )
                verb, ok = "CREATED", r.status_code in (201, 202)
        except requests.RequestException as e:
            out.append(f"FAIL {topic} exception {e}")
            continue
        out.append(f"{verb} {topic}" if ok else f"FAIL {topic} {r.status_code} {r.text}")

    return out, 200


@bp.get("/")
def register_all():
    lines, status = [], 200
    for store in STORES.values():
        out, code = ensure_webhooks(store, order_subscriptions())
        lines.extend(f"{store.name}: {line}" for line in out)
        status = max(status, code)
    return "; ".join(lines) or "No stores configured", status


@bp.get("/<store_name>")
def register_one(store_name: str):
    store = STORES.get(store_name.upper())
    if not store:
        return f"Unknown store {store_name}", 404
    out, code = ensure_webhooks(store, order_subscriptions())
    return "; ".join(out), code
