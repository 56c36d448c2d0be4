# catalog_sync/routes/setup_metafields.py
from flask import Blueprint

from ..clients.shopify import ShopifyClient, ShopifyError
from ..config import STORES, StoreConfig
from ..services.metafields import get_profile

bp = Blueprint("setup_metafields", __name__)


def create_definitions(store: StoreConfig, client=None) -> list:
    """Create every product metafield definition of the store's schema; duplicates count as done."""
    client = client or ShopifyClient(store)
    out = []
    for definition in get_profile(store.name).encoder.definitions():
        label = f"{store.name} {definition['namespace']}.{definition['key']}"
        try:
            created, errs = client.create_metafield_definition(definition)
        except ShopifyError as e:
            out.append(f"{label}: ERR {e.errors}")
            continue

        if created:
            out.append(f"{label}: OK {created.get('id')}")
            continue

        msg = "; ".join(e.get("message", "") for e in errs)
        if "already been taken" in msg.lower() or "already exists" in msg.lower():
            out.append(f"{label}: EXISTS")
        else:
            out.append(f"{label}: ERR {msg or 'unknown'}")
    return out


@bp.get("/create")
def create_defs():
    results = [" ; ".join(create_definitions(store)) for store in STORES.values()]
    return " | ".join(results), 200
