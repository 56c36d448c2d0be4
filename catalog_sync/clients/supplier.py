# catalog_sync/clients/supplier.py
from datetime import datetime, timedelta
from typing import List, Optional

import requests

from ..config import STRICT_FETCH, StoreConfig
from ..models import SupplierProduct
from ..utils.logger import info, error

WINDOW_HOURS = {"hourly": 1, "daily": 24, "halfday": 24}


class SupplierAuthError(Exception): pass

class SupplierFetchError(Exception): pass


def login(store: StoreConfig) -> str:
    if not store.login_api:
        raise SupplierAuthError(f"No login API configured for {store.name}")
    try:
        r = requests.post(store.login_api, json={"email": store.email, "password": store.password}, timeout=30)
        token = (r.json() or {}).get("access_token")
    except (requests.RequestException, ValueError) as e:
        raise SupplierAuthError(f"Login to {store.name} failed: {e}") from e
    if not token:
        raise SupplierAuthError(f"Login to {store.name} returned no access token")
    return token


def updated_after(frequency: Optional[str], now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    since = now - timedelta(hours=WINDOW_HOURS.get(frequency or "", 1))
    return since.strftime("%Y-%m-%d %H:%M:%S")


def export_params(action: str, frequency: Optional[str] = None, now: Optional[datetime] = None) -> dict:
    if action == "migrate":
        return {"filter[is_old][value]": "0"}
    if action == "sync":
        return {
            "filter[products.updated_at][value]": updated_after(frequency, now),
            "filter[products.updated_at][op]": "gt",
        }
    raise ValueError(f"Unknown export action {action!r}")


def get_product_list(store: StoreConfig, token: str, action: str, frequency: Optional[str] = None,
                     now: Optional[datetime] = None, strict: Optional[bool] = None) -> List[SupplierProduct]:
    """
    Supplier product export. By default any failure (network, non-JSON body)
    is logged and treated as "no updates"; strict mode raises instead.
    """
    strict = STRICT_FETCH if strict is None else strict
    params = export_params(action, frequency, now)
    info(f"[supplier] export {action} {params}", store.name)
    headers = {"Accept-Language": "de", "Authorization": f"Bearer {token}"}
    try:
        r = requests.get(store.product_export_api, params=params, headers=headers, timeout=300)
        if "application/json" not in (r.headers.get("content-type") or ""):
            raise SupplierFetchError(f"Non-JSON response {r.status_code}: {r.text[:200]}")
        body = r.json() or {}
    except (requests.RequestException, ValueError, SupplierFetchError) as e:
        error(f"[supplier] product export failed: {e}", store.name)
        if strict:
            if isinstance(e, SupplierFetchError):
                raise
            raise SupplierFetchError(str(e)) from e
        return []
    return [SupplierProduct.from_record(rec) for rec in (body.get("data") or [])]


def upload_order(store: StoreConfig, token: str, order: dict) -> dict:
    headers = {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {token}",
        "Accept-Language": "en",
    }
    r = requests.post(store.order_upload_api, headers=headers, json=order, timeout=60)
    try:
        body = r.json()
    except ValueError:
        error(f"[supplier] order upload returned non-JSON {r.status_code}: {r.text[:200]}", store.name)
        return {}
    return body if isinstance(body, dict) else {}
