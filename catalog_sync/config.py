import os
from dataclasses import dataclass
from typing import Optional


def _flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


API_VERSION = os.getenv("SHOPIFY_API_VERSION", "2025-04")
BASE_URL = os.getenv("BASE_URL")

LOG_DIR = os.getenv("CATALOG_LOG_DIR", "logs")
LOG_ROTATE_AT = int(os.getenv("CATALOG_LOG_ROTATE_AT", "50"))

# Fetch failures from the supplier API return an empty list unless strict.
STRICT_FETCH = _flag("CATALOG_STRICT_FETCH")

SCHEDULER_ENABLED = _flag("SCHEDULER_ENABLED")
PUBLICATION_DELAY_SEC = float(os.getenv("PUBLICATION_DELAY_SEC", "3"))


@dataclass(frozen=True)
class StoreConfig:
    name: str
    shop_domain: Optional[str]
    access_token: Optional[str]
    webhook_secret: Optional[str] = None
    location_id: Optional[str] = None
    login_api: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    product_export_api: Optional[str] = None
    order_upload_api: Optional[str] = None


def load_store(name: str) -> StoreConfig:
    return StoreConfig(
        name=name,
        shop_domain=os.getenv(f"{name}_SHOPIFY_STORE_DOMAIN"),
        access_token=os.getenv(f"{name}_SHOPIFY_STORE_ACCESS_TOKEN"),
        webhook_secret=os.getenv(f"{name}_SHOPIFY_WEBHOOK_SECRET"),
        location_id=os.getenv(f"{name}_LOCATION_ID"),
        login_api=os.getenv(f"{name}_LOGIN_API"),
        email=os.getenv(f"{name}_EMAIL"),
        password=os.getenv(f"{name}_PASSWORD"),
        product_export_api=os.getenv(f"{name}_PRODUCT_EXPORT_API"),
        order_upload_api=os.getenv(f"{name}_ORDER_UPLOAD_API"),
    )


SUPPLIERS = [s.strip() for s in os.getenv("SHOPIFYSTORES", "DIAMOND").split(",") if s.strip()]

STORES: dict[str, StoreConfig] = {name: load_store(name) for name in SUPPLIERS}


def get_store(name: str) -> StoreConfig:
    try:
        return STORES[name]
    except KeyError:
        raise KeyError(f"Unknown store {name!r}; configured: {', '.join(STORES) or 'none'}") from None


def store_for_domain(domain: Optional[str]) -> Optional[StoreConfig]:
    if not domain:
        return None
    for store in STORES.values():
        if store.shop_domain and store.shop_domain == domain:
            return store
    return None
