# catalog_sync/services/maintenance.py
"""
One-off operator jobs, run from the CLI after a migration or when the
catalog looks off. None of these are scheduled.
"""
import os
import time
from typing import List, Optional, Sequence

from ..clients import supplier
from ..clients.shopify import PRODUCT_NODE_SKU
from ..config import LOG_DIR, PUBLICATION_DELAY_SEC, get_store
from ..utils.batching import chunk, fan_out, find_duplicates, handleize
from ..utils.deadletter import DeadLetterSink, JsonFileSink, rotating_sink
from ..utils.logger import info, warn, error, progress
from .metafields import get_profile
from .products import CALL_ERRORS, WriteReport, attempt, settle
from .reconcile import is_excluded_sku
from .sync import client_for, supplier_login

SKU_LOOKUP = 100
THUMB_DELETE_BATCH = 50
PRODUCT_DELETE_BATCH = 3
COLLECTION_CREATE_BATCH = 5
COLLECTION_PUBLISH_BATCH = 25
COLLECTION_UPDATE_BATCH = 10

THUMB_MARKERS = ("-thumb_", "-thumb-gallery_")
MENU_TITLE = "Produkte"
MENU_HANDLE = "produkte"


def created_collections_sink(path: Optional[str] = None) -> JsonFileSink:
    return JsonFileSink(path or os.path.join(LOG_DIR, "created_collections.json"))


# =========================================================
# Audits
# =========================================================

def check_missing_products(store_name: str, client=None, sink: Optional[DeadLetterSink] = None) -> Optional[List[str]]:
    """Supplier ids with no Shopify product; written to the ``missing_products`` stream."""
    store = get_store(store_name)
    token = supplier_login(store_name)
    if not token:
        return None
    info(f"Getting all products from {store_name}.....", store_name)
    ids = [p.id for p in supplier.get_product_list(store, token, "migrate")]
    client = client_for(store_name, client)
    sink = sink or rotating_sink("missing_products")

    missing: List[str] = []
    done = 0
    for batch in chunk(ids, SKU_LOOKUP):
        products, errs = attempt(client.products_by_sku, batch, PRODUCT_NODE_SKU)
        if errs:
            error(f"Failed querying products for batch: {errs}", store_name)
        else:
            found = {p.sku for p in products}
            batch_missing = [i for i in batch if i not in found]
            if batch_missing:
                sink.append(batch_missing)
                missing.extend(batch_missing)
        done += len(batch)
        progress(done, len(ids), "products queried!", store_name)
    info(f"All products queried! Missing {len(missing)} products", store_name)
    return missing


def all_skus(client) -> List[str]:
    skus = []
    for product in client.iter_products(fields=PRODUCT_NODE_SKU):
        if product.sku:
            skus.append(product.sku)
    info(f"{len(skus)} products queried!", client.name)
    return skus


def check_duplicate_products(store_name: str, client=None) -> List[str]:
    client = client_for(store_name, client)
    dupes = find_duplicates(all_skus(client))
    info(f"sku duplicates: {dupes}", store_name)
    return dupes


# =========================================================
# Cleanup
# =========================================================

def delete_excluded_products(store_name: str, client=None) -> WriteReport:
    """
    Remove liquidation / second-choice products. Nothing is deleted unless
    every excluded SKU resolves to a product id.
    """
    client = client_for(store_name, client)
    report = WriteReport()
    skus = [s for s in all_skus(client) if is_excluded_sku(s)]
    if not skus:
        return report
    info(f"{len(skus)} excluded skus found", store_name)

    by_sku = {}
    for batch in chunk(skus, SKU_LOOKUP):
        found, errs = attempt(client.products_by_sku, batch, PRODUCT_NODE_SKU)
        if errs:
            error(f"Failed querying excluded products: {errs}", store_name)
            report.errors.extend(errs)
            continue
        for p in found:
            by_sku.setdefault(p.sku, p.id)
    ids = [by_sku[s] for s in skus if s in by_sku]
    if len(ids) != len(skus):
        warn(f"only {len(ids)}/{len(skus)} excluded skus resolved, nothing deleted", store_name)
        return report

    info("Deleting products.....", store_name)
    for batch in chunk(ids, PRODUCT_DELETE_BATCH):
        outcomes = fan_out(lambda pid: settle(attempt(client.delete_product, pid)), batch)
        for pid, (_, errs) in zip(batch, outcomes):
            if errs:
                error(f"Error deleting product {pid}: {errs}", store_name)
                report.failed.append(pid)
                report.errors.extend(errs)
            else:
                report.done += 1
        progress(report.done + len(report.failed), len(ids), "products deleted!", store_name)
    return report


def delete_thumbnail_images(store_name: str, client=None) -> int:
    client = client_for(store_name, client)
    info("Getting all product images that need to be deleted.....", store_name)
    ids = [f["id"] for f in client.iter_files("media_type:IMAGE")
           if any(m in (((f.get("image") or {}).get("url")) or "") for m in THUMB_MARKERS)]
    info(f"{len(ids)} thumbnail images found", store_name)

    deleted = 0
    for batch in chunk(ids, THUMB_DELETE_BATCH):
        done, errs = client.delete_files(batch)
        if errs:
            warn(f"Error deleting images: {errs}", store_name)
        deleted += len(done)
        progress(deleted, len(ids), "images deleted!", store_name)
    return deleted


# =========================================================
# Collections and menu
# =========================================================

def collection_input(range_name: str, subrange_name: str, range_definition_id: str, subrange_definition_id: str) -> dict:
    return {
        "title": f"{range_name}_{subrange_name}",
        "ruleSet": {
            "appliedDisjunctively": False,
            "rules": [
                {"column": "PRODUCT_METAFIELD_DEFINITION", "conditionObjectId": range_definition_id,
                 "relation": "EQUALS", "condition": range_name},
                {"column": "PRODUCT_METAFIELD_DEFINITION", "conditionObjectId": subrange_definition_id,
                 "relation": "EQUALS", "condition": subrange_name},
            ],
        },
    }


def publish_collections(client, collections: Sequence[dict], publications: Sequence[dict],
                        delay: float = PUBLICATION_DELAY_SEC) -> WriteReport:
    report = WriteReport()
    records = [(c["id"], pub["id"]) for c in collections for pub in publications]
    batches = chunk(records, COLLECTION_PUBLISH_BATCH)
    for i, batch in enumerate(batches):
        outcomes = fan_out(lambda r: settle(attempt(client.publish, r[0], r[1])), batch)
        errs = [e for _, es in outcomes for e in es]
        report.done += len(batch)
        progress(report.done, len(records), "publications made!", client.name)
        if errs:
            error(f"publishing collections failed: {errs}", client.name)
            report.errors.extend(errs)
            break
        if delay and i < len(batches) - 1:
            time.sleep(delay)
    return report


def create_store_collections(store_name: str, client=None, sink: Optional[JsonFileSink] = None,
                             delay: float = PUBLICATION_DELAY_SEC) -> List[dict]:
    """
    One smart collection per (range, subrange) of the store menu, matching on
    the range and subrange metafield definitions. Creation stops at the first
    batch with errors; whatever was created is logged and published.
    """
    profile = get_profile(store_name)
    pairs = profile.collection_titles()
    if not pairs:
        return []
    client = client_for(store_name, client)
    sink = sink or created_collections_sink()

    info(f"Creating collections for {store_name}.....", store_name)
    created: List[dict] = []
    for batch in chunk(pairs, COLLECTION_CREATE_BATCH):
        outcomes = fan_out(
            lambda pair: attempt(client.create_collection, collection_input(
                pair[0], pair[1], profile.range_definition_id, profile.subrange_definition_id)),
            batch,
        )
        errs = []
        for value, call_errs in outcomes:
            collection, user_errs = value if value else (None, [])
            if call_errs or user_errs or not collection:
                errs.extend(call_errs or user_errs)
                continue
            created.append({"id": collection["id"], "title": collection["title"], "handle": collection["handle"]})
        progress(len(created), len(pairs), "collections created!", store_name)
        if errs:
            error(f"error creating collections: {errs}", store_name)
            break

    if not created:
        return created
    sink.append(created)

    info(f"Getting all publications from {store_name}.....", store_name)
    try:
        publications = client.get_publications()
    except CALL_ERRORS as e:
        error(f"Could not get publications: {e}", store_name)
        return created
    if not publications:
        warn("There are no publications", store_name)
        return created
    publish_collections(client, created, publications, delay)
    return created


def menu_items(product_menu: dict, collections: Sequence[dict]) -> List[dict]:
    by_title = {c["title"]: c["id"] for c in collections}
    return [
        {
            "title": range_name,
            "type": "FRONTPAGE",
            "items": [
                {"title": sub, "resourceId": by_title.get(f"{range_name}_{sub}"), "type": "COLLECTION"}
                for sub in subs
            ],
        }
        for range_name, subs in product_menu.items()
    ]


def create_store_menu(store_name: str, client=None, sink: Optional[JsonFileSink] = None) -> Optional[dict]:
    """The ``produkte`` navigation menu, built from the collections logged by create_store_collections."""
    profile = get_profile(store_name)
    if not profile.product_menu:
        return None
    collections = (sink or created_collections_sink()).read()
    if not collections:
        warn("No created collections logged, run create-collections first", store_name)
        return None
    client = client_for(store_name, client)
    menu, errs = client.create_menu(MENU_TITLE, MENU_HANDLE, menu_items(profile.product_menu, collections))
    if errs:
        error(f"menu creation failed: {errs}", store_name)
    if menu and menu.get("id"):
        info(f"Menu {menu.get('handle')} created!", store_name)
    return menu


def rename_collections(store_name: str, titles: Sequence[str], client=None) -> WriteReport:
    """
    Retitle the menu collections. ``titles`` lines up one-to-one with the
    store menu's ``range_subrange`` order; handles follow the new title.
    """
    report = WriteReport()
    profile = get_profile(store_name)
    old_titles = [f"{r}_{s}" for r, s in profile.collection_titles()]
    if len(titles) != len(old_titles):
        raise ValueError(f"expected {len(old_titles)} titles, got {len(titles)}")

    client = client_for(store_name, client)
    existing = {}
    for c in client.iter_collections():
        existing.setdefault(c.get("title"), c)
    info(f"{len(existing)} collections queried", store_name)

    updates = [
        {"id": existing[old]["id"], "title": new, "handle": handleize(new)}
        for old, new in zip(old_titles, titles) if old in existing
    ]
    info(f"{len(updates)} collections to update", store_name)
    for batch in chunk(updates, COLLECTION_UPDATE_BATCH):
        outcomes = fan_out(lambda u: settle(attempt(client.update_collection, u)), batch)
        for update, (_, errs) in zip(batch, outcomes):
            if errs:
                report.failed.append(update)
                report.errors.extend(errs)
            else:
                report.done += 1
        progress(report.done, len(updates), "collections updated!", store_name)
    if report.errors:
        error(f"collection update errors: {report.errors}", store_name)
    return report
