# catalog_sync/services/sync.py
import json
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ..clients import supplier
from ..clients.shopify import PRODUCT_NODE_SKU, PRODUCT_NODE_STOCK, PRODUCT_NODE_SYNC, ShopifyClient
from ..config import get_store
from ..models import SupplierProduct, to_number
from ..utils.batching import chunk
from ..utils.deadletter import DeadLetterSink, rotating_sink
from ..utils.logger import info, warn, error, progress
from .metafields import NAMESPACE, MetafieldEncoder, get_profile
from .products import (
    CALL_ERRORS,
    WriteReport,
    add_media,
    adjust_stock,
    attempt,
    create_product_batch,
    delete_media,
    disable_products,
    update_metafields,
    update_prices,
)
from .reconcile import (
    BatchPlan,
    PriceUpdate,
    RunContext,
    creates,
    index_by_sku,
    known_products,
    plan_batch,
    stock_updates,
)
from .relationships import RelationshipReport, write_relationships

SYNC_BATCH = 50
CREATE_BATCH = 3
FILE_METAFIELD_LOOKUP = 150

SYNC_ERRORS = "sync_errors"
MIGRATION_ERRORS = "migration_errors"

# =========================================================
# One run per (store, job) at a time
# =========================================================

_locks: Dict[str, threading.Lock] = {}
_locks_guard = threading.Lock()

def _lock_for(store_name: str, job: str) -> threading.Lock:
    k = f"{store_name}:{job}"
    with _locks_guard:
        if k not in _locks:
            _locks[k] = threading.Lock()
        return _locks[k]


def client_for(store_name: str, client=None):
    return client or ShopifyClient(get_store(store_name))


def supplier_login(store_name: str) -> Optional[str]:
    try:
        return supplier.login(get_store(store_name))
    except supplier.SupplierAuthError as e:
        error(f"Could not login to {store_name}: {e}", store_name)
        return None


# =========================================================
# Batch results
# =========================================================

@dataclass
class BatchResult:
    ctx: RunContext
    plan: BatchPlan = field(default_factory=BatchPlan)
    reports: Dict[str, WriteReport] = field(default_factory=dict)
    errors: list = field(default_factory=list)

    @property
    def status(self) -> str:
        if self.errors or any(r.status == "error" for r in self.reports.values()):
            return "error"
        return "success"


def create_products(client, products: Sequence[SupplierProduct], ctx: RunContext, publications: Sequence[dict],
                    encoder: MetafieldEncoder, location_id: Optional[str], sink: DeadLetterSink) -> RunContext:
    """Creation pipeline over ``products`` in batches of three."""
    if not products:
        return ctx
    info(f"{len(products)} new products found. Creating.....", client.name)
    done = 0
    for batch in chunk(products, CREATE_BATCH):
        result = create_product_batch(client, batch, publications, encoder, location_id)
        if result.failed:
            sink.append(p.to_record() for p in result.failed_products)
        ctx = ctx.with_batch(
            created=[c.known() for c in result.shells],
            failed=len(result.failed),
            errors=result.errors,
        )
        done += len(batch)
        progress(done, len(products), "products created!", client.name)
    return ctx


def sync_batch_daily(client, batch: Sequence[SupplierProduct], ctx: RunContext, publications: Sequence[dict],
                     encoder: MetafieldEncoder, location_id: Optional[str], sink: DeadLetterSink) -> BatchResult:
    """
    Reconcile one batch against Shopify: a single SKU query, then creates,
    disables, price updates, media additions and media deletions, in that
    order. Failed records go to ``sink``.
    """
    try:
        platform = client.products_by_sku([p.id for p in batch], fields=PRODUCT_NODE_SYNC)
    except CALL_ERRORS as e:
        error(f"Failed querying products for batch: {e}", client.name)
        sink.append(p.to_record() for p in batch)
        return BatchResult(ctx=ctx.with_batch(failed=len(batch), errors=[{"message": str(e)}]),
                           errors=[{"message": str(e)}])

    plan = plan_batch(batch, platform, ctx)
    ctx = ctx.with_planned_creates(c.product for c in plan.creates)
    ctx = ctx.with_batch(queried=known_products(platform))
    if plan.is_empty:
        return BatchResult(ctx=ctx, plan=plan)

    ctx = create_products(client, [c.product for c in plan.creates], ctx, publications, encoder, location_id, sink)

    reports = {
        "disable": disable_products(client, plan.disables, sink),
        "price": update_prices(client, plan.price_updates),
        "media_add": add_media(client, plan.media_updates),
        "media_delete": delete_media(client, plan.media_updates),
    }
    for name in ("price", "media_add"):
        if reports[name].failed:
            sink.append(p.to_record() for p in reports[name].failed)

    ctx = ctx.with_batch(
        failed=sum(len(r.failed) for name, r in reports.items() if name != "media_delete"),
        errors=[e for r in reports.values() for e in r.errors],
    )
    return BatchResult(ctx=ctx, plan=plan, reports=reports)


def sync_batch_hourly(client, batch: Sequence[SupplierProduct], location_id: Optional[str]) -> WriteReport:
    """Stock-only pass: adjust on-hand quantity to the supplier's availability."""
    try:
        platform = client.products_by_sku([p.id for p in batch], fields=PRODUCT_NODE_STOCK)
    except CALL_ERRORS as e:
        error(f"Failed querying stock for batch: {e}", client.name)
        return WriteReport(failed=list(batch), errors=[{"message": str(e)}])
    return adjust_stock(client, stock_updates(batch, index_by_sku(platform)), location_id)


def relationship_pass(client, ctx: RunContext) -> RelationshipReport:
    referrers = [p for p in ctx.created_products if p.has_relationships]
    if not referrers:
        return RelationshipReport()
    return write_relationships(client, referrers, ctx.known())


# =========================================================
# Runs
# =========================================================

def sync_product_list(store_name: str, frequency: str, client=None, sink: Optional[DeadLetterSink] = None):
    """
    Scheduled sync for one store. ``hourly`` only moves stock; ``daily`` and
    ``halfday`` run the full reconciliation and then resolve relationships
    of the products created in this run.
    """
    lock = _lock_for(store_name, f"sync:{frequency}")
    if not lock.acquire(blocking=False):
        warn(f"{frequency} sync already running, skipping", store_name)
        return None
    try:
        store = get_store(store_name)
        token = supplier_login(store_name)
        if not token:
            return None
        info(f"Getting products from {store_name}.....", store_name)
        products = supplier.get_product_list(store, token, "sync", frequency)
        if not products:
            info(f"No product updates for {store_name}.", store_name)
            return RunContext()
        info(f"{len(products)} products fetched from {store_name}!", store_name)

        client = client_for(store_name, client)
        batches = chunk(products, SYNC_BATCH)
        sink = sink or rotating_sink(SYNC_ERRORS)
        ctx = RunContext()

        if frequency == "hourly":
            for i, batch in enumerate(batches, 1):
                report = sync_batch_hourly(client, batch, store.location_id)
                if report.failed:
                    sink.append(p.to_record() for p in report.failed)
                    warn(f"batch {i}/{len(batches)} finished with errors", store_name)
                ctx = ctx.with_batch(failed=len(report.failed), errors=report.errors)
                progress(min(i * SYNC_BATCH, len(products)), len(products), "products synced!", store_name)
            info(f"Stock sync complete: {ctx.failed} failed", store_name)
            return ctx

        publications = client.get_publications()
        encoder = get_profile(store_name).encoder
        for i, batch in enumerate(batches, 1):
            result = sync_batch_daily(client, batch, ctx, publications, encoder, store.location_id, sink)
            ctx = result.ctx
            if result.status == "error":
                warn(f"batch {i}/{len(batches)} finished with errors", store_name)
            progress(min(i * SYNC_BATCH, len(products)), len(products), "products synced!", store_name)

        ctx = ctx.with_batch(errors=relationship_pass(client, ctx).errors)
        info(f"Sync complete: {len(ctx.created)} created, {ctx.failed} failed", store_name)
        return ctx
    finally:
        lock.release()


def migrate_product_list(store_name: str, client=None, sink: Optional[DeadLetterSink] = None):
    """Full catalog import: create every current product missing on Shopify."""
    store = get_store(store_name)
    token = supplier_login(store_name)
    if not token:
        return None
    products = supplier.get_product_list(store, token, "migrate")
    info(f"{len(products)} products to migrate from {store_name}", store_name)
    if not products:
        return RunContext()

    client = client_for(store_name, client)
    sink = sink or rotating_sink(MIGRATION_ERRORS)
    publications = client.get_publications()
    encoder = get_profile(store_name).encoder

    ctx = RunContext()
    for batch in chunk(products, SYNC_BATCH):
        try:
            platform = client.products_by_sku([p.id for p in batch], fields=PRODUCT_NODE_SKU)
        except CALL_ERRORS as e:
            error(f"Failed querying products for batch: {e}", store_name)
            sink.append(p.to_record() for p in batch)
            ctx = ctx.with_batch(failed=len(batch), errors=[{"message": str(e)}])
            continue
        missing = [c.product for c in creates(batch, index_by_sku(platform))]
        ctx = ctx.with_planned_creates(missing).with_batch(queried=known_products(platform))
        ctx = create_products(client, missing, ctx, publications, encoder, store.location_id, sink)

    ctx = ctx.with_batch(errors=relationship_pass(client, ctx).errors)
    info(f"Migration complete: {len(ctx.created)} created, {ctx.failed} failed", store_name)
    return ctx


def migrate_relationships(store_name: str, client=None) -> Optional[RelationshipReport]:
    store = get_store(store_name)
    token = supplier_login(store_name)
    if not token:
        return None
    referrers = [p for p in supplier.get_product_list(store, token, "migrate") if p.has_relationships]
    info(f"{len(referrers)} products with relationships", store_name)
    return write_relationships(client_for(store_name, client), referrers)


def update_file_metafields(store_name: str, client=None) -> Optional[WriteReport]:
    """Rewrite the raw ``json_documents`` / ``json_spare_parts`` copies from the supplier export."""
    store = get_store(store_name)
    token = supplier_login(store_name)
    if not token:
        return None
    products = [p for p in supplier.get_product_list(store, token, "migrate")
                if p.media.documents or p.media.spare_parts]
    client = client_for(store_name, client)

    metafields = []
    unqueried = WriteReport()
    for batch in chunk(products, FILE_METAFIELD_LOOKUP):
        found, errs = attempt(client.products_by_sku, [p.id for p in batch], PRODUCT_NODE_SKU)
        if errs:
            error(f"Failed querying products for batch: {errs}", store_name)
            unqueried.failed.extend(batch)
            unqueried.errors.extend(errs)
            continue
        ids = {p.sku: p.id for p in found}
        for product in batch:
            owner = ids.get(product.id)
            if not owner:
                continue
            for key, items in (("json_documents", product.media.documents),
                               ("json_spare_parts", product.media.spare_parts)):
                if items:
                    metafields.append({
                        "ownerId": owner, "namespace": NAMESPACE, "key": key, "type": "json",
                        "value": json.dumps(list(items), ensure_ascii=False),
                    })
    info(f"{len(metafields)} file metafields to update", store_name)
    report = update_metafields(client, metafields)
    report.failed.extend(unqueried.failed)
    report.errors.extend(unqueried.errors)
    return report


def update_all_prices(store_name: str, client=None) -> Optional[WriteReport]:
    """Reapply price and compare-at price to every matched product."""
    store = get_store(store_name)
    token = supplier_login(store_name)
    if not token:
        return None
    products = supplier.get_product_list(store, token, "migrate")
    client = client_for(store_name, client)

    total = WriteReport()
    for batch in chunk(products, SYNC_BATCH):
        found, errs = attempt(client.products_by_sku, [p.id for p in batch], PRODUCT_NODE_SYNC)
        if errs:
            error(f"Failed querying products for batch: {errs}", store_name)
            total.failed.extend(batch)
            total.errors.extend(errs)
            continue
        index = index_by_sku(found)
        actions: List[PriceUpdate] = []
        for p in batch:
            match = index.get(p.id)
            if match is None:
                continue
            actions.append(PriceUpdate(p, match, to_number(match.variant.compare_at_price),
                                       to_number(p.price_catalog), to_number(p.price_promo)))
        report = update_prices(client, actions)
        total.done += report.done
        total.failed.extend(report.failed)
        total.errors.extend(report.errors)
    return total
