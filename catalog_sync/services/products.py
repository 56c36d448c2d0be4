# catalog_sync/services/products.py
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Sequence, Tuple

import requests

from ..clients.shopify import ShopifyError, fetch_bytes
from ..models import KnownProduct, SupplierProduct, file_name, to_number
from ..utils.batching import chunk, fan_out, unique
from ..utils.deadletter import DeadLetterSink, NullSink
from ..utils.logger import info, warn, error, progress
from .metafields import MetafieldEncoder, file_metafields, uploaded_file_alt
from .reconcile import Disable, MediaUpdate, PriceUpdate, StockAdjust

FILE_UPLOAD_BATCH = 5
PUBLISH_BATCH = 30
DISABLE_BATCH = 5
PRICE_BATCH = 10
MEDIA_ADD_BATCH = 5
MEDIA_DELETE_BATCH = 25
STOCK_BATCH = 25
METAFIELD_BATCH = 25

# Failures of a single call that we record and move past.
CALL_ERRORS = (ShopifyError, requests.RequestException)


def attempt(fn: Callable, *args) -> Tuple[Optional[object], list]:
    """Run one platform call; transport/platform failures become an error list."""
    try:
        return fn(*args), []
    except CALL_ERRORS as e:
        return None, [{"message": str(e)}]


@dataclass
class WriteReport:
    done: int = 0
    failed: list = field(default_factory=list)
    errors: list = field(default_factory=list)

    @property
    def status(self) -> str:
        return "error" if (self.failed or self.errors) else "success"


# =========================================================
# Variant / media payloads
# =========================================================

def _money(value) -> Optional[str]:
    if value is None or value == "":
        return None
    n = to_number(value)
    return None if n != n else f"{n:.2f}"


def variant_input(product: SupplierProduct, variant_id: str) -> dict:
    return {
        "id": variant_id,
        "inventoryItem": {"sku": product.id, "tracked": True},
        "price": _money(product.price_promo),
        "compareAtPrice": _money(product.price_catalog),
    }


def image_media(urls: Sequence[str], store_name: str) -> List[dict]:
    return [{"originalSource": u, "mediaContentType": "IMAGE", "alt": f"Uploaded {store_name} Image"} for u in urls]


def video_media(urls: Sequence[str], store_name: str) -> List[dict]:
    return [{"originalSource": u, "mediaContentType": "VIDEO", "alt": f"Uploaded {store_name} Video"} for u in urls]


def product_input(product: SupplierProduct, metafields: List[dict]) -> dict:
    data = {
        "title": f"{product.name} - {product.id}",
        "status": "DRAFT" if product.is_old else "ACTIVE",
        "descriptionHtml": product.description,
    }
    if metafields:
        data["metafields"] = metafields
    return data


# =========================================================
# Files (documents, spare-part sheets)
# =========================================================

def _file_stem(url: str) -> str:
    return url.split("/")[-1].split(".")[0].replace("%", "_").strip()


def upload_files(client, documents: Sequence[dict]) -> List[dict]:
    """Staged upload: reserve targets, push bytes, then register the files."""
    store_name = client.name
    try:
        targets = client.staged_uploads_create([
            {
                "filename": file_name(d["url"]),
                "mimeType": f"application/{d['url'].split('.')[-1]}",
                "resource": "FILE",
                "httpMethod": "POST",
            }
            for d in documents
        ])

        def push(doc):
            name = file_name(doc["url"])
            target = next((t for t in targets if f"/{name}" in (t.get("resourceUrl") or "")), None)
            if not target:
                return False
            content = fetch_bytes(doc["url"])
            return bool(content) and client.upload_to_staged_target(target, content, name)

        fan_out(push, documents)
        return client.file_create([
            {
                "originalSource": t["resourceUrl"],
                "alt": uploaded_file_alt(store_name, t["resourceUrl"].split("/")[-1]),
                "contentType": "FILE",
            }
            for t in targets
        ])
    except CALL_ERRORS as e:
        error(f"[files] upload failed: {e}", store_name)
        return []


def ensure_files(client, products: Sequence[SupplierProduct]) -> List[dict]:
    """Every document/spare-part file of the batch on Shopify; uploads only the ones missing."""
    files = [f for p in products for f in p.media.files if f.get("url")]
    if not files:
        return []
    store_name = client.name
    uploaded = client.files_by_name(unique(_file_stem(f["url"]) for f in files))
    alts = [u.get("alt") or "" for u in uploaded]
    remaining = [f for f in files
                 if not any(uploaded_file_alt(store_name, file_name(f["url"])) in alt for alt in alts)]

    seen = set()
    to_upload = []
    for f in remaining:
        name = file_name(f["url"])
        if name in seen:
            continue
        seen.add(name)
        to_upload.append(f)

    for batch in chunk(to_upload, FILE_UPLOAD_BATCH):
        uploaded.extend(upload_files(client, batch))
    return uploaded


# =========================================================
# Creation pipeline
# =========================================================

@dataclass
class CreatedProduct:
    product: SupplierProduct
    id: str
    variant_id: str
    inventory_item_id: Optional[str]

    def known(self) -> KnownProduct:
        return KnownProduct(self.id, self.product.id)


@dataclass
class CreateResult:
    created: List[CreatedProduct] = field(default_factory=list)
    failed: List[Tuple[SupplierProduct, list]] = field(default_factory=list)
    # Products that exist on Shopify after step (b), including later-step failures.
    shells: List[CreatedProduct] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "error" if self.failed else "success"

    @property
    def errors(self) -> list:
        return [e for _, errs in self.failed for e in errs]

    @property
    def failed_products(self) -> List[SupplierProduct]:
        return [p for p, _ in self.failed]


def _create_shell(client, product: SupplierProduct, encoder: MetafieldEncoder, uploaded: List[dict]):
    metafields = encoder.encode(product) + file_metafields(product, uploaded, client.name)
    media = image_media(product.media.images, client.name) + video_media(product.media.videos, client.name)
    created, errs = attempt(client.create_product, product_input(product, metafields), media)
    if errs:
        return None, errs
    shell, user_errs = created
    if user_errs or not shell:
        return None, user_errs or [{"message": "productCreate returned no product"}]
    variant = (((shell.get("variants") or {}).get("nodes")) or [{}])[0]
    return CreatedProduct(
        product=product,
        id=shell["id"],
        variant_id=variant.get("id"),
        inventory_item_id=(variant.get("inventoryItem") or {}).get("id"),
    ), []


def _step(items: List[CreatedProduct], call: Callable[[CreatedProduct], Tuple[object, list]],
          result: CreateResult, label: str) -> List[CreatedProduct]:
    outcomes = fan_out(call, items)
    passed = []
    for item, (_, errs) in zip(items, outcomes):
        if errs:
            warn(f"[create] {label} failed for {item.product.id}: {errs}")
            result.failed.append((item.product, errs))
        else:
            passed.append(item)
    return passed


def settle(value_and_errs):
    value, errs = value_and_errs
    if errs:
        return value, errs
    # client write methods return their userErrors list
    return value, list(value or [])


def create_product_batch(client, batch: Sequence[SupplierProduct], publications: Sequence[dict],
                         encoder: MetafieldEncoder, location_id: Optional[str]) -> CreateResult:
    result = CreateResult()
    if not batch:
        return result

    # (a) files
    uploaded = ensure_files(client, batch)

    # (b) product shells
    shells = fan_out(lambda p: _create_shell(client, p, encoder, uploaded), batch)
    created: List[CreatedProduct] = []
    for product, (shell, errs) in zip(batch, shells):
        if shell is None:
            error(f"[create] failed creating product {product.id} ({product.name}): {errs}", client.name)
            result.failed.append((product, errs))
        else:
            created.append(shell)
    result.shells = list(created)

    # (c) price, compare-at, SKU
    created = _step(
        created,
        lambda c: settle(attempt(client.update_variants, c.id, [variant_input(c.product, c.variant_id)])),
        result, "variant update",
    )

    # (d) weight, only when someone in the batch carries one
    weighted = [c for c in created if c.product.weight and c.product.weight_unit and c.inventory_item_id]
    if weighted:
        ok = _step(
            weighted,
            lambda c: settle(attempt(client.update_inventory_item, c.inventory_item_id, {
                "measurement": {"weight": {"unit": "KILOGRAMS", "value": to_number(c.product.weight)}}
            })),
            result, "weight update",
        )
        dropped = {id(c) for c in weighted} - {id(c) for c in ok}
        created = [c for c in created if id(c) not in dropped]

    # (e) initial stock, relative to zero
    stocked = [c for c in created if c.product.availability > 0 and c.inventory_item_id]
    if stocked:
        changes = [{"delta": c.product.availability, "inventoryItemId": c.inventory_item_id, "locationId": location_id}
                   for c in stocked]
        value, errs = settle(attempt(client.adjust_inventory, changes))
        if errs:
            warn(f"[create] inventory adjust failed for batch: {errs}", client.name)
            for c in stocked:
                result.failed.append((c.product, errs))
            created = [c for c in created if c not in stocked]

    # (f) publish everywhere
    records = [(c, pub) for c in created for pub in publications]
    publish_failed = {}
    for batch_records in chunk(records, PUBLISH_BATCH):
        outcomes = fan_out(lambda r: settle(attempt(client.publish, r[0].id, r[1]["id"])), batch_records)
        for (c, _), (_, errs) in zip(batch_records, outcomes):
            if errs:
                publish_failed.setdefault(id(c), (c, []))[1].extend(errs)
    for c, errs in publish_failed.values():
        result.failed.append((c.product, errs))
    result.created = [c for c in created if id(c) not in publish_failed]
    return result


# =========================================================
# Update writers
# =========================================================

def disable_products(client, actions: Sequence[Disable], sink: DeadLetterSink = NullSink()) -> WriteReport:
    report = WriteReport()
    if not actions:
        return report
    info(f"{len(actions)} disabled products found. Disabling.....", client.name)
    for batch in chunk(actions, DISABLE_BATCH):
        outcomes = fan_out(lambda a: attempt(client.update_product_status, a.platform.id, "DRAFT"), batch)
        for action, (value, errs) in zip(batch, outcomes):
            updated, user_errs = value if value else (None, [])
            errs = errs or user_errs
            if errs or not updated:
                error(f"Failed disabling product: {action.product.name or action.product.id}", client.name)
                report.failed.append(action.product)
                report.errors.extend(errs)
            else:
                report.done += 1
        progress(report.done + len(report.failed), len(actions), "products disabled!", client.name)
    if report.failed:
        sink.append(p.to_record() for p in report.failed)
    return report


def update_prices(client, actions: Sequence[PriceUpdate]) -> WriteReport:
    report = WriteReport()
    if not actions:
        return report
    info(f"{len(actions)} price-updated products found. Updating.....", client.name)
    for batch in chunk(actions, PRICE_BATCH):
        outcomes = fan_out(
            lambda a: settle(attempt(client.update_variants, a.platform.id,
                                        [variant_input(a.product, a.platform.variant.id)])),
            batch,
        )
        for action, (_, errs) in zip(batch, outcomes):
            if errs:
                warn(f"Failed updating price for {action.product.id}: {errs}", client.name)
                report.failed.append(action.product)
                report.errors.extend(errs)
            else:
                report.done += 1
        progress(report.done + len(report.failed), len(actions), "product prices updated!", client.name)
    return report


def add_media(client, updates: Sequence[MediaUpdate]) -> WriteReport:
    report = WriteReport()
    updates = [u for u in updates if u.additions]
    if not updates:
        return report
    info(f"{len(updates)} products with added images detected! Updating.....", client.name)
    for batch in chunk(updates, MEDIA_ADD_BATCH):
        outcomes = fan_out(
            lambda u: settle(attempt(client.add_product_media, u.platform.id, image_media(u.additions, client.name))),
            batch,
        )
        for update, (_, errs) in zip(batch, outcomes):
            if errs:
                warn(f"errors adding product images for {update.product.id}: {errs}", client.name)
                report.failed.append(update.product)
                report.errors.extend(errs)
            else:
                report.done += 1
        progress(report.done + len(report.failed), len(updates), "products updated!", client.name)
    return report


def delete_media(client, updates: Sequence[MediaUpdate]) -> WriteReport:
    report = WriteReport()
    ids = [img.id for u in updates for img in u.deletions if img.id]
    if not ids:
        return report
    info(f"{len(ids)} deleted images detected! Deleting.....", client.name)
    for batch in chunk(ids, MEDIA_DELETE_BATCH):
        value, errs = attempt(client.delete_files, batch)
        deleted, user_errs = value if value else ([], [])
        if errs or user_errs:
            warn(f"Error deleting product images: {errs or user_errs}", client.name)
            report.errors.extend(errs or user_errs)
        report.done += len(deleted)
        progress(report.done, len(ids), "images deleted!", client.name)
    return report


def adjust_stock(client, adjustments: Sequence[StockAdjust], location_id: Optional[str]) -> WriteReport:
    report = WriteReport()
    if not adjustments:
        return report
    info(f"{len(adjustments)} new stock updates found. Syncing.....", client.name)
    for batch in chunk(adjustments, STOCK_BATCH):
        changes = [{"delta": a.delta, "inventoryItemId": a.platform.variant.inventory_item_id, "locationId": location_id}
                   for a in batch]
        _, errs = settle(attempt(client.adjust_inventory, changes))
        if errs:
            error(f"stock update failed for {len(batch)} products: {errs}", client.name)
            report.failed.extend(a.product for a in batch)
            report.errors.extend(errs)
        else:
            report.done += len(batch)
        progress(report.done, len(adjustments), "stock updates synced!", client.name)
    return report


def update_metafields(client, metafields: Sequence[dict]) -> WriteReport:
    report = WriteReport()
    for batch in chunk(metafields, METAFIELD_BATCH):
        _, errs = settle(attempt(client.set_metafields, batch))
        if errs:
            warn(f"updating metafields failed! {errs}", client.name)
            report.failed.extend(batch)
            report.errors.extend(errs)
        else:
            report.done += len(batch)
        progress(report.done + len(report.failed), len(metafields), "metafields updated!", client.name)
    return report
