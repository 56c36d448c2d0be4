# catalog_sync/services/reconcile.py
"""
Reconciliation engine.

Given one batch of supplier products and the Shopify products matched to
them by SKU, work out what has to change on Shopify. Everything here is a
pure function of its inputs; the only state that crosses batches is the
``RunContext`` the orchestrator folds through the run.

The variant SKU is the only link between the two systems: a supplier
product with id ``X`` corresponds to the Shopify product whose first
variant has ``sku == X``.
"""
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from ..models import KnownProduct, PlatformImage, PlatformProduct, SupplierProduct, to_number

# Liquidation / second-choice duplicates of a catalog SKU, never synced.
EXCLUDED_SKU_SUFFIXES = ("LIQ", "2EME")


# =========================================================
# Actions
# =========================================================

@dataclass(frozen=True)
class Create:
    product: SupplierProduct


@dataclass(frozen=True)
class Disable:
    product: SupplierProduct
    platform: PlatformProduct


@dataclass(frozen=True)
class PriceUpdate:
    product: SupplierProduct
    platform: PlatformProduct
    old_compare_at: float
    new_compare_at: float
    new_price: float

    @property
    def delta(self) -> float:
        return self.new_compare_at - self.old_compare_at


@dataclass(frozen=True)
class MediaUpdate:
    product: SupplierProduct
    platform: PlatformProduct
    additions: Tuple[str, ...] = ()
    deletions: Tuple[PlatformImage, ...] = ()


@dataclass(frozen=True)
class StockAdjust:
    product: SupplierProduct
    platform: PlatformProduct
    delta: int


# =========================================================
# Matching rules
# =========================================================

def index_by_sku(platform: Iterable[PlatformProduct]) -> Dict[str, PlatformProduct]:
    index: Dict[str, PlatformProduct] = {}
    for p in platform:
        if p.sku and p.sku not in index:
            index[p.sku] = p
    return index


def is_excluded_sku(sku: str) -> bool:
    return sku.endswith(EXCLUDED_SKU_SUFFIXES)


def creates(batch: Sequence[SupplierProduct], index: Dict[str, PlatformProduct]) -> List[Create]:
    return [
        Create(p) for p in batch
        if p.id not in index and not p.is_old and not is_excluded_sku(p.id)
    ]


def disables(batch: Sequence[SupplierProduct], index: Dict[str, PlatformProduct],
             created_skus: Iterable[str] = ()) -> List[Disable]:
    created = set(created_skus)
    out = []
    for p in batch:
        match = index.get(p.id)
        if match is None or not p.is_old or p.id in created:
            continue
        if match.status == "DRAFT":
            continue
        out.append(Disable(p, match))
    return out


def price_updates(batch: Sequence[SupplierProduct], index: Dict[str, PlatformProduct]) -> List[PriceUpdate]:
    out = []
    for p in batch:
        match = index.get(p.id)
        if match is None:
            continue
        current = to_number(match.variant.compare_at_price)
        catalog = to_number(p.price_catalog)
        if current != catalog:
            out.append(PriceUpdate(p, match, current, catalog, to_number(p.price_promo)))
    return out


# ---------------------------------------------------------
# Media: filename-stem heuristic
# ---------------------------------------------------------
# Shopify decorates uploaded filenames ("shoe-front.jpg" comes back as
# ".../shoe-front_1234.jpg?v=..."), so matching is substring containment
# of a stem, not equality. A SKU-like stem that prefixes another stem
# ("ab" vs "abc") will match both.

def supplier_image_stem(url: str) -> str:
    return url.split("/")[-1].split(".")[0]


def platform_image_stem(url: str) -> str:
    return url.split("/")[-1].split(".")[0].split("_")[0]


def media_diff(supplier_images: Sequence[str], platform_images: Sequence[PlatformImage]) -> Tuple[List[str], List[PlatformImage]]:
    additions = [
        src for src in supplier_images
        if not any(supplier_image_stem(src) in img.url for img in platform_images)
    ]
    deletions = [
        img for img in platform_images
        if not any(platform_image_stem(img.url) in src for src in supplier_images)
    ]
    return additions, deletions


def media_updates(batch: Sequence[SupplierProduct], index: Dict[str, PlatformProduct]) -> List[MediaUpdate]:
    out = []
    for p in batch:
        match = index.get(p.id)
        if match is None:
            continue
        additions, deletions = media_diff(p.media.images, match.media)
        if additions or deletions:
            out.append(MediaUpdate(p, match, tuple(additions), tuple(deletions)))
    return out


def stock_updates(batch: Sequence[SupplierProduct], index: Dict[str, PlatformProduct]) -> List[StockAdjust]:
    out = []
    for p in batch:
        match = index.get(p.id)
        if match is None:
            continue
        on_hand = to_number(match.variant.inventory_quantity)
        delta = to_number(p.availability) - (0 if on_hand != on_hand else on_hand)
        if delta != delta or delta == 0:
            continue
        out.append(StockAdjust(p, match, int(delta)))
    return out


# =========================================================
# Batch plan + run state
# =========================================================

@dataclass(frozen=True)
class BatchPlan:
    creates: List[Create] = field(default_factory=list)
    disables: List[Disable] = field(default_factory=list)
    price_updates: List[PriceUpdate] = field(default_factory=list)
    media_updates: List[MediaUpdate] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.creates or self.disables or self.price_updates or self.media_updates)


@dataclass(frozen=True)
class RunContext:
    """
    Fold state for one sync/migration run. Each batch returns a new
    context; nothing is shared between runs.
    """
    created_products: Tuple[SupplierProduct, ...] = ()
    created: Tuple[KnownProduct, ...] = ()
    queried: Tuple[KnownProduct, ...] = ()
    failed: int = 0
    errors: Tuple = ()

    @property
    def created_skus(self) -> set:
        return {p.id for p in self.created_products}

    def with_planned_creates(self, products: Iterable[SupplierProduct]) -> "RunContext":
        return replace(self, created_products=self.created_products + tuple(products))

    def with_batch(self, created: Iterable[KnownProduct] = (), queried: Iterable[KnownProduct] = (),
                   failed: int = 0, errors: Iterable = ()) -> "RunContext":
        return replace(
            self,
            created=self.created + tuple(created),
            queried=self.queried + tuple(queried),
            failed=self.failed + failed,
            errors=self.errors + tuple(errors),
        )

    def known(self) -> List[KnownProduct]:
        return list(self.created) + list(self.queried)


def plan_batch(batch: Sequence[SupplierProduct], platform: Sequence[PlatformProduct],
               ctx: Optional[RunContext] = None) -> BatchPlan:
    """
    Compute every action set for one batch from a single snapshot.
    A product planned for creation, in this batch or an earlier one of the
    same run, is never disabled.
    """
    ctx = ctx or RunContext()
    index = index_by_sku(platform)
    to_create = creates(batch, index)
    created_skus = ctx.created_skus | {c.product.id for c in to_create}
    return BatchPlan(
        creates=to_create,
        disables=disables(batch, index, created_skus),
        price_updates=price_updates(batch, index),
        media_updates=media_updates(batch, index),
    )


def known_products(platform: Iterable[PlatformProduct]) -> List[KnownProduct]:
    return [KnownProduct(p.id, p.sku) for p in platform if p.id and p.sku]
