# catalog_sync/services/relationships.py
import json
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence

from ..clients.shopify import PRODUCT_NODE_SKU
from ..models import KnownProduct, SupplierProduct
from ..utils.batching import chunk, unique
from ..utils.logger import info, error
from .metafields import NAMESPACE
from .products import attempt, update_metafields

ACCESSORY = "accessory"
INCLUDED = "included_product"
REPLACEMENT = "replacement"

SKU_LOOKUP = 50


@dataclass(frozen=True)
class RelationshipEdge:
    from_sku: str
    to_sku: str
    kind: str


def edges(product: SupplierProduct) -> List[RelationshipEdge]:
    out = [RelationshipEdge(product.id, sku, ACCESSORY) for sku in product.accessories]
    out += [RelationshipEdge(product.id, sku, INCLUDED) for sku in product.included_products]
    if product.replacement_product_id is not None:
        out.append(RelationshipEdge(product.id, product.replacement_product_id, REPLACEMENT))
    return out


def needs_relationships(product: SupplierProduct) -> bool:
    return product.has_relationships


@dataclass
class RelationshipReport:
    metafields: List[dict] = field(default_factory=list)
    errors: List[dict] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "error" if self.errors else "success"


def resolve_ids(client, skus: Sequence[str], known: Iterable[KnownProduct],
                errors: Optional[List[dict]] = None) -> Dict[str, str]:
    """
    SKU -> Shopify product id; only SKUs not already known are queried.
    A failed lookup drops its SKUs and appends to ``errors``.
    """
    wanted = set(skus)
    resolved: Dict[str, str] = {}
    for k in known:
        if k.sku in wanted and k.sku not in resolved:
            resolved[k.sku] = k.id
    missing = [s for s in skus if s not in resolved]
    if missing:
        info(f"Getting {len(missing)} referenced products from Shopify.....", client.name)
    for batch in chunk(missing, SKU_LOOKUP):
        found, errs = attempt(client.products_by_sku, batch, PRODUCT_NODE_SKU)
        if errs:
            error(f"Failed querying referenced products: {errs}", client.name)
            if errors is not None:
                errors.extend(errs)
            continue
        for p in found:
            if p.sku in wanted and p.sku not in resolved:
                resolved[p.sku] = p.id
    return resolved


def build_metafields(referrers: Sequence[SupplierProduct], ids: Dict[str, str]) -> List[dict]:
    """
    Reference metafields for every referrer present on Shopify. References
    that did not resolve are dropped from the written list.
    """
    out = []
    for product in referrers:
        owner = ids.get(product.id)
        if not owner:
            continue
        if product.accessories:
            out.append({
                "ownerId": owner, "namespace": NAMESPACE, "key": "accessories",
                "type": "list.product_reference",
                "value": json.dumps([ids[s] for s in unique(product.accessories) if s in ids]),
            })
        if product.included_products:
            out.append({
                "ownerId": owner, "namespace": NAMESPACE, "key": "includedProducts",
                "type": "list.product_reference",
                "value": json.dumps([ids[s] for s in unique(product.included_products) if s in ids]),
            })
        if product.replacement_product_id is not None and product.replacement_product_id in ids:
            out.append({
                "ownerId": owner, "namespace": NAMESPACE, "key": "replacement_product_id",
                "type": "product_reference",
                "value": ids[product.replacement_product_id],
            })
    return out


def resolve_relationships(client, referrers: Sequence[SupplierProduct],
                          known: Iterable[KnownProduct] = ()) -> RelationshipReport:
    referrers = [p for p in referrers if needs_relationships(p)]
    if not referrers:
        return RelationshipReport()
    referenced = [e.to_sku for p in referrers for e in edges(p)]
    needed = unique([p.id for p in referrers] + referenced)
    errors: List[dict] = []
    ids = resolve_ids(client, needed, known, errors)
    return RelationshipReport(metafields=build_metafields(referrers, ids), errors=errors)


def write_relationships(client, referrers: Sequence[SupplierProduct],
                        known: Iterable[KnownProduct] = ()) -> RelationshipReport:
    report = resolve_relationships(client, referrers, known)
    if not report.metafields:
        return report
    info(f"Updating product metafields in {client.name}.....", client.name)
    report.errors.extend(update_metafields(client, report.metafields).errors)
    return report

