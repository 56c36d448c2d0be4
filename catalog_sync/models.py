# catalog_sync/models.py
"""
Request-scoped records exchanged between the supplier feed, the
reconciliation engine and the Shopify writers. Nothing here is persisted.
"""
from dataclasses import dataclass, field
from typing import Any, Optional


def to_number(value: Any) -> float:
    """Numeric view of a price/stock value. Missing -> 0, garbage -> NaN."""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return float("nan")


def as_int(value: Any) -> int:
    n = to_number(value)
    return 0 if n != n else int(n)


def file_name(url: str) -> str:
    """Last URL segment with '%' replaced, the way uploaded files are named on Shopify."""
    return url.split("/")[-1].replace("%", "_").strip()


# =========================================================
# Supplier side
# =========================================================

@dataclass(frozen=True)
class SupplierMedia:
    images: tuple = ()        # "big" rendition URLs
    videos: tuple = ()        # video URLs
    documents: tuple = ()     # raw document dicts ({"url": ...})
    spare_parts: tuple = ()   # raw spare-part dicts ({"url": ...})

    @property
    def files(self) -> tuple:
        return tuple(self.documents) + tuple(self.spare_parts)


@dataclass(frozen=True)
class SupplierProduct:
    id: str
    is_old: bool
    name: str = ""
    description: str = ""
    price_catalog: Any = None
    price_promo: Any = None
    availability: int = 0
    weight: Any = None
    weight_unit: Optional[str] = None
    media: SupplierMedia = field(default_factory=SupplierMedia)
    accessories: tuple = ()
    included_products: tuple = ()
    replacement_product_id: Optional[str] = None
    attributes: dict = field(default_factory=dict, compare=False, hash=False)
    raw: dict = field(default_factory=dict, compare=False, hash=False, repr=False)

    @classmethod
    def from_record(cls, record: dict) -> "SupplierProduct":
        attrs = record.get("attributes") or {}
        price = attrs.get("price") or {}
        media = attrs.get("media") or {}
        included = ((record.get("relationships") or {}).get("includedProducts") or {}).get("data") or []
        return cls(
            id=str(record.get("id") or ""),
            is_old=bool(attrs.get("is_old")),
            name=attrs.get("name") or "",
            description=attrs.get("description") or "",
            price_catalog=price.get("catalog"),
            price_promo=price.get("promo"),
            availability=as_int(attrs.get("availability")),
            weight=attrs.get("weight"),
            weight_unit=attrs.get("weight_unit"),
            media=SupplierMedia(
                images=tuple(img["big"] for img in (media.get("images") or []) if img.get("big")),
                videos=tuple(v["url"] for v in (media.get("videos") or []) if v.get("url")),
                documents=tuple(media.get("documents") or []),
                spare_parts=tuple(media.get("spare-parts") or []),
            ),
            accessories=tuple(str(s) for s in (attrs.get("accessories") or [])),
            included_products=tuple(str(p.get("id")) for p in included if p.get("id")),
            replacement_product_id=(str(attrs["replacement_product_id"])
                                    if attrs.get("replacement_product_id") is not None else None),
            attributes=attrs,
            raw=record,
        )

    @property
    def has_relationships(self) -> bool:
        return bool(self.accessories or self.included_products or self.replacement_product_id is not None)

    def to_record(self) -> dict:
        return self.raw or {"id": self.id, "attributes": {"name": self.name, "is_old": self.is_old}}


# =========================================================
# Shopify side
# =========================================================

@dataclass(frozen=True)
class PlatformImage:
    id: Optional[str]
    url: str


@dataclass(frozen=True)
class PlatformVariant:
    id: Optional[str]
    sku: Optional[str]
    price: Any = None
    compare_at_price: Any = None
    inventory_item_id: Optional[str] = None
    inventory_quantity: Any = None


@dataclass(frozen=True)
class PlatformProduct:
    id: str
    variant: PlatformVariant
    status: Optional[str] = None
    title: Optional[str] = None
    media: tuple = ()

    @property
    def sku(self) -> Optional[str]:
        return self.variant.sku

    @classmethod
    def from_node(cls, node: dict) -> "PlatformProduct":
        variants = ((node.get("variants") or {}).get("nodes")) or [{}]
        v = variants[0] or {}
        media_nodes = ((node.get("media") or {}).get("nodes")) or []
        return cls(
            id=node.get("id"),
            status=node.get("status"),
            title=node.get("title"),
            variant=PlatformVariant(
                id=v.get("id"),
                sku=v.get("sku"),
                price=v.get("price"),
                compare_at_price=v.get("compareAtPrice"),
                inventory_item_id=(v.get("inventoryItem") or {}).get("id"),
                inventory_quantity=v.get("inventoryQuantity"),
            ),
            media=tuple(
                PlatformImage(id=m.get("id"), url=(m.get("image") or {}).get("url") or "")
                for m in media_nodes if m and (m.get("image") or {}).get("url")
            ),
        )


@dataclass(frozen=True)
class KnownProduct:
    """A Shopify product id paired with its SKU, collected during a run."""
    id: str
    sku: str
