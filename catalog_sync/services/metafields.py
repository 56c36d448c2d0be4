# catalog_sync/services/metafields.py
import json
import os
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..models import SupplierProduct, file_name

NAMESPACE = "product"

# =========================================================
# Encoders
# =========================================================

def _text(value: Any) -> str:
    return value if isinstance(value, str) else str(value)

def _trim(value: Any) -> str:
    return str(value).strip()

def _lower_bool(value: Any) -> str:
    # Shopify boolean metafields only accept "true"/"false".
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).lower()

def _json(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


@dataclass(frozen=True)
class MetafieldSpec:
    key: str
    type: str
    transform: Callable[[Any], str] = _text
    name: Optional[str] = None

    def encode(self, value: Any) -> dict:
        return {"namespace": NAMESPACE, "key": self.key, "type": self.type, "value": self.transform(value)}

    def definition(self) -> dict:
        return {
            "name": self.name or self.key.replace("_", " ").capitalize(),
            "namespace": NAMESPACE,
            "key": self.key,
            "type": self.type,
            "ownerType": "PRODUCT",
        }


class MetafieldEncoder:
    """Maps a supplier product's flat attributes onto product metafields."""

    specs: List[MetafieldSpec] = []

    def encode(self, product: SupplierProduct) -> List[dict]:
        out = []
        for spec in self.specs:
            value = product.attributes.get(spec.key)
            if value is None or value == "":
                continue
            out.append(spec.encode(value))
        return out

    def definitions(self) -> List[dict]:
        return [spec.definition() for spec in self.specs] + [spec.definition() for spec in FILE_AND_REFERENCE_SPECS]


SINGLE = "single_line_text_field"
MULTI = "multi_line_text_field"
INT = "number_integer"
DEC = "number_decimal"
BOOL = "boolean"


class DiamondMetafieldEncoder(MetafieldEncoder):
    specs = [
        MetafieldSpec("description_plus", MULTI),
        MetafieldSpec("description_tech_spec", MULTI),
        MetafieldSpec("popup_info", SINGLE),
        MetafieldSpec("best_category", SINGLE),
        MetafieldSpec("is_old", BOOL, _lower_bool),
        MetafieldSpec("is_new", BOOL, _lower_bool),
        MetafieldSpec("is_good_deal", BOOL, _lower_bool),
        MetafieldSpec("page_catalog_number", SINGLE),
        MetafieldSpec("page_promo_number", SINGLE),
        MetafieldSpec("restock_info", SINGLE),
        MetafieldSpec("supplier_delivery_delay", INT),
        MetafieldSpec("days_to_restock_avg", INT),
        MetafieldSpec("length_mm", SINGLE, _trim),
        MetafieldSpec("width_mm", SINGLE, _trim),
        MetafieldSpec("height_mm", SINGLE, _trim),
        MetafieldSpec("volume_m3", DEC),
        MetafieldSpec("vapor", SINGLE),
        MetafieldSpec("electric_power_kw", DEC),
        MetafieldSpec("electric_connection", SINGLE, _trim),
        MetafieldSpec("electric_connection_2", SINGLE, _trim),
        MetafieldSpec("electric_power_c_neg", SINGLE, _trim),
        MetafieldSpec("electric_power_c_pos", SINGLE, _trim),
        MetafieldSpec("horse_power", SINGLE, _trim),
        MetafieldSpec("kcal_power", INT),
        MetafieldSpec("product_category_id", SINGLE, _trim),
        MetafieldSpec("product_category_name", SINGLE, _trim),
        MetafieldSpec("product_range_id", SINGLE, _trim),
        MetafieldSpec("product_range_name", SINGLE, _trim),
        MetafieldSpec("product_subrange_id", SINGLE, _trim),
        MetafieldSpec("product_subrange_name", SINGLE, _trim),
        MetafieldSpec("product_family_id", SINGLE, _trim),
        MetafieldSpec("product_family_name", SINGLE, _trim),
        MetafieldSpec("product_subfamily_id", SINGLE, _trim),
        MetafieldSpec("product_subfamily_name", SINGLE, _trim),
        MetafieldSpec("product_line_id", SINGLE, _trim),
        MetafieldSpec("product_line_name", SINGLE, _trim),
        MetafieldSpec("has_accessories", INT),
        MetafieldSpec("product_type", INT),
        MetafieldSpec("count_accessories", INT),
        MetafieldSpec("brand", SINGLE, _trim),
        MetafieldSpec("cusref", SINGLE),
        MetafieldSpec("eancod", SINGLE, _trim),
        MetafieldSpec("eprel", "json", _json),
        MetafieldSpec("is_ups_ready", INT),
        MetafieldSpec("product_tax", DEC),
        MetafieldSpec("availability_DBE12", INT),
    ]


# Written by the creation pipeline and the relationship pass, not from attributes.
FILE_AND_REFERENCE_SPECS = [
    MetafieldSpec("documents", "list.file_reference"),
    MetafieldSpec("json_documents", "json", _json),
    MetafieldSpec("spare_parts", "list.file_reference"),
    MetafieldSpec("json_spare_parts", "json", _json),
    MetafieldSpec("accessories", "list.product_reference"),
    MetafieldSpec("includedProducts", "list.product_reference", name="Included products"),
    MetafieldSpec("replacement_product_id", "product_reference", name="Replacement product"),
]


def uploaded_file_alt(store_name: str, name: str) -> str:
    return f"Uploaded {store_name} File: {name}"


def file_metafields(product: SupplierProduct, uploaded_files: List[dict], store_name: str) -> List[dict]:
    """documents / spare_parts reference lists plus their raw JSON copies."""
    by_name = {}
    prefix = uploaded_file_alt(store_name, "")
    for f in uploaded_files:
        alt = f.get("alt") or ""
        if alt.startswith(prefix):
            by_name.setdefault(alt[len(prefix):], f)

    out = []
    for key, items in (("documents", product.media.documents), ("spare_parts", product.media.spare_parts)):
        if not items:
            continue
        ids = [by_name[file_name(d.get("url") or "")]["id"] for d in items
               if file_name(d.get("url") or "") in by_name]
        out.append({"namespace": NAMESPACE, "key": key, "type": "list.file_reference", "value": json.dumps(ids)})
        out.append({"namespace": NAMESPACE, "key": f"json_{key}", "type": "json",
                    "value": json.dumps(list(items), ensure_ascii=False)})
    return out


# =========================================================
# Store profiles
# =========================================================

def _load_menu(filename: str) -> Dict[str, List[str]]:
    path = os.path.join(os.path.dirname(os.path.dirname(__file__)), "data", filename)
    with open(path, "r", encoding="utf-8") as fh:
        return json.load(fh)


@dataclass
class StoreProfile:
    name: str
    encoder: MetafieldEncoder
    product_menu: Dict[str, List[str]] = field(default_factory=dict)
    # Metafield definitions the smart-collection rules match on.
    range_definition_id: Optional[str] = None
    subrange_definition_id: Optional[str] = None

    def collection_titles(self) -> List[tuple]:
        return [(rng, sub) for rng, subs in self.product_menu.items() for sub in subs]


def _diamond() -> StoreProfile:
    return StoreProfile(
        name="DIAMOND",
        encoder=DiamondMetafieldEncoder(),
        product_menu=_load_menu("diamond_menu.json"),
        range_definition_id=os.getenv("DIAMOND_RANGE_DEFINITION_ID", "gid://shopify/MetafieldDefinition/288024002892"),
        subrange_definition_id=os.getenv("DIAMOND_SUBRANGE_DEFINITION_ID", "gid://shopify/MetafieldDefinition/288024068428"),
    )


def _hendi() -> StoreProfile:
    return StoreProfile(name="HENDI", encoder=DiamondMetafieldEncoder())


_PROFILE_FACTORIES = {"DIAMOND": _diamond, "HENDI": _hendi}
_PROFILES: Dict[str, StoreProfile] = {}


def get_profile(name: str) -> StoreProfile:
    if name not in _PROFILES:
        factory = _PROFILE_FACTORIES.get(name)
        if factory is None:
            raise KeyError(f"No store profile for {name!r}")
        _PROFILES[name] = factory()
    return _PROFILES[name]
