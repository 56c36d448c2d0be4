import itertools
import os

# config reads the environment at import time
os.environ.setdefault("SHOPIFYSTORES", "DIAMOND,HENDI")
os.environ.setdefault("DIAMOND_SHOPIFY_STORE_DOMAIN", "diamond-test.myshopify.com")
os.environ.setdefault("DIAMOND_SHOPIFY_STORE_ACCESS_TOKEN", "shpat_test")
os.environ.setdefault("DIAMOND_LOCATION_ID", "gid://shopify/Location/1")
os.environ.setdefault("DIAMOND_LOGIN_API", "https://supplier.test/api/login")
os.environ.setdefault("DIAMOND_PRODUCT_EXPORT_API", "https://supplier.test/api/products/export")
os.environ.setdefault("DIAMOND_ORDER_UPLOAD_API", "https://supplier.test/api/orders")
os.environ.setdefault("HENDI_SHOPIFY_STORE_DOMAIN", "hendi-test.myshopify.com")
os.environ.setdefault("HENDI_SHOPIFY_STORE_ACCESS_TOKEN", "shpat_hendi")
os.environ.setdefault("SCHEDULER_ENABLED", "0")

import pytest

from catalog_sync.clients.shopify import ShopifyError
from catalog_sync.models import PlatformImage, PlatformProduct, PlatformVariant, SupplierProduct
from catalog_sync.utils.batching import handleize


def supplier_product(id, is_old=False, catalog=100, promo=90, availability=0, images=(), **attrs):
    name = attrs.pop("name", f"Product {id}")
    description = attrs.pop("description", "<p>desc</p>")
    media = {
        "images": [{"big": u, "small": u + "?s"} for u in images],
        "videos": attrs.pop("videos", []),
        "documents": attrs.pop("documents", []),
        "spare-parts": attrs.pop("spare_parts", []),
    }
    included = attrs.pop("included", None)
    record = {
        "id": id,
        "attributes": {
            "name": name,
            "description": description,
            "is_old": is_old,
            "price": {"catalog": catalog, "promo": promo},
            "availability": availability,
            "media": media,
            **attrs,
        },
    }
    if included:
        record["relationships"] = {"includedProducts": {"data": [{"id": i} for i in included]}}
    return SupplierProduct.from_record(record)


def platform_product(sku, id=None, status="ACTIVE", compare_at="100.00", price="90.00",
                     quantity=0, images=()):
    id = id or f"gid://shopify/Product/{sku}"
    return PlatformProduct(
        id=id,
        status=status,
        title=f"Product {sku} - {sku}",
        variant=PlatformVariant(
            id=f"gid://shopify/ProductVariant/{sku}",
            sku=sku,
            price=price,
            compare_at_price=compare_at,
            inventory_item_id=f"gid://shopify/InventoryItem/{sku}",
            inventory_quantity=quantity,
        ),
        media=tuple(PlatformImage(id=f"gid://shopify/MediaImage/{i}", url=u) for i, u in enumerate(images)),
    )


class FakeShopify:
    """In-memory stand-in for ShopifyClient. ``fail[method]`` is a list of user
    errors, or a callable of the call args returning one. A SKU lookup touching
    any of ``unqueryable`` raises ShopifyError."""

    def __init__(self, name="DIAMOND", products=()):
        self.name = name
        self.products = list(products)
        self.collections = []
        self.files = []
        self.publications = [{"id": "gid://shopify/Publication/1", "name": "Online Store"},
                             {"id": "gid://shopify/Publication/2", "name": "Shop"}]
        self.calls = []
        self.fail = {}
        self.unqueryable = set()
        self._ids = itertools.count(1000)

    def _record(self, method, *args):
        self.calls.append((method, args))
        fail = self.fail.get(method, [])
        return list(fail(*args) if callable(fail) else fail)

    def calls_to(self, method):
        return [args for m, args in self.calls if m == method]

    # reads
    def products_by_sku(self, skus, fields=None):
        skus = list(skus)
        self._record("products_by_sku", skus)
        wanted = set(skus)
        if wanted & self.unqueryable:
            raise ShopifyError([{"message": "Query cost exceeds max"}])
        return [p for p in self.products if p.sku in wanted]

    def iter_products(self, fields=None):
        return iter(list(self.products))

    def iter_collections(self):
        return iter(list(self.collections))

    def iter_files(self, query):
        return iter(list(self.files))

    def files_by_name(self, names):
        names = list(names)
        self._record("files_by_name", names)
        return [f for f in self.files if any(n in (f.get("alt") or "") for n in names)]

    def get_publications(self):
        return list(self.publications)

    # product writes
    def create_product(self, product, media=None):
        errs = self._record("create_product", product, media)
        if errs:
            return None, errs
        n = next(self._ids)
        return {
            "id": f"gid://shopify/Product/{n}",
            "title": product["title"],
            "variants": {"nodes": [{"id": f"gid://shopify/ProductVariant/{n}",
                                    "inventoryItem": {"id": f"gid://shopify/InventoryItem/{n}"}}]},
        }, []

    def update_product_status(self, product_id, status="DRAFT"):
        errs = self._record("update_product_status", product_id, status)
        return (None, errs) if errs else ({"id": product_id}, [])

    def add_product_media(self, product_id, media):
        return self._record("add_product_media", product_id, media)

    def delete_product(self, product_id):
        return self._record("delete_product", product_id)

    def update_variants(self, product_id, variants):
        return self._record("update_variants", product_id, variants)

    def update_inventory_item(self, inventory_item_id, input):
        return self._record("update_inventory_item", inventory_item_id, input)

    def adjust_inventory(self, changes, reason="received"):
        return self._record("adjust_inventory", changes, reason)

    # files
    def delete_files(self, file_ids):
        errs = self._record("delete_files", list(file_ids))
        return ([] if errs else list(file_ids)), errs

    def staged_uploads_create(self, inputs):
        self._record("staged_uploads_create", inputs)
        return [{"url": "https://upload.test", "resourceUrl": f"https://cdn.test/tmp/{i['filename']}",
                 "parameters": [{"name": "key", "value": i["filename"]}]} for i in inputs]

    def upload_to_staged_target(self, target, content, filename):
        self._record("upload_to_staged_target", filename)
        return True

    def file_create(self, files):
        self._record("file_create", files)
        return [{"id": f"gid://shopify/GenericFile/{next(self._ids)}", "alt": f["alt"]} for f in files]

    # metafields / publications / collections
    def set_metafields(self, metafields):
        return self._record("set_metafields", metafields)

    def create_metafield_definition(self, definition):
        errs = self._record("create_metafield_definition", definition)
        if errs:
            return None, errs
        return {"id": f"gid://shopify/MetafieldDefinition/{next(self._ids)}"}, []

    def publish(self, publishable_id, publication_id):
        return self._record("publish", publishable_id, publication_id)

    def create_collection(self, input):
        errs = self._record("create_collection", input)
        if errs:
            return None, errs
        return {"id": f"gid://shopify/Collection/{next(self._ids)}", "title": input["title"],
                "handle": handleize(input["title"])}, []

    def update_collection(self, input):
        return self._record("update_collection", input)

    def create_menu(self, title, handle, items):
        self._record("create_menu", title, handle, items)
        return {"id": "gid://shopify/Menu/1", "handle": handle}, []


@pytest.fixture
def fake_shopify():
    return FakeShopify()


@pytest.fixture
def no_downloads(monkeypatch):
    monkeypatch.setattr("catalog_sync.services.products.fetch_bytes", lambda url: b"%PDF-1.4")


@pytest.fixture
def app():
    from catalog_sync import create_app
    app = create_app(start_scheduler=False)
    app.config.update(TESTING=True)
    return app


@pytest.fixture
def client(app):
    return app.test_client()
