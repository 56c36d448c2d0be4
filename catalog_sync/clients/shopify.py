# catalog_sync/clients/shopify.py
from typing import Iterator, List, Optional, Tuple

import requests
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..config import API_VERSION, StoreConfig
from ..models import PlatformProduct
from ..utils.batching import chunk
from ..utils.logger import warn

SKU_QUERY_LIMIT = 100
FILE_QUERY_LIMIT = 100


class ShopifyError(Exception):
    """Top-level GraphQL errors: the whole call failed."""

    def __init__(self, errors):
        self.errors = errors
        super().__init__(str(errors))


class ShopifyThrottled(Exception): pass


def admin_base(domain: str) -> str:
    return f"https://{domain}/admin/api/{API_VERSION}"

def rest_headers(token: str) -> dict:
    return {"Content-Type": "application/json", "X-Shopify-Access-Token": token}


@retry(
    reraise=True,
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
    retry=retry_if_exception_type(ShopifyThrottled),
)
def graphql(domain: str, token: str, query: str, variables=None) -> dict:
    url = f"{admin_base(domain)}/graphql.json"
    r = requests.post(url, headers=rest_headers(token), json={"query": query, "variables": variables or {}}, timeout=60)
    if r.status_code in (429, 502, 503, 504):
        raise ShopifyThrottled(f"{r.status_code} {r.text[:200]}")
    r.raise_for_status()
    body = r.json()
    errors = body.get("errors")
    if errors:
        if any(((e or {}).get("extensions") or {}).get("code") == "THROTTLED" for e in errors if isinstance(e, dict)):
            raise ShopifyThrottled(str(errors))
        raise ShopifyError(errors)
    return body.get("data") or {}


def user_errors(data: dict, field: str) -> list:
    return list(((data or {}).get(field) or {}).get("userErrors") or [])


def sku_query(skus) -> str:
    return " OR ".join(f"sku:{sku}" for sku in skus)


# =========================================================
# Queries
# =========================================================

PRODUCT_NODE_SYNC = """
  id
  title
  status
  media(first: 250, query: "media_type:IMAGE") {
    nodes { ... on MediaImage { id image { url } } }
  }
  variants(first: 1) {
    nodes { id sku compareAtPrice price inventoryItem { id } }
  }
"""

PRODUCT_NODE_STOCK = """
  id
  variants(first: 1) {
    nodes { id sku inventoryQuantity inventoryItem { id } }
  }
"""

PRODUCT_NODE_SKU = """
  id
  variants(first: 1) { nodes { sku } }
"""

PRODUCT_NODE_MIN = """
  id
  title
  status
  variants(first: 1) { nodes { id sku } }
"""

PRODUCTS_BY_QUERY = """
query getProducts($q: String!) {
  products(first: 250, query: $q) {
    nodes { %s }
  }
}
"""

PRODUCTS_PAGE = """
query getProducts($after: String) {
  products(first: 200, after: $after) {
    pageInfo { endCursor hasNextPage }
    nodes { %s }
  }
}
"""

COLLECTIONS_PAGE = """
query getCollections($after: String) {
  collections(first: 200, after: $after) {
    pageInfo { endCursor hasNextPage }
    nodes { id handle title }
  }
}
"""

FILES_PAGE = """
query getFiles($q: String!, $after: String) {
  files(first: 250, query: $q, after: $after) {
    pageInfo { endCursor hasNextPage }
    nodes {
      id
      alt
      ... on MediaImage { image { url } }
    }
  }
}
"""

PUBLICATIONS = """
query getPublications {
  publications(first: 250) { nodes { id name } }
}
"""

# =========================================================
# Mutations
# =========================================================

PRODUCT_CREATE = """
mutation CreateProduct($product: ProductCreateInput!, $media: [CreateMediaInput!]) {
  productCreate(product: $product, media: $media) {
    product {
      id
      title
      variants(first: 1) { nodes { id sku inventoryItem { id } } }
    }
    userErrors { field message }
  }
}
"""

PRODUCT_UPDATE = """
mutation UpdateProduct($product: ProductUpdateInput!, $media: [CreateMediaInput!]) {
  productUpdate(product: $product, media: $media) {
    product { id }
    userErrors { field message }
  }
}
"""

PRODUCT_DELETE = """
mutation DeleteProduct($input: ProductDeleteInput!) {
  productDelete(input: $input) {
    deletedProductId
    userErrors { field message }
  }
}
"""

VARIANTS_BULK_UPDATE = """
mutation productVariantsBulkUpdate($productId: ID!, $variants: [ProductVariantsBulkInput!]!) {
  productVariantsBulkUpdate(productId: $productId, variants: $variants) {
    product { id }
    userErrors { field message }
  }
}
"""

INVENTORY_ITEM_UPDATE = """
mutation inventoryItemUpdate($id: ID!, $input: InventoryItemInput!) {
  inventoryItemUpdate(id: $id, input: $input) {
    inventoryItem { id }
    userErrors { field message }
  }
}
"""

INVENTORY_ADJUST = """
mutation inventoryAdjustQuantities($input: InventoryAdjustQuantitiesInput!) {
  inventoryAdjustQuantities(input: $input) {
    inventoryAdjustmentGroup { createdAt }
    userErrors { field message }
  }
}
"""

FILE_DELETE = """
mutation fileDelete($fileIds: [ID!]!) {
  fileDelete(fileIds: $fileIds) {
    deletedFileIds
    userErrors { field message code }
  }
}
"""

METAFIELDS_SET = """
mutation MetafieldsSet($metafields: [MetafieldsSetInput!]!) {
  metafieldsSet(metafields: $metafields) {
    metafields { key }
    userErrors { field message code }
  }
}
"""

METAFIELD_DEFINITION_CREATE = """
mutation metafieldDefinitionCreate($definition: MetafieldDefinitionInput!) {
  metafieldDefinitionCreate(definition: $definition) {
    createdDefinition { id namespace key }
    userErrors { field message }
  }
}
"""

PUBLISHABLE_PUBLISH = """
mutation PublishablePublish($id: ID!, $input: [PublicationInput!]!) {
  publishablePublish(id: $id, input: $input) {
    userErrors { field message }
  }
}
"""

COLLECTION_CREATE = """
mutation CollectionCreate($input: CollectionInput!) {
  collectionCreate(input: $input) {
    collection { id title handle }
    userErrors { field message }
  }
}
"""

COLLECTION_UPDATE = """
mutation CollectionUpdate($input: CollectionInput!) {
  collectionUpdate(input: $input) {
    collection { id }
    userErrors { field message }
  }
}
"""

MENU_CREATE = """
mutation CreateMenu($title: String!, $handle: String!, $items: [MenuItemCreateInput!]!) {
  menuCreate(title: $title, handle: $handle, items: $items) {
    menu { id handle }
    userErrors { field message }
  }
}
"""

STAGED_UPLOADS_CREATE = """
mutation stagedUploadsCreate($input: [StagedUploadInput!]!) {
  stagedUploadsCreate(input: $input) {
    stagedTargets { url resourceUrl parameters { name value } }
    userErrors { field message }
  }
}
"""

FILE_CREATE = """
mutation fileCreate($files: [FileCreateInput!]!) {
  fileCreate(files: $files) {
    files { id alt }
    userErrors { field message }
  }
}
"""


# =========================================================
# Client bound to one store
# =========================================================

class ShopifyClient:
    """Shopify Admin GraphQL calls for one store. Services receive one of these."""

    def __init__(self, store: StoreConfig):
        self.store = store
        self.name = store.name

    def graphql(self, query: str, variables=None) -> dict:
        return graphql(self.store.shop_domain, self.store.access_token, query, variables)

    # ---------- reads ----------

    def products_by_sku(self, skus, fields: str = PRODUCT_NODE_SYNC) -> List[PlatformProduct]:
        out: List[PlatformProduct] = []
        for batch in chunk([s for s in skus if s], SKU_QUERY_LIMIT):
            data = self.graphql(PRODUCTS_BY_QUERY % fields, {"q": sku_query(batch)})
            nodes = ((data.get("products") or {}).get("nodes")) or []
            out.extend(PlatformProduct.from_node(n) for n in nodes)
        return out

    def _paginate(self, query: str, root: str, variables=None) -> Iterator[dict]:
        after = None
        while True:
            data = self.graphql(query, {**(variables or {}), "after": after})
            block = data.get(root) or {}
            yield from (block.get("nodes") or [])
            page = block.get("pageInfo") or {}
            if not page.get("hasNextPage"):
                return
            after = page.get("endCursor")

    def iter_products(self, fields: str = PRODUCT_NODE_MIN) -> Iterator[PlatformProduct]:
        for node in self._paginate(PRODUCTS_PAGE % fields, "products"):
            yield PlatformProduct.from_node(node)

    def iter_collections(self) -> Iterator[dict]:
        return self._paginate(COLLECTIONS_PAGE, "collections")

    def iter_files(self, query: str) -> Iterator[dict]:
        return self._paginate(FILES_PAGE, "files", {"q": query})

    def files_by_name(self, names) -> List[dict]:
        out = []
        for batch in chunk(list(names), FILE_QUERY_LIMIT):
            q = " OR ".join(f"filename:{n}" for n in batch)
            out.extend(self.iter_files(q))
        return out

    def get_publications(self) -> List[dict]:
        data = self.graphql(PUBLICATIONS)
        return list(((data.get("publications") or {}).get("nodes")) or [])

    # ---------- product writes ----------

    def create_product(self, product: dict, media: Optional[list] = None) -> Tuple[Optional[dict], list]:
        variables = {"product": product}
        if media:
            variables["media"] = media
        data = self.graphql(PRODUCT_CREATE, variables)
        return (data.get("productCreate") or {}).get("product"), user_errors(data, "productCreate")

    def update_product_status(self, product_id: str, status: str = "DRAFT") -> Tuple[Optional[dict], list]:
        data = self.graphql(PRODUCT_UPDATE, {"product": {"id": product_id, "status": status}})
        return (data.get("productUpdate") or {}).get("product"), user_errors(data, "productUpdate")

    def add_product_media(self, product_id: str, media: list) -> list:
        data = self.graphql(PRODUCT_UPDATE, {"product": {"id": product_id}, "media": media})
        return user_errors(data, "productUpdate")

    def delete_product(self, product_id: str) -> list:
        data = self.graphql(PRODUCT_DELETE, {"input": {"id": product_id}})
        return user_errors(data, "productDelete")

    def update_variants(self, product_id: str, variants: list) -> list:
        data = self.graphql(VARIANTS_BULK_UPDATE, {"productId": product_id, "variants": variants})
        return user_errors(data, "productVariantsBulkUpdate")

    def update_inventory_item(self, inventory_item_id: str, input: dict) -> list:
        data = self.graphql(INVENTORY_ITEM_UPDATE, {"id": inventory_item_id, "input": input})
        return user_errors(data, "inventoryItemUpdate")

    def adjust_inventory(self, changes: list, reason: str = "received") -> list:
        variables = {"input": {"changes": changes, "reason": reason, "name": "available"}}
        data = self.graphql(INVENTORY_ADJUST, variables)
        return user_errors(data, "inventoryAdjustQuantities")

    # ---------- files ----------

    def delete_files(self, file_ids: list) -> Tuple[list, list]:
        data = self.graphql(FILE_DELETE, {"fileIds": file_ids})
        block = data.get("fileDelete") or {}
        return list(block.get("deletedFileIds") or []), list(block.get("userErrors") or [])

    def staged_uploads_create(self, inputs: list) -> list:
        data = self.graphql(STAGED_UPLOADS_CREATE, {"input": inputs})
        errs = user_errors(data, "stagedUploadsCreate")
        if errs:
            raise ShopifyError(errs)
        return list((data.get("stagedUploadsCreate") or {}).get("stagedTargets") or [])

    def upload_to_staged_target(self, target: dict, content: bytes, filename: str):
        form = {p["name"]: p["value"] for p in (target.get("parameters") or [])}
        r = requests.post(target["url"], data=form, files={"file": (filename, content)}, timeout=120)
        if r.status_code not in (200, 201, 204):
            warn(f"[files] staged upload failed for {filename}: {r.status_code}", self.name)
            return False
        return True

    def file_create(self, files: list) -> list:
        data = self.graphql(FILE_CREATE, {"files": files})
        errs = user_errors(data, "fileCreate")
        if errs:
            raise ShopifyError(errs)
        return list((data.get("fileCreate") or {}).get("files") or [])

    # ---------- metafields / publications / collections ----------

    def set_metafields(self, metafields: list) -> list:
        data = self.graphql(METAFIELDS_SET, {"metafields": metafields})
        return user_errors(data, "metafieldsSet")

    def create_metafield_definition(self, definition: dict) -> Tuple[Optional[dict], list]:
        data = self.graphql(METAFIELD_DEFINITION_CREATE, {"definition": definition})
        block = data.get("metafieldDefinitionCreate") or {}
        return block.get("createdDefinition"), list(block.get("userErrors") or [])

    def publish(self, publishable_id: str, publication_id: str) -> list:
        data = self.graphql(PUBLISHABLE_PUBLISH, {"id": publishable_id, "input": [{"publicationId": publication_id}]})
        return user_errors(data, "publishablePublish")

    def create_collection(self, input: dict) -> Tuple[Optional[dict], list]:
        data = self.graphql(COLLECTION_CREATE, {"input": input})
        return (data.get("collectionCreate") or {}).get("collection"), user_errors(data, "collectionCreate")

    def update_collection(self, input: dict) -> list:
        data = self.graphql(COLLECTION_UPDATE, {"input": input})
        return user_errors(data, "collectionUpdate")

    def create_menu(self, title: str, handle: str, items: list) -> Tuple[Optional[dict], list]:
        data = self.graphql(MENU_CREATE, {"title": title, "handle": handle, "items": items})
        return (data.get("menuCreate") or {}).get("menu"), user_errors(data, "menuCreate")


def fetch_bytes(url: str) -> Optional[bytes]:
    try:
        r = requests.get(url, timeout=120)
        r.raise_for_status()
        return r.content
    except requests.RequestException as e:
        warn(f"[files] failed fetching {url.split('/')[-1]}: {e}")
        return None
