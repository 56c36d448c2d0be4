import pytest

from catalog_sync.clients import shopify
from catalog_sync.clients.shopify import ShopifyClient, ShopifyError, sku_query, user_errors
from catalog_sync.config import get_store


class FakeResponse:
    def __init__(self, body, status_code=200):
        self._body = body
        self.status_code = status_code
        self.text = str(body)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise shopify.requests.HTTPError(self.text)

    def json(self):
        return self._body


@pytest.fixture
def responses(monkeypatch):
    queue, sent = [], []

    def post(url, headers=None, json=None, timeout=None):
        sent.append((url, headers, json))
        return queue.pop(0)

    monkeypatch.setattr(shopify.requests, "post", post)
    return queue, sent


def test_sku_query():
    assert sku_query(["A", "B"]) == "sku:A OR sku:B"


def test_user_errors_helper():
    data = {"productCreate": {"userErrors": [{"message": "x"}]}}
    assert user_errors(data, "productCreate") == [{"message": "x"}]
    assert user_errors({}, "productCreate") == []


def test_graphql_returns_data_and_sends_token(responses):
    queue, sent = responses
    queue.append(FakeResponse({"data": {"publications": {"nodes": [{"id": "p1"}]}}}))
    client = ShopifyClient(get_store("DIAMOND"))

    assert client.get_publications() == [{"id": "p1"}]
    url, headers, _ = sent[0]
    assert url.startswith("https://diamond-test.myshopify.com/admin/api/")
    assert url.endswith("/graphql.json")
    assert headers["X-Shopify-Access-Token"] == "shpat_test"


def test_top_level_errors_raise(responses):
    queue, _ = responses
    queue.append(FakeResponse({"errors": [{"message": "Field 'nope' doesn't exist"}]}))
    with pytest.raises(ShopifyError):
        ShopifyClient(get_store("DIAMOND")).get_publications()


def test_throttled_call_is_retried(responses):
    queue, sent = responses
    queue.append(FakeResponse({"errors": "Throttled"}, status_code=429))
    queue.append(FakeResponse({"data": {"productDelete": {"deletedProductId": "1", "userErrors": []}}}))
    assert ShopifyClient(get_store("DIAMOND")).delete_product("gid://shopify/Product/1") == []
    assert len(sent) == 2


def test_products_by_sku_chunks_queries(responses):
    queue, sent = responses
    node = {"id": "gid://shopify/Product/1", "status": "ACTIVE",
            "variants": {"nodes": [{"id": "v1", "sku": "A", "compareAtPrice": "10.00"}]},
            "media": {"nodes": [{"id": "m1", "image": {"url": "https://cdn.shopify.com/a_1.jpg"}}]}}
    queue.append(FakeResponse({"data": {"products": {"nodes": [node]}}}))
    queue.append(FakeResponse({"data": {"products": {"nodes": []}}}))

    products = ShopifyClient(get_store("DIAMOND")).products_by_sku([f"S{i}" for i in range(150)])

    assert len(sent) == 2
    assert sent[1][2]["variables"]["q"].count("sku:") == 50
    (p,) = products
    assert (p.sku, p.variant.compare_at_price, p.media[0].url) == ("A", "10.00", "https://cdn.shopify.com/a_1.jpg")


def test_pagination_follows_cursor(responses):
    queue, sent = responses
    page = lambda nodes, more, cursor: FakeResponse({"data": {"collections": {
        "nodes": nodes, "pageInfo": {"hasNextPage": more, "endCursor": cursor}}}})
    queue.extend([page([{"id": "c1"}], True, "cur1"), page([{"id": "c2"}], False, None)])

    assert [c["id"] for c in ShopifyClient(get_store("DIAMOND")).iter_collections()] == ["c1", "c2"]
    assert sent[1][2]["variables"]["after"] == "cur1"
