import json

from conftest import FakeShopify, platform_product, supplier_product

from catalog_sync.models import KnownProduct
from catalog_sync.services import relationships
from catalog_sync.services.relationships import (
    ACCESSORY,
    INCLUDED,
    REPLACEMENT,
    edges,
    resolve_relationships,
    write_relationships,
)


def test_edges_cover_every_kind():
    product = supplier_product("A", accessories=["B"], included=["C"], replacement_product_id="D")
    assert {(e.to_sku, e.kind) for e in edges(product)} == {("B", ACCESSORY), ("C", INCLUDED), ("D", REPLACEMENT)}


def test_missing_reference_is_dropped_without_error():
    client = FakeShopify(products=[platform_product("A"), platform_product("B")])
    referrer = supplier_product("A", accessories=["B", "C"])

    report = write_relationships(client, [referrer])

    assert report.status == "success"
    (written,) = client.calls_to("set_metafields")[0][0]
    assert written["ownerId"] == "gid://shopify/Product/A"
    assert written["key"] == "accessories"
    assert json.loads(written["value"]) == ["gid://shopify/Product/B"]


def test_known_products_are_not_queried_again():
    client = FakeShopify(products=[platform_product("B")])
    referrer = supplier_product("A", replacement_product_id="B")
    known = [KnownProduct("gid://shopify/Product/900", "A")]

    report = resolve_relationships(client, [referrer], known)

    (queried,) = client.calls_to("products_by_sku")
    assert queried[0] == ["B"]
    (mf,) = report.metafields
    assert mf == {
        "ownerId": "gid://shopify/Product/900",
        "namespace": "product",
        "key": "replacement_product_id",
        "type": "product_reference",
        "value": "gid://shopify/Product/B",
    }


def test_referrer_missing_on_platform_is_skipped():
    client = FakeShopify(products=[platform_product("B")])
    report = resolve_relationships(client, [supplier_product("A", accessories=["B"])])
    assert report.metafields == []


def test_products_without_relationships_do_nothing():
    client = FakeShopify()
    report = write_relationships(client, [supplier_product("A")])
    assert report.metafields == []
    assert client.calls == []


def test_user_errors_are_reported():
    client = FakeShopify(products=[platform_product("A"), platform_product("B")])
    client.fail["set_metafields"] = [{"field": ["value"], "message": "invalid reference"}]
    report = write_relationships(client, [supplier_product("A", included=["B"])])
    assert report.status == "error"
    assert report.errors[0]["message"] == "invalid reference"


def test_failed_lookup_drops_its_skus_and_is_reported(monkeypatch):
    monkeypatch.setattr(relationships, "SKU_LOOKUP", 1)
    client = FakeShopify(products=[platform_product("A"), platform_product("B")])
    client.unqueryable = {"B"}

    report = resolve_relationships(client, [supplier_product("A", accessories=["B"])])

    assert report.status == "error"
    assert report.errors == [{"message": "Query cost exceeds max"}]
    (mf,) = report.metafields
    assert mf["ownerId"] == "gid://shopify/Product/A"
    assert json.loads(mf["value"]) == []
