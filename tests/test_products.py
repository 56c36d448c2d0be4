import json

from conftest import FakeShopify, platform_product, supplier_product

from catalog_sync.models import PlatformImage
from catalog_sync.services.metafields import DiamondMetafieldEncoder
from catalog_sync.services.products import (
    add_media,
    adjust_stock,
    create_product_batch,
    delete_media,
    disable_products,
    product_input,
    update_prices,
    variant_input,
)
from catalog_sync.services.reconcile import Disable, MediaUpdate, PriceUpdate, StockAdjust
from catalog_sync.utils.deadletter import MemorySink

LOCATION = "gid://shopify/Location/1"


def _create(client, batch):
    return create_product_batch(client, batch, client.get_publications(), DiamondMetafieldEncoder(), LOCATION)


def test_product_input_title_and_status():
    active = product_input(supplier_product("A1", name="Combi Oven"), [])
    assert active["title"] == "Combi Oven - A1"
    assert active["status"] == "ACTIVE"
    assert "metafields" not in active
    assert product_input(supplier_product("A2", is_old=True), [])["status"] == "DRAFT"


def test_variant_input_sets_promo_price_and_catalog_compare_at():
    v = variant_input(supplier_product("A1", catalog=120, promo="99.5"), "gid://shopify/ProductVariant/1")
    assert v == {
        "id": "gid://shopify/ProductVariant/1",
        "inventoryItem": {"sku": "A1", "tracked": True},
        "price": "99.50",
        "compareAtPrice": "120.00",
    }


def test_create_batch_runs_every_step(no_downloads):
    client = FakeShopify()
    batch = [
        supplier_product("A1", availability=4, weight="12.5", weight_unit="kg",
                         images=["https://supplier.test/a1.jpg"], brand="Diamond"),
        supplier_product("A2"),
    ]

    result = _create(client, batch)

    assert result.status == "success"
    assert [c.product.id for c in result.created] == ["A1", "A2"]

    product, media = next(args for args in client.calls_to("create_product") if args[0]["title"].endswith("- A1"))
    assert {"namespace": "product", "key": "brand", "type": "single_line_text_field", "value": "Diamond"} \
        in product["metafields"]
    assert media == [{"originalSource": "https://supplier.test/a1.jpg", "mediaContentType": "IMAGE",
                      "alt": "Uploaded DIAMOND Image"}]

    assert len(client.calls_to("update_variants")) == 2
    (weight,) = client.calls_to("update_inventory_item")
    assert weight[1] == {"measurement": {"weight": {"unit": "KILOGRAMS", "value": 12.5}}}

    (adjust,) = client.calls_to("adjust_inventory")
    changes, reason = adjust
    assert reason == "received"
    assert [(c["delta"], c["locationId"]) for c in changes] == [(4, LOCATION)]

    # two products x two publications
    assert len(client.calls_to("publish")) == 4


def test_weight_and_inventory_skipped_when_nobody_needs_them(no_downloads):
    client = FakeShopify()
    _create(client, [supplier_product("A1"), supplier_product("A2")])
    assert client.calls_to("update_inventory_item") == []
    assert client.calls_to("adjust_inventory") == []


def test_failed_create_does_not_stop_the_rest(no_downloads):
    client = FakeShopify()
    client.fail["create_product"] = lambda product, media: (
        [{"field": ["title"], "message": "bad"}] if product["title"].endswith("- BAD") else [])

    result = _create(client, [supplier_product("BAD"), supplier_product("GOOD")])

    assert result.status == "error"
    assert [p.id for p in result.failed_products] == ["BAD"]
    assert [c.product.id for c in result.created] == ["GOOD"]
    # only the survivor moves on to the variant step
    assert [args[0] for args in client.calls_to("update_variants")] == [result.created[0].id]


def test_variant_failure_drops_item_from_later_steps(no_downloads):
    client = FakeShopify()
    client.fail["update_variants"] = [{"field": ["price"], "message": "invalid"}]
    result = _create(client, [supplier_product("A1", availability=3)])
    assert result.created == []
    assert len(result.shells) == 1
    assert client.calls_to("adjust_inventory") == []
    assert client.calls_to("publish") == []


def test_documents_are_uploaded_once_and_referenced(no_downloads):
    client = FakeShopify()
    doc = {"url": "https://supplier.test/docs/manual%20en.pdf", "name": "Manual"}
    batch = [supplier_product("D1", documents=[doc]), supplier_product("D2", documents=[doc])]

    result = _create(client, batch)

    assert result.status == "success"
    (staged,) = client.calls_to("staged_uploads_create")
    assert [i["filename"] for i in staged[0]] == ["manual_20en.pdf"]
    product, _ = client.calls_to("create_product")[0]
    by_key = {m["key"]: m for m in product["metafields"]}
    assert len(json.loads(by_key["documents"]["value"])) == 1
    assert json.loads(by_key["json_documents"]["value"]) == [doc]


def test_already_uploaded_documents_are_reused(no_downloads):
    client = FakeShopify()
    client.files = [{"id": "gid://shopify/GenericFile/7", "alt": "Uploaded DIAMOND File: manual.pdf"}]
    result = _create(client, [supplier_product("D1", documents=[{"url": "https://supplier.test/manual.pdf"}])])

    assert result.status == "success"
    assert client.calls_to("staged_uploads_create") == []
    product, _ = client.calls_to("create_product")[0]
    by_key = {m["key"]: m for m in product["metafields"]}
    assert json.loads(by_key["documents"]["value"]) == ["gid://shopify/GenericFile/7"]


def test_disable_sends_failures_to_sink():
    client = FakeShopify()
    client.fail["update_product_status"] = lambda pid, status: (
        [{"message": "nope"}] if pid.endswith("/X") else [])
    sink = MemorySink()
    actions = [Disable(supplier_product("X", is_old=True), platform_product("X")),
               Disable(supplier_product("Y", is_old=True), platform_product("Y"))]

    report = disable_products(client, actions, sink)

    assert report.done == 1
    assert [r["id"] for r in sink.records] == ["X"]
    assert all(args[1] == "DRAFT" for args in client.calls_to("update_product_status"))


def test_update_prices_batches_of_ten():
    client = FakeShopify()
    actions = [PriceUpdate(supplier_product(f"P{i}", catalog=120), platform_product(f"P{i}"), 100.0, 120.0, 90.0)
               for i in range(12)]
    report = update_prices(client, actions)
    assert report.done == 12
    assert report.status == "success"
    product_id, variants = client.calls_to("update_variants")[0]
    assert variants[0]["compareAtPrice"] == "120.00"


def test_media_add_and_delete():
    client = FakeShopify()
    old = PlatformImage("gid://shopify/MediaImage/1", "https://cdn.shopify.com/old_1.jpg")
    update = MediaUpdate(supplier_product("M1"), platform_product("M1"),
                         additions=("https://supplier.test/new.jpg",), deletions=(old,))

    assert add_media(client, [update]).done == 1
    assert delete_media(client, [update]).done == 1
    (deleted,) = client.calls_to("delete_files")
    assert deleted[0] == ["gid://shopify/MediaImage/1"]


def test_adjust_stock_uses_inventory_item_and_location():
    client = FakeShopify()
    report = adjust_stock(client, [StockAdjust(supplier_product("S1"), platform_product("S1"), 3)], LOCATION)
    assert report.done == 1
    (changes, reason), = client.calls_to("adjust_inventory")
    assert changes == [{"delta": 3, "inventoryItemId": "gid://shopify/InventoryItem/S1", "locationId": LOCATION}]


def test_failed_price_update_is_logged(capsys):
    client = FakeShopify()
    client.fail["update_variants"] = [{"field": ["price"], "message": "invalid price"}]
    report = update_prices(client, [PriceUpdate(supplier_product("P1"), platform_product("P1"), 100.0, 120.0, 90.0)])
    assert [p.id for p in report.failed] == ["P1"]
    assert "invalid price" in capsys.readouterr().out


def test_failed_stock_batch_is_logged_and_not_counted(capsys):
    client = FakeShopify()
    client.fail["adjust_inventory"] = [{"message": "location not found"}]

    report = adjust_stock(client, [StockAdjust(supplier_product("S1"), platform_product("S1"), 3)], LOCATION)

    assert (report.done, report.status) == (0, "error")
    assert [p.id for p in report.failed] == ["S1"]
    out = capsys.readouterr()
    assert "location not found" in out.err
    assert "0/1 stock updates synced!" in out.out
