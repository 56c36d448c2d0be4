import pytest
from conftest import supplier_product

from catalog_sync.services.metafields import DiamondMetafieldEncoder, get_profile


def test_encoder_skips_missing_and_empty_values():
    product = supplier_product("A1", brand="  Diamond ", cusref="", popup_info=None, is_new=True, kcal_power=1200)
    by_key = {m["key"]: m for m in DiamondMetafieldEncoder().encode(product)}

    assert by_key["brand"]["value"] == "Diamond"
    assert by_key["is_new"] == {"namespace": "product", "key": "is_new", "type": "boolean", "value": "true"}
    assert by_key["kcal_power"]["type"] == "number_integer"
    assert by_key["kcal_power"]["value"] == "1200"
    assert "cusref" not in by_key
    assert "popup_info" not in by_key


def test_json_metafield_is_serialized():
    product = supplier_product("A1", eprel={"class": "A+", "url": "https://eprel.test/1"})
    (eprel,) = [m for m in DiamondMetafieldEncoder().encode(product) if m["key"] == "eprel"]
    assert eprel["type"] == "json"
    assert eprel["value"] == '{"class": "A+", "url": "https://eprel.test/1"}'


def test_definitions_include_reference_fields():
    keys = {d["key"] for d in DiamondMetafieldEncoder().definitions()}
    assert {"brand", "documents", "accessories", "includedProducts", "replacement_product_id"} <= keys


def test_diamond_profile_has_menu():
    profile = get_profile("DIAMOND")
    pairs = profile.collection_titles()
    assert len(profile.product_menu) == 17
    assert len(pairs) == sum(len(v) for v in profile.product_menu.values())
    assert profile.range_definition_id.startswith("gid://shopify/MetafieldDefinition/")


def test_hendi_profile_reuses_schema_without_menu():
    profile = get_profile("HENDI")
    assert isinstance(profile.encoder, DiamondMetafieldEncoder)
    assert profile.collection_titles() == []


def test_unknown_profile():
    with pytest.raises(KeyError):
        get_profile("NOPE")
