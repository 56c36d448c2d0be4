from conftest import FakeShopify

from catalog_sync.config import get_store, store_for_domain
from catalog_sync.routes.setup_metafields import create_definitions
from catalog_sync.scheduler import build_scheduler
from catalog_sync.services.metafields import DiamondMetafieldEncoder


def test_create_definitions_reports_each_key():
    client = FakeShopify()
    client.fail["create_metafield_definition"] = lambda d: (
        [{"field": ["key"], "message": "Key has already been taken"}] if d["key"] == "brand" else [])

    lines = create_definitions(get_store("DIAMOND"), client=client)

    assert len(lines) == len(DiamondMetafieldEncoder().definitions())
    assert "DIAMOND product.brand: EXISTS" in lines
    assert any(line.startswith("DIAMOND product.documents: OK") for line in lines)


def test_store_lookup_by_domain():
    assert store_for_domain("hendi-test.myshopify.com").name == "HENDI"
    assert store_for_domain("unknown.myshopify.com") is None
    assert store_for_domain(None) is None


def test_scheduler_registers_both_cron_jobs():
    scheduler = build_scheduler(["DIAMOND"])
    jobs = {job.id: job for job in scheduler.get_jobs()}
    assert set(jobs) == {"DIAMOND:halfday", "DIAMOND:hourly"}
    assert jobs["DIAMOND:halfday"].args == ("DIAMOND", "halfday")
    hourly = {f.name: str(f) for f in jobs["DIAMOND:hourly"].trigger.fields}
    halfday = {f.name: str(f) for f in jobs["DIAMOND:halfday"].trigger.fields}
    assert (hourly["minute"], hourly["hour"]) == ("0", "*")
    assert (halfday["minute"], halfday["hour"]) == ("0", "0,12")
