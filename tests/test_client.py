from __future__ import annotations

import asyncio

import httpx
import pytest
from sqlalchemy import select

import section_app.main as main_module
from conftest import LIVE_THEME_ID
from section_app.client import SectionManagerClient
from section_app.config import settings
from section_app.models import SectionInstallation


@pytest.fixture()
def manager_client(fake_theme_api, monkeypatch) -> SectionManagerClient:
    monkeypatch.setattr(main_module, "shopify_api", fake_theme_api)
    return SectionManagerClient(
        base_url="http://testserver",
        api_token=settings.SHOPIFY_INTERNAL_API_TOKEN,
        shop_domain="example.myshopify.com",
        transport=httpx.ASGITransport(app=main_module.app),
    )


def _ledger_rows(db_session) -> list[SectionInstallation]:
    db_session.expire_all()
    return list(db_session.scalars(select(SectionInstallation)).all())


def _ledger_slugs(db_session) -> list[str]:
    return sorted(row.section.slug for row in _ledger_rows(db_session))


def test_install_sections_keeps_going_after_a_failure(manager_client, db_session, shop, catalog, fake_theme_api):
    fake_theme_api.fail_writes.add("sections/faq.liquid")

    result = asyncio.run(manager_client.install_sections(["hero-banner", "faq", "testimonials"]))

    assert result.success == ["hero-banner", "testimonials"]
    assert result.failed == ["faq"]
    assert manager_client.error == "1 section(s) failed to install: faq"
    assert _ledger_slugs(db_session) == ["hero-banner", "testimonials"]
    assert sorted(item.sectionSlug for item in manager_client.installations) == ["hero-banner", "testimonials"]
    assert manager_client.is_loading is False


def test_single_install_refreshes_cache_and_reports_conflict(manager_client, db_session, shop, catalog):
    assert asyncio.run(manager_client.install_section("faq")) is True
    assert [item.sectionSlug for item in manager_client.installations] == ["faq"]
    assert manager_client.installations[0].themeId == LIVE_THEME_ID

    assert asyncio.run(manager_client.install_section("faq")) is False
    assert "already installed" in manager_client.error

    manager_client.clear_error()
    assert manager_client.error is None


def test_update_all_sections_only_targets_outdated_entries(manager_client, db_session, shop, catalog, fake_theme_api):
    asyncio.run(manager_client.install_sections(["hero-banner", "faq"]))
    catalog["faq"].version = "2"
    db_session.commit()
    asyncio.run(manager_client.fetch_installations())
    fake_theme_api.calls.clear()

    result = asyncio.run(manager_client.update_all_sections())

    assert result.success == ["faq"]
    assert result.failed == []
    assert manager_client.error is None
    assert ("upsert_theme_files", "sections/faq.liquid") in fake_theme_api.calls
    assert ("upsert_theme_files", "sections/hero-banner.liquid") not in fake_theme_api.calls
    assert all(item.hasUpdate is False for item in manager_client.installations)


def test_uninstall_section_drops_cached_entry(manager_client, db_session, shop, catalog):
    asyncio.run(manager_client.install_sections(["faq", "testimonials"]))

    assert asyncio.run(manager_client.uninstall_section("faq")) is True

    assert [item.sectionSlug for item in manager_client.installations] == ["testimonials"]
    assert _ledger_slugs(db_session) == ["testimonials"]


def test_cleanup_dry_run_reports_without_deleting(manager_client, db_session, shop, catalog, fake_theme_api):
    asyncio.run(manager_client.install_sections(["hero-banner", "faq", "testimonials"]))

    preview = asyncio.run(manager_client.cleanup_all(dry_run=True))
    assert preview.success is True
    assert preview.count == 3
    assert len(_ledger_slugs(db_session)) == 3
    assert len(fake_theme_api.files) == 3

    executed = asyncio.run(manager_client.cleanup_all())
    assert executed.success is True
    assert executed.count == 3
    assert _ledger_slugs(db_session) == []
    assert fake_theme_api.files == {}
    assert manager_client.installations == []


def test_fetch_installations_records_error_for_unknown_shop(fake_theme_api, monkeypatch, db_session):
    monkeypatch.setattr(main_module, "shopify_api", fake_theme_api)
    client = SectionManagerClient(
        base_url="http://testserver",
        api_token=settings.SHOPIFY_INTERNAL_API_TOKEN,
        shop_domain="missing.myshopify.com",
        transport=httpx.ASGITransport(app=main_module.app),
    )

    asyncio.run(client.fetch_installations())

    assert client.installations == []
    assert client.error == "No active Shopify installation found for shopDomain=missing.myshopify.com"
    assert client.is_loading is False


def test_cleanup_dry_run_counts_rows_without_catalog_entry(manager_client, db_session, shop, catalog):
    asyncio.run(manager_client.install_sections(["hero-banner", "faq", "testimonials"]))
    db_session.delete(catalog["faq"])
    db_session.commit()

    preview = asyncio.run(manager_client.cleanup_all(dry_run=True))

    assert preview.success is True
    assert preview.count == 3
    assert len(_ledger_rows(db_session)) == 3
