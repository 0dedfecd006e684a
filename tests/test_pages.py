from __future__ import annotations

import asyncio
import json

from conftest import LIVE_THEME_ID
from section_app.gateway import ShopContext, ThemeAssetGateway
from section_app.pages import build_page_template, build_template_suffix, create_landing_page, theme_editor_url


def test_template_suffix_is_sorted_lowercased_and_hyphenated():
    suffix = build_template_suffix(["Premium Features", "FAQ", "Hero"], prefix="refine")

    assert suffix == "refine-faq-hero-premium-features"


def test_template_suffix_ignores_selection_order():
    assert build_template_suffix(["b", "a"]) == build_template_suffix(["a", "b"])


def test_page_template_keeps_selection_order():
    template = build_page_template(["Hero", "FAQ"], block_prefix="shopify://apps/demo/blocks")

    assert template["order"] == ["section_0", "section_1"]
    assert template["sections"]["section_0"] == {"type": "shopify://apps/demo/blocks/Hero", "settings": {}}
    assert template["sections"]["section_1"]["type"] == "shopify://apps/demo/blocks/FAQ"


def test_editor_url_uses_numeric_page_id():
    url = theme_editor_url(shop_domain="example.myshopify.com", page_id="gid://shopify/Page/42")

    assert url == "https://example.myshopify.com/admin/themes/current/editor?resourceId=42&resourceType=Page"


def test_create_landing_page_writes_template_and_page(fake_theme_api):
    shop = ShopContext(shop_id=1, shop_domain="example.myshopify.com", access_token="token")
    gateway = ThemeAssetGateway(shop=shop, client=fake_theme_api)

    page = asyncio.run(
        create_landing_page(
            gateway=gateway,
            client=fake_theme_api,
            title="  ",
            section_names=["Hero", "FAQ"],
        )
    )

    assert page.template_key == "templates/page.refine-faq-hero.json"
    written = json.loads(fake_theme_api.files[(LIVE_THEME_ID, page.template_key)])
    assert written["order"] == ["section_0", "section_1"]
    assert fake_theme_api.pages[0]["title"] == "New LP"
    assert fake_theme_api.pages[0]["templateSuffix"] == "refine-faq-hero"
    assert page.editor_url.endswith("resourceId=1&resourceType=Page")
