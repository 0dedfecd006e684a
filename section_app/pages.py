from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import re
from typing import Any

from section_app.config import settings
from section_app.errors import GatewayError
from section_app.gateway import ThemeAssetGateway, page_template_key
from section_app.shopify_api import ShopifyApiClient, ShopifyApiError

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
DEFAULT_PAGE_TITLE = "New LP"


@dataclass(frozen=True)
class LandingPage:
    template_key: str
    template_suffix: str
    page_id: str
    editor_url: str


def build_template_suffix(section_names: list[str], *, prefix: str | None = None) -> str:
    combo = "-".join(sorted(section_names)).lower()
    combo = _WHITESPACE_RE.sub("-", combo)
    return f"{prefix or settings.LANDING_PAGE_TEMPLATE_PREFIX}-{combo}"


def build_page_template(section_names: list[str], *, block_prefix: str | None = None) -> dict[str, Any]:
    prefix = block_prefix or settings.LANDING_PAGE_APP_BLOCK_PREFIX
    sections: dict[str, Any] = {}
    order: list[str] = []
    for index, name in enumerate(section_names):
        key = f"section_{index}"
        sections[key] = {"type": f"{prefix}/{name}", "settings": {}}
        order.append(key)
    return {"sections": sections, "order": order}


def theme_editor_url(*, shop_domain: str, page_id: str) -> str:
    numeric_id = page_id.rsplit("/", 1)[-1]
    return (
        f"https://{shop_domain}/admin/themes/current/editor"
        f"?resourceId={numeric_id}&resourceType=Page"
    )


async def create_landing_page(
    *,
    gateway: ThemeAssetGateway,
    client: ShopifyApiClient,
    title: str | None,
    section_names: list[str],
) -> LandingPage:
    shop = gateway.shop
    suffix = build_template_suffix(section_names)
    template_key = page_template_key(suffix)
    logger.info("pages.template_write", extra={"shop_domain": shop.shop_domain, "template_suffix": suffix})

    theme = await gateway.resolve_live_theme()
    content = json.dumps(build_page_template(section_names), indent=2)
    await gateway.write_asset(theme.id, template_key, content)

    try:
        page = await client.create_page(
            shop_domain=shop.shop_domain,
            access_token=shop.access_token,
            title=(title or "").strip() or DEFAULT_PAGE_TITLE,
            template_suffix=suffix,
        )
    except ShopifyApiError as exc:
        logger.error(
            "pages.create_failed",
            extra={"shop_domain": shop.shop_domain, "template_suffix": suffix, "error": str(exc)},
        )
        raise GatewayError(f"Failed to create page: {exc}", remote_status_code=exc.status_code) from exc

    return LandingPage(
        template_key=template_key,
        template_suffix=suffix,
        page_id=page["id"],
        editor_url=theme_editor_url(shop_domain=shop.shop_domain, page_id=page["id"]),
    )
