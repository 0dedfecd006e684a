from __future__ import annotations

from dataclasses import dataclass
import logging

import httpx

from section_app.errors import GatewayError, NoLiveThemeError
from section_app.shopify_api import ShopifyApiClient, ShopifyApiError

logger = logging.getLogger(__name__)

LIVE_THEME_ROLE = "MAIN"


@dataclass(frozen=True)
class ShopContext:
    shop_id: int
    shop_domain: str
    access_token: str


@dataclass(frozen=True)
class Theme:
    id: str
    name: str
    role: str


def section_asset_key(slug: str) -> str:
    return f"sections/{slug}.liquid"


def page_template_key(suffix: str) -> str:
    return f"templates/page.{suffix}.json"


def is_not_found(error: BaseException) -> bool:
    """Classify a remote failure as "the file (or theme) is absent".

    Shopify reports absence differently depending on the API surface: an HTTP
    404, a GraphQL user error with code ``NOT_FOUND``, or only a message.
    Everything else is a real failure and must not be treated as absence.
    """
    if isinstance(error, GatewayError):
        return error.remote_status_code == 404
    if isinstance(error, ShopifyApiError):
        if error.status_code == 404:
            return True
        if error.error_code and error.error_code.upper() in {"NOT_FOUND", "FILE_NOT_FOUND"}:
            return True
        return "not found" in str(error).lower() and error.status_code in {404, 409}
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code == 404
    return False


def _as_gateway_error(exc: ShopifyApiError, *, action: str) -> GatewayError:
    return GatewayError(f"{action} failed: {exc}", remote_status_code=exc.status_code)


class ThemeAssetGateway:
    def __init__(self, *, shop: ShopContext, client: ShopifyApiClient) -> None:
        self._shop = shop
        self._client = client

    @property
    def shop(self) -> ShopContext:
        return self._shop

    async def resolve_live_theme(self) -> Theme:
        try:
            themes = await self._client.list_themes(
                shop_domain=self._shop.shop_domain,
                access_token=self._shop.access_token,
                roles=[LIVE_THEME_ROLE],
            )
        except ShopifyApiError as exc:
            raise _as_gateway_error(exc, action="Theme lookup") from exc

        for theme in themes:
            if theme["role"].upper() == LIVE_THEME_ROLE:
                logger.info(
                    "gateway.live_theme_resolved",
                    extra={"shop_domain": self._shop.shop_domain, "theme_id": theme["id"]},
                )
                return Theme(id=theme["id"], name=theme["name"], role=theme["role"])
        raise NoLiveThemeError(self._shop.shop_domain)

    async def asset_exists(self, theme_id: str, key: str) -> bool:
        try:
            await self._client.get_theme_file(
                shop_domain=self._shop.shop_domain,
                access_token=self._shop.access_token,
                theme_id=theme_id,
                filename=key,
            )
        except ShopifyApiError as exc:
            if is_not_found(exc):
                return False
            raise _as_gateway_error(exc, action=f"Reading {key}") from exc
        return True

    async def write_asset(self, theme_id: str, key: str, content: str) -> None:
        try:
            job_id = await self._client.upsert_theme_files(
                shop_domain=self._shop.shop_domain,
                access_token=self._shop.access_token,
                theme_id=theme_id,
                files=[{"filename": key, "content": content}],
            )
            if job_id:
                await self._client.wait_for_job_completion(
                    shop_domain=self._shop.shop_domain,
                    access_token=self._shop.access_token,
                    job_id=job_id,
                )
        except ShopifyApiError as exc:
            raise _as_gateway_error(exc, action=f"Writing {key}") from exc
        logger.info(
            "gateway.asset_written",
            extra={"shop_domain": self._shop.shop_domain, "theme_id": theme_id, "key": key},
        )

    async def delete_asset(self, theme_id: str, key: str) -> bool:
        """Delete ``key``; returns False when it was already absent."""
        try:
            deleted = await self._client.delete_theme_files(
                shop_domain=self._shop.shop_domain,
                access_token=self._shop.access_token,
                theme_id=theme_id,
                filenames=[key],
            )
        except ShopifyApiError as exc:
            if is_not_found(exc):
                logger.info(
                    "gateway.asset_already_absent",
                    extra={"shop_domain": self._shop.shop_domain, "theme_id": theme_id, "key": key},
                )
                return False
            raise _as_gateway_error(exc, action=f"Deleting {key}") from exc
        return key in deleted
