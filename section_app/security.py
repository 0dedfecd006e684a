from __future__ import annotations

import base64
import hashlib
import hmac
import re
from collections.abc import Sequence

from fastapi import Header, HTTPException, status

from section_app.config import settings

_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9-]*\.myshopify\.com$")


def normalize_shop_domain(shop: str) -> str:
    normalized = shop.strip().lower()
    if not _SHOP_DOMAIN_RE.fullmatch(normalized):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="shop must be a valid *.myshopify.com domain",
        )
    return normalized


def _sign(message: bytes) -> bytes:
    return hmac.new(settings.SHOPIFY_APP_API_SECRET.encode("utf-8"), message, hashlib.sha256).digest()


def verify_oauth_hmac(query_items: Sequence[tuple[str, str]]) -> bool:
    supplied = dict(query_items).get("hmac")
    if not supplied:
        return False
    signed = sorted((key, value) for key, value in query_items if key not in {"hmac", "signature"})
    message = "&".join(f"{key}={value}" for key, value in signed)
    return hmac.compare_digest(_sign(message.encode("utf-8")).hex(), supplied)


def verify_webhook_hmac(*, body: bytes, supplied_hmac: str | None) -> bool:
    if not supplied_hmac:
        return False
    encoded = base64.b64encode(_sign(body)).decode("utf-8")
    return hmac.compare_digest(encoded, supplied_hmac)


def require_internal_api_token(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> None:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Bearer authorization header",
        )
    if not hmac.compare_digest(authorization[7:].strip(), settings.SHOPIFY_INTERNAL_API_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid internal API token",
        )
