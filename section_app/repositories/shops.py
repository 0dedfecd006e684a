from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from section_app.models import Shop
from section_app.repositories.base import Repository


class ShopsRepository(Repository):
    def __init__(self, session: Session) -> None:
        super().__init__(session)

    def get_by_domain(self, shop_domain: str) -> Optional[Shop]:
        stmt = select(Shop).where(Shop.shop_domain == shop_domain)
        return self.session.scalars(stmt).first()

    def get_active(self, shop_domain: str) -> Optional[Shop]:
        stmt = select(Shop).where(
            Shop.shop_domain == shop_domain,
            Shop.uninstalled_at.is_(None),
        )
        return self.session.scalars(stmt).first()

    def record_install(self, *, shop_domain: str, admin_access_token: str, scopes: str) -> Shop:
        shop = self.get_by_domain(shop_domain)
        if shop is None:
            shop = Shop(shop_domain=shop_domain, admin_access_token=admin_access_token, scopes=scopes)
        else:
            shop.admin_access_token = admin_access_token
            shop.scopes = scopes
            shop.uninstalled_at = None
            shop.updated_at = datetime.now(timezone.utc)
        self.session.add(shop)
        return shop

    def mark_uninstalled(self, shop: Shop) -> Shop:
        now = datetime.now(timezone.utc)
        shop.uninstalled_at = now
        shop.admin_access_token = ""
        shop.updated_at = now
        return self.save(shop)
