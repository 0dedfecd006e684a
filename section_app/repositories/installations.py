from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from section_app.errors import AlreadyInstalledError
from section_app.models import SectionDefinition, SectionInstallation
from section_app.repositories.base import Repository


class InstallationLedger(Repository):
    """Per-shop record of which catalog sections were written to which theme.

    At most one row exists per (shop, section); the table carries a composite
    unique constraint and ``create`` reports a violation as
    ``AlreadyInstalledError``.
    """

    def __init__(self, session: Session) -> None:
        super().__init__(session)

    def get(self, *, shop_id: int, section_id: int) -> Optional[SectionInstallation]:
        stmt = select(SectionInstallation).where(
            SectionInstallation.shop_id == shop_id,
            SectionInstallation.section_id == section_id,
        )
        return self.session.scalars(stmt).first()

    def list_for_shop(self, *, shop_id: int) -> list[SectionInstallation]:
        stmt = (
            select(SectionInstallation)
            .where(SectionInstallation.shop_id == shop_id)
            .order_by(SectionInstallation.installed_at.asc(), SectionInstallation.id.asc())
        )
        return list(self.session.scalars(stmt).unique().all())

    def create(
        self,
        *,
        shop_id: int,
        section: SectionDefinition,
        theme_id: str,
    ) -> SectionInstallation:
        installation = SectionInstallation(
            shop_id=shop_id,
            section_id=section.id,
            installed_version=section.version,
            theme_id=theme_id,
        )
        try:
            return self.save(installation)
        except IntegrityError as exc:
            self.session.rollback()
            raise AlreadyInstalledError(section.slug) from exc

    def record_version(
        self,
        *,
        installation: SectionInstallation,
        version: str,
        theme_id: str,
    ) -> SectionInstallation:
        installation.installed_version = version
        installation.theme_id = theme_id
        installation.updated_at = datetime.now(timezone.utc)
        return self.save(installation)

    def delete(self, installation: SectionInstallation) -> None:
        self.session.delete(installation)
        self.session.commit()
