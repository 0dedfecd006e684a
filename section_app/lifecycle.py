from __future__ import annotations

from dataclasses import dataclass, field
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from section_app.errors import AlreadyInstalledError, GatewayError, NoLiveThemeError, UnknownSectionError
from section_app.gateway import ThemeAssetGateway, section_asset_key
from section_app.models import SectionDefinition, SectionInstallation
from section_app.repositories.installations import InstallationLedger
from section_app.repositories.sections import SectionCatalog

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstallOutcome:
    success: bool
    message: str
    theme_id: str


@dataclass(frozen=True)
class UpdateOutcome:
    success: bool
    updated: bool
    message: str
    theme_id: str


@dataclass(frozen=True)
class UninstallOutcome:
    success: bool
    asset_deleted: bool
    ledger_entry_deleted: bool


@dataclass(frozen=True)
class CleanupOutcome:
    success: bool
    count: int
    dry_run: bool
    target_sections: list[str] = field(default_factory=list)
    failed_asset_deletes: list[str] = field(default_factory=list)
    failed_ledger_deletes: list[str] = field(default_factory=list)

    @property
    def deleted_count(self) -> int | None:
        return None if self.dry_run else self.count - len(self.failed_ledger_deletes)


@dataclass(frozen=True)
class InstalledSection:
    id: int
    section_slug: str
    section_name: str
    installed_version: str
    current_version: str
    theme_id: str

    @property
    def has_update(self) -> bool:
        return self.installed_version != self.current_version


def describe_installation(installation: SectionInstallation) -> InstalledSection:
    section = installation.section
    return InstalledSection(
        id=installation.id,
        section_slug=section.slug if section else "",
        section_name=section.name if section else "",
        installed_version=installation.installed_version,
        current_version=section.version if section else "",
        theme_id=installation.theme_id,
    )


class SectionLifecycleManager:
    """Install, update and remove catalog sections in a shop's live theme.

    The theme file is the source of truth for whether a section is present;
    the ledger caches that fact together with the version that was written.
    There is no transaction spanning Shopify and the database, so every
    workflow orders its steps so that a failure leaves at most an orphaned
    theme file, never a ledger row pointing at nothing that was written.
    """

    def __init__(self, *, session: Session, gateway: ThemeAssetGateway) -> None:
        self._session = session
        self._gateway = gateway
        self._shop = gateway.shop
        self._catalog = SectionCatalog(session)
        self._ledger = InstallationLedger(session)

    def _require_section(self, slug: str) -> SectionDefinition:
        definition = self._catalog.get_by_slug(slug)
        if definition is None:
            raise UnknownSectionError(slug)
        return definition

    def list_installations(self) -> list[InstalledSection]:
        return [
            describe_installation(installation)
            for installation in self._ledger.list_for_shop(shop_id=self._shop.shop_id)
        ]

    async def install(self, slug: str) -> InstallOutcome:
        definition = self._require_section(slug)
        if self._ledger.get(shop_id=self._shop.shop_id, section_id=definition.id) is not None:
            raise AlreadyInstalledError(slug)

        theme = await self._gateway.resolve_live_theme()
        asset_key = section_asset_key(slug)

        if await self._gateway.asset_exists(theme.id, asset_key):
            raise AlreadyInstalledError(slug, asset_key=asset_key)

        await self._gateway.write_asset(theme.id, asset_key, definition.liquid_code or "")
        try:
            self._ledger.create(shop_id=self._shop.shop_id, section=definition, theme_id=theme.id)
        except Exception:
            logger.error(
                "lifecycle.install_orphaned_asset",
                extra={"shop_domain": self._shop.shop_domain, "theme_id": theme.id, "key": asset_key},
            )
            raise

        logger.info(
            "lifecycle.installed",
            extra={
                "shop_domain": self._shop.shop_domain,
                "section_slug": slug,
                "version": definition.version,
                "theme_id": theme.id,
            },
        )
        return InstallOutcome(success=True, message="Installed successfully", theme_id=theme.id)

    async def update(self, slug: str) -> UpdateOutcome:
        definition = self._require_section(slug)
        theme = await self._gateway.resolve_live_theme()

        await self._gateway.write_asset(theme.id, section_asset_key(slug), definition.liquid_code or "")

        installation = self._ledger.get(shop_id=self._shop.shop_id, section_id=definition.id)
        if installation is None:
            logger.warning(
                "lifecycle.update_without_installation",
                extra={"shop_domain": self._shop.shop_domain, "section_slug": slug},
            )
            return UpdateOutcome(
                success=True,
                updated=False,
                message="Theme file rewritten; section has no installation record",
                theme_id=theme.id,
            )

        self._ledger.record_version(installation=installation, version=definition.version, theme_id=theme.id)
        logger.info(
            "lifecycle.updated",
            extra={"shop_domain": self._shop.shop_domain, "section_slug": slug, "version": definition.version},
        )
        return UpdateOutcome(
            success=True,
            updated=True,
            message=f"Updated to version {definition.version}",
            theme_id=theme.id,
        )

    async def uninstall(self, slug: str) -> UninstallOutcome:
        asset_deleted = False
        try:
            theme = await self._gateway.resolve_live_theme()
        except (NoLiveThemeError, GatewayError) as exc:
            logger.warning(
                "lifecycle.uninstall_theme_unresolved",
                extra={"shop_domain": self._shop.shop_domain, "section_slug": slug, "error": str(exc)},
            )
            theme = None

        if theme is not None:
            try:
                asset_deleted = await self._gateway.delete_asset(theme.id, section_asset_key(slug))
            except GatewayError as exc:
                logger.warning(
                    "lifecycle.uninstall_asset_delete_failed",
                    extra={"shop_domain": self._shop.shop_domain, "section_slug": slug, "error": str(exc)},
                )
            else:
                if not asset_deleted:
                    logger.warning(
                        "lifecycle.uninstall_asset_missing",
                        extra={"shop_domain": self._shop.shop_domain, "section_slug": slug},
                    )

        ledger_entry_deleted = False
        definition = self._catalog.get_by_slug(slug)
        if definition is not None:
            installation = self._ledger.get(shop_id=self._shop.shop_id, section_id=definition.id)
            if installation is not None:
                self._ledger.delete(installation)
                ledger_entry_deleted = True

        return UninstallOutcome(
            success=True,
            asset_deleted=asset_deleted,
            ledger_entry_deleted=ledger_entry_deleted,
        )

    async def cleanup_all(self, *, dry_run: bool = False) -> CleanupOutcome:
        installations = self._ledger.list_for_shop(shop_id=self._shop.shop_id)
        target_sections = [
            installation.section.slug for installation in installations if installation.section is not None
        ]
        if dry_run:
            return CleanupOutcome(
                success=True,
                count=len(installations),
                dry_run=True,
                target_sections=target_sections,
            )

        theme_id: str | None = None
        try:
            theme_id = (await self._gateway.resolve_live_theme()).id
        except (NoLiveThemeError, GatewayError) as exc:
            logger.warning(
                "lifecycle.cleanup_theme_unresolved",
                extra={"shop_domain": self._shop.shop_domain, "error": str(exc)},
            )

        failed: list[str] = []
        failed_ledger: list[str] = []
        for installation in installations:
            installation_id = installation.id
            slug = installation.section.slug if installation.section is not None else None
            if slug and theme_id:
                try:
                    await self._gateway.delete_asset(theme_id, section_asset_key(slug))
                except Exception as exc:  # noqa: BLE001
                    failed.append(slug)
                    logger.warning(
                        "lifecycle.cleanup_asset_delete_failed",
                        extra={"shop_domain": self._shop.shop_domain, "section_slug": slug, "error": str(exc)},
                    )
            try:
                self._ledger.delete(installation)
            except SQLAlchemyError as exc:
                self._session.rollback()
                failed_ledger.append(slug or str(installation_id))
                logger.error(
                    "lifecycle.cleanup_ledger_delete_failed",
                    extra={
                        "shop_domain": self._shop.shop_domain,
                        "installation_id": installation_id,
                        "section_slug": slug,
                        "error": str(exc),
                    },
                )

        logger.info(
            "lifecycle.cleanup_completed",
            extra={
                "shop_domain": self._shop.shop_domain,
                "count": len(installations),
                "failed": failed,
                "failed_ledger": failed_ledger,
            },
        )
        return CleanupOutcome(
            success=not failed_ledger,
            count=len(installations),
            dry_run=False,
            target_sections=target_sections,
            failed_asset_deletes=failed,
            failed_ledger_deletes=failed_ledger,
        )
