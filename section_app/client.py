from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

import httpx

from section_app.batch import BatchResult, BatchRunner
from section_app.config import settings
from section_app.schemas import InstalledSectionResponse

logger = logging.getLogger(__name__)


class SectionManagerError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class CleanupResult:
    success: bool
    count: int


def _error_detail_from_response(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        text = response.text.strip()
        return text or response.reason_phrase

    if isinstance(body, dict):
        detail = body.get("detail")
        if isinstance(detail, str):
            return detail
    return str(body)


class SectionManagerClient:
    """Caller-side view of one shop's installed sections.

    Mirrors what the embedded UI needs: a cached installation list that is
    re-read after every mutating call, one-call wrappers returning plain
    booleans, and bulk helpers that push sections through a ``BatchRunner``
    so a single failing section never aborts the rest.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_token: str,
        shop_domain: str,
        concurrency: int | None = None,
        timeout: float = 20.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_token = api_token
        self._shop_domain = shop_domain
        self._timeout = timeout
        self._transport = transport
        self._batch = BatchRunner(concurrency=concurrency or settings.SECTION_BATCH_CONCURRENCY)

        self.installations: list[InstalledSectionResponse] = []
        self.is_loading = False
        self.error: str | None = None

    def clear_error(self) -> None:
        self.error = None

    async def _request(self, *, method: str, path: str, json_body: dict[str, Any] | None = None) -> Any:
        headers = {
            "Authorization": f"Bearer {self._api_token}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout,
                transport=self._transport,
            ) as client:
                response = await client.request(method, path, headers=headers, json=json_body)
        except httpx.RequestError as exc:
            raise SectionManagerError(message=f"Section app request failed: {exc}") from exc

        if response.status_code >= 400:
            raise SectionManagerError(
                message=_error_detail_from_response(response),
                status_code=response.status_code,
            )
        try:
            return response.json()
        except ValueError as exc:
            raise SectionManagerError(message="Section app returned invalid JSON.") from exc

    async def _post_section_action(self, action: str, section_slug: str) -> dict[str, Any]:
        return await self._request(
            method="POST",
            path=f"/v1/sections/{action}",
            json_body={"shopDomain": self._shop_domain, "sectionSlug": section_slug},
        )

    async def fetch_installations(self) -> None:
        self.is_loading = True
        self.error = None
        try:
            rows = await self._request(
                method="POST",
                path="/v1/installations/list",
                json_body={"shopDomain": self._shop_domain},
            )
            self.installations = [InstalledSectionResponse.model_validate(row) for row in rows]
        except SectionManagerError as exc:
            logger.warning("client.fetch_installations_failed", extra={"error": str(exc)})
            self.error = str(exc) or "Failed to load installed sections"
        finally:
            self.is_loading = False

    async def _run_single(self, action: str, section_slug: str, *, failure_message: str) -> bool:
        self.is_loading = True
        self.error = None
        try:
            result = await self._post_section_action(action, section_slug)
            if not result.get("success"):
                self.error = result.get("message") or failure_message
                return False
            await self.fetch_installations()
            return True
        except SectionManagerError as exc:
            logger.warning(
                "client.section_action_failed",
                extra={"action": action, "section_slug": section_slug, "error": str(exc)},
            )
            self.error = str(exc) or failure_message
            return False
        finally:
            self.is_loading = False

    async def install_section(self, section_slug: str) -> bool:
        return await self._run_single("install", section_slug, failure_message="Install failed")

    async def update_section(self, section_slug: str) -> bool:
        return await self._run_single("update", section_slug, failure_message="Update failed")

    async def uninstall_section(self, section_slug: str) -> bool:
        return await self._run_single("uninstall", section_slug, failure_message="Uninstall failed")

    async def _finish_batch(self, result: BatchResult, *, verb: str) -> BatchResult:
        await self.fetch_installations()
        if result.failed:
            self.error = f"{len(result.failed)} section(s) failed to {verb}: {', '.join(result.failed)}"
        self.is_loading = False
        return result

    async def install_sections(self, section_slugs: list[str]) -> BatchResult:
        self.is_loading = True
        self.error = None

        async def _install(slug: str) -> bool:
            result = await self._post_section_action("install", slug)
            return bool(result.get("success"))

        result = await self._batch.run(list(section_slugs), _install)
        return await self._finish_batch(result, verb="install")

    async def update_all_sections(self) -> BatchResult:
        self.is_loading = True
        self.error = None
        targets = [item.sectionSlug for item in self.installations if item.hasUpdate and item.sectionSlug]

        async def _update(slug: str) -> bool:
            result = await self._post_section_action("update", slug)
            return bool(result.get("success") and result.get("updated"))

        result = await self._batch.run(targets, _update)
        return await self._finish_batch(result, verb="update")

    async def cleanup_all(self, *, dry_run: bool = False) -> CleanupResult:
        self.is_loading = True
        self.error = None
        try:
            result = await self._request(
                method="POST",
                path="/v1/sections/cleanup",
                json_body={"shopDomain": self._shop_domain, "dryRun": dry_run},
            )
            if not dry_run:
                await self.fetch_installations()
            count = result.get("deletedCount") or result.get("count") or 0
            return CleanupResult(success=bool(result.get("success")), count=int(count))
        except SectionManagerError as exc:
            logger.warning("client.cleanup_failed", extra={"error": str(exc)})
            self.error = str(exc) or "Failed to remove all sections"
            return CleanupResult(success=False, count=0)
        finally:
            self.is_loading = False
