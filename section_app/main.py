from __future__ import annotations

import logging
import re
from urllib.parse import urlencode
from uuid import uuid4

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import ORJSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from section_app.config import settings
from section_app.db import get_session, init_db
from section_app.errors import SectionAppError
from section_app.gateway import ShopContext, ThemeAssetGateway
from section_app.lifecycle import SectionLifecycleManager
from section_app.models import OAuthState
from section_app.pages import create_landing_page
from section_app.repositories.sections import SectionCatalog
from section_app.repositories.shops import ShopsRepository
from section_app.schemas import (
    CleanupSectionsRequest,
    CleanupSectionsResponse,
    CreateLandingPageRequest,
    CreateLandingPageResponse,
    InstalledSectionResponse,
    InstallSectionResponse,
    SectionActionRequest,
    SectionSummary,
    ShopScopedRequest,
    UninstallSectionResponse,
    UpdateSectionResponse,
    UpsertSectionRequest,
)
from section_app.security import (
    normalize_shop_domain,
    require_internal_api_token,
    verify_oauth_hmac,
    verify_webhook_hmac,
)
from section_app.shopify_api import ShopifyApiClient, ShopifyApiError

logger = logging.getLogger(__name__)

_SECTION_SLUG_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*$")

app = FastAPI(title="Shopify Section Installer", default_response_class=ORJSONResponse)
shopify_api = ShopifyApiClient()


@app.on_event("startup")
def startup() -> None:
    logging.getLogger("section_app").setLevel(settings.LOG_LEVEL.upper())
    init_db()


@app.get("/health")
def health() -> dict[str, bool]:
    return {"ok": True}


def _http_error(exc: SectionAppError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=str(exc))


def _resolve_shop_context(*, shop_domain: str, session: Session) -> ShopContext:
    normalized_shop = normalize_shop_domain(shop_domain)
    shop = ShopsRepository(session).get_active(normalized_shop)
    if shop is None or not shop.admin_access_token:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No active Shopify installation found for shopDomain={normalized_shop}",
        )
    return ShopContext(shop_id=shop.id, shop_domain=shop.shop_domain, access_token=shop.admin_access_token)


def _lifecycle_manager(*, shop_domain: str, session: Session) -> SectionLifecycleManager:
    shop = _resolve_shop_context(shop_domain=shop_domain, session=session)
    gateway = ThemeAssetGateway(shop=shop, client=shopify_api)
    return SectionLifecycleManager(session=session, gateway=gateway)


def _build_shopify_oauth_url(*, shop_domain: str, state: str) -> str:
    query = urlencode(
        {
            "client_id": settings.SHOPIFY_APP_API_KEY,
            "scope": settings.admin_scopes_csv,
            "redirect_uri": f"{settings.app_base_url}/auth/callback",
            "state": state,
        }
    )
    return f"https://{shop_domain}/admin/oauth/authorize?{query}"


@app.get("/auth/install")
def auth_install(shop: str, session: Session = Depends(get_session)):
    shop_domain = normalize_shop_domain(shop)
    state = uuid4().hex
    session.add(OAuthState(state=state, shop_domain=shop_domain))
    session.commit()
    return RedirectResponse(url=_build_shopify_oauth_url(shop_domain=shop_domain, state=state), status_code=302)


@app.get("/auth/callback")
async def auth_callback(request: Request, session: Session = Depends(get_session)):
    if not verify_oauth_hmac(list(request.query_params.multi_items())):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth HMAC")

    shop = request.query_params.get("shop")
    code = request.query_params.get("code")
    state_value = request.query_params.get("state")
    if not shop or not code or not state_value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required OAuth callback params: shop, code, state",
        )

    shop_domain = normalize_shop_domain(shop)
    oauth_state = session.get(OAuthState, state_value)
    if not oauth_state or oauth_state.shop_domain != shop_domain:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid OAuth state")

    try:
        admin_access_token, scopes_csv = await shopify_api.exchange_code_for_access_token(
            shop_domain=shop_domain,
            code=code,
        )
        ShopsRepository(session).record_install(
            shop_domain=shop_domain,
            admin_access_token=admin_access_token,
            scopes=scopes_csv,
        )
        await shopify_api.register_webhook(
            shop_domain=shop_domain,
            access_token=admin_access_token,
            topic="APP_UNINSTALLED",
            callback_url=f"{settings.app_base_url}/webhooks/app/uninstalled",
        )
        session.delete(oauth_state)
        session.commit()
    except ShopifyApiError as exc:
        session.rollback()
        raise HTTPException(status_code=exc.status_code, detail=str(exc)) from exc

    logger.info("auth.shop_installed", extra={"shop_domain": shop_domain})
    return {
        "ok": True,
        "shopDomain": shop_domain,
        "scopes": [scope.strip() for scope in scopes_csv.split(",") if scope.strip()],
    }


@app.post("/webhooks/app/uninstalled")
async def app_uninstalled_webhook(request: Request, session: Session = Depends(get_session)):
    body = await request.body()
    if not verify_webhook_hmac(body=body, supplied_hmac=request.headers.get("x-shopify-hmac-sha256")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid webhook HMAC")

    shop_header = request.headers.get("x-shopify-shop-domain")
    if not shop_header:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing x-shopify-shop-domain header",
        )
    shops = ShopsRepository(session)
    shop = shops.get_by_domain(normalize_shop_domain(shop_header))
    if shop:
        shops.mark_uninstalled(shop)
        logger.info("auth.shop_uninstalled", extra={"shop_domain": shop.shop_domain})
    return {"received": True}


@app.get("/v1/sections", dependencies=[Depends(require_internal_api_token)])
def list_sections(session: Session = Depends(get_session)) -> list[SectionSummary]:
    return [
        SectionSummary(
            slug=definition.slug,
            name=definition.name,
            version=definition.version,
            updatedAt=definition.updated_at,
        )
        for definition in SectionCatalog(session).list_all()
    ]


@app.put("/admin/sections/{slug}", dependencies=[Depends(require_internal_api_token)])
def upsert_section(
    slug: str,
    payload: UpsertSectionRequest,
    session: Session = Depends(get_session),
) -> SectionSummary:
    if not _SECTION_SLUG_RE.fullmatch(slug):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="slug may only contain letters, digits, '-' and '_'",
        )
    definition = SectionCatalog(session).upsert(
        slug=slug,
        name=payload.name.strip(),
        liquid_code=payload.liquidCode,
        version=payload.version.strip(),
    )
    return SectionSummary(
        slug=definition.slug,
        name=definition.name,
        version=definition.version,
        updatedAt=definition.updated_at,
    )


@app.post(
    "/v1/installations/list",
    response_model=list[InstalledSectionResponse],
    dependencies=[Depends(require_internal_api_token)],
)
def list_installations(payload: ShopScopedRequest, session: Session = Depends(get_session)):
    manager = _lifecycle_manager(shop_domain=payload.shopDomain, session=session)
    return [
        InstalledSectionResponse(
            id=item.id,
            sectionSlug=item.section_slug,
            sectionName=item.section_name,
            installedVersion=item.installed_version,
            currentVersion=item.current_version,
            themeId=item.theme_id,
            hasUpdate=item.has_update,
        )
        for item in manager.list_installations()
    ]


@app.post(
    "/v1/sections/install",
    response_model=InstallSectionResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def install_section(payload: SectionActionRequest, session: Session = Depends(get_session)):
    manager = _lifecycle_manager(shop_domain=payload.shopDomain, session=session)
    try:
        outcome = await manager.install(payload.sectionSlug)
    except SectionAppError as exc:
        raise _http_error(exc) from exc
    return InstallSectionResponse(success=outcome.success, message=outcome.message)


@app.post(
    "/v1/sections/update",
    response_model=UpdateSectionResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def update_section(payload: SectionActionRequest, session: Session = Depends(get_session)):
    manager = _lifecycle_manager(shop_domain=payload.shopDomain, session=session)
    try:
        outcome = await manager.update(payload.sectionSlug)
    except SectionAppError as exc:
        raise _http_error(exc) from exc
    return UpdateSectionResponse(success=outcome.success, updated=outcome.updated, message=outcome.message)


@app.post(
    "/v1/sections/uninstall",
    response_model=UninstallSectionResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def uninstall_section(payload: SectionActionRequest, session: Session = Depends(get_session)):
    manager = _lifecycle_manager(shop_domain=payload.shopDomain, session=session)
    outcome = await manager.uninstall(payload.sectionSlug)
    return UninstallSectionResponse(success=outcome.success)


@app.post(
    "/v1/sections/cleanup",
    response_model=CleanupSectionsResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def cleanup_all_sections(payload: CleanupSectionsRequest, session: Session = Depends(get_session)):
    manager = _lifecycle_manager(shop_domain=payload.shopDomain, session=session)
    outcome = await manager.cleanup_all(dry_run=payload.dryRun)
    return CleanupSectionsResponse(
        success=outcome.success,
        count=outcome.count,
        deletedCount=outcome.deleted_count,
        targetSections=outcome.target_sections if outcome.dry_run else None,
    )


@app.post(
    "/v1/pages/landing",
    response_model=CreateLandingPageResponse,
    dependencies=[Depends(require_internal_api_token)],
)
async def create_landing_page_endpoint(
    payload: CreateLandingPageRequest,
    session: Session = Depends(get_session),
):
    shop = _resolve_shop_context(shop_domain=payload.shopDomain, session=session)
    gateway = ThemeAssetGateway(shop=shop, client=shopify_api)
    try:
        page = await create_landing_page(
            gateway=gateway,
            client=shopify_api,
            title=payload.title,
            section_names=payload.selectedSections,
        )
    except SectionAppError as exc:
        raise _http_error(exc) from exc
    return CreateLandingPageResponse(
        success=True,
        templateKey=page.template_key,
        pageId=page.page_id,
        editorUrl=page.editor_url,
        message="Page created successfully with sections!",
    )
