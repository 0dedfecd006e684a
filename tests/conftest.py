import os
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT_DIR))

os.environ.setdefault("SHOPIFY_APP_API_KEY", "test_key")
os.environ.setdefault("SHOPIFY_APP_API_SECRET", "test_secret")
os.environ.setdefault("SHOPIFY_APP_SCOPES", "read_themes,write_themes,write_content")
os.environ.setdefault("SHOPIFY_APP_BASE_URL", "https://example.ngrok.app")
os.environ.setdefault("SHOPIFY_INTERNAL_API_TOKEN", "internal_token")
os.environ.setdefault("SECTION_APP_DB_URL", "sqlite:///./test_section_app.db")
os.environ.setdefault("THEME_FILE_JOB_POLL_SECONDS", "0")

from sqlalchemy import delete  # noqa: E402

from section_app.db import SessionLocal, init_db  # noqa: E402
from section_app.gateway import ShopContext  # noqa: E402
from section_app.models import OAuthState, SectionDefinition, SectionInstallation, Shop  # noqa: E402
from section_app.shopify_api import ShopifyApiError  # noqa: E402

LIVE_THEME_ID = "gid://shopify/OnlineStoreTheme/1001"


class FakeThemeApi:
    """In-memory stand-in for ShopifyApiClient's theme and page calls."""

    def __init__(self) -> None:
        self.themes: list[dict[str, str]] = [
            {"id": LIVE_THEME_ID, "name": "Dawn", "role": "MAIN"},
            {"id": "gid://shopify/OnlineStoreTheme/1002", "name": "Draft", "role": "UNPUBLISHED"},
        ]
        self.files: dict[tuple[str, str], str] = {}
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.pages: list[dict[str, str]] = []
        self.calls: list[tuple[str, str]] = []

    async def list_themes(self, *, shop_domain: str, access_token: str, roles: list[str] | None = None):
        self.calls.append(("list_themes", ",".join(roles or [])))
        if roles:
            return [theme for theme in self.themes if theme["role"] in roles]
        return list(self.themes)

    async def get_theme_file(self, *, shop_domain: str, access_token: str, theme_id: str, filename: str):
        self.calls.append(("get_theme_file", filename))
        if filename in self.fail_reads:
            raise ShopifyApiError(message="Shopify API call failed (500): boom", status_code=502)
        if (theme_id, filename) not in self.files:
            raise ShopifyApiError(message=f"Theme file not found: {filename}", status_code=404)
        return {"filename": filename, "checksumMd5": None, "content": self.files[(theme_id, filename)]}

    async def upsert_theme_files(self, *, shop_domain: str, access_token: str, theme_id: str, files):
        for item in files:
            self.calls.append(("upsert_theme_files", item["filename"]))
            if item["filename"] in self.fail_writes:
                raise ShopifyApiError(message="themeFilesUpsert failed: throttled", status_code=429)
        for item in files:
            self.files[(theme_id, item["filename"])] = item["content"]
        return None

    async def wait_for_job_completion(self, *, shop_domain: str, access_token: str, job_id: str) -> None:
        return None

    async def delete_theme_files(self, *, shop_domain: str, access_token: str, theme_id: str, filenames):
        deleted = []
        for filename in filenames:
            self.calls.append(("delete_theme_files", filename))
            if filename in self.fail_deletes:
                raise ShopifyApiError(message="themeFilesDelete failed: internal error", status_code=409)
            if (theme_id, filename) not in self.files:
                raise ShopifyApiError(
                    message="themeFilesDelete failed: File not found",
                    status_code=404,
                    error_code="NOT_FOUND",
                )
            del self.files[(theme_id, filename)]
            deleted.append(filename)
        return deleted

    async def create_page(self, *, shop_domain: str, access_token: str, title: str, template_suffix: str, body: str = ""):
        page = {
            "id": f"gid://shopify/Page/{len(self.pages) + 1}",
            "title": title,
            "handle": title.lower().replace(" ", "-"),
            "templateSuffix": template_suffix,
        }
        self.pages.append(page)
        return page


def _clear_tables(session) -> None:
    session.execute(delete(SectionInstallation))
    session.execute(delete(SectionDefinition))
    session.execute(delete(OAuthState))
    session.execute(delete(Shop))
    session.commit()


@pytest.fixture()
def db_session():
    init_db()
    session = SessionLocal()
    _clear_tables(session)
    try:
        yield session
    finally:
        session.rollback()
        _clear_tables(session)
        session.close()


@pytest.fixture()
def fake_theme_api():
    return FakeThemeApi()


@pytest.fixture()
def shop(db_session) -> ShopContext:
    record = Shop(
        shop_domain="example.myshopify.com",
        admin_access_token="admin_access_token",
        scopes="read_themes,write_themes",
    )
    db_session.add(record)
    db_session.commit()
    return ShopContext(shop_id=record.id, shop_domain=record.shop_domain, access_token=record.admin_access_token)


@pytest.fixture()
def catalog(db_session) -> dict[str, SectionDefinition]:
    definitions = {
        slug: SectionDefinition(slug=slug, name=name, liquid_code=f"<div class='{slug}'></div>", version="1")
        for slug, name in (
            ("hero-banner", "Hero Banner"),
            ("faq", "FAQ"),
            ("testimonials", "Testimonials"),
        )
    }
    db_session.add_all(definitions.values())
    db_session.commit()
    return definitions
