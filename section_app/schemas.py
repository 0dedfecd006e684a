from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ShopScopedRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    shopDomain: str = Field(min_length=1)


class SectionActionRequest(ShopScopedRequest):
    sectionSlug: str = Field(min_length=1, max_length=128, pattern=r"^[A-Za-z0-9][A-Za-z0-9_-]*$")


class CleanupSectionsRequest(ShopScopedRequest):
    dryRun: bool = False


class CreateLandingPageRequest(ShopScopedRequest):
    title: str | None = None
    selectedSections: list[str] = Field(min_length=1)


class InstallSectionResponse(BaseModel):
    success: bool
    message: str | None = None


class UpdateSectionResponse(BaseModel):
    success: bool
    updated: bool = False
    message: str | None = None


class UninstallSectionResponse(BaseModel):
    success: bool


class CleanupSectionsResponse(BaseModel):
    success: bool
    count: int
    deletedCount: int | None = None
    targetSections: list[str] | None = None


class InstalledSectionResponse(BaseModel):
    id: int
    sectionSlug: str
    sectionName: str
    installedVersion: str
    currentVersion: str
    themeId: str
    hasUpdate: bool


class SectionSummary(BaseModel):
    slug: str
    name: str
    version: str
    updatedAt: datetime


class UpsertSectionRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str = Field(min_length=1)
    liquidCode: str
    version: str = Field(min_length=1, max_length=64)


class CreateLandingPageResponse(BaseModel):
    success: bool
    templateKey: str
    pageId: str
    editorUrl: str
    message: str
