from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from section_app.models import SectionDefinition
from section_app.repositories.base import Repository


class SectionCatalog(Repository):
    def __init__(self, session: Session) -> None:
        super().__init__(session)

    def get_by_slug(self, slug: str) -> Optional[SectionDefinition]:
        stmt = select(SectionDefinition).where(SectionDefinition.slug == slug)
        return self.session.scalars(stmt).first()

    def list_all(self) -> list[SectionDefinition]:
        stmt = select(SectionDefinition).order_by(SectionDefinition.name.asc(), SectionDefinition.slug.asc())
        return list(self.session.scalars(stmt).all())

    def upsert(self, *, slug: str, name: str, liquid_code: str, version: str) -> SectionDefinition:
        definition = self.get_by_slug(slug)
        if definition is None:
            definition = SectionDefinition(slug=slug, name=name, liquid_code=liquid_code, version=version)
        else:
            definition.name = name
            definition.liquid_code = liquid_code
            definition.version = version
            definition.updated_at = datetime.now(timezone.utc)
        return self.save(definition)
