from section_app.repositories.installations import InstallationLedger
from section_app.repositories.sections import SectionCatalog
from section_app.repositories.shops import ShopsRepository

__all__ = ["InstallationLedger", "SectionCatalog", "ShopsRepository"]
