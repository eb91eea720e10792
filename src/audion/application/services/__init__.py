"""Application services."""

from audion.application.services.catalog_import_service import CatalogImportService
from audion.application.services.enrichment_service import SongEnrichmentService
from audion.application.services.library_service import LibraryService

__all__ = [
    "CatalogImportService",
    "LibraryService",
    "SongEnrichmentService",
]
