"""
Analysis Service - root aggregate cache, analysis mutations and derived views.

The full analysis collection is fetched page by page behind one single-flight
cache: page 0 reveals the page count, the remaining pages are fetched
concurrently and reassembled by page index. Any failed page fails the whole
load and leaves the cache empty, so the next call restarts from page 0.

Point lookups, filtered pages and searches always go to the server.
Every mutation invalidates the aggregate; derived views (determinations, NBUs,
sample types, worksheet settings) are recomputed from the next snapshot.
"""

from collections.abc import Sequence
from typing import Any

import structlog

from lab_catalog.catalog.extraction import (
    extract_determinations,
    extract_nbus,
    extract_sample_types,
    extract_worksheet_settings,
    find_by_id,
    unique_by_id,
)
from lab_catalog.core.config_loader import CatalogConfig
from lab_catalog.core.fanout import gather_settled
from lab_catalog.core.single_flight import SingleFlightCache
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import (
    Analysis,
    Determination,
    Nbu,
    Page,
    SampleType,
    WorksheetSetting,
    analysis_patch,
)

logger = structlog.get_logger(__name__)


class AnalysisService:
    """Owns the root aggregate cache for one catalog context."""

    def __init__(self, gateway: CatalogGateway, config: CatalogConfig) -> None:
        self.gateway = gateway
        self.config = config
        self.cache: SingleFlightCache[tuple[Analysis, ...]] = SingleFlightCache("analyses", self._load_all)

    # ------------------------------------------------------------------
    # Root aggregate
    # ------------------------------------------------------------------

    async def _fetch_page(self, page: int) -> Page[Analysis]:
        return await self.gateway.get_analysis_page(
            page,
            self.config.page_size,
            sort_by=self.config.sort_by,
            ascending=True,
        )

    async def _load_all(self) -> tuple[Analysis, ...]:
        first = await self._fetch_page(0)
        pages = [first]

        if first.total_pages > 1:
            outcomes = await gather_settled((index, self._fetch_page(index)) for index in range(1, first.total_pages))
            failed = next((outcome for outcome in outcomes if not outcome.ok), None)
            if failed is not None:
                logger.warning("root_cache_page_failed", page=failed.key, error=str(failed.error))
                raise failed.error
            # Outcomes keep request order, so pages reassemble by index
            pages.extend(outcome.value for outcome in outcomes)

        analyses = unique_by_id(analysis for page in pages for analysis in page.content)
        logger.info("root_cache_settled", analyses=len(analyses), pages=len(pages))
        return analyses

    async def get_all(self) -> tuple[Analysis, ...]:
        """Full de-duplicated analysis collection, shared by concurrent callers."""
        return await self.cache.get()

    def invalidate(self) -> None:
        self.cache.invalidate()

    async def refresh(self) -> tuple[Analysis, ...]:
        return await self.cache.refresh()

    # ------------------------------------------------------------------
    # Uncached reads
    # ------------------------------------------------------------------

    async def get_by_id(self, analysis_id: int) -> Analysis:
        """Fetch one analysis from the server; never served from the cache."""
        return await self.gateway.get_analysis(analysis_id)

    async def get_page(
        self,
        page: int = 0,
        size: int | None = None,
        sort_by: str | None = None,
        ascending: bool = True,
        filters: dict[str, Any] | None = None,
    ) -> Page[Analysis]:
        """
        One filtered page of analyses.

        Args:
            page: Zero-based page index
            size: Page size (default: configured page size)
            sort_by: Sort key (default: configured sort key)
            ascending: Sort direction
            filters: Analysis filters (short_code, nbu_code, name, family_name,
                description, code, nbu_determination, nbu_abbreviation)
        """
        return await self.gateway.get_analysis_page(
            page,
            size or self.config.page_size,
            sort_by=sort_by or self.config.sort_by,
            ascending=ascending,
            filters=filters,
        )

    async def search(self, **filters: Any) -> list[Analysis]:
        return await self.gateway.search_analyses(filters)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def update(self, analysis_id: int, changes: dict[str, Any]) -> Analysis:
        """
        Patch an analysis' own fields.

        Args:
            analysis_id: Analysis to update
            changes: Field changes; must include entity_version

        Raises:
            EntityVersionRequiredError: entity_version missing or invalid
            ValueError: A field that is not editable through PATCH
        """
        updated = await self.gateway.patch_analysis(analysis_id, analysis_patch(changes))
        self.invalidate()
        return updated

    async def update_nbu(self, analysis_id: int, nbu_id: int) -> Analysis:
        updated = await self.gateway.put_analysis_relation(analysis_id, "nbu", nbu_id)
        self.invalidate()
        return updated

    async def update_sample_type(self, analysis_id: int, sample_type_id: int) -> Analysis:
        updated = await self.gateway.put_analysis_relation(analysis_id, "sample_type", sample_type_id)
        self.invalidate()
        return updated

    async def update_worksheet_setting(self, analysis_id: int, worksheet_setting_id: int) -> Analysis:
        updated = await self.gateway.put_analysis_relation(analysis_id, "worksheet_setting", worksheet_setting_id)
        self.invalidate()
        return updated

    async def add_determinations(self, analysis_id: int, determination_ids: Sequence[int]) -> Analysis:
        updated = await self.gateway.add_analysis_determinations(analysis_id, determination_ids)
        self.invalidate()
        return updated

    async def remove_determinations(self, analysis_id: int, determination_ids: Sequence[int]) -> Analysis:
        updated = await self.gateway.remove_analysis_determinations(analysis_id, determination_ids)
        self.invalidate()
        return updated

    async def delete(self, analysis_id: int) -> None:
        await self.gateway.delete_analysis(analysis_id)
        self.invalidate()
        logger.info("analysis_deleted", analysis_id=analysis_id)

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    async def extract_determinations(self) -> tuple[Determination, ...]:
        return extract_determinations(await self.get_all())

    async def extract_determination_by_id(self, determination_id: int) -> Determination:
        return find_by_id(await self.extract_determinations(), determination_id, "Determination")

    async def extract_nbus(self) -> tuple[Nbu, ...]:
        return extract_nbus(await self.get_all())

    async def extract_nbu_by_id(self, nbu_id: int) -> Nbu:
        return find_by_id(await self.extract_nbus(), nbu_id, "Nbu")

    async def extract_sample_types(self) -> tuple[SampleType, ...]:
        return extract_sample_types(await self.get_all())

    async def extract_sample_type_by_id(self, sample_type_id: int) -> SampleType:
        return find_by_id(await self.extract_sample_types(), sample_type_id, "SampleType")

    async def extract_worksheet_settings(self) -> tuple[WorksheetSetting, ...]:
        return extract_worksheet_settings(await self.get_all())

    async def extract_worksheet_setting_by_id(self, worksheet_setting_id: int) -> WorksheetSetting:
        return find_by_id(await self.extract_worksheet_settings(), worksheet_setting_id, "WorksheetSetting")
