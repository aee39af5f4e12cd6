"""
Determination Service.

The determination listing has its own endpoint and its own single-flight
cache; point lookups go through the analysis aggregate. An upsert invalidates
both, since determinations are embedded in analyses.
"""

import structlog

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.core.single_flight import SingleFlightCache
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import Determination, upsert_payload

logger = structlog.get_logger(__name__)


class DeterminationService:
    def __init__(self, gateway: CatalogGateway, analyses: AnalysisService) -> None:
        self.gateway = gateway
        self.analyses = analyses
        self.cache: SingleFlightCache[tuple[Determination, ...]] = SingleFlightCache(
            "determinations", self._load_all
        )

    async def _load_all(self) -> tuple[Determination, ...]:
        return tuple(await self.gateway.list_determinations())

    async def list(self) -> tuple[Determination, ...]:
        return await self.cache.get()

    async def get_by_id(self, determination_id: int) -> Determination:
        """
        Look a determination up in the analysis aggregate.

        Raises:
            EntityNotFoundError: No analysis embeds that determination
        """
        return await self.analyses.extract_determination_by_id(determination_id)

    async def upsert(self, determination: Determination) -> Determination:
        """Create or update (full object; updates need entity_version)."""
        payload = upsert_payload(determination, self.gateway.session.require_user_id())
        saved = await self.gateway.put_determination(payload)
        self.invalidate()
        logger.info("determination_saved", determination_id=saved.id, created=not determination.id)
        return saved

    def invalidate(self) -> None:
        self.cache.invalidate()
        self.analyses.invalidate()
