"""Sample types: derived from analyses, merged with the ones saved this session."""

from typing import Any

from lab_catalog.catalog.extraction import extract_sample_types
from lab_catalog.catalog.overlay import OverlaidEntityService
from lab_catalog.models.entities import Analysis, SampleType


class SampleTypeService(OverlaidEntityService[SampleType]):
    entity_name = "SampleType"

    def _extract(self, analyses: tuple[Analysis, ...]) -> tuple[SampleType, ...]:
        return extract_sample_types(analyses)

    async def _send_upsert(self, payload: dict[str, Any]) -> SampleType:
        return await self.gateway.put_sample_type(payload)
