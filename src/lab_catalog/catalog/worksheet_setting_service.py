"""Worksheet settings: derived from analyses, merged with the ones saved this session."""

from typing import Any

from lab_catalog.catalog.extraction import extract_worksheet_settings
from lab_catalog.catalog.overlay import OverlaidEntityService
from lab_catalog.models.entities import Analysis, WorksheetSetting


class WorksheetSettingService(OverlaidEntityService[WorksheetSetting]):
    entity_name = "WorksheetSetting"

    def _extract(self, analyses: tuple[Analysis, ...]) -> tuple[WorksheetSetting, ...]:
        return extract_worksheet_settings(analyses)

    async def _send_upsert(self, payload: dict[str, Any]) -> WorksheetSetting:
        return await self.gateway.put_worksheet_setting(payload)
