"""NBU Service: reads ride the analysis aggregate; every mutation invalidates it."""

from collections.abc import Mapping, Sequence
from typing import Any

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.gateway.client import CatalogGateway, NbuTermKind
from lab_catalog.models.entities import Nbu, nbu_patch


def _clean_terms(terms: Sequence[str]) -> list[str]:
    cleaned = [term.strip() for term in terms if term and term.strip()]
    if not cleaned:
        raise ValueError("At least one non-blank term is required")
    return cleaned


class NbuService:
    """
    Nomenclature codes.

    Version membership is not edited here; ReconciliationEngine owns the
    NBU/version join.
    """

    def __init__(self, gateway: CatalogGateway, analyses: AnalysisService) -> None:
        self.gateway = gateway
        self.analyses = analyses

    async def list(self) -> tuple[Nbu, ...]:
        return await self.analyses.extract_nbus()

    async def get_by_id(self, nbu_id: int) -> Nbu:
        return await self.analyses.extract_nbu_by_id(nbu_id)

    async def update(self, nbu_id: int, changes: Mapping[str, Any]) -> Nbu:
        """
        Patch an NBU.

        Raises:
            EntityVersionRequiredError: entity_version missing or invalid
        """
        updated = await self.gateway.patch_nbu(nbu_id, nbu_patch(changes))
        self.analyses.invalidate()
        return updated

    async def _change_terms(self, nbu_id: int, kind: NbuTermKind, terms: Sequence[str], add: bool) -> Nbu:
        updated = await self.gateway.change_nbu_terms(nbu_id, kind, _clean_terms(terms), add)
        self.analyses.invalidate()
        return updated

    async def add_synonyms(self, nbu_id: int, synonyms: Sequence[str]) -> Nbu:
        return await self._change_terms(nbu_id, "synonyms", synonyms, add=True)

    async def remove_synonyms(self, nbu_id: int, synonyms: Sequence[str]) -> Nbu:
        return await self._change_terms(nbu_id, "synonyms", synonyms, add=False)

    async def add_abbreviations(self, nbu_id: int, abbreviations: Sequence[str]) -> Nbu:
        return await self._change_terms(nbu_id, "abbreviations", abbreviations, add=True)

    async def remove_abbreviations(self, nbu_id: int, abbreviations: Sequence[str]) -> Nbu:
        return await self._change_terms(nbu_id, "abbreviations", abbreviations, add=False)

    async def update_standard_interpretation(self, nbu_id: int, interpretation: Mapping[str, Any]) -> Nbu:
        updated = await self.gateway.put_standard_interpretation(nbu_id, interpretation)
        self.analyses.invalidate()
        return updated
