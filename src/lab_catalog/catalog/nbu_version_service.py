"""
Nomenclature Version Service.

Two caches live here:
- the version list (GET /analysis/nbu/versions)
- the version detail cache: an immutable VersionMembership snapshot mapping
  each version to its associated NBU ids and UB coefficients, sourced from the
  dedicated detail endpoint

The membership is also embedded in every NBU of the analysis aggregate; only
ReconciliationEngine edits the remote join, and it invalidates both views
together. Creating or updating a version invalidates both caches of this
service.
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

import structlog

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.core.single_flight import CacheState, SingleFlightCache
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import (
    Nbu,
    NomenclatureVersion,
    NomenclatureVersionWithDetails,
    version_create_payload,
    version_update_payload,
)

logger = structlog.get_logger(__name__)


def _freeze(mapping: Mapping[Any, Any]) -> Mapping[Any, Any]:
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class VersionMembership:
    """
    Snapshot of NBU membership per version.

    Attributes:
        nbu_ids: version id -> associated NBU ids
        ubs: (version id, NBU id) -> UB coefficient of the join record
    """

    nbu_ids: Mapping[int, frozenset[int]] = field(default_factory=lambda: _freeze({}))
    ubs: Mapping[tuple[int, int], float] = field(default_factory=lambda: _freeze({}))

    @classmethod
    def from_details(cls, versions: Iterable[NomenclatureVersionWithDetails]) -> "VersionMembership":
        nbu_ids: dict[int, frozenset[int]] = {}
        ubs: dict[tuple[int, int], float] = {}
        for version in versions:
            if not version.id:
                continue
            nbu_ids[version.id] = frozenset(version.nbu_ids())
            for detail in version.nbu_details:
                if detail.nbu is not None and detail.nbu.id and detail.ub is not None:
                    ubs[(version.id, detail.nbu.id)] = detail.ub
        return cls(_freeze(nbu_ids), _freeze(ubs))

    def members(self, version_id: int) -> frozenset[int]:
        return self.nbu_ids.get(version_id, frozenset())

    def ub_for(self, version_id: int, nbu_id: int) -> float | None:
        return self.ubs.get((version_id, nbu_id))

    def version_ub(self, version_id: int) -> float:
        """UB of the version's first join record; 0 when it has none."""
        return next(
            (ub for (v_id, _), ub in self.ubs.items() if v_id == version_id),
            0.0,
        )

    def with_members(self, version_id: int, nbu_ids: Iterable[int]) -> "VersionMembership":
        """New snapshot with one version's membership replaced."""
        updated = dict(self.nbu_ids)
        updated[version_id] = frozenset(nbu_ids)
        return VersionMembership(_freeze(updated), self.ubs)


class NbuVersionService:
    def __init__(self, gateway: CatalogGateway, analyses: AnalysisService) -> None:
        self.gateway = gateway
        self.analyses = analyses
        self.versions_cache: SingleFlightCache[tuple[NomenclatureVersion, ...]] = SingleFlightCache(
            "nbu_versions", self._load_versions
        )
        self.details_cache: SingleFlightCache[VersionMembership] = SingleFlightCache(
            "nbu_version_details", self._load_membership
        )

    async def _load_versions(self) -> tuple[NomenclatureVersion, ...]:
        return tuple(await self.gateway.list_versions())

    async def _load_membership(self) -> VersionMembership:
        membership = VersionMembership.from_details(await self.gateway.list_versions_with_details())
        logger.info("version_details_settled", versions=len(membership.nbu_ids))
        return membership

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def list_versions(self) -> tuple[NomenclatureVersion, ...]:
        return await self.versions_cache.get()

    async def versions_with_details(self) -> list[NomenclatureVersionWithDetails]:
        """Full detail read, straight from the server."""
        return await self.gateway.list_versions_with_details()

    async def prefetch_details(self) -> VersionMembership:
        return await self.details_cache.get()

    async def associated_nbu_ids(self, version_id: int) -> frozenset[int]:
        return (await self.details_cache.get()).members(version_id)

    async def ub_for(self, version_id: int, nbu_id: int) -> float | None:
        return (await self.details_cache.get()).ub_for(version_id, nbu_id)

    async def nbus_by_version(self, version_id: int) -> tuple[Nbu, ...]:
        """NBUs of the aggregate whose embedded version details include version_id."""
        return tuple(nbu for nbu in await self.analyses.extract_nbus() if version_id in nbu.version_ids())

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def create_version(self, draft: NomenclatureVersion | Mapping[str, Any]) -> NomenclatureVersion:
        payload = version_create_payload(draft, self.gateway.session.require_user_id())
        created = await self.gateway.put_version(payload)
        self.invalidate()
        logger.info("version_created", version_id=created.id, version_code=created.version_code)
        return created

    async def update_version(self, version: NomenclatureVersion) -> NomenclatureVersion:
        """
        Update a version (full object).

        Raises:
            EntityVersionRequiredError: entity_version missing or invalid
            ValueError: version has no id
        """
        payload = version_update_payload(version, self.gateway.session.require_user_id())
        updated = await self.gateway.put_version(payload)
        self.invalidate()
        return updated

    def set_membership(self, version_id: int, nbu_ids: Iterable[int]) -> bool:
        """
        Replace one version's membership in a settled detail snapshot.

        Synchronous; does not need a running event loop.

        Returns:
            False when no snapshot is settled (nothing to update)
        """
        current = self.details_cache.peek()
        if current is None or self.details_cache.state is not CacheState.SETTLED:
            return False
        self.details_cache.set(current.with_members(version_id, nbu_ids))
        return True

    def invalidate_details(self) -> None:
        self.details_cache.invalidate()

    def invalidate(self) -> None:
        self.versions_cache.invalidate()
        self.details_cache.invalidate()
