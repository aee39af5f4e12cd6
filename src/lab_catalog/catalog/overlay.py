"""
Session-scoped local overlay for entities created or edited this session.

Sample types and worksheet settings only reach the analysis aggregate once an
Analysis references them. The overlay keeps what this session saved so a
just-created entity is still listed. Overlay entries always take precedence
over extracted entities sharing an id.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Generic, TypeVar

import structlog

from lab_catalog.catalog.analysis_service import AnalysisService
from lab_catalog.catalog.extraction import find_by_id
from lab_catalog.gateway.client import CatalogGateway
from lab_catalog.models.entities import Analysis, AuditedEntity, upsert_payload

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=AuditedEntity)


class SessionOverlay(Generic[E]):
    """Id-keyed map of locally saved entities; lives as long as its owner."""

    def __init__(self) -> None:
        self._entries: dict[int, E] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, entity: E) -> None:
        if not entity.id:
            raise ValueError("Only persisted entities (with an id) can be overlaid")
        self._entries[entity.id] = entity

    def get(self, entity_id: int) -> E | None:
        return self._entries.get(entity_id)

    def clear(self) -> None:
        self._entries.clear()

    def merge(self, extracted: Iterable[E]) -> tuple[E, ...]:
        """
        Merge extracted entities with the overlay.

        Extracted order is kept; an overlay entry replaces the extracted entity
        with the same id; overlay-only entries are appended in insertion order.
        """
        merged: dict[int, E] = {}
        for entity in extracted:
            if entity.id:
                merged[entity.id] = self._entries.get(entity.id, entity)
        for entity_id, entity in self._entries.items():
            merged.setdefault(entity_id, entity)
        return tuple(merged.values())


class OverlaidEntityService(ABC, Generic[E]):
    """
    Listing and upsert for an entity derived from analyses plus a local overlay.

    Subclasses name the entity, extract it from the aggregate and send the
    upsert request.
    """

    entity_name: str = "Entity"

    def __init__(self, gateway: CatalogGateway, analyses: AnalysisService) -> None:
        self.gateway = gateway
        self.analyses = analyses
        self.overlay: SessionOverlay[E] = SessionOverlay()

    @abstractmethod
    def _extract(self, analyses: tuple[Analysis, ...]) -> tuple[E, ...]:
        """Pull this entity kind out of the aggregate."""

    @abstractmethod
    async def _send_upsert(self, payload: dict[str, Any]) -> E:
        """Issue the full-object PUT and return the saved entity."""

    async def list(self) -> tuple[E, ...]:
        return self.overlay.merge(self._extract(await self.analyses.get_all()))

    async def get_by_id(self, entity_id: int) -> E:
        """
        Overlay first, then the aggregate.

        Raises:
            EntityNotFoundError: Neither holds the id
        """
        local = self.overlay.get(entity_id)
        if local is not None:
            return local
        return find_by_id(self._extract(await self.analyses.get_all()), entity_id, self.entity_name)

    async def upsert(self, entity: E) -> E:
        """
        Create (no id) or update (id plus entity_version) an entity.

        The saved entity enters the overlay and the analysis aggregate is
        invalidated.
        """
        payload = upsert_payload(entity, self.gateway.session.require_user_id())
        saved = await self._send_upsert(payload)
        self.overlay.put(saved)
        self.analyses.invalidate()
        logger.info("entity_saved", entity=self.entity_name, entity_id=saved.id, created=not entity.id)
        return saved
