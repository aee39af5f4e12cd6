"""
Pure extractors over the analysis aggregate.

Each extractor walks every Analysis once and collects one kind of embedded
entity into an order-preserving map keyed by id: the first occurrence wins and
entities without an id are skipped. Nothing here is cached; callers ride the
root cache's memoization.
"""

from collections.abc import Iterable
from typing import TypeVar

from lab_catalog.core.errors import EntityNotFoundError
from lab_catalog.models.entities import Analysis, AuditedEntity, Determination, Nbu, SampleType, WorksheetSetting

E = TypeVar("E", bound=AuditedEntity)


def unique_by_id(entities: Iterable[E | None]) -> tuple[E, ...]:
    """De-duplicate entities by id, keeping the first occurrence and its position."""
    seen: dict[int, E] = {}
    for entity in entities:
        if entity is None or not entity.id:
            continue
        seen.setdefault(entity.id, entity)
    return tuple(seen.values())


def find_by_id(entities: Iterable[E], entity_id: int, entity: str) -> E:
    """
    Linear lookup by id.

    Raises:
        EntityNotFoundError: No entity carries that id
    """
    for candidate in entities:
        if candidate.id == entity_id:
            return candidate
    raise EntityNotFoundError(entity, entity_id)


def extract_determinations(analyses: Iterable[Analysis]) -> tuple[Determination, ...]:
    return unique_by_id(determination for analysis in analyses for determination in analysis.determinations)


def extract_nbus(analyses: Iterable[Analysis]) -> tuple[Nbu, ...]:
    return unique_by_id(analysis.nbu for analysis in analyses)


def extract_sample_types(analyses: Iterable[Analysis]) -> tuple[SampleType, ...]:
    return unique_by_id(analysis.sample_type for analysis in analyses)


def extract_worksheet_settings(analyses: Iterable[Analysis]) -> tuple[WorksheetSetting, ...]:
    return unique_by_id(analysis.worksheet_setting for analysis in analyses)
