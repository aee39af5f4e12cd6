"""Pydantic models for catalog entities and the payload builders used by mutations.

The remote API speaks snake_case JSON, so models use the wire names directly.
Every model is frozen: cached snapshots are shared between callers and must
never be patched in place.

Payload builders enforce the optimistic-concurrency contract: any update of an
existing entity must carry the last observed entity_version.
"""

from collections.abc import Mapping
from datetime import date, datetime
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from lab_catalog.core.errors import EntityVersionRequiredError

T = TypeVar("T")


class CatalogModel(BaseModel):
    """Base for every wire model: immutable, tolerant of unknown server fields."""

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)


class AuditedEntity(CatalogModel):
    """Fields shared by every persisted entity."""

    id: int | None = None
    entity_version: int | None = None
    created_datetime: str | None = None
    last_updated_datetime: str | None = None
    created_user: int | None = None
    last_updated_user: int | None = None


# ============================================================================
# Catalog entities
# ============================================================================


class Determination(AuditedEntity):
    name: str | None = None
    percentage_variation_tolerated: float | None = None
    pre_analytical_phase_setting: dict[str, Any] | None = None
    analytical_phase_setting: dict[str, Any] | None = None
    post_analytical_phase_setting: dict[str, Any] | None = None
    result_setting: dict[str, Any] | None = None
    handling_time: dict[str, Any] | None = None


class SampleType(AuditedEntity):
    name: str | None = None
    description: str | None = None


class WorksheetSetting(AuditedEntity):
    name: str | None = None
    description: str | None = None


class NomenclatureVersion(AuditedEntity):
    """A published edition of the nomenclature (NBU version)."""

    version_code: str | None = None
    publication_year: int | None = None
    update_year: int | None = None
    publication_date: date | None = None
    effectivity_date: date | None = None
    end_date: date | None = None


class NbuVersionDetail(AuditedEntity):
    """Join record embedded in an NBU: the versions it belongs to and their UB."""

    ub: float | None = None
    nbu_version: NomenclatureVersion | None = None


class Nbu(AuditedEntity):
    """Nomenclature code (Nomenclador Bioquímico Único)."""

    nbu_code: int | None = None
    determination: str | None = None
    abbreviations: tuple[str, ...] = ()
    synonyms: tuple[str, ...] = ()
    nbu_type: str | None = None
    nbu_version_details: tuple[NbuVersionDetail, ...] = ()
    is_urgency: bool | None = None
    is_by_reference: bool | None = None
    is_infrequent: bool | None = None
    specific_standard_interpretation: dict[str, Any] | None = None

    def version_ids(self) -> frozenset[int]:
        """Ids of the versions this NBU is linked to, as embedded in the NBU itself."""
        return frozenset(
            detail.nbu_version.id
            for detail in self.nbu_version_details
            if detail.nbu_version is not None and detail.nbu_version.id is not None
        )


class Analysis(AuditedEntity):
    """Root aggregate: an orderable analysis with its embedded related entities."""

    short_code: int | None = None
    name: str | None = None
    family_name: str | None = None
    description: str | None = None
    code: str | None = None
    ub: float | None = None
    nbu: Nbu | None = None
    determinations: tuple[Determination, ...] = ()
    sample_type: SampleType | None = None
    worksheet_setting: WorksheetSetting | None = None


class NbuDetail(CatalogModel):
    """NBU membership entry of the version detail endpoint."""

    id: int | None = None
    ub: float | None = None
    nbu: Nbu | None = None


class NomenclatureVersionWithDetails(NomenclatureVersion):
    nbu_details: tuple[NbuDetail, ...] = ()

    def nbu_ids(self) -> tuple[int, ...]:
        return tuple(d.nbu.id for d in self.nbu_details if d.nbu is not None and d.nbu.id is not None)


class Page(CatalogModel, Generic[T]):
    """One page of a paginated listing."""

    content: tuple[T, ...] = ()
    total_pages: int = 0
    total_elements: int = 0


# ============================================================================
# Authentication
# ============================================================================


class User(CatalogModel):
    id: int | None = None
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    email: str | None = None
    is_active: bool | None = None
    is_first_login: bool | None = None


class LoginResponse(CatalogModel):
    token: str | None = None
    user: User | None = None
    first_login_token: str | None = Field(default=None, alias="firstLoginToken")


# ============================================================================
# Payload builders
# ============================================================================

# Own fields of an Analysis accepted by PATCH /analysis/{id}; relations have dedicated endpoints
ANALYSIS_PATCH_FIELDS: frozenset[str] = frozenset({"short_code", "name", "family_name", "description", "code", "ub"})

NBU_PATCH_FIELDS: frozenset[str] = frozenset(
    {
        "nbu_code",
        "determination",
        "abbreviations",
        "synonyms",
        "nbu_type",
        "is_urgency",
        "is_by_reference",
        "is_infrequent",
        "specific_standard_interpretation",
    }
)


def require_entity_version(entity: str, value: Any) -> int:
    """
    Validate an entity_version for a mutation.

    Raises:
        EntityVersionRequiredError: Missing, non-integer, boolean or negative value
    """
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise EntityVersionRequiredError(entity, value)
    return value


def _build_patch(entity: str, allowed: frozenset[str], changes: Mapping[str, Any]) -> dict[str, Any]:
    entity_version = require_entity_version(entity, changes.get("entity_version"))
    unknown = set(changes) - allowed - {"entity_version"}
    if unknown:
        raise ValueError(f"Fields not editable on {entity}: {sorted(unknown)}")
    payload = {key: value for key, value in changes.items() if key in allowed}
    payload["entity_version"] = entity_version
    return payload


def analysis_patch(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Build the body of PATCH /analysis/{id}; entity_version is mandatory."""
    return _build_patch("Analysis", ANALYSIS_PATCH_FIELDS, changes)


def nbu_patch(changes: Mapping[str, Any]) -> dict[str, Any]:
    """Build the body of PATCH /nbu/{id}; entity_version is mandatory."""
    return _build_patch("Nbu", NBU_PATCH_FIELDS, changes)


def to_date_only(value: date | datetime | str | None) -> str | None:
    """Format a date-like value as YYYY-MM-DD (ISO strings with a time part are truncated)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    text = str(value)
    if "T" in text:
        text = text.split("T", 1)[0]
    return date.fromisoformat(text).isoformat()


def _version_fields(version: NomenclatureVersion | Mapping[str, Any]) -> dict[str, Any]:
    data = version.model_dump() if isinstance(version, BaseModel) else dict(version)
    return {
        "version_code": data.get("version_code") or "",
        "publication_year": data.get("publication_year") or 0,
        "update_year": data.get("update_year") or 0,
        "publication_date": to_date_only(data.get("publication_date")),
        "effectivity_date": to_date_only(data.get("effectivity_date")),
        "end_date": to_date_only(data.get("end_date")),
    }


def version_create_payload(version: NomenclatureVersion | Mapping[str, Any], user_id: int) -> dict[str, Any]:
    """Body for creating a version: no id, no entity_version, no server timestamps."""
    return {
        "created_user": user_id,
        "last_updated_user": user_id,
        **_version_fields(version),
    }


def version_update_payload(version: NomenclatureVersion, user_id: int) -> dict[str, Any]:
    """Body for updating a version: full object with id and the observed entity_version."""
    if not version.id:
        raise ValueError("Cannot update a NomenclatureVersion without an id")
    return {
        "id": version.id,
        "entity_version": require_entity_version("NomenclatureVersion", version.entity_version),
        "created_user": version.created_user if version.created_user is not None else user_id,
        "last_updated_user": user_id,
        **_version_fields(version),
    }


def upsert_payload(entity: AuditedEntity, user_id: int) -> dict[str, Any]:
    """
    Full-object body for PUT create-or-update endpoints.

    Updates (entity has an id) must carry entity_version; creates may omit it.
    Server-managed timestamps are never sent.
    """
    payload = entity.model_dump(mode="json", exclude={"created_datetime", "last_updated_datetime"})
    if entity.id:
        require_entity_version(type(entity).__name__, entity.entity_version)
    else:
        payload.pop("id", None)
        payload["created_user"] = user_id
        if payload.get("entity_version") is None:
            payload.pop("entity_version", None)
    payload["last_updated_user"] = user_id
    return payload
