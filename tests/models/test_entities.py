"""Tests for entity models and mutation payload builders."""

from datetime import date, datetime

import pytest
from pydantic import ValidationError

from lab_catalog.core.errors import EntityVersionRequiredError
from lab_catalog.models.entities import (
    Analysis,
    Determination,
    Nbu,
    NomenclatureVersion,
    analysis_patch,
    nbu_patch,
    require_entity_version,
    to_date_only,
    upsert_payload,
    version_create_payload,
    version_update_payload,
)


class TestEntityModels:
    def test_analysis_parses_embedded_entities_and_is_frozen(self):
        # Arrange
        raw = {
            "id": 1,
            "entity_version": 2,
            "name": "Glucose",
            "nbu": {
                "id": 5,
                "nbu_code": 660412,
                "nbu_version_details": [{"ub": 1.5, "nbu_version": {"id": 10, "publication_date": "2024-01-01"}}],
            },
            "determinations": [{"id": 100, "name": "Glucose"}],
            "server_only_field": "kept",
        }

        # Act
        analysis = Analysis.model_validate(raw)

        # Assert
        assert analysis.nbu.version_ids() == frozenset({10})
        assert analysis.nbu.nbu_version_details[0].nbu_version.publication_date == date(2024, 1, 1)
        assert analysis.determinations[0].name == "Glucose"
        assert analysis.model_extra == {"server_only_field": "kept"}
        with pytest.raises(ValidationError):
            analysis.name = "changed"


class TestRequireEntityVersion:
    @pytest.mark.parametrize("value", [None, True, False, -1, "3", 1.0])
    def test_require_entity_version_rejects_invalid_values(self, value):
        with pytest.raises(EntityVersionRequiredError):
            require_entity_version("Analysis", value)

    def test_require_entity_version_accepts_zero(self):
        assert require_entity_version("Analysis", 0) == 0


class TestPatchBuilders:
    def test_analysis_patch_keeps_own_fields_and_version(self):
        payload = analysis_patch({"name": "New", "ub": 2.0, "entity_version": 4})

        assert payload == {"name": "New", "ub": 2.0, "entity_version": 4}

    def test_analysis_patch_without_version_raises(self):
        with pytest.raises(EntityVersionRequiredError):
            analysis_patch({"name": "New"})

    def test_analysis_patch_rejects_related_entities(self):
        with pytest.raises(ValueError, match="not editable"):
            analysis_patch({"nbu": {"id": 1}, "entity_version": 0})

    def test_nbu_patch_accepts_nbu_fields(self):
        payload = nbu_patch({"determination": "Glucosa", "is_urgency": True, "entity_version": 1})

        assert payload == {"determination": "Glucosa", "is_urgency": True, "entity_version": 1}


class TestVersionPayloads:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("2024-03-05T10:00:00Z", "2024-03-05"),
            (date(2024, 3, 5), "2024-03-05"),
            (datetime(2024, 3, 5, 23, 59), "2024-03-05"),
            ("", None),
            (None, None),
        ],
    )
    def test_to_date_only_normalizes_date_like_values(self, value, expected):
        assert to_date_only(value) == expected

    def test_version_create_payload_has_no_id_and_normalized_dates(self):
        draft = {"version_code": "NBU-2025", "publication_year": 2025, "publication_date": "2025-01-10T00:00:00"}

        payload = version_create_payload(draft, user_id=7)

        assert "id" not in payload
        assert "entity_version" not in payload
        assert payload["publication_date"] == "2025-01-10"
        assert payload["update_year"] == 0
        assert payload["created_user"] == payload["last_updated_user"] == 7

    def test_version_update_payload_requires_entity_version(self):
        version = NomenclatureVersion(id=10, version_code="V10")

        with pytest.raises(EntityVersionRequiredError):
            version_update_payload(version, user_id=7)

    def test_version_update_payload_keeps_creator(self):
        version = NomenclatureVersion(id=10, entity_version=3, created_user=1, end_date=date(2026, 1, 1))

        payload = version_update_payload(version, user_id=7)

        assert payload["id"] == 10
        assert payload["entity_version"] == 3
        assert payload["created_user"] == 1
        assert payload["last_updated_user"] == 7
        assert payload["end_date"] == "2026-01-01"


class TestUpsertPayload:
    def test_upsert_payload_create_drops_id_and_sets_creator(self):
        payload = upsert_payload(Determination(name="Sodium"), user_id=7)

        assert "id" not in payload
        assert "entity_version" not in payload
        assert payload["created_user"] == 7
        assert payload["last_updated_user"] == 7
        assert "created_datetime" not in payload

    def test_upsert_payload_update_requires_entity_version(self):
        with pytest.raises(EntityVersionRequiredError):
            upsert_payload(Nbu(id=3), user_id=7)

    def test_upsert_payload_update_keeps_id_and_version(self):
        payload = upsert_payload(Determination(id=100, entity_version=2, name="Sodium", created_user=1), user_id=7)

        assert payload["id"] == 100
        assert payload["entity_version"] == 2
        assert payload["created_user"] == 1
        assert payload["last_updated_user"] == 7
