"""Tests for the pure extractors and the session overlay merge."""

import pytest

from lab_catalog.catalog.extraction import (
    extract_determinations,
    extract_nbus,
    extract_sample_types,
    extract_worksheet_settings,
    find_by_id,
    unique_by_id,
)
from lab_catalog.catalog.overlay import SessionOverlay
from lab_catalog.core.errors import EntityNotFoundError
from lab_catalog.models.entities import Analysis, Determination, Nbu, SampleType, WorksheetSetting


def _analysis(analysis_id, nbu_id=None, sample_type=None, worksheet_setting=None, determinations=()):
    return Analysis(
        id=analysis_id,
        name=f"Analysis {analysis_id}",
        nbu=Nbu(id=nbu_id, determination=f"NBU {nbu_id}") if nbu_id else None,
        sample_type=sample_type,
        worksheet_setting=worksheet_setting,
        determinations=[Determination(id=d_id, name=f"D{d_id}") for d_id in determinations],
    )


@pytest.fixture
def analyses():
    serum = SampleType(id=200, name="Serum")
    urine = SampleType(id=201, name="Urine")
    chemistry = WorksheetSetting(id=300, name="Chemistry")
    return (
        _analysis(1, nbu_id=1, sample_type=serum, worksheet_setting=chemistry, determinations=[100]),
        _analysis(2, nbu_id=2, sample_type=serum, worksheet_setting=chemistry, determinations=[101, 100]),
        _analysis(3, nbu_id=1, sample_type=urine, determinations=[102]),
        _analysis(4),
    )


class TestUniqueById:
    def test_unique_by_id_keeps_first_occurrence_in_order(self):
        first = Determination(id=1, name="first")
        duplicate = Determination(id=1, name="second")

        result = unique_by_id([first, Determination(id=2), duplicate, None, Determination(name="draft")])

        assert [entity.id for entity in result] == [1, 2]
        assert result[0].name == "first"


class TestExtractors:
    def test_extract_determinations_flattens_and_deduplicates(self, analyses):
        assert [d.id for d in extract_determinations(analyses)] == [100, 101, 102]

    def test_extract_nbus_skips_analyses_without_nbu(self, analyses):
        assert [nbu.id for nbu in extract_nbus(analyses)] == [1, 2]

    def test_extract_sample_types_and_worksheet_settings(self, analyses):
        assert [st.name for st in extract_sample_types(analyses)] == ["Serum", "Urine"]
        assert [ws.id for ws in extract_worksheet_settings(analyses)] == [300]

    def test_extractors_empty_aggregate_return_empty(self):
        assert extract_nbus(()) == ()
        assert extract_determinations(()) == ()

    def test_find_by_id_missing_raises_entity_not_found(self, analyses):
        with pytest.raises(EntityNotFoundError) as exc_info:
            find_by_id(extract_nbus(analyses), 99, "Nbu")

        assert exc_info.value.entity_id == 99
        assert isinstance(exc_info.value, LookupError)


class TestSessionOverlay:
    def test_overlay_merge_overrides_by_id_and_appends_local_only(self):
        # Arrange
        overlay = SessionOverlay()
        overlay.put(SampleType(id=201, name="Urine (24h)"))
        overlay.put(SampleType(id=900, name="Saliva"))
        extracted = (SampleType(id=200, name="Serum"), SampleType(id=201, name="Urine"))

        # Act
        merged = overlay.merge(extracted)

        # Assert
        assert [(st.id, st.name) for st in merged] == [(200, "Serum"), (201, "Urine (24h)"), (900, "Saliva")]

    def test_overlay_put_without_id_raises(self):
        with pytest.raises(ValueError):
            SessionOverlay().put(SampleType(name="Unsaved"))

    def test_overlay_clear_empties_entries(self):
        overlay = SessionOverlay()
        overlay.put(WorksheetSetting(id=1, name="Chemistry"))

        overlay.clear()

        assert len(overlay) == 0
        assert overlay.get(1) is None
