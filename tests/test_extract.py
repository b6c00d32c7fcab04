"""Tests for per-wave extraction."""

import logging

import pandas as pd
import pytest

from wavepanel.core.roles import Role
from wavepanel.core.variable_map import Concept, ConceptType, Level
from wavepanel.errors import ConfigurationError, MissingRawColumnError, UnknownConceptError
from wavepanel.extract import coerce_values, extract_wave, role_column


class TestExtractWave:
    """Test projecting raw tables onto concepts."""

    def test_renames_and_types(self, individual_table, variable_map):
        out = extract_wave(individual_table, 1969, variable_map, ["inum", "seqnum", "age"])

        assert list(out.columns) == ["inum", "seqnum", "age"]
        assert out["inum"].tolist() == [101, 101, 101, 102, 102]
        assert str(out["age"].dtype) == "Int64"

    def test_missing_codes_become_null(self, individual_table, variable_map):
        out = extract_wave(individual_table, 1969, variable_map, ["age"])
        assert pd.isna(out["age"].iloc[4])
        assert out["age"].iloc[0] == 41

    def test_absent_wave_gives_null_column(self, individual_table, variable_map):
        out = extract_wave(individual_table, 1968, variable_map, ["seqnum", "age"])
        assert out["seqnum"].isna().all()
        assert str(out["seqnum"].dtype) == "Int64"
        assert len(out) == len(individual_table)

    def test_preserves_index(self, individual_table, variable_map):
        individual_table.index = [10, 20, 30, 40, 50]
        out = extract_wave(individual_table, 1983, variable_map, ["age"])
        assert list(out.index) == [10, 20, 30, 40, 50]

    def test_role_qualified_columns(self, family_tables, variable_map):
        out = extract_wave(
            family_tables[1983], 1983, variable_map, ["family_inum", "family_age"], Level.FAMILY
        )
        assert list(out.columns) == [
            "family_inum",
            role_column("family_age", Role.REFERENCE_PERSON),
            role_column("family_age", Role.PARTNER),
        ]
        assert out["family_age@reference"].tolist() == [25, 55, 60]
        # partner age 0 is "no partner"
        assert out["family_age@partner"].isna().tolist() == [True, False, True]

    def test_missing_raw_column(self, individual_table, variable_map):
        raw = individual_table.drop(columns=["I69AGE"])
        with pytest.raises(MissingRawColumnError) as exc:
            extract_wave(raw, 1969, variable_map, ["age"])
        assert exc.value.concept == "age"
        assert exc.value.raw_name == "I69AGE"
        assert exc.value.wave == 1969

    def test_unknown_concept(self, individual_table, variable_map):
        with pytest.raises(UnknownConceptError):
            extract_wave(individual_table, 1969, variable_map, ["wealth"])

    def test_level_mismatch(self, individual_table, variable_map):
        with pytest.raises(ConfigurationError):
            extract_wave(individual_table, 1969, variable_map, ["family_inum"], Level.INDIVIDUAL)

    def test_accepts_column_mapping(self, variable_map):
        raw = {"F69INUM": [101, 102], "F69INC": [1100.5, None]}
        out = extract_wave(raw, 1969, variable_map, ["family_inum", "family_income"])
        assert out["family_inum"].tolist() == [101, 102]
        assert str(out["family_income"].dtype) == "Float64"
        assert pd.isna(out["family_income"].iloc[1])

    def test_ignores_unrequested_columns(self, individual_table, variable_map):
        out = extract_wave(individual_table, 1969, variable_map, ["age"])
        assert list(out.columns) == ["age"]


class TestCoerceValues:
    """Test missing-code handling and dtype casting."""

    def test_non_integral_value_nulled(self, caplog):
        concept = Concept(name="age", dtype=ConceptType.INTEGER)
        with caplog.at_level(logging.WARNING, logger="wavepanel.extract"):
            out = coerce_values(pd.Series([30.0, 30.5, None]), concept, 1990)
        assert out.iloc[0] == 30
        assert out.iloc[1:].isna().all()
        assert "could not be read" in caplog.text

    def test_unparseable_text_nulled(self):
        concept = Concept(name="income", dtype=ConceptType.FLOAT)
        out = coerce_values(pd.Series(["12.5", "n/a"]), concept, 1990)
        assert out.iloc[0] == 12.5
        assert pd.isna(out.iloc[1])

    def test_string_concept(self):
        concept = Concept(name="state", dtype=ConceptType.STRING, missing_codes=("",))
        out = coerce_values(pd.Series(["MI", ""]), concept, 1990)
        assert str(out.dtype) == "string"
        assert out.iloc[0] == "MI"
        assert pd.isna(out.iloc[1])
