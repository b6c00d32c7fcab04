"""Tests for panel validation."""

import pandas as pd
import pytest

from wavepanel.errors import PanelValidationError
from wavepanel.validation import validate_panel

CONCEPTS = ["age", "family_age"]


def make_panel():
    return pd.DataFrame({
        "year": [1968, 1969, 1968, 1969],
        "person_id": pd.array([1001, 1001, 1002, 1002], dtype="Int64"),
        "role": pd.array(["reference", "reference", None, "partner"], dtype="string"),
        "age": pd.array([40, 41, None, 39], dtype="Int64"),
        "family_age": pd.array([40, 41, None, 39], dtype="Int64"),
    })


class TestValidatePanel:
    """Test the ordered panel checks."""

    def test_valid_panel(self, variable_map, waves):
        result = validate_panel(make_panel(), variable_map, waves, concepts=CONCEPTS)
        assert result.ok
        assert result.raise_for_failure() is result.panel

    def test_duplicate_person_wave(self, variable_map, waves):
        panel = pd.concat([make_panel(), make_panel().iloc[[0]]], ignore_index=True)
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)

        assert not result.ok
        assert result.panel is None
        assert result.failure.check == "unique_person_wave"
        assert result.failure.n_offending == 2

    def test_missing_concept(self, variable_map, waves):
        panel = make_panel().drop(columns=["family_age"])
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)
        assert result.failure.check == "declared_concepts"
        assert "family_age" in result.failure.message

    def test_all_declared_by_default(self, variable_map, waves):
        result = validate_panel(make_panel(), variable_map, waves)
        assert result.failure.check == "declared_concepts"
        assert result.failure.n_offending == 7

    def test_undeclared_wave(self, variable_map, waves):
        panel = make_panel()
        panel.loc[3, "year"] = 1970
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)
        assert result.failure.check == "declared_waves"
        assert "1970" in result.failure.message

    def test_person_never_observed(self, variable_map, waves):
        panel = make_panel()
        panel.loc[3, ["age", "family_age"]] = pd.NA
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)

        assert result.failure.check == "observed_persons"
        assert result.failure.n_offending == 1
        assert set(result.failure.sample["person_id"]) == {1002}

    def test_checks_run_in_order(self, variable_map, waves):
        # duplicate key and undeclared wave: the key check reports first
        panel = pd.concat([make_panel(), make_panel().iloc[[0]]], ignore_index=True)
        panel.loc[1, "year"] = 1970
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)
        assert result.failure.check == "unique_person_wave"

    def test_sample_bounded(self, variable_map, waves):
        panel = pd.concat([make_panel()] * 10, ignore_index=True)
        result = validate_panel(panel, variable_map, waves, sample_size=3, concepts=CONCEPTS)
        assert len(result.failure.sample) == 3
        assert result.failure.n_offending == 40

    def test_raise_for_failure(self, variable_map, waves):
        panel = make_panel()
        panel.loc[0, "year"] = 2000
        result = validate_panel(panel, variable_map, waves, concepts=CONCEPTS)
        with pytest.raises(PanelValidationError) as exc:
            result.raise_for_failure()
        assert str(exc.value).startswith("[declared_waves]")
        assert exc.value.failure is result.failure

    def test_summary(self, variable_map, waves):
        panel = make_panel()
        panel.loc[0, "year"] = 2000
        summary = validate_panel(panel, variable_map, waves, concepts=CONCEPTS).failure.summary()
        assert summary["check"] == "declared_waves"
        assert summary["n_offending"] == 1
        assert summary["sample"][0]["year"] == 2000
