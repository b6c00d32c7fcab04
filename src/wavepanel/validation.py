"""Panel validation.

Checks run in a fixed order and stop at the first violation:

1. ``unique_person_wave``: (person_id, year) is unique
2. ``declared_concepts``: every declared concept is a column
3. ``declared_waves``: every year is a declared wave
4. ``observed_persons``: every person has at least one row with a non-null
   descriptive (non-identifier) concept

A failure carries a bounded sample of offending rows so the report stays
readable on full-size panels.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional

import pandas as pd

from wavepanel.core.variable_map import VariableMap
from wavepanel.core.waves import WaveSequence
from wavepanel.errors import PanelValidationError
from wavepanel.identifiers import PERSON_ID, IdentifierConcepts
from wavepanel.merge import YEAR


@dataclass
class ValidationFailure:
    """First violated panel invariant."""

    check: str
    message: str
    sample: pd.DataFrame
    n_offending: int = 0

    def summary(self) -> dict:
        return {
            "check": self.check,
            "message": self.message,
            "n_offending": self.n_offending,
            "sample": self.sample.astype(object).to_dict("records"),
        }


@dataclass
class ValidationResult:
    """Either the validated panel or the failure that rejected it."""

    panel: Optional[pd.DataFrame]
    failure: Optional[ValidationFailure] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    def raise_for_failure(self) -> pd.DataFrame:
        """Return the panel, or raise PanelValidationError."""
        if self.failure is not None:
            raise PanelValidationError(self.failure)
        return self.panel


def _check_unique(panel, concepts, waves, identifiers, sample_size):
    missing = [c for c in (PERSON_ID, YEAR) if c not in panel.columns]
    if missing:
        return ValidationFailure(
            "unique_person_wave",
            f"Panel has no key column(s) {missing}",
            panel.head(0),
        )
    dup = panel.duplicated([PERSON_ID, YEAR], keep=False)
    if dup.any():
        n = int(dup.sum())
        return ValidationFailure(
            "unique_person_wave",
            f"{n} rows share a (person_id, year) with another row",
            panel.loc[dup].head(sample_size),
            n,
        )
    return None


def _check_concepts(panel, concepts, waves, identifiers, sample_size):
    missing = sorted(set(concepts) - set(panel.columns))
    if missing:
        return ValidationFailure(
            "declared_concepts",
            f"Declared concept(s) missing from panel: {', '.join(missing)}",
            pd.DataFrame({"concept": missing[:sample_size]}),
            len(missing),
        )
    return None


def _check_waves(panel, concepts, waves, identifiers, sample_size):
    bad = ~panel[YEAR].isin(list(waves.years))
    if bad.any():
        n = int(bad.sum())
        years = sorted(panel.loc[bad, YEAR].unique().tolist())
        return ValidationFailure(
            "declared_waves",
            f"{n} rows have undeclared wave year(s) {years}",
            panel.loc[bad].head(sample_size),
            n,
        )
    return None


def _check_observed(panel, concepts, waves, identifiers, sample_size):
    skip = set(identifiers.key_columns) | set(identifiers.individual)
    descriptive = [c for c in concepts if c not in skip]
    if not descriptive:
        return None

    has_value = panel[descriptive].notna().any(axis=1)
    observed = has_value.groupby(panel[PERSON_ID]).any()
    orphans = observed.index[~observed.to_numpy(dtype=bool)]
    if len(orphans):
        return ValidationFailure(
            "observed_persons",
            f"{len(orphans)} person(s) have no non-null observation in any wave",
            panel.loc[panel[PERSON_ID].isin(orphans)].head(sample_size),
            len(orphans),
        )
    return None


CHECKS: List[Callable] = [_check_unique, _check_concepts, _check_waves, _check_observed]


def validate_panel(
    panel: pd.DataFrame,
    variable_map: VariableMap,
    waves: WaveSequence,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    sample_size: int = 5,
    concepts: Optional[Iterable[str]] = None,
) -> ValidationResult:
    """Run the panel checks in order, stopping at the first failure.

    Args:
        panel: Stacked long panel
        variable_map: Declared concepts
        waves: Declared wave sequence
        identifiers: Identifier concept names (excluded from check 4)
        sample_size: Max offending rows kept in a failure
        concepts: Concepts the panel must carry (default: all declared, in
            declaration order)

    Returns:
        ValidationResult with the panel, or with the first failure
    """
    if concepts is None:
        concepts = [c.name for c in variable_map]
    else:
        concepts = list(concepts)
        variable_map.require(concepts)

    for check in CHECKS:
        failure = check(panel, concepts, waves, identifiers, sample_size)
        if failure is not None:
            return ValidationResult(panel=None, failure=failure)
    return ValidationResult(panel=panel)
