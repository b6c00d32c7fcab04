"""Per-wave extraction: project a raw wave table onto canonical concepts.

The extractor is a pure projection. It reads each requested concept's raw
column for the wave, blanks out the concept's missing-value codes and casts
to the concept's nullable dtype. Role-qualified concepts produce one column
per role, named ``"{concept}@{role}"``; those suffixes only live until the
role reshaper consumes them.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, Optional, Sequence, Union

import pandas as pd

from wavepanel.core.roles import Role
from wavepanel.core.variable_map import Concept, ConceptType, Level, VariableMap
from wavepanel.errors import ConfigurationError, MissingRawColumnError

logger = logging.getLogger(__name__)

ROLE_SEP = "@"

RawWaveTable = Union[pd.DataFrame, Mapping[str, Sequence]]


def role_column(concept: str, role: Role) -> str:
    """Internal column name for one role's value of a role-qualified concept."""
    return f"{concept}{ROLE_SEP}{role.value}"


def as_frame(raw: RawWaveTable) -> pd.DataFrame:
    """Accept a DataFrame or a column-name -> values mapping."""
    if isinstance(raw, pd.DataFrame):
        return raw
    return pd.DataFrame({name: list(values) for name, values in raw.items()})


def coerce_values(values: pd.Series, concept: Concept, wave: int) -> pd.Series:
    """Apply missing codes and cast to the concept's output dtype."""
    series = values
    if concept.missing_codes:
        series = series.mask(series.isin(list(concept.missing_codes)))

    if concept.dtype.is_numeric:
        present = series.notna()
        series = pd.to_numeric(series, errors="coerce")
        if concept.dtype in (ConceptType.INTEGER, ConceptType.CODE):
            series = series.astype("float64")
            series = series.mask(series.notna() & (series.round() != series))
        lost = int((present & series.isna()).sum())
        if lost:
            logger.warning(
                "Wave %s: %d value(s) of %r could not be read as %s and were set to null",
                wave, lost, concept.name, concept.dtype.value,
            )

    return series.astype(concept.dtype.pandas_dtype)


def _null_column(concept: Concept, index: pd.Index) -> pd.Series:
    return pd.Series(pd.NA, index=index, dtype=concept.dtype.pandas_dtype)


def _read(frame: pd.DataFrame, wave: int, concept: Concept, raw_name: Optional[str]) -> pd.Series:
    if raw_name is None:
        return _null_column(concept, frame.index)
    if raw_name not in frame.columns:
        raise MissingRawColumnError(wave, concept.name, raw_name)
    return coerce_values(frame[raw_name], concept, wave)


def extract_wave(
    raw: RawWaveTable,
    wave: int,
    variable_map: VariableMap,
    concepts: Iterable[str],
    level: Optional[Level] = None,
) -> pd.DataFrame:
    """Project one wave's raw table onto canonical concept columns.

    Args:
        raw: Raw wave table (one row per person or family)
        wave: Wave year
        variable_map: Concept x wave mapping
        concepts: Concept names to extract
        level: If given, every concept must be read from this table level

    Returns:
        DataFrame with the raw table's index and one column per concept
        (two, suffixed by role, for role-qualified concepts). Concepts not
        collected in ``wave`` come back as all-null columns.

    Raises:
        UnknownConceptError: If a concept is not declared
        MissingRawColumnError: If a mapped raw column is absent from ``raw``
    """
    frame = as_frame(raw)
    columns: dict[str, pd.Series] = {}

    for name in concepts:
        concept = variable_map[name]
        if level is not None and concept.level != level:
            raise ConfigurationError(
                f"Concept {name!r} is {concept.level.value}-level, "
                f"cannot extract it from the {level.value} table"
            )
        if concept.role_qualified:
            by_role = variable_map.resolve_roles(name, wave)
            for role in Role.ordered():
                columns[role_column(name, role)] = _read(frame, wave, concept, by_role.get(role))
        else:
            columns[name] = _read(frame, wave, concept, variable_map.resolve(name, wave))

    return pd.DataFrame(columns, index=frame.index)
