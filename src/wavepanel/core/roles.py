"""Household roles and the era table used to classify them.

The relationship-to-reference-person code changed meaning in 1983, and the
1968 wave has no sequence number at all. Rather than branching on years in
the pipeline, each coding scheme is a ``RoleEra`` row; classifying a code is
a lookup of the era covering the wave followed by a set-membership test.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field, model_validator

from wavepanel.errors import ConfigurationError, UnknownWaveError


class Role(Enum):
    """Household role of a person within a family unit."""

    REFERENCE_PERSON = "reference"  # formerly "head"
    PARTNER = "partner"  # spouse or long-term cohabitor ("wife")

    @classmethod
    def ordered(cls) -> tuple[Role, ...]:
        """Roles in the order their rows are emitted."""
        return (cls.REFERENCE_PERSON, cls.PARTNER)


class RoleEra(BaseModel):
    """Relationship coding in force for an inclusive range of waves.

    ``end=None`` leaves the era open-ended.
    """

    start: int
    end: Optional[int] = None
    reference_codes: frozenset[int]
    partner_codes: frozenset[int]
    sequence_gated: bool = True
    sequence_min: int = Field(default=1, ge=0)
    sequence_max: int = Field(default=20, ge=0)

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check(self) -> RoleEra:
        if self.end is not None and self.end < self.start:
            raise ValueError(f"Era ends ({self.end}) before it starts ({self.start})")
        if self.reference_codes & self.partner_codes:
            raise ValueError("A code cannot mean both reference person and partner")
        if self.sequence_max < self.sequence_min:
            raise ValueError("sequence_max must be >= sequence_min")
        return self

    def covers(self, wave: int) -> bool:
        return self.start <= wave and (self.end is None or wave <= self.end)


DEFAULT_ROLE_ERAS: tuple[RoleEra, ...] = (
    # 1968 has no sequence number; the relationship code is the only discriminant
    RoleEra(start=1968, end=1968, reference_codes={1}, partner_codes={2}, sequence_gated=False),
    RoleEra(start=1969, end=1982, reference_codes={1}, partner_codes={2}),
    # 20 = legal spouse, 22 = cohabiting partner
    RoleEra(start=1983, end=None, reference_codes={10}, partner_codes={20, 22}),
)


def check_eras(eras: Sequence[RoleEra]) -> tuple[RoleEra, ...]:
    """Sort eras by start year and reject overlaps."""
    ordered = tuple(sorted(eras, key=lambda e: e.start))
    for prev, cur in zip(ordered, ordered[1:]):
        if prev.end is None or prev.end >= cur.start:
            raise ConfigurationError(
                f"Role eras overlap: {prev.start}-{prev.end} and {cur.start}-{cur.end}"
            )
    return ordered


def era_for(wave: int, eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS) -> RoleEra:
    """Return the era covering a wave."""
    for era in eras:
        if era.covers(wave):
            return era
    raise UnknownWaveError(wave, "no role era covers it")


def has_sequence_number(wave: int, eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS) -> bool:
    """Whether the wave's coding scheme gates roles on a sequence number."""
    return era_for(wave, eras).sequence_gated


def _is_null(value) -> bool:
    return value is None or value is pd.NA or (isinstance(value, float) and np.isnan(value))


def classify_role(
    wave: int,
    code,
    sequence=None,
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> Optional[Role]:
    """Classify one relationship code.

    Returns None when the code is neither a reference-person nor a partner
    code for the wave's era, or when the era gates on sequence number and
    the sequence number is null or outside the current-member range.
    Passing no sequence (None) skips the gate, for record sources such as
    family-file role slots that carry no sequence number.

    Examples:
        >>> classify_role(1982, 1, 1)
        <Role.REFERENCE_PERSON: 'reference'>
        >>> classify_role(1983, 1, 1) is None
        True
    """
    era = era_for(wave, eras)
    if era.sequence_gated and sequence is not None:
        if _is_null(sequence) or not era.sequence_min <= int(sequence) <= era.sequence_max:
            return None
    if _is_null(code):
        return None
    code = int(code)
    if code in era.reference_codes:
        return Role.REFERENCE_PERSON
    if code in era.partner_codes:
        return Role.PARTNER
    return None


def classify_roles(
    wave: int,
    codes: pd.Series,
    sequences: Optional[pd.Series] = None,
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.Series:
    """Vectorized classify_role over aligned code/sequence columns.

    Returns a pandas ``string`` Series of role values with <NA> for invalid
    rows, indexed like ``codes``. As in classify_role, ``sequences=None``
    skips the sequence gate; null entries of a given Series fail it.
    """
    era = era_for(wave, eras)
    codes = pd.to_numeric(codes, errors="coerce").astype("float64")

    if not era.sequence_gated or sequences is None:
        current = pd.Series(True, index=codes.index)
    else:
        seq = pd.to_numeric(sequences, errors="coerce").astype("float64")
        current = seq.between(era.sequence_min, era.sequence_max)

    is_ref = codes.isin(list(era.reference_codes)).to_numpy(dtype=bool)
    is_partner = codes.isin(list(era.partner_codes)).to_numpy(dtype=bool)
    current = current.to_numpy(dtype=bool)

    values = np.select(
        [current & is_ref, current & is_partner],
        [Role.REFERENCE_PERSON.value, Role.PARTNER.value],
        default=None,
    )
    return pd.Series(values, index=codes.index, dtype="string")
