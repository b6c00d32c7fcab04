"""Identifier resolution for individual-level records.

Three identifier tiers:

- Permanent person key: (1968 interview number, 1968 person number). Fixed
  for a person's whole life in the study; ``person_id`` packs it as
  ``interview_1968 * 1000 + person_1968``.
- Family key: the year-specific family interview number. Only meaningful
  within one wave.
- Person-in-family key: (family key, sequence number). The 1968 wave has no
  sequence number, so the role stands in for it there: 1 for the reference
  person, 2 for the partner.
"""

from __future__ import annotations

import logging
from typing import Iterable, Mapping, NamedTuple, Optional

import pandas as pd
from pydantic import BaseModel

from wavepanel.core.roles import (
    DEFAULT_ROLE_ERAS,
    Role,
    RoleEra,
    classify_roles,
    era_for,
    has_sequence_number,
)
from wavepanel.errors import MissingIdentifierError

logger = logging.getLogger(__name__)

PERSON_ID = "person_id"
SEQUENCE_IN_FAMILY = "sequence_in_family"
ROLE = "role"

# Stand-in sequence numbers for waves without a sequence number field
ROLE_SEQUENCE_CONVENTION = {
    Role.REFERENCE_PERSON: 1,
    Role.PARTNER: 2,
}


class IdentifierConcepts(BaseModel):
    """Names of the concepts that carry identifiers.

    All but ``family_table_key`` are individual-level; ``family_table_key``
    is the family file's own interview-number concept, joined against
    ``family_key``.
    """

    interview_1968: str = "interview_1968"
    person_1968: str = "person_1968"
    family_key: str = "inum"
    sequence: str = "seqnum"
    relationship: str = "relhead"
    family_table_key: str = "family_inum"
    # Family-key values meaning "not in the study this wave"
    absent_family_keys: tuple[int, ...] = (0,)

    model_config = {"frozen": True}

    @property
    def individual(self) -> list[str]:
        return [
            self.interview_1968,
            self.person_1968,
            self.family_key,
            self.sequence,
            self.relationship,
        ]

    @property
    def key_columns(self) -> list[str]:
        """Columns that identify rather than describe a panel row."""
        return [
            self.interview_1968,
            self.person_1968,
            PERSON_ID,
            "year",
            ROLE,
            SEQUENCE_IN_FAMILY,
            self.family_key,
            self.family_table_key,
        ]


class PermanentPersonKey(NamedTuple):
    """(1968 interview number, 1968 person number)."""

    interview_1968: int
    person_1968: int

    @property
    def person_id(self) -> int:
        return self.interview_1968 * 1000 + self.person_1968


def permanent_person_key(
    row: Mapping,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    wave: Optional[int] = None,
) -> PermanentPersonKey:
    """Read the permanent key from one extracted individual row.

    Raises:
        MissingIdentifierError: If either 1968 field is null
    """
    fields = (identifiers.interview_1968, identifiers.person_1968)
    missing = [f for f in fields if pd.isna(row.get(f))]
    if missing:
        raise MissingIdentifierError(missing, wave)
    return PermanentPersonKey(int(row[fields[0]]), int(row[fields[1]]))


def resolve_person_keys(
    frame: pd.DataFrame,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    wave: Optional[int] = None,
) -> tuple[pd.DataFrame, int]:
    """Attach ``person_id`` and drop rows whose permanent key is incomplete.

    Returns:
        (frame with person_id, number of excluded rows)
    """
    interview = frame[identifiers.interview_1968]
    person = frame[identifiers.person_1968]
    keep = (interview.notna() & person.notna()).to_numpy(dtype=bool)

    excluded = int((~keep).sum())
    if excluded:
        logger.warning(
            "Wave %s: excluded %d row(s) with a null %s or %s",
            wave, excluded, identifiers.interview_1968, identifiers.person_1968,
        )

    out = frame.loc[keep].copy()
    out[PERSON_ID] = (
        out[identifiers.interview_1968].astype("Int64") * 1000
        + out[identifiers.person_1968].astype("Int64")
    )
    return out, excluded


def family_keys(frame: pd.DataFrame, identifiers: IdentifierConcepts = IdentifierConcepts()) -> pd.Series:
    """The wave-specific family interview number of each row."""
    return frame[identifiers.family_key]


def present_in_wave(frame: pd.DataFrame, identifiers: IdentifierConcepts = IdentifierConcepts()) -> pd.Series:
    """Rows that belong to some family in this wave."""
    keys = family_keys(frame, identifiers)
    absent = keys.isin(list(identifiers.absent_family_keys)).to_numpy(dtype=bool)
    return pd.Series(keys.notna().to_numpy(dtype=bool) & ~absent, index=frame.index)


def current_members(
    frame: pd.DataFrame,
    wave: int,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.Series:
    """Rows that are current members of a family in this wave.

    On top of ``present_in_wave``, waves that gate on sequence number drop
    rows whose sequence is null or outside the era's range: people who moved
    out, died or are institutionalised keep their old family's interview
    number but carry a sequence number of 51 or more.
    """
    present = present_in_wave(frame, identifiers).to_numpy(dtype=bool)
    era = era_for(wave, eras)
    if era.sequence_gated:
        seq = pd.to_numeric(frame[identifiers.sequence], errors="coerce").astype("float64")
        present &= seq.between(era.sequence_min, era.sequence_max).to_numpy(dtype=bool)
    return pd.Series(present, index=frame.index)


def assign_roles(
    frame: pd.DataFrame,
    wave: int,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.Series:
    """Household role of each individual row (<NA> if none).

    The sequence column is always passed, so in waves that gate on sequence
    number a null sequence means no role.
    """
    return classify_roles(
        wave,
        frame[identifiers.relationship],
        frame[identifiers.sequence],
        eras,
    )


def person_in_family_keys(
    frame: pd.DataFrame,
    wave: int,
    roles: pd.Series,
    identifiers: IdentifierConcepts = IdentifierConcepts(),
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.DataFrame:
    """(family key, sequence in family) for each row.

    In waves without a sequence number the role convention fills the
    sequence: reference person 1, partner 2, everyone else null.
    """
    if has_sequence_number(wave, eras):
        sequence = frame[identifiers.sequence].astype("Int64")
    else:
        convention = {role.value: seq for role, seq in ROLE_SEQUENCE_CONVENTION.items()}
        sequence = roles.map(convention).astype("Int64")
    return pd.DataFrame(
        {identifiers.family_key: family_keys(frame, identifiers), SEQUENCE_IN_FAMILY: sequence},
        index=frame.index,
    )
