"""Per-wave joins and the ordered cross-wave stack."""

from __future__ import annotations

import logging
from typing import Mapping

import pandas as pd

from wavepanel.core.waves import WaveSequence
from wavepanel.errors import RoleJoinAmbiguityError
from wavepanel.identifiers import ROLE

logger = logging.getLogger(__name__)

YEAR = "year"


def check_join_keys(
    families: pd.DataFrame,
    wave: int,
    family_table_key: str,
    sample_size: int = 5,
) -> None:
    """Require at most one family row per (family key, role).

    Raises:
        RoleJoinAmbiguityError: With up to ``sample_size`` offending rows
    """
    dup = families.duplicated([family_table_key, ROLE], keep=False)
    if dup.any():
        sample = (
            families.loc[dup, [family_table_key, ROLE]]
            .head(sample_size)
            .astype(object)
            .to_dict("records")
        )
        raise RoleJoinAmbiguityError(wave, sample)


def merge_wave(
    individuals: pd.DataFrame,
    families: pd.DataFrame,
    wave: int,
    family_key: str,
    family_table_key: str,
    sample_size: int = 5,
) -> tuple[pd.DataFrame, int]:
    """Attach family-level concepts to one wave's individual rows.

    Many individuals to one family row, on (family key, role). Individual
    rows without a match (including every row with no role) keep null
    family concepts; family rows that no individual matches are dropped.

    Args:
        individuals: Individual long table with ``family_key`` and ``role``
        families: Reshaped family table with ``family_table_key`` and ``role``
        wave: Wave year, added as the ``year`` column
        family_key: Individual-level family interview number column
        family_table_key: Family-level family interview number column
        sample_size: Max rows reported on a join-key violation

    Returns:
        (merged frame in individual row order, number of discarded family rows)
    """
    check_join_keys(families, wave, family_table_key, sample_size)

    individual_keys = pd.MultiIndex.from_frame(individuals[[family_key, ROLE]].dropna())
    family_keys = pd.MultiIndex.from_frame(families[[family_table_key, ROLE]])
    discarded = int((~family_keys.isin(individual_keys)).sum())
    if discarded:
        logger.info("Wave %s: %d family-role row(s) matched no individual", wave, discarded)

    merged = individuals.merge(
        families,
        how="left",
        left_on=[family_key, ROLE],
        right_on=[family_table_key, ROLE],
        validate="many_to_one",
        sort=False,
    )
    merged.insert(0, YEAR, wave)
    return merged, discarded


def stack_waves(frames: Mapping[int, pd.DataFrame], waves: WaveSequence) -> pd.DataFrame:
    """Concatenate per-wave frames in declared wave order.

    The result does not depend on the order in which ``frames`` was filled.
    """
    ordered = [frames[wave] for wave in waves.years if wave in frames]
    if not ordered:
        return pd.DataFrame()
    return pd.concat(ordered, ignore_index=True)
