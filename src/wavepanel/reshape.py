"""Role reshaping: one row per family -> one row per (family, role).

Family files store reference-person and partner values side by side in a
single row. Joining them to individual records needs one row per role, so
each family row is split into up to two rows, one for each role whose gate
passes. A family with no partner (or an invalid partner slot) yields one
row; a family with no valid slot yields none.
"""

from __future__ import annotations

from typing import Iterable, Optional

import pandas as pd
from pydantic import BaseModel, model_validator

from wavepanel.core.roles import DEFAULT_ROLE_ERAS, Role, RoleEra, classify_roles
from wavepanel.extract import ROLE_SEP, role_column
from wavepanel.identifiers import ROLE


class RoleGate(BaseModel):
    """Which family-level, role-qualified concepts decide if a role slot is filled.

    Attributes:
        code_concept: Relationship code held per role slot. The slot is kept
            only if the era table classifies the code as that slot's role.
        sequence_concept: Sequence number held per role slot, checked against
            the era's current-member range alongside ``code_concept``.
        presence_concept: Any per-role value that is null (after missing
            codes) when the slot is vacant, e.g. partner age coded 0 for
            "no partner".
    """

    code_concept: Optional[str] = None
    sequence_concept: Optional[str] = None
    presence_concept: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check(self) -> RoleGate:
        if self.code_concept is None and self.presence_concept is None:
            raise ValueError("RoleGate needs a code_concept or a presence_concept")
        if self.sequence_concept is not None and self.code_concept is None:
            raise ValueError("sequence_concept is only checked together with code_concept")
        return self

    @property
    def concepts(self) -> list[str]:
        return [
            c for c in (self.code_concept, self.sequence_concept, self.presence_concept)
            if c is not None
        ]


def role_slot_mask(
    wide: pd.DataFrame,
    wave: int,
    role: Role,
    gate: RoleGate,
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.Series:
    """Boolean mask of family rows whose ``role`` slot is filled and valid."""
    mask = pd.Series(True, index=wide.index)
    if gate.code_concept is not None:
        sequences = None
        if gate.sequence_concept is not None:
            sequences = wide[role_column(gate.sequence_concept, role)]
        roles = classify_roles(wave, wide[role_column(gate.code_concept, role)], sequences, eras)
        mask &= (roles == role.value).fillna(False).astype(bool)
    if gate.presence_concept is not None:
        mask &= wide[role_column(gate.presence_concept, role)].notna()
    return mask


def reshape_roles(
    wide: pd.DataFrame,
    wave: int,
    family_key: str,
    gate: RoleGate,
    eras: Iterable[RoleEra] = DEFAULT_ROLE_ERAS,
) -> pd.DataFrame:
    """Split wide family rows into one row per filled role slot.

    Args:
        wide: Extracted family table; role-qualified concepts carry
            ``@reference`` / ``@partner`` suffixed columns
        wave: Wave year (selects the relationship-code era)
        family_key: Column holding the wave's family interview number
        gate: Role-slot validity rule
        eras: Relationship-code era table

    Returns:
        Long table with ``family_key``, ``role``, the plain family concepts
        (repeated for each role) and the role-qualified concepts under their
        unsuffixed names. Rows come in family order, reference person first.
        Families with a null key are dropped since they cannot be joined.
    """
    wide = wide.loc[wide[family_key].notna()].reset_index(drop=True)

    plain = [c for c in wide.columns if ROLE_SEP not in c and c != family_key]
    qualified = list(dict.fromkeys(c.split(ROLE_SEP)[0] for c in wide.columns if ROLE_SEP in c))

    pieces = []
    for order, role in enumerate(Role.ordered()):
        rows = wide.loc[role_slot_mask(wide, wave, role, gate, eras)]
        piece = pd.DataFrame(
            {
                family_key: rows[family_key],
                ROLE: pd.Series(role.value, index=rows.index, dtype="string"),
            },
            index=rows.index,
        )
        for name in plain:
            piece[name] = rows[name]
        for name in qualified:
            piece[name] = rows[role_column(name, role)]
        piece["_position"] = rows.index
        piece["_role_order"] = order
        pieces.append(piece)

    long = pd.concat(pieces, ignore_index=True)
    long = long.sort_values(["_position", "_role_order"], kind="stable")
    return long.drop(columns=["_position", "_role_order"]).reset_index(drop=True)
