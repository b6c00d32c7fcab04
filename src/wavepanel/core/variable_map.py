"""Concept definitions and the concept x wave variable map.

Each concept is a wave-stable name ("age", "inum") for a quantity that the
raw files store under a different opaque column in every wave. The
``VariableMap`` is the two-key lookup (concept, wave) -> raw column and is
validated once at construction; after that it is only read.
"""

from __future__ import annotations

from collections import defaultdict
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Iterator, Optional, Union

import pandas as pd
import yaml
from pydantic import BaseModel, Field, model_validator

from wavepanel.core.roles import Role
from wavepanel.core.waves import WaveSequence
from wavepanel.errors import (
    ConfigurationError,
    ConflictingMappingError,
    UnknownConceptError,
    UnknownWaveError,
)


class Level(Enum):
    """Which raw table a concept is read from."""

    INDIVIDUAL = "individual"  # one row per person
    FAMILY = "family"  # one row per family unit


class ConceptType(Enum):
    """Output type of a concept column."""

    INTEGER = "integer"
    FLOAT = "float"
    CODE = "code"  # categorical, stored as integer codes
    STRING = "string"

    @property
    def pandas_dtype(self) -> str:
        """Nullable pandas dtype used for the output column."""
        return {
            ConceptType.INTEGER: "Int64",
            ConceptType.FLOAT: "Float64",
            ConceptType.CODE: "Int64",
            ConceptType.STRING: "string",
        }[self]

    @property
    def is_numeric(self) -> bool:
        return self != ConceptType.STRING


RawName = Union[str, dict[Role, str]]


class Concept(BaseModel):
    """A canonical variable and its raw column name in each wave.

    For plain concepts ``raw_names`` maps wave -> column. For role-qualified
    concepts it maps wave -> {role: column}: one family row holds a value
    for the reference person and another for the partner. A wave missing
    from ``raw_names`` was not collected.
    """

    name: str = Field(..., pattern=r"^[A-Za-z_][A-Za-z0-9_]*$")
    level: Level = Level.INDIVIDUAL
    role_qualified: bool = False
    raw_names: dict[int, RawName] = Field(default_factory=dict)
    dtype: ConceptType = ConceptType.INTEGER
    missing_codes: tuple[Union[int, float, str], ...] = ()
    alias_of: Optional[str] = None
    # Waves in which alias_of holds (default: every wave)
    alias_waves: Optional[tuple[int, ...]] = None
    label: Optional[str] = None

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_shape(self) -> Concept:
        if self.role_qualified and self.level != Level.FAMILY:
            raise ValueError(f"{self.name}: role-qualified concepts must be family-level")
        if self.alias_waves is not None and self.alias_of is None:
            raise ValueError(f"{self.name}: alias_waves needs alias_of")
        for wave, entry in self.raw_names.items():
            if self.role_qualified:
                if not isinstance(entry, dict) or set(entry) != set(Role):
                    raise ValueError(
                        f"{self.name}: wave {wave} must map every role, got {entry!r}"
                    )
            elif not isinstance(entry, str):
                raise ValueError(
                    f"{self.name}: wave {wave} maps to {entry!r}; only "
                    "role-qualified concepts map per role"
                )
        return self

    @property
    def waves(self) -> list[int]:
        """Waves in which the concept was collected."""
        return sorted(self.raw_names)

    def claims(self, wave: int) -> list[str]:
        """Raw column names this concept reads in a wave."""
        entry = self.raw_names.get(wave)
        if entry is None:
            return []
        if isinstance(entry, dict):
            return [entry[role] for role in Role.ordered()]
        return [entry]


class VariableMap:
    """Registry of concepts bound to a wave sequence.

    Construction rejects mappings for undeclared waves, dangling
    ``alias_of`` references, and two concepts reading the same raw column
    in the same wave and table (unless one is declared an alias of the
    other for that wave).
    """

    def __init__(self, concepts: Iterable[Concept], waves: WaveSequence):
        self.waves = waves
        self._concepts: dict[str, Concept] = {}
        for concept in concepts:
            if concept.name in self._concepts:
                raise ConfigurationError(f"Concept declared twice: {concept.name}")
            self._concepts[concept.name] = concept

        self._check_aliases()
        self._check_waves()
        self._check_conflicts()

    # -- validation ----------------------------------------------------------

    def _alias_root(self, name: str, wave: Optional[int] = None) -> str:
        seen = [name]
        concept = self._concepts[name]
        while concept.alias_of is not None:
            if wave is not None and concept.alias_waves is not None and wave not in concept.alias_waves:
                break
            if concept.alias_of in seen:
                raise ConfigurationError(f"Alias cycle: {' -> '.join(seen + [concept.alias_of])}")
            seen.append(concept.alias_of)
            concept = self._concepts[concept.alias_of]
        return concept.name

    def _check_aliases(self) -> None:
        dangling = {
            c.alias_of for c in self._concepts.values()
            if c.alias_of is not None and c.alias_of not in self._concepts
        }
        if dangling:
            raise UnknownConceptError(dangling)
        for name in self._concepts:
            self._alias_root(name)

    def _check_waves(self) -> None:
        for concept in self._concepts.values():
            for wave in concept.raw_names:
                if wave not in self.waves:
                    raise UnknownWaveError(wave, f"mapped by concept {concept.name!r}")
            for wave in concept.alias_waves or ():
                if wave not in self.waves:
                    raise UnknownWaveError(wave, f"in alias_waves of concept {concept.name!r}")

    def _check_conflicts(self) -> None:
        claims: dict[tuple[int, Level, str], list[str]] = defaultdict(list)
        for concept in self._concepts.values():
            for wave in concept.raw_names:
                for raw_name in concept.claims(wave):
                    claims[(wave, concept.level, raw_name)].append(concept.name)

        for (wave, _level, raw_name), names in sorted(
            claims.items(), key=lambda item: (item[0][0], item[0][2])
        ):
            # one concept reading a column twice (both roles) is a conflict too
            if len(names) != len(set(names)) or len({self._alias_root(n, wave) for n in names}) > 1:
                raise ConflictingMappingError(wave, raw_name, set(names))

    # -- lookup --------------------------------------------------------------

    def get(self, name: str) -> Optional[Concept]:
        return self._concepts.get(name)

    def __getitem__(self, name: str) -> Concept:
        concept = self.get(name)
        if concept is None:
            raise UnknownConceptError([name])
        return concept

    def __contains__(self, name: str) -> bool:
        return name in self._concepts

    def __iter__(self) -> Iterator[Concept]:
        return iter(self._concepts.values())

    def __len__(self) -> int:
        return len(self._concepts)

    def declared_concepts(self) -> set[str]:
        """Names of all declared concepts."""
        return set(self._concepts)

    def require(self, names: Iterable[str]) -> None:
        """Raise UnknownConceptError unless every name is declared."""
        unknown = set(names) - set(self._concepts)
        if unknown:
            raise UnknownConceptError(unknown)

    def concepts_for(self, level: Level) -> list[Concept]:
        """Concepts read from the given table, in declaration order."""
        return [c for c in self._concepts.values() if c.level == level]

    def resolve(self, concept: str, wave: int, role: Optional[Role] = None) -> Optional[str]:
        """Raw column holding ``concept`` in ``wave``, or None if not collected.

        Role-qualified concepts need ``role``; plain concepts must not get one.
        """
        spec = self[concept]
        if wave not in self.waves:
            raise UnknownWaveError(wave)
        entry = spec.raw_names.get(wave)
        if spec.role_qualified:
            if role is None:
                raise ValueError(f"Concept {concept!r} is role-qualified; pass a role")
            return None if entry is None else entry[role]
        if role is not None:
            raise ValueError(f"Concept {concept!r} is not role-qualified")
        return entry

    def resolve_roles(self, concept: str, wave: int) -> dict[Role, str]:
        """Per-role raw columns of a role-qualified concept ({} if not collected)."""
        spec = self[concept]
        if not spec.role_qualified:
            raise ValueError(f"Concept {concept!r} is not role-qualified")
        if wave not in self.waves:
            raise UnknownWaveError(wave)
        entry = spec.raw_names.get(wave)
        return {} if entry is None else {role: entry[role] for role in Role.ordered()}

    # -- loading -------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any], waves: WaveSequence) -> VariableMap:
        """Build from the ``concepts`` mapping of a config document.

        Each entry may give ``waves: {year: raw}`` (``{year: {reference: raw,
        partner: raw}}`` for role-qualified concepts) and/or ``all_waves: raw``
        for fields that keep one name in every wave, such as the 1968
        identifiers of the individual file.
        """
        concepts = []
        for name, spec in data.items():
            spec = dict(spec or {})
            raw_names: dict[int, Any] = {}
            fixed = spec.pop("all_waves", None)
            if fixed is not None:
                raw_names.update({wave: fixed for wave in waves.years})
            raw_names.update({int(w): raw for w, raw in (spec.pop("waves", None) or {}).items()})
            concepts.append(Concept(name=name, raw_names=raw_names, **spec))
        return cls(concepts, waves)

    @classmethod
    def from_yaml(cls, path: Union[str, Path], waves: Optional[WaveSequence] = None) -> VariableMap:
        """Load from a YAML file with ``waves`` and ``concepts`` keys.

        An explicit ``waves`` argument overrides the file's wave sequence.
        """
        with open(Path(path)) as f:
            data = yaml.safe_load(f)

        if waves is None:
            if "waves" not in data:
                raise ConfigurationError(f"{path}: no 'waves' entry and none given")
            waves = WaveSequence.from_config(data["waves"])
        return cls.from_dict(data.get("concepts") or {}, waves)

    @classmethod
    def from_crosswalk(cls, frame: pd.DataFrame, waves: WaveSequence) -> VariableMap:
        """Build from a long crosswalk table.

        Required columns: ``concept``, ``wave``, ``raw_name``. Optional:
        ``level``, ``role`` (filled for role-qualified concepts, one row per
        role), ``dtype``, ``label``. Concept-level attributes are taken from
        each concept's first row.
        """
        missing = {"concept", "wave", "raw_name"} - set(frame.columns)
        if missing:
            raise ConfigurationError(f"Crosswalk is missing columns: {sorted(missing)}")

        concepts = []
        for name, rows in frame.groupby("concept", sort=False):
            first = rows.iloc[0]
            roles = rows["role"] if "role" in rows.columns else pd.Series(dtype=object)
            role_qualified = bool(roles.notna().any())

            raw_names: dict[int, Any] = {}
            for _, row in rows[rows["raw_name"].notna()].iterrows():
                wave = int(row["wave"])
                if role_qualified:
                    raw_names.setdefault(wave, {})[Role(row["role"])] = row["raw_name"]
                else:
                    raw_names[wave] = row["raw_name"]

            kwargs: dict[str, Any] = {}
            for col in ("level", "dtype", "label"):
                if col in rows.columns and pd.notna(first[col]):
                    kwargs[col] = first[col]
            concepts.append(
                Concept(name=name, role_qualified=role_qualified, raw_names=raw_names, **kwargs)
            )
        return cls(concepts, waves)
