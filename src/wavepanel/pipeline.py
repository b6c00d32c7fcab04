"""Panel-building pipeline.

Wires the stages together for every wave:

    load -> extract -> identifiers -> role reshape -> join

Waves are independent until the final stack, so the per-wave work runs on
a thread pool. The stack itself follows declared wave order, and the first
failing wave cancels whatever has not started yet.

Example:
    >>> from wavepanel import load_config, build_panel, FileWaveLoader
    >>> config, variable_map = load_config("psid.yaml")
    >>> loader = FileWaveLoader("raw/FAM{wave}.parquet", individual_path="raw/IND.parquet")
    >>> result = build_panel(variable_map, loader, config)
    >>> result.panel.head()
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import pandas as pd
import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from wavepanel.core.roles import DEFAULT_ROLE_ERAS, RoleEra, check_eras
from wavepanel.core.variable_map import Level, VariableMap
from wavepanel.core.waves import WaveSequence
from wavepanel.data_sources.loaders import WaveLoader
from wavepanel.errors import ConfigurationError
from wavepanel.extract import extract_wave
from wavepanel.identifiers import (
    PERSON_ID,
    ROLE,
    SEQUENCE_IN_FAMILY,
    IdentifierConcepts,
    assign_roles,
    current_members,
    person_in_family_keys,
    resolve_person_keys,
)
from wavepanel.merge import YEAR, merge_wave, stack_waves
from wavepanel.reshape import RoleGate, reshape_roles
from wavepanel.validation import ValidationResult, validate_panel

logger = logging.getLogger(__name__)


class PanelConfig(BaseModel):
    """Settings for one pipeline run.

    Attributes:
        role_gate: Rule deciding which family role slots are filled
        waves: Waves to process (default: every declared wave)
        concepts: Concepts to carry into the panel (default: all declared);
            identifier and role-gate concepts are always included
        identifiers: Names of the identifier concepts
        role_eras: Relationship-code era table
        max_workers: Threads for per-wave work (1 = serial)
        sample_size: Max offending rows kept in error reports
    """

    role_gate: RoleGate
    waves: Optional[WaveSequence] = None
    concepts: Optional[Tuple[str, ...]] = None
    identifiers: IdentifierConcepts = IdentifierConcepts()
    role_eras: Tuple[RoleEra, ...] = DEFAULT_ROLE_ERAS
    max_workers: int = Field(default=1, ge=1)
    sample_size: int = Field(default=5, ge=1)

    model_config = {"frozen": True}

    @field_validator("waves", mode="before")
    @classmethod
    def _parse_waves(cls, value):
        return None if value is None else WaveSequence.from_config(value)

    @field_validator("role_eras")
    @classmethod
    def _sorted_eras(cls, eras: Tuple[RoleEra, ...]) -> Tuple[RoleEra, ...]:
        return check_eras(eras)

    @model_validator(mode="after")
    def _distinct_keys(self) -> PanelConfig:
        if self.identifiers.family_key == self.identifiers.family_table_key:
            raise ValueError("family_key and family_table_key must be different concepts")
        return self

    def check_against(self, variable_map: VariableMap) -> None:
        """Reject configurations the variable map cannot satisfy.

        Raises:
            UnknownConceptError: A referenced concept is not declared
            ConfigurationError: A concept is declared at the wrong level, or a
                wave maps family concepts without the family key
        """
        ids = self.identifiers
        variable_map.require(ids.individual + [ids.family_table_key] + self.role_gate.concepts)
        if self.concepts is not None:
            variable_map.require(self.concepts)
        if self.waves is not None:
            undeclared = [w for w in self.waves.years if w not in variable_map.waves]
            if undeclared:
                raise ConfigurationError(f"Waves not declared by the variable map: {undeclared}")

        for name in ids.individual:
            if variable_map[name].level != Level.INDIVIDUAL:
                raise ConfigurationError(f"Identifier concept {name!r} must be individual-level")
        if variable_map[ids.family_table_key].level != Level.FAMILY:
            raise ConfigurationError(f"{ids.family_table_key!r} must be family-level")
        if variable_map[ids.family_table_key].role_qualified:
            raise ConfigurationError(f"{ids.family_table_key!r} cannot be role-qualified")
        for name in self.role_gate.concepts:
            if not variable_map[name].role_qualified:
                raise ConfigurationError(f"Role gate concept {name!r} must be role-qualified")

        # The family file is only read in waves where its join key is mapped
        wanted = None if self.concepts is None else set(self.concepts) | set(self.role_gate.concepts)
        family = [
            c for c in variable_map.concepts_for(Level.FAMILY)
            if c.name != ids.family_table_key and (wanted is None or c.name in wanted)
        ]
        for wave in (self.waves or variable_map.waves).years:
            if variable_map.resolve(ids.family_table_key, wave) is not None:
                continue
            mapped = [c.name for c in family if wave in c.raw_names]
            if mapped:
                raise ConfigurationError(
                    f"Wave {wave}: family concept(s) {', '.join(mapped)} are mapped "
                    f"but the family key {ids.family_table_key!r} is not"
                )


@dataclass
class WavePlan:
    """Concept lists and output column order derived from a config."""

    individual: List[str]
    family: List[str]
    columns: List[str]

    @classmethod
    def build(cls, config: PanelConfig, variable_map: VariableMap) -> WavePlan:
        ids = config.identifiers
        wanted = set(config.concepts) if config.concepts is not None else variable_map.declared_concepts()
        wanted |= set(ids.individual) | {ids.family_table_key} | set(config.role_gate.concepts)

        individual = [c.name for c in variable_map.concepts_for(Level.INDIVIDUAL) if c.name in wanted]
        family = [c.name for c in variable_map.concepts_for(Level.FAMILY) if c.name in wanted]

        head = [
            YEAR,
            PERSON_ID,
            ids.interview_1968,
            ids.person_1968,
            ids.family_key,
            ids.sequence,
            SEQUENCE_IN_FAMILY,
            ids.relationship,
            ROLE,
        ]
        rest = [c for c in individual if c not in head] + family
        return cls(individual=individual, family=family, columns=head + rest)


@dataclass
class WaveOutput:
    """Merged rows and bookkeeping for one wave."""

    wave: int
    frame: pd.DataFrame
    excluded: int
    discarded: int
    n_family_rows: int


def process_wave(
    wave: int,
    variable_map: VariableMap,
    loader: WaveLoader,
    config: PanelConfig,
    plan: WavePlan,
) -> WaveOutput:
    """Build one wave's person rows with family concepts attached."""
    ids = config.identifiers

    individuals = extract_wave(
        loader.load_individual(wave), wave, variable_map, plan.individual, Level.INDIVIDUAL
    )
    individuals = individuals.loc[current_members(individuals, wave, ids, config.role_eras)]
    individuals, excluded = resolve_person_keys(individuals, ids, wave)
    roles = assign_roles(individuals, wave, ids, config.role_eras)
    pif = person_in_family_keys(individuals, wave, roles, ids, config.role_eras)
    individuals[ROLE] = roles
    individuals[SEQUENCE_IN_FAMILY] = pif[SEQUENCE_IN_FAMILY]

    # A wave without a family interview number has no family file to join
    if variable_map.resolve(ids.family_table_key, wave) is None:
        family_raw = pd.DataFrame()
    else:
        family_raw = loader.load_family(wave)
    family_wide = extract_wave(family_raw, wave, variable_map, plan.family, Level.FAMILY)
    families = reshape_roles(
        family_wide, wave, ids.family_table_key, config.role_gate, config.role_eras
    )

    merged, discarded = merge_wave(
        individuals, families, wave, ids.family_key, ids.family_table_key, config.sample_size
    )
    logger.info(
        "Wave %s: %d person rows, %d families, %d family-role rows",
        wave, len(merged), len(family_wide), len(families),
    )
    return WaveOutput(
        wave=wave,
        frame=merged[plan.columns],
        excluded=excluded,
        discarded=discarded,
        n_family_rows=len(family_wide),
    )


@dataclass
class PanelResult:
    """Validated long panel plus per-wave bookkeeping.

    Attributes:
        panel: One row per (person_id, year)
        excluded: Per wave, individual rows dropped for a null permanent key
        discarded: Per wave, family-role rows that matched no individual
        validation: Validator outcome
        elapsed: Wall-clock seconds
    """

    panel: pd.DataFrame
    excluded: Dict[int, int] = field(default_factory=dict)
    discarded: Dict[int, int] = field(default_factory=dict)
    validation: Optional[ValidationResult] = None
    elapsed: float = 0.0

    @property
    def n_persons(self) -> int:
        """Number of unique persons in the panel."""
        if PERSON_ID in self.panel.columns:
            return int(self.panel[PERSON_ID].nunique())
        return 0

    @property
    def n_observations(self) -> int:
        """Total number of person-wave rows."""
        return len(self.panel)

    @property
    def years(self) -> List[int]:
        """Waves present in the panel."""
        if YEAR in self.panel.columns:
            return sorted(self.panel[YEAR].unique().tolist())
        return []

    @property
    def total_excluded(self) -> int:
        return sum(self.excluded.values())

    def summary(self) -> Dict:
        """Return summary statistics."""
        return {
            "n_persons": self.n_persons,
            "n_observations": self.n_observations,
            "years": self.years,
            "excluded_rows": self.total_excluded,
            "discarded_family_rows": sum(self.discarded.values()),
            "elapsed": round(self.elapsed, 3),
        }


def _run_waves(
    waves: WaveSequence,
    variable_map: VariableMap,
    loader: WaveLoader,
    config: PanelConfig,
    plan: WavePlan,
) -> Dict[int, WaveOutput]:
    outputs: Dict[int, WaveOutput] = {}
    if config.max_workers == 1:
        for wave in waves.years:
            outputs[wave] = process_wave(wave, variable_map, loader, config, plan)
        return outputs

    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        futures = {
            executor.submit(process_wave, wave, variable_map, loader, config, plan): wave
            for wave in waves.years
        }
        try:
            for future in as_completed(futures):
                outputs[futures[future]] = future.result()
        except BaseException:
            executor.shutdown(wait=False, cancel_futures=True)
            raise
    return outputs


def build_panel(
    variable_map: VariableMap,
    loader: WaveLoader,
    config: PanelConfig,
    verbose: bool = False,
) -> PanelResult:
    """Build and validate the long panel.

    Args:
        variable_map: Concept x wave mapping (read-only, shared by all waves)
        loader: Raw table source
        config: Run settings
        verbose: Print progress

    Returns:
        PanelResult with the validated panel

    Raises:
        ConfigurationError: Before any wave is loaded, if the config and map
            are inconsistent
        MissingRawColumnError: If a mapped raw column is missing
        RoleJoinAmbiguityError: If a wave's family rows repeat a join key
        PanelValidationError: If the stacked panel fails validation
    """
    start = time.time()
    config.check_against(variable_map)
    waves = config.waves or variable_map.waves
    plan = WavePlan.build(config, variable_map)

    if verbose:
        print("=" * 60)
        print("BUILDING PANEL")
        print("=" * 60)
        print(f"  Waves: {len(waves)} ({waves.first}-{waves.last})")
        print(f"  Individual concepts: {len(plan.individual)}")
        print(f"  Family concepts: {len(plan.family)}")
        print(f"  Workers: {config.max_workers}")

    outputs = _run_waves(waves, variable_map, loader, config, plan)

    if verbose:
        for wave in waves.years:
            out = outputs[wave]
            print(
                f"  {wave}: {len(out.frame):,} person rows, {out.n_family_rows:,} families, "
                f"{out.excluded} excluded, {out.discarded} family rows discarded"
            )

    panel = stack_waves({w: out.frame for w, out in outputs.items()}, waves)
    validation = validate_panel(
        panel,
        variable_map,
        variable_map.waves,
        config.identifiers,
        config.sample_size,
        concepts=plan.individual + plan.family,
    )
    panel = validation.raise_for_failure()

    result = PanelResult(
        panel=panel,
        excluded={w: out.excluded for w, out in outputs.items() if out.excluded},
        discarded={w: out.discarded for w, out in outputs.items() if out.discarded},
        validation=validation,
        elapsed=time.time() - start,
    )
    if verbose:
        print(f"  Panel: {result.n_observations:,} rows, {result.n_persons:,} persons")
        if result.total_excluded:
            print(f"  Excluded (null permanent key): {result.total_excluded:,}")
    return result


def load_config(path: Union[str, Path]) -> tuple[PanelConfig, VariableMap]:
    """Load run settings and the variable map from one YAML file.

    The file has ``waves`` and ``concepts`` (see ``VariableMap.from_yaml``)
    and a ``settings`` mapping with PanelConfig fields other than ``waves``.
    """
    path = Path(path)
    with open(path) as f:
        data = yaml.safe_load(f)

    if "waves" not in data:
        raise ConfigurationError(f"{path}: missing 'waves'")
    waves = WaveSequence.from_config(data["waves"])
    variable_map = VariableMap.from_dict(data.get("concepts") or {}, waves)

    settings = dict(data.get("settings") or {})
    config = PanelConfig(**settings)
    config.check_against(variable_map)
    return config, variable_map
