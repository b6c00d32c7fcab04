"""
wavepanel: Cross-wave schema mapping for longitudinal household surveys.

Turns per-wave raw survey tables with opaque, wave-specific column names
into one long panel keyed by (permanent person key, wave year):
- Concept x wave variable map, loaded from YAML or a crosswalk table
- Per-wave extraction with typed, null-aware columns
- Reshaping of family rows into one row per household role
- Era-aware relationship-code classification (pre/post 1983, 1968)
- Key-based joins of family data onto individuals, stacked in wave order
- Panel validation with bounded failure samples

Example:
    >>> from wavepanel import load_config, build_panel, InMemoryWaveLoader
    >>> config, variable_map = load_config("psid.yaml")
    >>> loader = InMemoryWaveLoader(individual=ind, family={1968: fam68, 1969: fam69})
    >>> result = build_panel(variable_map, loader, config)
    >>> result.panel.groupby("year").size()
"""

from wavepanel.core import (
    WaveSequence,
    psid_waves,
    Role,
    RoleEra,
    DEFAULT_ROLE_ERAS,
    classify_role,
    classify_roles,
    Level,
    ConceptType,
    Concept,
    VariableMap,
)
from wavepanel.errors import (
    WavePanelError,
    ConfigurationError,
    UnknownConceptError,
    UnknownWaveError,
    ConflictingMappingError,
    MissingRawColumnError,
    MissingIdentifierError,
    RoleJoinAmbiguityError,
    PanelValidationError,
)
from wavepanel.extract import extract_wave
from wavepanel.identifiers import (
    IdentifierConcepts,
    PermanentPersonKey,
    permanent_person_key,
    resolve_person_keys,
)
from wavepanel.reshape import RoleGate, reshape_roles
from wavepanel.merge import merge_wave, stack_waves
from wavepanel.validation import (
    ValidationFailure,
    ValidationResult,
    validate_panel,
)
from wavepanel.data_sources import (
    WaveLoader,
    InMemoryWaveLoader,
    FileWaveLoader,
)
from wavepanel.pipeline import (
    PanelConfig,
    PanelResult,
    build_panel,
    load_config,
)

__version__ = "0.1.0"

__all__ = [
    # Core
    "WaveSequence",
    "psid_waves",
    "Role",
    "RoleEra",
    "DEFAULT_ROLE_ERAS",
    "classify_role",
    "classify_roles",
    "Level",
    "ConceptType",
    "Concept",
    "VariableMap",
    # Errors
    "WavePanelError",
    "ConfigurationError",
    "UnknownConceptError",
    "UnknownWaveError",
    "ConflictingMappingError",
    "MissingRawColumnError",
    "MissingIdentifierError",
    "RoleJoinAmbiguityError",
    "PanelValidationError",
    # Stages
    "extract_wave",
    "IdentifierConcepts",
    "PermanentPersonKey",
    "permanent_person_key",
    "resolve_person_keys",
    "RoleGate",
    "reshape_roles",
    "merge_wave",
    "stack_waves",
    "ValidationFailure",
    "ValidationResult",
    "validate_panel",
    # Loaders
    "WaveLoader",
    "InMemoryWaveLoader",
    "FileWaveLoader",
    # Pipeline
    "PanelConfig",
    "PanelResult",
    "build_panel",
    "load_config",
]
