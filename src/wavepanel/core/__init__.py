"""
Core data model for wavepanel.

- Wave sequences (declared, possibly irregular survey years)
- Household roles and the era table that classifies relationship codes
- Concepts and the concept x wave variable map
"""

from wavepanel.core.waves import (
    WaveSequence,
    psid_waves,
)
from wavepanel.core.roles import (
    Role,
    RoleEra,
    DEFAULT_ROLE_ERAS,
    check_eras,
    era_for,
    has_sequence_number,
    classify_role,
    classify_roles,
)
from wavepanel.core.variable_map import (
    Level,
    ConceptType,
    Concept,
    VariableMap,
)

__all__ = [
    # Waves
    "WaveSequence",
    "psid_waves",
    # Roles
    "Role",
    "RoleEra",
    "DEFAULT_ROLE_ERAS",
    "check_eras",
    "era_for",
    "has_sequence_number",
    "classify_role",
    "classify_roles",
    # Variable map
    "Level",
    "ConceptType",
    "Concept",
    "VariableMap",
]
