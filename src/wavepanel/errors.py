"""Error taxonomy for wavepanel.

Configuration and schema-shape errors are fatal and raised before (or
while) waves are processed. Identifier gaps are per-row: the pipeline
excludes and counts those rows instead of raising.
"""

from typing import Iterable, List, Optional


class WavePanelError(Exception):
    """Base class for all wavepanel errors."""


class ConfigurationError(WavePanelError):
    """The variable map or pipeline configuration is inconsistent."""


class UnknownConceptError(ConfigurationError, KeyError):
    """A concept name was used that the variable map does not declare."""

    def __init__(self, names: Iterable[str]):
        self.names = sorted(names)
        super().__init__(f"Undeclared concept(s): {', '.join(self.names)}")

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the message
        return self.args[0]


class UnknownWaveError(ConfigurationError):
    """A wave year is not part of the declared wave sequence."""

    def __init__(self, wave: int, context: str = ""):
        self.wave = wave
        msg = f"Wave {wave} is not a declared wave"
        if context:
            msg = f"{msg} ({context})"
        super().__init__(msg)


class ConflictingMappingError(ConfigurationError):
    """Two concepts claim the same raw column in the same wave."""

    def __init__(self, wave: int, raw_name: str, concepts: Iterable[str]):
        self.wave = wave
        self.raw_name = raw_name
        self.concepts = sorted(concepts)
        super().__init__(
            f"Wave {wave}: raw column {raw_name!r} is claimed by "
            f"{', '.join(self.concepts)}"
        )


class MissingRawColumnError(WavePanelError):
    """The variable map names a raw column the wave's table does not have."""

    def __init__(self, wave: int, concept: str, raw_name: str):
        self.wave = wave
        self.concept = concept
        self.raw_name = raw_name
        super().__init__(
            f"Wave {wave}: concept {concept!r} expects raw column "
            f"{raw_name!r}, which is missing from the raw table"
        )


class MissingIdentifierError(WavePanelError):
    """A row lacks the fields that define its permanent person key."""

    def __init__(self, fields: Iterable[str], wave: Optional[int] = None):
        self.fields = list(fields)
        self.wave = wave
        where = f"wave {wave}: " if wave is not None else ""
        super().__init__(f"{where}null identifier field(s) {', '.join(self.fields)}")


class RoleJoinAmbiguityError(WavePanelError):
    """More than one family row shares a (family key, role) pair in one wave."""

    def __init__(self, wave: int, sample: List[dict]):
        self.wave = wave
        self.sample = sample
        super().__init__(
            f"Wave {wave}: family rows are not unique on (family key, role); "
            f"sample: {sample}"
        )


class PanelValidationError(WavePanelError):
    """The assembled panel violates a panel invariant."""

    def __init__(self, failure):
        self.failure = failure
        super().__init__(f"[{failure.check}] {failure.message}")
