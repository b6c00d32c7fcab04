"""Wave sequences.

A wave is one survey year. The sequence of waves is configuration, not
something inferred from the data: the PSID was annual from 1968 to 1997 and
biennial from 1999 on, and a pipeline run only ever touches declared waves.
"""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, Field, field_validator

# Last biennial PSID wave covered by psid_waves() by default
LATEST_PSID_WAVE = 2021


class WaveSequence(BaseModel):
    """Ordered, possibly irregular, sequence of wave years.

    Examples:
        >>> WaveSequence(years=[1968, 1969, 1970]).first
        1968
        >>> WaveSequence.from_ranges([(1995, 1997, 1), (1999, 2003, 2)]).years
        (1995, 1996, 1997, 1999, 2001, 2003)
    """

    years: tuple[int, ...] = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("years", mode="before")
    @classmethod
    def _coerce_years(cls, value):
        return tuple(int(v) for v in value)

    @field_validator("years")
    @classmethod
    def _strictly_increasing(cls, years: tuple[int, ...]) -> tuple[int, ...]:
        for prev, cur in zip(years, years[1:]):
            if cur <= prev:
                raise ValueError(
                    f"Wave years must be strictly increasing, got {prev} then {cur}"
                )
        return years

    @classmethod
    def from_ranges(cls, ranges: Iterable[tuple[int, int, int]]) -> WaveSequence:
        """Build a sequence from inclusive (start, end, step) ranges."""
        years: list[int] = []
        for start, end, step in ranges:
            years.extend(range(int(start), int(end) + 1, int(step)))
        return cls(years=years)

    @classmethod
    def from_config(cls, spec) -> WaveSequence:
        """Parse the ``waves`` entry of a YAML config.

        Accepts a plain list of years, ``{"years": [...]}`` or
        ``{"ranges": [[start, end, step], ...]}``.
        """
        if isinstance(spec, WaveSequence):
            return spec
        if isinstance(spec, dict):
            if "years" in spec:
                return cls(years=spec["years"])
            if "ranges" in spec:
                return cls.from_ranges(tuple(r) for r in spec["ranges"])
            raise ValueError("waves mapping needs a 'years' or 'ranges' key")
        return cls(years=spec)

    @property
    def first(self) -> int:
        return self.years[0]

    @property
    def last(self) -> int:
        return self.years[-1]

    def position(self, wave: int) -> int:
        """Zero-based position of a wave in the sequence."""
        return self.years.index(wave)

    def __contains__(self, wave: object) -> bool:
        return wave in self.years

    def __len__(self) -> int:
        return len(self.years)

    def subset(self, waves: Iterable[int]) -> WaveSequence:
        """Restrict to the given waves, keeping declared order."""
        wanted = set(waves)
        unknown = wanted - set(self.years)
        if unknown:
            raise ValueError(f"Not declared waves: {sorted(unknown)}")
        return WaveSequence(years=[y for y in self.years if y in wanted])


def psid_waves(last: int = LATEST_PSID_WAVE) -> WaveSequence:
    """PSID interview years: annual 1968-1997, then biennial from 1999."""
    return WaveSequence.from_ranges([(1968, 1997, 1), (1999, last, 2)])
