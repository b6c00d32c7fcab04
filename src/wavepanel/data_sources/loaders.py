"""Wave loaders: the boundary between raw survey files and the engine.

The engine only needs ``load_individual(wave)`` and ``load_family(wave)``,
each returning a table with raw column names. How the raw files are parsed
is the loader's business. The PSID individual file is one cross-year file,
so both loaders here let a single individual table serve every wave.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol, Union, runtime_checkable

import pandas as pd

from wavepanel.extract import RawWaveTable, as_frame


@runtime_checkable
class WaveLoader(Protocol):
    """Supplies one raw individual table and one raw family table per wave."""

    def load_individual(self, wave: int) -> RawWaveTable:
        ...

    def load_family(self, wave: int) -> RawWaveTable:
        ...


class InMemoryWaveLoader:
    """Loader over tables that are already in memory.

    Args:
        individual: One table shared by every wave, or a dict wave -> table
        family: Dict wave -> family table
    """

    def __init__(
        self,
        individual: Union[RawWaveTable, Mapping[int, RawWaveTable]],
        family: Mapping[int, RawWaveTable],
    ):
        self._individual = individual
        self._family = dict(family)

    def load_individual(self, wave: int) -> pd.DataFrame:
        if isinstance(self._individual, pd.DataFrame):
            return self._individual
        if wave in self._individual:
            return as_frame(self._individual[wave])
        if all(isinstance(k, str) for k in self._individual):
            # column-name mapping shared by every wave
            return as_frame(self._individual)
        raise KeyError(f"No individual table for wave {wave}")

    def load_family(self, wave: int) -> pd.DataFrame:
        if wave not in self._family:
            raise KeyError(f"No family table for wave {wave}")
        return as_frame(self._family[wave])


def read_table(path: Union[str, Path]) -> pd.DataFrame:
    """Read a raw table, choosing the reader from the file suffix."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Raw table not found: {path}")

    suffix = path.suffix.lower()
    if suffix == ".parquet":
        return pd.read_parquet(path)
    if suffix == ".dta":
        return pd.read_stata(path, convert_categoricals=False)
    if suffix in (".csv", ".txt"):
        return pd.read_csv(path)
    raise ValueError(f"Unsupported raw table format: {path.suffix}")


class FileWaveLoader:
    """Loader over CSV, parquet or Stata files on disk.

    Args:
        family_pattern: Path template with a ``{wave}`` field,
            e.g. ``"data/FAM{wave}.parquet"``
        individual_path: Single cross-wave individual file
        individual_pattern: Per-wave individual file template (used when
            ``individual_path`` is not given)

    Files are read lazily and cached; the shared individual file is read
    once even when several waves ask for it concurrently.
    """

    def __init__(
        self,
        family_pattern: str,
        individual_path: Optional[Union[str, Path]] = None,
        individual_pattern: Optional[str] = None,
    ):
        if individual_path is None and individual_pattern is None:
            raise ValueError("Need individual_path or individual_pattern")
        self.family_pattern = family_pattern
        self.individual_path = Path(individual_path) if individual_path is not None else None
        self.individual_pattern = individual_pattern
        self._cache: Dict[Path, pd.DataFrame] = {}
        self._lock = threading.Lock()

    def _read_cached(self, path: Path) -> pd.DataFrame:
        with self._lock:
            if path not in self._cache:
                self._cache[path] = read_table(path)
            return self._cache[path]

    def load_individual(self, wave: int) -> pd.DataFrame:
        if self.individual_path is not None:
            return self._read_cached(self.individual_path)
        return read_table(self.individual_pattern.format(wave=wave))

    def load_family(self, wave: int) -> pd.DataFrame:
        return read_table(self.family_pattern.format(wave=wave))
