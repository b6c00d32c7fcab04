"""
Raw data sources for wavepanel.

Loaders hand the engine one raw individual table and one raw family table
per wave:
- InMemoryWaveLoader for tables already in memory
- FileWaveLoader for CSV, parquet and Stata files on disk
"""

from wavepanel.data_sources.loaders import (
    WaveLoader,
    InMemoryWaveLoader,
    FileWaveLoader,
    read_table,
)

__all__ = [
    "WaveLoader",
    "InMemoryWaveLoader",
    "FileWaveLoader",
    "read_table",
]
