"""Command-line driver: config -> per-wave pipeline -> merge -> validate -> file."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from wavepanel.data_sources.loaders import FileWaveLoader
from wavepanel.errors import PanelValidationError, WavePanelError
from wavepanel.pipeline import build_panel, load_config

logger = logging.getLogger("wavepanel")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Build a long person-wave panel from per-wave survey files")
    parser.add_argument("--config", type=Path, required=True, help="YAML with waves, concepts and settings")
    parser.add_argument("--family-pattern", required=True, help="Family file template, e.g. raw/FAM{wave}.csv")
    individual = parser.add_mutually_exclusive_group(required=True)
    individual.add_argument("--individual", type=Path, help="Cross-wave individual file")
    individual.add_argument("--individual-pattern", help="Per-wave individual file template")
    parser.add_argument("--output", type=Path, required=True, help="Output .parquet or .csv path")
    parser.add_argument("--workers", type=int, default=None, help="Override settings.max_workers")
    parser.add_argument("--verbose", action="store_true", help="Print per-wave progress")
    parser.add_argument("--log-level", default="INFO", help="Logging level")
    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(levelname)s %(name)s %(message)s",
    )

    try:
        config, variable_map = load_config(args.config)
        if args.workers is not None:
            config = config.model_copy(update={"max_workers": max(1, args.workers)})
        loader = FileWaveLoader(
            args.family_pattern,
            individual_path=args.individual,
            individual_pattern=args.individual_pattern,
        )
        result = build_panel(variable_map, loader, config, verbose=args.verbose)
    except PanelValidationError as exc:
        logger.error("Panel failed validation: %s", exc)
        logger.error("Offending rows:\n%s", exc.failure.sample.to_string())
        return 1
    except (WavePanelError, FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    if args.output.suffix.lower() == ".csv":
        result.panel.to_csv(args.output, index=False)
    else:
        result.panel.to_parquet(args.output, index=False)
    logger.info(
        "Wrote %s rows (%s persons, %s waves) to %s",
        result.n_observations, result.n_persons, len(result.years), args.output,
    )
    if result.total_excluded:
        logger.warning("Excluded %s individual row(s) with a null permanent key", result.total_excluded)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
