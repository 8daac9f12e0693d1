"""
CLI and configuration utilities for jarkus.

Handles command-line argument parsing, dataset selection and result summaries.
"""

from __future__ import annotations

import argparse
import difflib
import logging
import sys
from collections.abc import Callable
from functools import partial
from pathlib import Path

import pandas as pd
import yaml

from jarkus_core.config import CoreConfigService, load_runtime_paths as core_load_runtime_paths
from jarkus_core.constants import DEFAULT_RUNTIME_PATHS, VALID_DATASETS
from jarkus_data.cache_store import CacheStore
from jarkus_data.export import profile_to_frame, series_to_frame
from jarkus_data.parsers import (
    AreaTable,
    IdCatalog,
    ProfileResult,
    ReferencePoints,
    SeriesResult,
    get_dataset_parser,
)
from progress import format_timestamp

logger = logging.getLogger("jarkus")

__version__ = "1.0.0"
DATASET_ALIASES = {
    "profiles": "profile",
    "ids": "catalog",
    "area": "areas",
    "rsp": "reference_points",
    "water": "water_level",
    "mkl": "coastline",
}
DATASET_CHOICES = tuple(VALID_DATASETS) + tuple(DATASET_ALIASES.keys())
DEFAULT_DATASET = VALID_DATASETS[0]


def _resolve_runtime_path_defaults(argv: list[str] | None = None) -> tuple[Path, dict[str, str]]:
    """Pre-parse --config so cache_dir and out_dir defaults come from that file."""
    argv = sys.argv[1:] if argv is None else argv
    config_probe = argparse.ArgumentParser(add_help=False)
    config_probe.add_argument("--config", type=Path, default=Path("config.yaml"))
    probe_args, _ = config_probe.parse_known_args(argv)
    config_path = probe_args.config

    if "--help" in argv or "-h" in argv or not config_path.exists():
        return config_path, DEFAULT_RUNTIME_PATHS.copy()

    try:
        runtime_paths = core_load_runtime_paths(config_path)
    except Exception as exc:
        raise CLIError(
            f"Failed to load runtime_paths from {config_path}: {exc}",
            "Fix config.yaml runtime_paths values or provide a valid --config path.",
        )

    return config_path, runtime_paths


class CLIError(ValueError):
    """Bad command line or selection; main() reports it and exits with code 2."""

    def __init__(self, message: str, hint: str | None = None):
        self.message = message
        self.hint = hint
        super().__init__(self.__str__())

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class FriendlyArgumentParser(argparse.ArgumentParser):
    """ArgumentParser whose usage errors surface as CLIError with jarkus-specific hints."""

    def error(self, message: str) -> None:
        hint = None
        if "unrecognized arguments" in message and "--id" in message:
            hint = "Use --transect ID for a transect number or --index N for a catalog position."
        elif "not allowed with argument" in message:
            hint = "Choose either --index or --transect, not both."
        usage = self.format_usage().strip()
        raise CLIError(f"Argument error: {message}\n{usage}", hint=hint)


def _suggest_values(value: str, options: list[str], max_suggestions: int = 5) -> str | None:
    """Comma-separated close matches for ``value``, or None."""
    matches = difflib.get_close_matches(value, options, n=max_suggestions, cutoff=0.5)
    if not matches:
        return None
    return ", ".join(matches)


def normalize_dataset(dataset: str) -> str:
    """Normalize CLI dataset aliases to canonical dataset keys."""
    if not isinstance(dataset, str) or not dataset.strip():
        raise CLIError("Dataset value cannot be empty.", f"Use one of: {', '.join(VALID_DATASETS)}.")

    key = dataset.strip().lower().replace('-', '_')
    canonical = DATASET_ALIASES.get(key, key)
    if canonical not in VALID_DATASETS:
        suggestions = _suggest_values(key, list(DATASET_CHOICES))
        hint = f"Did you mean: {suggestions}?" if suggestions else f"Allowed values: {', '.join(DATASET_CHOICES)}"
        raise CLIError(f"Unknown dataset '{dataset}'.", hint)
    return canonical


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments for jarkus.

    Args:
        argv: Argument list; defaults to ``sys.argv[1:]``.

    Returns:
        argparse.Namespace: Parsed command-line arguments.
    """
    config_path_default, runtime_paths = _resolve_runtime_path_defaults(argv)

    parser = FriendlyArgumentParser(
        prog="jarkus",
        description="Fetch and inspect JARKUS coastal transect data from OPeNDAP.",
        epilog="""
Examples:
  %(prog)s --index 1000                              # Profile of catalog position 1000
  %(prog)s --transect 7003800 --export               # Profile of a transect id, exported to CSV
  %(prog)s --dataset catalog                         # Download/show the transect catalog
  %(prog)s --dataset water_level --index 1000        # Mean high/low water per year
  %(prog)s --index 1000 --from-cache                 # Use cached data only
  %(prog)s --list-cache                              # List cached responses
        """,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    selection_group = parser.add_argument_group("transect selection (choose one)")
    selection_exclusive = selection_group.add_mutually_exclusive_group()
    selection_exclusive.add_argument(
        "-i", "--index",
        type=int,
        default=None,
        help="Catalog position of the transect (0-based)"
    )
    selection_exclusive.add_argument(
        "-t", "--transect",
        type=int,
        default=None,
        help="Transect id; resolved to a catalog position by exact match"
    )

    data_group = parser.add_argument_group("data")
    data_group.add_argument(
        "-d", "--dataset",
        type=str,
        default=DEFAULT_DATASET,
        help=f"Dataset to load: {', '.join(VALID_DATASETS)} (default: {DEFAULT_DATASET})"
    )
    data_group.add_argument(
        "-e", "--export",
        type=str,
        nargs='?',
        const='',
        default=None,
        metavar="CSV",
        help="Export the result as CSV (default file name under --out-dir when no path is given)"
    )

    cache_group = parser.add_argument_group("cache")
    cache_mode = cache_group.add_mutually_exclusive_group()
    cache_mode.add_argument(
        "--from-cache",
        action="store_true",
        help="Only use cached data; never contact the server"
    )
    cache_mode.add_argument(
        "-r", "--refresh",
        action="store_true",
        help="Ignore cached data and download again"
    )
    cache_group.add_argument(
        "--clear-cache",
        action="store_true",
        help="Remove the cached response of the selected resource before loading"
    )
    cache_group.add_argument(
        "--list-cache",
        action="store_true",
        help="List cached responses, then exit"
    )

    output_group = parser.add_argument_group("paths")
    output_group.add_argument(
        "--cache-dir",
        type=Path,
        default=Path(runtime_paths["cache_dir"]),
        help=f"Cache directory for OPeNDAP responses (default: {runtime_paths['cache_dir']})"
    )
    output_group.add_argument(
        "--out-dir",
        type=Path,
        default=Path(runtime_paths["out_dir"]),
        help=f"Output directory for exports (default: {runtime_paths['out_dir']})"
    )
    output_group.add_argument(
        "--config",
        type=Path,
        default=config_path_default,
        help=f"Path to config YAML file (default: {config_path_default})"
    )

    advanced_group = parser.add_argument_group("advanced options")
    advanced_group.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the request that would be made without downloading anything"
    )
    advanced_group.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress console output except errors (log file unaffected)"
    )
    advanced_group.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose console output (DEBUG level, log file always at DEBUG)"
    )

    args = parser.parse_args(argv)
    args.dataset = normalize_dataset(args.dataset)
    return args


def validate_selection(args: argparse.Namespace) -> None:
    """Check that the transect selection fits the chosen dataset."""
    if args.index is not None and args.index < 0:
        raise CLIError(f"Invalid --index {args.index}.", "Catalog positions start at 0.")
    if args.dataset in ('catalog', 'areas'):
        return
    if args.index is None and args.transect is None:
        raise CLIError(
            f"Dataset '{args.dataset}' needs a transect.",
            "Use --index N for a catalog position or --transect ID for a transect number.",
        )


def load_run_settings(config_file: Path) -> dict[str, dict]:
    """Load every config section the run needs, as CLI errors on failure."""
    service = CoreConfigService(config_file)
    try:
        return {
            'fetch': service.load_fetch_settings(),
            'cache': service.load_cache_settings(),
            'parsing': service.load_parsing_settings(),
            'datasets': service.load_dataset_settings(),
        }
    except (ValueError, OSError, yaml.YAMLError) as exc:
        raise CLIError(str(exc)) from exc


def build_parse_fn(dataset: str, settings: dict[str, dict]) -> Callable[[str], object]:
    """Bind configured options to the parser of ``dataset``."""
    parser_fn = get_dataset_parser(dataset)
    parsing = settings['parsing']
    if dataset == 'profile':
        return partial(parser_fn, sentinel=parsing['sentinel'], time_units=parsing['time_units'])
    if dataset == 'catalog':
        return partial(parser_fn, declared_size=settings['fetch']['catalog_size'])
    if dataset == 'reference_points':
        return partial(parser_fn, sentinel=parsing['sentinel'])
    if dataset in ('water_level', 'coastline'):
        dataset_settings = settings['datasets'][dataset]
        return partial(
            parser_fn,
            value_variables=tuple(dataset_settings['value_variables']),
            time_variable=dataset_settings.get('time_variable', 'time'),
            sentinel=parsing['sentinel'],
            time_units=parsing['time_units'],
        )
    return parser_fn


def resolve_transect_index(catalog: IdCatalog, transect_id: int) -> int:
    """Map a transect id to its catalog position (exact match only)."""
    try:
        return catalog.index_of(transect_id)
    except KeyError:
        raise CLIError(
            f"Transect {transect_id} is not in the catalog ({len(catalog)} transects).",
            "Run --dataset catalog to list known transect ids.",
        )


def check_index_in_catalog(index: int, catalog_size: int) -> None:
    if index >= catalog_size:
        raise CLIError(
            f"Invalid --index {index}.",
            f"The catalog holds {catalog_size} transects (positions 0-{catalog_size - 1}).",
        )


def _format_number(value: float | None) -> str:
    return "NaN" if value is None else f"{value:g}"


def render_summary(dataset: str, value: object) -> str:
    """Build a short human-readable summary of a parsed result."""
    if isinstance(value, ProfileResult):
        first_year = value.years[0] if value.years else "-"
        last_year = value.years[-1] if value.years else "-"
        missing = sum(1 for row in value.altitude for cell in row if cell is None)
        return (
            f"Profile: {len(value.years)} years ({first_year}-{last_year}) x "
            f"{len(value.cross_shore)} cross-shore points, {missing} missing values"
        )
    if isinstance(value, IdCatalog):
        return f"Catalog: {len(value)} transects ({value[0]} .. {value[-1]})"
    if isinstance(value, AreaTable):
        unique = sorted({name for name in value.names})
        return f"Areas: {len(value.names)} transects in {len(unique)} areas ({', '.join(unique[:5])}{', ...' if len(unique) > 5 else ''})"
    if isinstance(value, ReferencePoints):
        lines = [f"Reference points: {len(value)}"]
        for x, y, lat, lon in zip(value.x, value.y, value.lat, value.lon):
            lines.append(
                f"  x={_format_number(x)} y={_format_number(y)} "
                f"lat={_format_number(lat)} lon={_format_number(lon)}"
            )
        return "\n".join(lines)
    if isinstance(value, SeriesResult):
        lines = [f"{dataset}: {len(value.records)} records ({', '.join(value.variables)})"]
        for record in value.records[-5:]:
            lines.append(f"  {record.label:>10}  " + "  ".join(_format_number(v) for v in record.values))
        return "\n".join(lines)
    return f"{dataset}: {value!r}"


def result_to_frame(value: object) -> pd.DataFrame:
    """Convert a parsed result into an exportable DataFrame."""
    if isinstance(value, ProfileResult):
        return profile_to_frame(value)
    if isinstance(value, SeriesResult):
        return series_to_frame(value)
    if isinstance(value, IdCatalog):
        return pd.DataFrame({'position': range(len(value)), 'id': list(value.ids)})
    if isinstance(value, AreaTable):
        return pd.DataFrame({'areacode': value.codes, 'areaname': value.names})
    if isinstance(value, ReferencePoints):
        return pd.DataFrame({'rsp_x': value.x, 'rsp_y': value.y, 'rsp_lat': value.lat, 'rsp_lon': value.lon})
    raise CLIError(f"Cannot export result of type {type(value).__name__}.")


def resolve_export_path(args: argparse.Namespace, index: int | None) -> Path:
    """Return the CSV path for ``--export`` (default file name under --out-dir)."""
    if args.export:
        return Path(args.export)
    suffix = "" if index is None else f"_{index}"
    return args.out_dir / f"{args.dataset}{suffix}.csv"


def build_cache_report(cache_dir: Path) -> str:
    """Build a formatted report of cached responses."""
    entries = CacheStore(cache_dir).entries()
    lines: list[str] = []

    lines.append("\n=== Cached Responses ===")
    lines.append(f"Cache directory: {cache_dir}\n")
    for key, timestamp, size in sorted(entries, key=lambda item: item[1], reverse=True):
        lines.append(f"  • {format_timestamp(timestamp)}  {size:>10,} chars  {key}")

    lines.append(f"\n{'='*60}")
    lines.append(f"Total entries: {len(entries)}")
    lines.append(f"{'='*60}\n")
    return "\n".join(lines)


def list_cache_and_exit(cache_dir: Path) -> None:
    """
    Print all cached responses, then exit.
    """
    print(build_cache_report(cache_dir))
    raise SystemExit(0)
