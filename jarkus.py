"""
jarkus: JARKUS coastal transect data from OPeNDAP.

Main entry point for the jarkus application. Resolves the requested transect,
loads the dataset cache first, prints a summary and optionally exports CSV.
"""

import asyncio
import logging
import sys

from cli import (
    CLIError,
    build_parse_fn,
    check_index_in_catalog,
    list_cache_and_exit,
    load_run_settings,
    parse_args,
    render_summary,
    resolve_export_path,
    resolve_transect_index,
    result_to_frame,
    validate_selection,
)
from jarkus_core.progress import get_progress_manager
from jarkus_data.cache_codec import CacheCodec
from jarkus_data.cache_store import ID_LIST_CACHE_KEY, CacheStore
from jarkus_data.data_retrieval import CATALOG_SLOT, FetchCoordinator
from jarkus_data.export import write_frame_csv
from jarkus_data.parsers import IdCatalog
from jarkus_data.resources import DatasetRequest, catalog_url
from logging_config import get_logger, set_console_level, setup_logging, sync_http_logging
from progress import ConsoleProgressHandler


def _configure_console_logging(args, logger) -> None:
    """Apply console verbosity rules based on CLI flags."""
    if args.verbose:
        set_console_level(logging.DEBUG)
        logger.debug("Verbose mode enabled (console output at DEBUG level)")
    elif args.quiet:
        set_console_level(logging.ERROR)
    elif args.dry_run:
        # dry-run output is logged at INFO
        set_console_level(logging.INFO, only_lower=True)
    sync_http_logging(console_is_debug=bool(args.verbose))


def _resolve_run_context(args):
    """Resolve parsed CLI options and config into validated run-time values."""
    validate_selection(args)
    settings = load_run_settings(args.config)
    fetch = settings['fetch']
    if args.index is not None:
        check_index_in_catalog(args.index, fetch['catalog_size'])
    return {
        'settings': settings,
        'catalog_url': catalog_url(fetch['catalog_endpoint'], fetch['catalog_size']),
        'parse': build_parse_fn(args.dataset, settings),
    }


def _dataset_url(args, ctx, index):
    if args.dataset == 'catalog':
        return ctx['catalog_url']
    request = DatasetRequest.from_settings(args.dataset, ctx['settings']['datasets'][args.dataset])
    return request.url_for_index(0 if index is None else index)


def _handle_dry_run(args, ctx, logger) -> int:
    """Render dry-run summary and exit early."""
    logger.info("DRY RUN MODE - No data will be downloaded")
    logger.info(f"Dataset: {args.dataset}")
    if args.transect is not None:
        logger.info(f"Transect id: {args.transect} (resolved through the catalog)")
        logger.info(f"Catalog URL: {ctx['catalog_url']}")
    else:
        logger.info(f"Catalog index: {args.index}")
        logger.info(f"Request URL: {_dataset_url(args, ctx, args.index)}")
    logger.info(f"Cache directory: {args.cache_dir}")
    logger.info(f"Output directory: {args.out_dir}")
    return 0


async def _resolve_catalog(coordinator, args, ctx) -> IdCatalog | None:
    catalog_size = ctx['settings']['fetch']['catalog_size']
    if args.from_cache:
        return coordinator.load_cached_catalog(ctx['catalog_url'], catalog_size)
    if args.refresh:
        return await coordinator.refresh_catalog(ctx['catalog_url'], catalog_size)
    return await coordinator.load_catalog(ctx['catalog_url'], catalog_size)


async def _run_pipeline(args, ctx, logger) -> int:
    """Load the requested dataset and report it."""
    settings = ctx['settings']
    cache_store = CacheStore(args.cache_dir, CacheCodec(settings['cache']['max_entry_chars']))
    coordinator = FetchCoordinator(cache_store, timeout=settings['fetch']['timeout_seconds'])
    try:
        if args.dataset == 'catalog':
            if args.clear_cache:
                cache_store.invalidate(ID_LIST_CACHE_KEY)
            value = await _resolve_catalog(coordinator, args, ctx)
            index = None
        else:
            index = args.index
            if args.transect is not None:
                catalog = await _resolve_catalog(coordinator, args, ctx)
                if catalog is None:
                    logger.error(coordinator.state(CATALOG_SLOT).error or "Transect catalog is not available.")
                    return 1
                index = resolve_transect_index(catalog, args.transect)
                logger.info(f"Transect {args.transect} is at catalog index {index}")

            url = _dataset_url(args, ctx, index)
            if args.clear_cache:
                coordinator.clear_cache(url)
            if args.from_cache:
                value = coordinator.load_cached(args.dataset, url, ctx['parse'])
            elif args.refresh:
                value = await coordinator.refresh(args.dataset, url, ctx['parse'])
            else:
                value = await coordinator.load(args.dataset, url, ctx['parse'])

        state = coordinator.state(args.dataset)
        if value is None:
            logger.error(state.error or "No cached data for this URL.")
            return 1
        if state.cache_warning:
            logger.warning("Response could not be cached; it will be downloaded again next time.")

        print(render_summary(args.dataset, value))
        if args.export is not None:
            write_frame_csv(result_to_frame(value), resolve_export_path(args, index))

        await coordinator.drain()
        return 0
    finally:
        await coordinator.aclose()


def main() -> int:
    """
    Main entry point for jarkus.

    Parses command-line arguments, resolves the transect, loads the requested
    dataset (cache first) and prints or exports the result.
    """
    try:
        args = parse_args()
    except CLIError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    # Initialize logging
    setup_logging(args.config)
    logger = get_logger("jarkus")

    # Register progress handler for console output
    progress_manager = get_progress_manager()
    if not args.quiet:
        progress_manager.register_handler(ConsoleProgressHandler())

    # Handle verbose/quiet flags for console output
    _configure_console_logging(args, logger)

    # Handle --list-cache flag (exits after listing)
    if args.list_cache:
        list_cache_and_exit(args.cache_dir)

    try:
        context = _resolve_run_context(args)
    except CLIError as e:
        logger.error(str(e))
        return 2

    # Dry-run mode: show what would be done without executing
    if args.dry_run:
        return _handle_dry_run(args, context, logger)

    try:
        return asyncio.run(_run_pipeline(args, context, logger))
    except CLIError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    exit_code = main()
    in_debugger = (
        sys.gettrace() is not None
        or "debugpy" in sys.modules
        or "pydevd" in sys.modules
    )
    if not in_debugger:
        raise SystemExit(exit_code)
