"""Chainscan CLI entry points.
This module exposes commands for indexing, gap reports and stats.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import asyncio
from dataclasses import replace
from typing import Sequence

from core.config import ChainscanConfig
from core.errors import ChainscanError
from core.logging_config import get_logger
from core.types import IngestOptions
from ingest.indexer_client import IndexerClient
from ingest.pipeline import normalize_concurrency
from ingest.progress_reporter import IngestProgressReporter

_LOGGER = get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="chainscan", description="Chainscan block indexer")
    parser.add_argument("--network", help="Override CHAINSCAN_NETWORK for this command")
    parser.add_argument("--store-uri", help="Override CHAINSCAN_STORE_URI for this command")
    parser.add_argument("--db-name", help="Override CHAINSCAN_DB_NAME for this command")
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_index_command(subparsers)
    subparsers.add_parser("gaps", help="List missing block ranges below the checkpoint")
    subparsers.add_parser("stats", help="Show record counts and the scan checkpoint")
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Chainscan CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args)
    except ChainscanError as error:
        print(f"Configuration error: {error}")
        return 2
    if args.command == "index":
        return asyncio.run(_run_index_command(client, args))
    if args.command == "gaps":
        return asyncio.run(_run_gaps_command(client))
    if args.command == "stats":
        return asyncio.run(_run_stats_command(client))
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _add_index_command(subparsers: argparse._SubParsersAction) -> None:
    index_parser = subparsers.add_parser("index", help="Index blocks from the configured node")
    index_parser.add_argument("--start", type=int, help="First height to index")
    index_parser.add_argument("--end", type=int, help="Last height to index (default: chain tip)")
    index_parser.add_argument(
        "--concurrency",
        type=int,
        help="Blocks fetched in parallel (default: CHAINSCAN_CONCURRENCY)",
    )
    index_parser.add_argument(
        "--from-latest",
        action="store_true",
        help="Start at the current chain tip instead of the checkpoint",
    )


def _build_client(args: argparse.Namespace) -> IndexerClient:
    """Build SDK client with CLI overrides applied.

    Args:
        args: Parsed CLI args.

    Returns:
        Configured SDK client.
    """
    config = ChainscanConfig.from_env(network_name=args.network)
    if args.store_uri:
        config = replace(config, store_uri=args.store_uri)
    if args.db_name:
        config = replace(config, database_name=args.db_name)
    return IndexerClient(config)


async def _run_index_command(client: IndexerClient, args: argparse.Namespace) -> int:
    """Handle index command.

    Args:
        client: SDK client.
        args: Parsed CLI args.

    Returns:
        Exit code.
    """
    concurrency = normalize_concurrency(
        args.concurrency if args.concurrency is not None else client.config.concurrency
    )
    requested = IngestOptions(
        start_height=args.start,
        end_height=args.end,
        concurrency=concurrency,
        from_latest=args.from_latest,
    )
    try:
        async with client:
            block_range = await client.resolve_range(requested)
            reporter = IngestProgressReporter(
                start_height=block_range.start,
                end_height=block_range.end,
                concurrency=concurrency,
            )
            summary = await client.index(
                replace(
                    requested,
                    start_height=block_range.start,
                    end_height=block_range.end,
                    on_progress=reporter,
                )
            )
    except Exception as error:
        _LOGGER.error("index_command_failed", error=str(error), error_type=type(error).__name__)
        print(f"Indexing failed: {error}")
        print("Run 'chainscan index' again to resume from the last indexed block.")
        return 1
    reporter.log_completed(summary)
    print(
        f"Indexed blocks {summary.start_height}-{summary.end_height}: "
        f"{summary.blocks_indexed} blocks, "
        f"{summary.extrinsics_indexed} extrinsics, "
        f"{summary.events_indexed} events, "
        f"{len(summary.skipped_heights)} skipped"
    )
    return 0


async def _run_gaps_command(client: IndexerClient) -> int:
    """Handle gaps command."""
    try:
        async with client:
            missing_ranges = await client.find_missing_ranges()
    except ChainscanError as error:
        return _report_command_failure("gaps", error)
    if not missing_ranges:
        print("No missing blocks")
        return 0
    for block_range in missing_ranges:
        print(f"{block_range.start}-{block_range.end}")
    return 0


async def _run_stats_command(client: IndexerClient) -> int:
    """Handle stats command."""
    try:
        async with client:
            stats = await client.stats()
    except ChainscanError as error:
        return _report_command_failure("stats", error)
    print(f"blocks\t{stats.block_count}")
    print(f"extrinsics\t{stats.extrinsic_count}")
    print(f"events\t{stats.event_count}")
    progress = stats.progress
    if progress is None:
        print("last_indexed_block\t-")
        return 0
    print(f"last_indexed_block\t{progress.last_indexed_block}")
    print(f"is_complete\t{progress.is_complete}")
    print(f"last_updated\t{progress.last_updated.isoformat()}")
    return 0


def _report_command_failure(command: str, error: ChainscanError) -> int:
    _LOGGER.error(
        f"{command}_command_failed", error=str(error), error_type=type(error).__name__
    )
    print(f"{command.capitalize()} failed: {error}")
    return 1
