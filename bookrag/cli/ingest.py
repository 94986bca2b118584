# =============================================================================
# bookrag/cli/ingest.py - CLI Ingest Command (collection management)
# =============================================================================
#
# Standalone CLI for loading books into the bookrag vector store and
# maintaining the collection afterwards.
#
# Supported subcommands:
#
#   epub    - Ingest an EPUB book, one unit per spine chapter
#   text    - Ingest a plain-text book, split on chapter headings
#   diary   - Ingest diary entries from JSON or JSON Lines, one unit per entry
#   delete  - Delete a document's records, records by id, or by metadata
#   stats   - Show the record count and layout of the collection
#
# delete and stats only open the vector store; they work without an
# embedding provider.
#
# Usage examples:
#   python -m bookrag.cli.ingest epub --file ./books/moby_dick.epub
#   python -m bookrag.cli.ingest text --file ./books/notes.txt --name "Notes" --upsert
#   python -m bookrag.cli.ingest diary --file ./diary.jsonl
#   python -m bookrag.cli.ingest delete --document-id 3fa1c0d2e4b5a697 --yes
#   python -m bookrag.cli.ingest delete --where mood=sad --where date=2026-01-10
#   python -m bookrag.cli.ingest stats
# =============================================================================

"""Standalone CLI for building the bookrag vector-store collection."""

from __future__ import annotations

import argparse
import asyncio
import sys
from typing import Any

from bookrag.config.settings import Settings
from bookrag.utils.errors import BookRAGError, IngestionUnitError
from bookrag.utils.logging import configure_logging

_INGEST_COMMANDS = ("epub", "text", "diary")


# ---------------------------------------------------------------------------
# Subcommand handlers
# ---------------------------------------------------------------------------


async def _handle_ingest(args: argparse.Namespace, service) -> int:  # noqa: ANN001
    """Ingest one file and print the per-unit tally."""
    print(f"Ingesting {args.command.upper()}: {args.file}")
    label = "Entry" if args.command == "diary" else "Chapter"

    def _progress(outcome) -> None:  # noqa: ANN001
        if outcome.status == "skipped":
            print(f"  {label} {outcome.unit_index:>3}: empty, skipped")
        else:
            note = "  (count mismatch)" if outcome.count_mismatch else ""
            print(
                f"  {label} {outcome.unit_index:>3}: {outcome.chunk_count} chunks, "
                f"{outcome.inserted_count} inserted{note}"
            )

    try:
        report = await service.ingest_file(
            args.file,
            split_by_unit=not args.single_unit,
            document_id=args.document_id,
            name=args.name,
            loader=args.command,
            on_unit=_progress,
        )
    except IngestionUnitError as exc:
        print(f"\nError: {exc}", file=sys.stderr)
        if exc.report is not None:
            print(
                f"  Committed before failure: {exc.report.units_written} chapters, "
                f"{exc.report.total_inserted} records",
                file=sys.stderr,
            )
        return 1

    print("\nIngestion complete:")
    print(f"  Document ID:    {report.document_id}")
    print(f"  Name:           {report.document_name}")
    print(f"  Chapters:       {report.units_written} written / {len(report.units)} total")
    print(f"  Chunks:         {report.total_chunks}")
    print(f"  Inserted:       {report.total_inserted}")
    print(f"  Time:           {report.ingestion_time:.2f}s")
    return 0


async def _handle_delete(args: argparse.Namespace, admin) -> int:  # noqa: ANN001
    """Delete records by document id, explicit record ids or metadata.

    Destructive; asks for confirmation unless ``--yes`` is passed.
    """
    where = _parse_where(args.where) if args.where else None
    if args.document_id:
        target = f"document {args.document_id}"
    elif where:
        target = " and ".join(f"{key}={value}" for key, value in where.items())
    else:
        target = f"{len(args.ids)} record id(s)"

    if not args.yes:
        confirm = input(f"  Delete records for {target}? [y/N] ").strip().lower()
        if confirm not in ("y", "yes"):
            print("  Aborted.")
            return 0

    if args.document_id:
        deleted = await admin.delete_document(args.document_id)
    elif where:
        deleted = await admin.delete_where(where)
    else:
        deleted = await admin.delete_records(args.ids)
    print(f"Deleted {deleted} records.")
    return 0


async def _handle_stats(admin) -> int:  # noqa: ANN001
    """Display collection statistics as stored in the vector store."""
    stats = await admin.stats()
    print("Collection Statistics")
    print("=" * 40)
    print(f"  Collection:  {stats.name}")
    if stats.spec is None:
        print("  Status:      not created")
    else:
        print(f"  Metric:      {stats.spec.metric}")
        print(f"  Dimension:   {stats.spec.dimension}")
    print(f"  Records:     {stats.record_count}")
    return 0


def _parse_where(pairs: list[str]) -> dict[str, Any]:
    """``["mood=sad", "unit_index=3"]`` -> ``{"mood": "sad", "unit_index": 3}``."""
    where: dict[str, Any] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"--where expects key=value, got {pair!r}")
        value = value.strip()
        where[key.strip()] = int(value) if value.isdigit() else value
    return where


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------


def _add_file_arguments(sub: argparse.ArgumentParser, kind: str) -> None:
    sub.add_argument("--file", required=True, help=f"Path to the {kind} file")
    sub.add_argument("--name", default=None, help="Display name (default: file name)")
    sub.add_argument(
        "--document-id",
        dest="document_id",
        default=None,
        help="Document id (default: hash of the file text)",
    )
    sub.add_argument(
        "--single-unit",
        dest="single_unit",
        action="store_true",
        help="Treat the whole file as one unit instead of splitting it",
    )
    sub.add_argument(
        "--upsert",
        action="store_true",
        help="Overwrite records with the same id instead of inserting",
    )


def _build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the ingestion CLI."""
    parser = argparse.ArgumentParser(
        prog="python -m bookrag.cli.ingest",
        description="Manage the bookrag vector-store collection.",
    )
    subparsers = parser.add_subparsers(dest="command", help="Ingestion commands")

    _add_file_arguments(subparsers.add_parser("epub", help="Ingest an EPUB book"), "EPUB")
    _add_file_arguments(subparsers.add_parser("text", help="Ingest a plain-text book"), "text")
    _add_file_arguments(
        subparsers.add_parser("diary", help="Ingest diary entries (.json or .jsonl)"), "diary"
    )

    delete_parser = subparsers.add_parser("delete", help="Delete records")
    target = delete_parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--document-id", dest="document_id", help="Delete every record of a document")
    target.add_argument("--ids", nargs="+", help="Delete specific record ids")
    target.add_argument(
        "--where",
        action="append",
        metavar="KEY=VALUE",
        help="Delete records whose metadata matches; repeat to combine (e.g. mood=sad)",
    )
    delete_parser.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    subparsers.add_parser("stats", help="Show collection statistics")
    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main(argv: list[str] | None = None) -> int:
    """CLI entry point for the ingestion tool; returns the exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        app_settings = Settings()
    except BookRAGError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1
    if getattr(args, "upsert", False):
        app_settings = app_settings.model_copy(update={"write_mode": "upsert"})
    configure_logging(app_settings.log_level)

    from bookrag.factory import build_collection_admin, build_ingestion_service

    try:
        if args.command in _INGEST_COMMANDS:
            service, status_msg = build_ingestion_service(app_settings)
            if service is None:
                print(f"Error: {status_msg}", file=sys.stderr)
                return 1
            print(f"Providers: {status_msg}")
            print()
            return asyncio.run(_handle_ingest(args, service))

        admin = build_collection_admin(app_settings)
        print(f"Store: {admin.store_name}/{admin.name}")
        print()
        if args.command == "delete":
            return asyncio.run(_handle_delete(args, admin))
        if args.command == "stats":
            return asyncio.run(_handle_stats(admin))
    except (BookRAGError, FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
