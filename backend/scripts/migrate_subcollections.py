#!/usr/bin/env python3
"""One-time migration of embedded payroll arrays into sub-collection containers.

Older employee documents carry ``advances`` and ``transactions`` as arrays on
the document itself. The detail view only reads them from the
``<collection>-<subcollection>`` containers, so run this once per database,
from the backend/ directory:

    python3 scripts/migrate_subcollections.py [--dry-run] [--batch-size N] [--keep-embedded] [--verbose]

Sub-record ids are derived from the employee id and array position, so the
migration can be re-run safely: existing sub-records are overwritten, not
duplicated.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Any

_project_root = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

from azure.cosmos.aio import CosmosClient  # noqa: E402

from app.core.config import Settings  # noqa: E402
from app.services.record_source import PARENT_KEY, SYSTEM_KEYS  # noqa: E402

logger = logging.getLogger(__name__)


def split_document(
    doc: dict[str, Any], subcollections: tuple[str, ...]
) -> tuple[dict[str, Any], dict[str, list[dict[str, Any]]]]:
    """Separate embedded sub-collection arrays from the primary document.

    Non-list values under a sub-collection key are dropped as well; they were
    never valid data.
    """
    core = {k: v for k, v in doc.items() if k not in subcollections and k not in SYSTEM_KEYS}
    embedded: dict[str, list[dict[str, Any]]] = {}
    for name in subcollections:
        value = doc.get(name)
        if isinstance(value, list) and value:
            embedded[name] = [item for item in value if isinstance(item, dict)]
    return core, embedded


def build_sub_records(record_id: str, name: str, items: list[dict[str, Any]]) -> list[dict[str, Any]]:
    records = []
    for index, item in enumerate(items):
        sub_id = item.get("id") or f"{record_id}-{name}-{index}"
        records.append({**item, "id": str(sub_id), PARENT_KEY: record_id})
    return records


async def migrate_record(
    database: Any,
    collection: str,
    doc: dict[str, Any],
    subcollections: tuple[str, ...],
    *,
    dry_run: bool = False,
    keep_embedded: bool = False,
) -> int:
    """Move one document's embedded arrays. Returns the number of sub-records written."""
    record_id = doc["id"]
    core, embedded = split_document(doc, subcollections)
    has_embedded_keys = any(name in doc for name in subcollections)
    if not has_embedded_keys:
        return 0

    written = 0
    for name, items in embedded.items():
        records = build_sub_records(record_id, name, items)
        logger.debug("%s: %d %s", record_id, len(records), name)
        if not dry_run:
            container = database.get_container_client(f"{collection}-{name}")
            for record in records:
                await container.upsert_item(body=record)
        written += len(records)

    if not dry_run and not keep_embedded:
        # Only after every sub-record is stored
        await database.get_container_client(collection).replace_item(item=record_id, body=core)
    return written


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Move embedded advances/transactions arrays into sub-collection containers",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Report what would be migrated without writing anything",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        default=25,
        help="Number of employees per batch (default: 25)",
    )
    parser.add_argument(
        "--keep-embedded",
        action="store_true",
        help="Copy sub-records but leave the embedded arrays on the employee documents",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )
    return parser.parse_args(argv)


async def migrate(args: argparse.Namespace) -> None:
    settings = Settings()
    level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")

    collection = settings.COSMOS_DB_EMPLOYEES_CONTAINER
    subcollections = tuple(settings.SUBCOLLECTIONS)

    logger.info("Connecting to Cosmos DB...")
    cosmos_client = CosmosClient(settings.COSMOS_DB_ENDPOINT, settings.COSMOS_DB_KEY)
    try:
        database = cosmos_client.get_database_client(settings.COSMOS_DB_DATABASE)
        container = database.get_container_client(collection)

        logger.info("Fetching all employees...")
        employees: list[dict[str, Any]] = []
        async for item in container.read_all_items():
            employees.append(item)

        logger.info("Found %d employees", len(employees))
        if not employees:
            logger.warning("No employees found. Exiting.")
            return

        migrated = 0
        sub_records = 0
        failed = 0
        total_batches = (len(employees) + args.batch_size - 1) // args.batch_size

        for batch_idx in range(total_batches):
            start = batch_idx * args.batch_size
            batch = employees[start : start + args.batch_size]
            logger.info("Processing batch %d/%d (%d employees)...", batch_idx + 1, total_batches, len(batch))

            for doc in batch:
                try:
                    written = await migrate_record(
                        database,
                        collection,
                        doc,
                        subcollections,
                        dry_run=args.dry_run,
                        keep_embedded=args.keep_embedded,
                    )
                except Exception:
                    logger.exception("Migrating %s failed — continuing...", doc.get("id"))
                    failed += 1
                    continue
                if any(name in doc for name in subcollections):
                    migrated += 1
                    sub_records += written
    finally:
        await cosmos_client.close()

    logger.info("=" * 50)
    logger.info("Migration complete!")
    logger.info("Employees migrated: %d", migrated)
    logger.info("Sub-records written: %d", sub_records)
    logger.info("Employees failed: %d", failed)
    if args.dry_run:
        logger.info("[DRY RUN] Nothing was written.")


def main() -> None:
    args = parse_args()
    asyncio.run(migrate(args))


if __name__ == "__main__":
    main()
