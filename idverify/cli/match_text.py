"""CLI tool for reconciling recognized text against enrolled identifiers."""
import argparse
import asyncio
import sys
from typing import List, Optional

from idverify.core.config import settings
from idverify.core.exceptions import InvalidRecordError, RecordSyncError
from idverify.core.logging import get_logger, setup_logging
from idverify.domain.entities.identity import format_display_id
from idverify.infrastructure.records import (
    HttpRecordSynchronizer,
    RecordSnapshot,
    SnapshotRecordStore,
    load_records_file,
)
from idverify.services.text_matching import clean_ocr_text, find_identifier

logger = get_logger(__name__)


async def load_snapshot(records_path: str, sync_url: Optional[str] = None) -> RecordSnapshot:
    """Load enrolled records from a file or, when a URL is given, the registration service."""
    store = SnapshotRecordStore(load_records_file(records_path))
    if sync_url:
        await HttpRecordSynchronizer(store, sync_url).sync()
    return store.snapshot


def match_text(text: str, snapshot: RecordSnapshot) -> Optional[str]:
    """
    Find an enrolled identifier in the text and report it.

    Args:
        text: Raw recognized text
        snapshot: Enrolled records to match against

    Returns:
        The matched canonical identifier, or None
    """
    identifier = find_identifier(text, snapshot.identifiers())
    logger.info(
        "Reconciled text",
        digits=clean_ocr_text(text),
        known=len(snapshot),
        identifier=identifier,
    )
    if identifier is None:
        return None

    record = snapshot.get(identifier)
    print(f"{identifier}\t{format_display_id(identifier)}\t{record.name if record else ''}")
    return identifier


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Find an enrolled identifier in recognized text"
    )
    parser.add_argument(
        "text",
        nargs="?",
        help="Recognized text (read from stdin when omitted)"
    )
    parser.add_argument(
        "--records",
        default=settings.RECORDS_FILE,
        help="Path to the enrolled records JSON file"
    )
    parser.add_argument(
        "--sync-url",
        default=None,
        help="Registration service base URL to pull records from instead"
    )
    args = parser.parse_args(argv)
    setup_logging(stream=sys.stderr)

    text = args.text if args.text is not None else sys.stdin.read()

    try:
        snapshot = asyncio.run(load_snapshot(args.records, args.sync_url))
    except (InvalidRecordError, RecordSyncError) as e:
        logger.error("Failed to load enrolled records", error=str(e))
        sys.exit(2)

    if match_text(text, snapshot) is None:
        logger.warning("No enrolled identifier found")
        sys.exit(1)


if __name__ == "__main__":
    main()
