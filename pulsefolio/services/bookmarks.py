"""CSV import and export for bookmarked wallets."""

from __future__ import annotations

import csv
import io
import logging
from typing import Iterable, List, Optional

from ..types.events import Bookmark
from .address import is_strict_address

logger = logging.getLogger(__name__)

CSV_HEADER = "Wallet Address,Label,Notes,Is Favorite"


def _quote(value: Optional[str]) -> str:
    if not value:
        return ""
    return '"' + value.replace('"', '""') + '"'


def bookmarks_to_csv(bookmarks: Iterable[Bookmark]) -> str:
    lines = [CSV_HEADER]
    for bookmark in bookmarks:
        lines.append(
            ",".join(
                [
                    bookmark.wallet_address,
                    _quote(bookmark.label),
                    _quote(bookmark.notes),
                    "true" if bookmark.is_favorite else "false",
                ]
            )
        )
    return "\n".join(lines)


def csv_to_bookmarks(content: str) -> List[Bookmark]:
    bookmarks: List[Bookmark] = []
    reader = csv.reader(io.StringIO(content))
    next(reader, None)
    for row in reader:
        if not any(cell.strip() for cell in row):
            continue
        fields = [cell.strip() for cell in row]
        address = fields[0] if fields else ""
        if not is_strict_address(address):
            logger.debug("Skipping CSV line %d with invalid address %r", reader.line_num, address)
            continue
        label = fields[1] if len(fields) > 1 else ""
        notes = fields[2] if len(fields) > 2 else ""
        favorite = fields[3] if len(fields) > 3 else ""
        bookmarks.append(
            Bookmark(
                wallet_address=address,
                label=label or None,
                notes=notes or None,
                is_favorite=favorite.lower() == "true",
            )
        )
    return bookmarks


def example_csv() -> str:
    return bookmarks_to_csv(
        [
            Bookmark(
                wallet_address="0x1234567890abcdef1234567890abcdef12345678",
                label="My Main Wallet",
                notes="Personal holdings",
                is_favorite=True,
            ),
            Bookmark(
                wallet_address="0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
                label="Trading Wallet",
                notes='Used for "active" trades',
                is_favorite=False,
            ),
        ]
    )


__all__ = ["CSV_HEADER", "bookmarks_to_csv", "csv_to_bookmarks", "example_csv"]
