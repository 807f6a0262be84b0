"""
Record Ledger

Per-parent append-only log of completed binds, read newest-first in pages.
Entries are never mutated or removed once appended.
"""

import logging
from typing import Tuple

from app.services.referrals.exceptions import InvalidPageError
from app.services.referrals.models import RecordEntry, RecordPage, normalize_identity
from app.services.referrals.store import InviteStore, InviteTransaction
from app.utils.safe_math import UINT_MAX, checked_add, checked_div, checked_mul, checked_sub

logger = logging.getLogger(__name__)


def validate_page_args(page_number: int, page_size: int) -> None:
    """
    Any page_number >= 1 is valid; pages past the data are simply empty.

    Raises:
        InvalidPageError: page_number < 1, page_size outside [0, UINT_MAX],
            or non-integer arguments
    """
    for name, value in (("page_number", page_number), ("page_size", page_size)):
        if not isinstance(value, int) or isinstance(value, bool):
            raise InvalidPageError(f"{name} must be an integer, got {value!r}")
    if page_number < 1:
        raise InvalidPageError(f"page_number must be >= 1, got {page_number}")
    if page_size < 0 or page_size > UINT_MAX:
        raise InvalidPageError(f"page_size must be between 0 and 2**256 - 1, got {page_size}")


def compute_page_window(page_number: int, page_size: int, total: int) -> Tuple[int, int]:
    """
    Reverse-order window [lower, upper) of a page over `total` entries.

    lower = (page_number - 1) * page_size
    upper = min(page_number * page_size, total)

    A page past the data gets the empty window (total, total). That case is
    decided by page count, so page_number itself may be arbitrarily large.
    """
    if page_size == 0 or total == 0:
        return 0, 0

    page_count = checked_div(total, page_size)
    if total % page_size:
        page_count = checked_add(page_count, 1)
    if page_number > page_count:
        return total, total

    lower = checked_mul(checked_sub(page_number, 1), page_size)
    upper = checked_add(lower, min(page_size, checked_sub(total, lower)))
    return lower, upper


class RecordLedger:
    """Reverse-chronological paged view over the records table."""

    def __init__(self, store: InviteStore):
        self.store = store

    async def append(self, tx: InviteTransaction, parent: str, entry: RecordEntry) -> None:
        """Stage `entry` at the end of parent's sequence. Only called by a successful bind."""
        await tx.append_record(normalize_identity(parent), entry)

    async def page(self, parent: str, page_number: int, page_size: int) -> RecordPage:
        """
        Read one page of parent's records, most recent first.

        Args:
            parent: Parent identity (unknown identities have no records)
            page_number: 1-indexed page number
            page_size: Entries per page

        Returns:
            RecordPage(total, items): total is the full length of the sequence,
            items has at most page_size entries (empty past the end)

        Raises:
            InvalidPageError: page_number < 1 or page_size out of range
        """
        validate_page_args(page_number, page_size)
        parent = normalize_identity(parent)

        # Offsets past every ledger are capped; the store then returns only the total
        offset = min((page_number - 1) * page_size, UINT_MAX)
        total, items = await self.store.get_records_reversed(parent, offset, page_size)

        lower, upper = compute_page_window(page_number, page_size, total)
        return RecordPage(total=total, items=list(items[: upper - lower]))
