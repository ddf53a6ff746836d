"""
Instrument catalog search.

Case-insensitive substring match on ticker or name, paginated with
limit/offset. With no query the whole catalog is listed.
"""

from typing import Optional

from brokerage.events.errors import InvalidRequest
from brokerage.events.models import InstrumentPage
from brokerage.store.ports import UnitOfWork

DEFAULT_LIMIT = 20
MAX_LIMIT = 50


class InstrumentCatalog:
    """Read-only lookups over instrument reference data."""

    def __init__(self, store: UnitOfWork):
        self.store = store

    def search(
        self, query: Optional[str] = None, limit: int = DEFAULT_LIMIT, offset: int = 0
    ) -> InstrumentPage:
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= MAX_LIMIT:
            raise InvalidRequest(f"limit must be between 1 and {MAX_LIMIT}")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            raise InvalidRequest("offset must be a non-negative integer")

        query = query.strip() if query else None
        with self.store.transaction(read_only=True) as tx:
            items, total = tx.search_instruments(query, limit, offset)
        return InstrumentPage(items=items, total=total, limit=limit, offset=offset)
