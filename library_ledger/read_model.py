from typing import Any, Dict, List, NamedTuple, Optional

from library_ledger.database import read_connection
from library_ledger.errors import NotFound
from library_ledger.item import Item
from library_ledger.loan import LendingState
from library_ledger.stores.catalog import like_pattern


class ItemAvailability(NamedTuple):
    item: Item
    available: int

    @property
    def state(self) -> LendingState:
        return LendingState.from_counts(self.item.total_copies, self.available)

    def to_dict(self) -> Dict[str, Any]:
        data = self.item.to_dict()
        data["available"] = self.available
        return data


# Total copies and open loans are read by the same statement, so the
# difference always comes from one snapshot.
_AVAILABILITY_SELECT = """
    SELECT i.id, i.title, i.author, i.year, i.total_copies, i.created_at,
           i.total_copies - COALESCE(o.open_count, 0) AS available
    FROM items i
    LEFT JOIN (
        SELECT item_id, COUNT(*) AS open_count
        FROM loan_records
        WHERE status = 'open'
        GROUP BY item_id
    ) o ON o.item_id = i.id
"""


class ReadModel:
    """Derived, never-cached view of items with their current availability."""

    def __init__(self, db_file: Optional[str] = None) -> None:
        self.db_file = db_file

    def get(self, item_id: int) -> ItemAvailability:
        with read_connection(self.db_file) as conn:
            row = conn.execute(f"{_AVAILABILITY_SELECT} WHERE i.id = ?", (item_id,)).fetchone()
        if row is None:
            raise NotFound(f"item {item_id} not found")
        return ItemAvailability(Item.from_row(row), row["available"])

    def get_availability(self, item_id: int) -> int:
        return self.get(item_id).available

    def list(self, search: Optional[str] = None, limit: Optional[int] = None,
             offset: int = 0) -> List[ItemAvailability]:
        """List items newest first with their availability.

        `search` matches a case-insensitive substring of title or author.
        """
        sql = _AVAILABILITY_SELECT
        params: List[Any] = []
        if search:
            pattern = like_pattern(search)
            sql += " WHERE LOWER(i.title) LIKE ? ESCAPE '\\' OR LOWER(i.author) LIKE ? ESCAPE '\\'"
            params.extend([pattern, pattern])
        sql += " ORDER BY i.id DESC"
        if limit is not None or offset:
            # SQLite needs a LIMIT before OFFSET, -1 means no limit
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit if limit is not None else -1, offset])

        with read_connection(self.db_file) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [ItemAvailability(Item.from_row(row), row["available"]) for row in rows]

    def statistics(self) -> Dict[str, int]:
        """Get catalog and circulation statistics."""
        with read_connection(self.db_file) as conn:
            row = conn.execute("""
                SELECT
                    (SELECT COUNT(*) FROM items) AS total_items,
                    (SELECT COUNT(DISTINCT author) FROM items WHERE author != '') AS unique_authors,
                    (SELECT COALESCE(SUM(total_copies), 0) FROM items) AS total_copies,
                    (SELECT COUNT(*) FROM loan_records l JOIN items i ON i.id = l.item_id
                     WHERE l.status = 'open') AS open_loans
            """).fetchone()
        return {
            "total_items": row["total_items"],
            "unique_authors": row["unique_authors"],
            "total_copies": row["total_copies"],
            "open_loans": row["open_loans"],
            "available_copies": row["total_copies"] - row["open_loans"],
        }
