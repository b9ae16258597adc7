import sqlite3
from typing import Any, Dict, List, Optional

from library_ledger.errors import CapacityConflict, Conflict, InvalidInput, NotFound
from library_ledger.item import Item
from library_ledger.validators import NumberValidator, TextValidator

ITEM_COLUMNS = "id, title, author, year, total_copies, created_at"
UPDATABLE_FIELDS = ("title", "author", "year", "total_copies")

_OPEN_COUNT_SQL = "SELECT COUNT(*) FROM loan_records WHERE item_id = ? AND status = 'open'"


def like_pattern(term: str) -> str:
    """Build a LIKE pattern matching `term` as a literal, case-insensitive substring."""
    escaped = term.lower().replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


class CatalogStore:
    """Durable record of catalog items and their total copy counts.

    The store works on a connection owned by the caller so that its writes
    can join a larger transaction.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def create(self, title: str, author: Optional[str] = None, year: Optional[int] = None,
               total_copies: int = 1) -> Item:
        title = TextValidator.require_title(title)
        author = TextValidator.optional_author(author)
        year = NumberValidator.optional_year(year)
        total_copies = NumberValidator.require_copies(total_copies)

        cursor = self.conn.execute(
            "INSERT INTO items (title, author, year, total_copies) VALUES (?, ?, ?, ?)",
            (title, author, year, total_copies),
        )
        return self.get(cursor.lastrowid)

    def get(self, item_id: int) -> Item:
        item = self.find(item_id)
        if item is None:
            raise NotFound(f"item {item_id} not found")
        return item

    def find(self, item_id: int) -> Optional[Item]:
        row = self.conn.execute(f"SELECT {ITEM_COLUMNS} FROM items WHERE id = ?", (item_id,)).fetchone()
        return Item.from_row(row) if row else None

    def update(self, item_id: int, fields: Dict[str, Any]) -> Item:
        """Update any of title, author, year and total_copies.

        Lowering total_copies below the item's open loans raises
        CapacityConflict; the value is never clamped.
        """
        unknown = set(fields) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInput(f"unknown fields: {', '.join(sorted(unknown))}")
        if not fields:
            raise InvalidInput("no fields to update")

        # Validate everything before touching the row
        values: Dict[str, Any] = {}
        if "title" in fields:
            values["title"] = TextValidator.require_title(fields["title"])
        if "author" in fields:
            values["author"] = TextValidator.optional_author(fields["author"])
        if "year" in fields:
            values["year"] = NumberValidator.optional_year(fields["year"])
        if "total_copies" in fields:
            values["total_copies"] = NumberValidator.require_copies(fields["total_copies"])

        self.get(item_id)

        if "total_copies" in values:
            self._set_total_copies(item_id, values.pop("total_copies"))

        if values:
            assignments = ", ".join(f"{name} = ?" for name in values)
            self.conn.execute(
                f"UPDATE items SET {assignments} WHERE id = ?",
                (*values.values(), item_id),
            )
        return self.get(item_id)

    def _set_total_copies(self, item_id: int, new_total: int) -> None:
        # The capacity check and the write are one statement
        cursor = self.conn.execute(
            f"UPDATE items SET total_copies = ? WHERE id = ? AND ? >= ({_OPEN_COUNT_SQL})",
            (new_total, item_id, new_total, item_id),
        )
        if cursor.rowcount == 0:
            open_count = self.conn.execute(_OPEN_COUNT_SQL, (item_id,)).fetchone()[0]
            raise CapacityConflict(
                f"cannot set totalCopies of item {item_id} to {new_total}: {open_count} copies are on loan"
            )

    def remove(self, item_id: int) -> None:
        """Delete an item that has no open loans; its loan history is kept."""
        cursor = self.conn.execute(
            "DELETE FROM items WHERE id = ? AND NOT EXISTS "
            "(SELECT 1 FROM loan_records WHERE item_id = items.id AND status = 'open')",
            (item_id,),
        )
        if cursor.rowcount == 0:
            self.get(item_id)
            open_count = self.conn.execute(_OPEN_COUNT_SQL, (item_id,)).fetchone()[0]
            raise Conflict(f"item {item_id} has {open_count} open loan(s) and cannot be removed")

    def list(self, search: Optional[str] = None) -> List[Item]:
        """List items newest first, optionally filtered by a title/author substring."""
        if search:
            pattern = like_pattern(search)
            rows = self.conn.execute(
                f"SELECT {ITEM_COLUMNS} FROM items "
                "WHERE LOWER(title) LIKE ? ESCAPE '\\' OR LOWER(author) LIKE ? ESCAPE '\\' "
                "ORDER BY id DESC",
                (pattern, pattern),
            ).fetchall()
        else:
            rows = self.conn.execute(f"SELECT {ITEM_COLUMNS} FROM items ORDER BY id DESC").fetchall()
        return [Item.from_row(row) for row in rows]
