import sqlite3
from datetime import datetime, timezone
from typing import List, Optional

from library_ledger.errors import Conflict, NotFound
from library_ledger.loan import LoanRecord
from library_ledger.validators import TextValidator

LOAN_COLUMNS = "id, item_id, borrower, opened_at, closed_at, status"


def utc_timestamp() -> str:
    # Fixed width so timestamps compare correctly as text
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class LoanLedger:
    """Append-mostly record of loan events.

    Each write is atomic for its own record. Capacity across records is the
    caller's concern: `open_loan` only enforces a limit when given one.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def open_loan(self, item_id: int, borrower: str, max_open: Optional[int] = None) -> Optional[LoanRecord]:
        """Append an open loan record for `item_id`.

        With `max_open`, the insert only happens while the item has fewer than
        `max_open` open loans; None is returned when the limit is reached.
        """
        borrower = TextValidator.require_borrower(borrower)
        opened_at = utc_timestamp()
        if max_open is None:
            cursor = self.conn.execute(
                "INSERT INTO loan_records (item_id, borrower, opened_at, status) VALUES (?, ?, ?, 'open')",
                (item_id, borrower, opened_at),
            )
        else:
            cursor = self.conn.execute(
                "INSERT INTO loan_records (item_id, borrower, opened_at, status) "
                "SELECT ?, ?, ?, 'open' WHERE "
                "(SELECT COUNT(*) FROM loan_records WHERE item_id = ? AND status = 'open') < ?",
                (item_id, borrower, opened_at, item_id, max_open),
            )
            if cursor.rowcount == 0:
                return None
        return self.get(cursor.lastrowid)

    def get(self, record_id: int) -> LoanRecord:
        row = self.conn.execute(
            f"SELECT {LOAN_COLUMNS} FROM loan_records WHERE id = ?", (record_id,)
        ).fetchone()
        if row is None:
            raise NotFound(f"loan record {record_id} not found")
        return LoanRecord.from_row(row)

    def close_loan(self, record_id: int) -> LoanRecord:
        """Close an open record; closing a closed record raises Conflict."""
        # MAX keeps closed_at >= opened_at even if the wall clock stepped back
        cursor = self.conn.execute(
            "UPDATE loan_records SET status = 'closed', closed_at = MAX(?, opened_at) "
            "WHERE id = ? AND status = 'open'",
            (utc_timestamp(), record_id),
        )
        if cursor.rowcount == 0:
            record = self.get(record_id)
            raise Conflict(f"loan record {record.id} was already returned at {record.closed_at}")
        return self.get(record_id)

    def close_most_recent_open(self, item_id: int) -> LoanRecord:
        """Close the most recently opened open record of an item (LIFO)."""
        row = self.conn.execute(
            "SELECT id FROM loan_records WHERE item_id = ? AND status = 'open' ORDER BY id DESC LIMIT 1",
            (item_id,),
        ).fetchone()
        if row is None:
            raise NotFound(f"no unreturned loan record found for item {item_id}")
        return self.close_loan(row["id"])

    def list_by_item(self, item_id: int) -> List[LoanRecord]:
        rows = self.conn.execute(
            f"SELECT {LOAN_COLUMNS} FROM loan_records WHERE item_id = ? ORDER BY id DESC", (item_id,)
        ).fetchall()
        return [LoanRecord.from_row(row) for row in rows]

    def list_all(self) -> List[LoanRecord]:
        rows = self.conn.execute(f"SELECT {LOAN_COLUMNS} FROM loan_records ORDER BY id DESC").fetchall()
        return [LoanRecord.from_row(row) for row in rows]

    def count_open(self, item_id: int) -> int:
        return self.conn.execute(
            "SELECT COUNT(*) FROM loan_records WHERE item_id = ? AND status = 'open'", (item_id,)
        ).fetchone()[0]
