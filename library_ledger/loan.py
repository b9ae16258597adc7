from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Mapping, Optional


class LoanStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class LendingState(str, Enum):
    """Lending state of an item, derived from its counts and never stored."""
    FULL = "full"
    PARTIALLY_LOANED = "partially_loaned"
    FULLY_LOANED = "fully_loaned"

    @classmethod
    def from_counts(cls, total_copies: int, available: int) -> "LendingState":
        # An item with zero copies has nothing to lend and counts as fully loaned
        if available <= 0:
            return cls.FULLY_LOANED
        if available >= total_copies:
            return cls.FULL
        return cls.PARTIALLY_LOANED


@dataclass
class LoanRecord:
    """One loan event for an item.

    Attributes:
        id: unique, immutable record id.
        item_id: id of the borrowed item (a reference, the item may be retired later).
        borrower: free text name of the borrower.
        opened_at: UTC ISO-8601 timestamp of the borrow.
        closed_at: UTC ISO-8601 timestamp of the return, present iff closed.
        status: open or closed; closed is terminal.
    """

    id: int
    item_id: int
    borrower: str
    opened_at: str
    closed_at: Optional[str] = None
    status: LoanStatus = LoanStatus.OPEN

    @property
    def is_open(self) -> bool:
        return self.status == LoanStatus.OPEN

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "LoanRecord":
        return LoanRecord(
            id=row["id"],
            item_id=row["item_id"],
            borrower=row["borrower"],
            opened_at=row["opened_at"],
            closed_at=row["closed_at"],
            status=LoanStatus(row["status"]),
        )
