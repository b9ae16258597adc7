from __future__ import annotations

from typing import Any, Mapping


class Item:
    """Represents a single circulating title in the catalog."""

    def __init__(self, id: int, title: str, author: str = "", year: int | None = None,
                 total_copies: int = 1, created_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author = (author or "").strip()
        self.year = year
        self.total_copies = total_copies
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} by {self.author or 'Unknown'} ({self.total_copies} copies)"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Item):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author": self.author,
            "year": self.year,
            "total_copies": self.total_copies,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_row(row: Mapping[str, Any]) -> "Item":
        return Item(
            id=row["id"],
            title=row["title"],
            author=row["author"],
            year=row["year"],
            total_copies=row["total_copies"],
            created_at=row["created_at"],
        )
