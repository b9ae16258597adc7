import re
from typing import Any, Optional

from library_ledger.errors import InvalidInput


class TextValidator:
    """Basic text validations and normalisation for catalog and loan fields."""

    @staticmethod
    def normalize(text: Optional[str]) -> str:
        if text is None:
            return ""
        # collapse runs of whitespace so "  Harper   Lee " matches "Harper Lee"
        return re.sub(r"\s+", " ", str(text)).strip()

    @staticmethod
    def require_title(title: Optional[str]) -> str:
        if title is not None and not isinstance(title, str):
            raise InvalidInput("title must be text.")
        cleaned = TextValidator.normalize(title)
        if not cleaned:
            raise InvalidInput("title required")
        return cleaned

    @staticmethod
    def optional_author(author: Optional[str]) -> str:
        if author is not None and not isinstance(author, str):
            raise InvalidInput("author must be text.")
        return TextValidator.normalize(author)

    @staticmethod
    def require_borrower(borrower: Optional[str]) -> str:
        if borrower is not None and not isinstance(borrower, str):
            raise InvalidInput("borrower must be text.")
        cleaned = TextValidator.normalize(borrower)
        if not cleaned:
            raise InvalidInput("borrower name required")
        return cleaned


class NumberValidator:
    """Integer checks for copy counts, years and ids."""

    @staticmethod
    def _is_int(value: Any) -> bool:
        # bool is an int subclass but True copies is never meant
        return isinstance(value, int) and not isinstance(value, bool)

    @staticmethod
    def require_copies(value: Any) -> int:
        if not NumberValidator._is_int(value):
            raise InvalidInput(f"totalCopies must be an integer, got {value!r}.")
        if value < 0:
            raise InvalidInput("totalCopies cannot be negative.")
        return value

    @staticmethod
    def optional_year(value: Any) -> Optional[int]:
        if value is None:
            return None
        if not NumberValidator._is_int(value):
            raise InvalidInput(f"year must be an integer, got {value!r}.")
        return value

