import logging
from typing import Any, Dict, List, NamedTuple, Optional

from library_ledger.database import initialize_database, read_connection, transaction
from library_ledger.errors import CapacityConflict, CapacityExhausted, Conflict, NotFound
from library_ledger.loan import LendingState, LoanRecord
from library_ledger.read_model import ItemAvailability, ReadModel
from library_ledger.stores.catalog import CatalogStore
from library_ledger.stores.loan_ledger import LoanLedger
from library_ledger.validators import NumberValidator, TextValidator

logger = logging.getLogger(__name__)


class LoanResult(NamedTuple):
    record: LoanRecord
    available: int


class CirculationService:
    """Keeps total copies, open loans and derived availability consistent.

    Every mutating operation runs in a single BEGIN IMMEDIATE transaction that
    spans the catalog store and the loan ledger, so the capacity check and
    the write it guards can never interleave with another writer. Failures
    are raised as CirculationError subclasses after the transaction has been
    rolled back.
    """

    def __init__(self, db_file: Optional[str] = None, seed: bool = False) -> None:
        self.db_file = db_file
        initialize_database(db_file, seed=seed)
        self.read_model = ReadModel(db_file)

    # ------------------------- Catalog operations ------------------------- #
    def add_item(self, title: str, author: Optional[str] = None, year: Optional[int] = None,
                 total_copies: int = 1) -> ItemAvailability:
        with transaction(self.db_file) as conn:
            item = CatalogStore(conn).create(title, author, year, total_copies)
        logger.info(f"Added item {item.id}: {item.title!r} with {item.total_copies} copies")
        # A new item has no loans yet
        return ItemAvailability(item, item.total_copies)

    def update_item(self, item_id: int, fields: Dict[str, Any]) -> ItemAvailability:
        """Update title, author, year and/or total_copies in one transaction."""
        with transaction(self.db_file) as conn:
            item = CatalogStore(conn).update(item_id, fields)
            available = item.total_copies - LoanLedger(conn).count_open(item_id)
        logger.info(f"Updated item {item_id}: {', '.join(sorted(fields))}")
        return ItemAvailability(item, available)

    def adjust_copies(self, item_id: int, new_total: int) -> ItemAvailability:
        """Set the total copy count; rejected with CapacityConflict below the open loans."""
        new_total = NumberValidator.require_copies(new_total)
        try:
            return self.update_item(item_id, {"total_copies": new_total})
        except (CapacityConflict, NotFound) as e:
            logger.warning(f"adjust_copies({item_id}, {new_total}) rejected: {e}")
            raise

    def remove_item(self, item_id: int) -> None:
        """Remove an item without open loans. Its loan history stays in the ledger."""
        try:
            with transaction(self.db_file) as conn:
                CatalogStore(conn).remove(item_id)
        except (Conflict, NotFound) as e:
            logger.warning(f"remove_item({item_id}) rejected: {e}")
            raise
        logger.info(f"Removed item {item_id}")

    # ------------------------- Circulation ------------------------- #
    def borrow(self, item_id: int, borrower: str) -> LoanResult:
        """Open a loan for `borrower` if a copy is available.

        Under N concurrent calls for an item with K free copies exactly
        min(N, K) succeed; the others raise CapacityExhausted immediately.
        """
        borrower = TextValidator.require_borrower(borrower)
        with transaction(self.db_file) as conn:
            item = CatalogStore(conn).get(item_id)
            ledger = LoanLedger(conn)
            record = ledger.open_loan(item_id, borrower, max_open=item.total_copies)
            if record is None:
                logger.warning(f"Borrow of item {item_id} by {borrower!r} rejected: no copies available")
                raise CapacityExhausted(f"no copies of item {item_id} available")
            available = item.total_copies - ledger.count_open(item_id)
        logger.info(f"Item {item_id} borrowed by {borrower!r} (loan {record.id}, {available} left)")
        return LoanResult(record, available)

    def return_item(self, item_id: int, record_id: Optional[int] = None) -> LoanResult:
        """Close a loan of `item_id`.

        With `record_id` that record is closed; it must belong to the item
        (NotFound otherwise) and still be open (Conflict otherwise). Without
        it, the most recently opened open loan is closed (LIFO).
        """
        try:
            with transaction(self.db_file) as conn:
                item = CatalogStore(conn).find(item_id)
                ledger = LoanLedger(conn)
                if record_id is None:
                    record = ledger.close_most_recent_open(item_id)
                else:
                    existing = ledger.get(record_id)
                    if existing.item_id != item_id:
                        raise NotFound(f"loan record {record_id} does not belong to item {item_id}")
                    record = ledger.close_loan(record_id)
                available = item.total_copies - ledger.count_open(item_id) if item else 0
        except (Conflict, NotFound) as e:
            logger.warning(f"return_item({item_id}, {record_id}) rejected: {e}")
            raise
        logger.info(f"Loan {record.id} of item {item_id} returned ({available} available)")
        return LoanResult(record, available)

    # ------------------------- Queries ------------------------- #
    def get_item(self, item_id: int) -> ItemAvailability:
        return self.read_model.get(item_id)

    def get_availability(self, item_id: int) -> int:
        return self.read_model.get_availability(item_id)

    def lending_state(self, item_id: int) -> LendingState:
        return self.read_model.get(item_id).state

    def list_items(self, search: Optional[str] = None, limit: Optional[int] = None,
                   offset: int = 0) -> List[ItemAvailability]:
        return self.read_model.list(search, limit=limit, offset=offset)

    def list_loans(self, item_id: Optional[int] = None) -> List[LoanRecord]:
        """List loan records newest first, for one item or for all."""
        with read_connection(self.db_file) as conn:
            ledger = LoanLedger(conn)
            return ledger.list_by_item(item_id) if item_id is not None else ledger.list_all()

    def statistics(self) -> Dict[str, int]:
        return self.read_model.statistics()
