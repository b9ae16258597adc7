import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, Optional

from library_ledger.config import settings
from library_ledger.errors import StorageError

logger = logging.getLogger(__name__)

# Sample catalog inserted into an empty database when seeding is requested
SAMPLE_ITEMS = [
    ("The Great Gatsby", "F. Scott Fitzgerald", 1925, 3),
    ("To Kill a Mockingbird", "Harper Lee", 1960, 2),
    ("Introduction to Algorithms", "Cormen et al.", 2009, 1),
]


def _resolve(db_file: Optional[str]) -> str:
    return db_file or settings.database_file


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; callers that write go through
    `transaction()` which issues an explicit BEGIN IMMEDIATE so that the
    check and the mutation of a circulation operation share one write lock.
    """
    conn = sqlite3.connect(
        _resolve(db_file),
        timeout=settings.db_busy_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


@contextmanager
def transaction(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Run the enclosed block as one serialised write transaction.

    Any exception rolls the transaction back before it propagates. Raw
    sqlite3 errors (locked database, disk I/O) surface as StorageError.
    """
    try:
        conn = get_db_connection(db_file)
    except sqlite3.Error as e:
        logger.error(f"Could not open database {_resolve(db_file)}: {e}")
        raise StorageError(str(e)) from e
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
        conn.execute("COMMIT")
    except sqlite3.Error as e:
        _rollback(conn)
        logger.error(f"Transaction rolled back after storage failure: {e}")
        raise StorageError(str(e)) from e
    except BaseException:
        _rollback(conn)
        raise
    finally:
        conn.close()


@contextmanager
def read_connection(db_file: Optional[str] = None) -> Iterator[sqlite3.Connection]:
    """Yield a connection for read-only queries; each statement sees one snapshot."""
    try:
        conn = get_db_connection(db_file)
    except sqlite3.Error as e:
        logger.error(f"Could not open database {_resolve(db_file)}: {e}")
        raise StorageError(str(e)) from e
    try:
        yield conn
    except sqlite3.Error as e:
        logger.error(f"Read query failed: {e}")
        raise StorageError(str(e)) from e
    finally:
        conn.close()


def _rollback(conn: sqlite3.Connection) -> None:
    if conn.in_transaction:
        conn.execute("ROLLBACK")


def create_tables(db_file: Optional[str] = None) -> None:
    """Create the catalog and loan tables if they do not exist yet."""
    conn = get_db_connection(db_file)
    try:
        # WAL lets readers run alongside the single writer
        conn.execute("PRAGMA journal_mode=WAL;")
        conn.execute("""
            CREATE TABLE IF NOT EXISTS items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                author TEXT NOT NULL DEFAULT '',
                year INTEGER,
                total_copies INTEGER NOT NULL DEFAULT 1 CHECK(total_copies >= 0),
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # No foreign key: loan history outlives items removed from the catalog
        conn.execute("""
            CREATE TABLE IF NOT EXISTS loan_records (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                item_id INTEGER NOT NULL,
                borrower TEXT NOT NULL,
                opened_at TEXT NOT NULL,
                closed_at TEXT,
                status TEXT NOT NULL DEFAULT 'open' CHECK(status IN ('open', 'closed'))
            )
        """)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_loan_records_item_id ON loan_records(item_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_loan_records_open ON loan_records(item_id) WHERE status = 'open'"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_title ON items(title)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_items_author ON items(author)")
    finally:
        conn.close()


def seed_sample_items(db_file: Optional[str] = None) -> int:
    """Insert the sample catalog into an empty database.

    Returns the number of items inserted; 0 when the catalog already has data.
    """
    with transaction(db_file) as conn:
        count = conn.execute("SELECT COUNT(*) FROM items").fetchone()[0]
        if count > 0:
            return 0
        conn.executemany(
            "INSERT INTO items (title, author, year, total_copies) VALUES (?, ?, ?, ?)",
            SAMPLE_ITEMS,
        )
    logger.info(f"Seeded {len(SAMPLE_ITEMS)} sample items")
    return len(SAMPLE_ITEMS)


def initialize_database(db_file: Optional[str] = None, seed: bool = False) -> None:
    """Initialize the database, create tables and optionally seed sample data."""
    try:
        create_tables(db_file)
    except sqlite3.Error as e:
        logger.error(f"Could not initialize database {_resolve(db_file)}: {e}")
        raise StorageError(str(e)) from e
    if seed:
        seed_sample_items(db_file)
