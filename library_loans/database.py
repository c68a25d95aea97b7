import logging
import sqlite3
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from library_loans.config import settings

logger = logging.getLogger(__name__)

# Default database file.  ``Library(db_file=...)`` overrides it so module-level
# helpers and every later connection point at the same file.
DATABASE_FILE = settings.database_file

MEMBER_STATUSES = ("Active", "Suspended", "Inactive")
LOAN_STATUSES = ("Active", "Returned", "Overdue")


def get_db_connection(db_file: Optional[str] = None) -> sqlite3.Connection:
    """Open a connection to the SQLite database.

    Connections run in autocommit mode; writes that must be atomic go through
    ``write_transaction``.  Foreign keys are switched on per connection since
    SQLite leaves them off by default.
    """
    conn = sqlite3.connect(
        db_file or DATABASE_FILE,
        timeout=settings.database_timeout,
        isolation_level=None,
        check_same_thread=False,
    )
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def is_busy(exc: sqlite3.OperationalError) -> bool:
    """True when SQLite gave up waiting for another connection's lock."""
    message = str(exc).lower()
    return "locked" in message or "busy" in message


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block inside ``BEGIN IMMEDIATE``; commit on success, roll back on any error.

    IMMEDIATE takes the database write lock up front so the reads done inside
    the block cannot be invalidated by another writer before the commit.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    else:
        conn.execute("COMMIT")


def create_tables(conn: sqlite3.Connection) -> None:
    """Create tables, indexes and triggers if they do not exist."""
    conn.executescript(f"""
        CREATE TABLE IF NOT EXISTS authors (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            birth_date TEXT,
            nationality TEXT,
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS members (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL,
            email TEXT NOT NULL COLLATE NOCASE,
            phone TEXT,
            status TEXT NOT NULL DEFAULT 'Active'
                CHECK (status IN {MEMBER_STATUSES!r}),
            join_date TEXT NOT NULL DEFAULT (date('now')),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS books (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            title TEXT NOT NULL,
            author_id INTEGER NOT NULL
                REFERENCES authors(id) ON DELETE RESTRICT ON UPDATE CASCADE,
            genre TEXT,
            publication_year INTEGER,
            is_available INTEGER NOT NULL DEFAULT 1 CHECK (is_available IN (0, 1)),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
        );

        CREATE TABLE IF NOT EXISTS loans (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            book_id INTEGER NOT NULL
                REFERENCES books(id) ON DELETE RESTRICT ON UPDATE CASCADE,
            member_id INTEGER NOT NULL
                REFERENCES members(id) ON DELETE RESTRICT ON UPDATE CASCADE,
            loan_date TEXT NOT NULL,
            due_date TEXT NOT NULL,
            return_date TEXT,
            status TEXT NOT NULL DEFAULT 'Active'
                CHECK (status IN {LOAN_STATUSES!r}),
            created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
            CONSTRAINT chk_loan_dates CHECK (due_date >= loan_date),
            CONSTRAINT chk_return_date CHECK (return_date IS NULL OR return_date >= loan_date)
        );

        CREATE INDEX IF NOT EXISTS idx_author_name ON authors(name);
        CREATE UNIQUE INDEX IF NOT EXISTS uq_member_email ON members(email COLLATE NOCASE);
        CREATE INDEX IF NOT EXISTS idx_member_status ON members(status);
        CREATE INDEX IF NOT EXISTS idx_book_genre ON books(genre);
        CREATE INDEX IF NOT EXISTS idx_book_title ON books(title);
        CREATE INDEX IF NOT EXISTS idx_book_author ON books(author_id);
        CREATE INDEX IF NOT EXISTS idx_loan_status_dates ON loans(status, due_date);
        CREATE INDEX IF NOT EXISTS idx_loan_member_history ON loans(member_id, loan_date);

        -- At most one open loan per book, whatever the caller does
        CREATE UNIQUE INDEX IF NOT EXISTS uq_loan_open_book
            ON loans(book_id) WHERE return_date IS NULL;

        CREATE TRIGGER IF NOT EXISTS trg_books_updated_at
        AFTER UPDATE ON books FOR EACH ROW
        WHEN NEW.updated_at IS OLD.updated_at
        BEGIN
            UPDATE books SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;

        CREATE TRIGGER IF NOT EXISTS trg_members_updated_at
        AFTER UPDATE ON members FOR EACH ROW
        WHEN NEW.updated_at IS OLD.updated_at
        BEGIN
            UPDATE members SET updated_at = CURRENT_TIMESTAMP WHERE id = NEW.id;
        END;
    """)


SAMPLE_AUTHORS = [
    ("George Orwell", "British"),
    ("J.K. Rowling", "British"),
    ("Isaac Asimov", "American"),
]

SAMPLE_MEMBERS = [
    ("Ricardo Fiorini", "ricardo@usf.edu.br", "19999999999"),
    ("Aluno Exemplo", "aluno@teste.com", "11988888888"),
]

# (title, index into SAMPLE_AUTHORS, genre, publication year)
SAMPLE_BOOKS = [
    ("1984", 0, "Dystopian", 1949),
    ("Harry Potter and the Philosopher's Stone", 1, "Fantasy", 1997),
    ("Foundation", 2, "Sci-Fi", 1951),
]


def seed_sample_data(conn: sqlite3.Connection) -> Dict[str, List[int]]:
    """Insert the sample catalog and members into an empty database.

    Returns the new ids keyed by table, or an empty dict (and touches
    nothing) when authors already exist.
    """
    count = conn.execute("SELECT COUNT(*) FROM authors").fetchone()[0]
    if count > 0:
        logger.info("Database already has data, skipping seed")
        return {}

    ids: Dict[str, List[int]] = {"authors": [], "members": [], "books": []}
    with write_transaction(conn):
        for name, nationality in SAMPLE_AUTHORS:
            cursor = conn.execute(
                "INSERT INTO authors (name, nationality) VALUES (?, ?)", (name, nationality)
            )
            ids["authors"].append(cursor.lastrowid)
        for name, email, phone in SAMPLE_MEMBERS:
            cursor = conn.execute(
                "INSERT INTO members (name, email, phone) VALUES (?, ?, ?)", (name, email, phone)
            )
            ids["members"].append(cursor.lastrowid)
        for title, idx, genre, year in SAMPLE_BOOKS:
            cursor = conn.execute(
                "INSERT INTO books (title, author_id, genre, publication_year) VALUES (?, ?, ?, ?)",
                (title, ids["authors"][idx], genre, year),
            )
            ids["books"].append(cursor.lastrowid)
    logger.info(f"Seeded {len(SAMPLE_AUTHORS)} authors, {len(SAMPLE_MEMBERS)} members, {len(SAMPLE_BOOKS)} books")
    return ids


def initialize_database(db_file: Optional[str] = None) -> None:
    """Create the schema in the given (or default) database file."""
    conn = get_db_connection(db_file)
    try:
        # WAL is persistent in the file; readers then never wait on the writer
        conn.execute("PRAGMA journal_mode=WAL;")
        create_tables(conn)
    finally:
        conn.close()
