import logging
import sqlite3
from datetime import date, timedelta
from typing import Any, Callable, Dict, List, Optional

from library_loans import database
from library_loans import overdue
from library_loans.config import settings
from library_loans.database import get_db_connection, initialize_database, is_busy, write_transaction
from library_loans.errors import (
    BookNotFound,
    BookUnavailable,
    ConstraintViolation,
    InvalidInput,
    LibraryError,
    LoanAlreadyReturned,
    LoanNotFound,
    LoanNotReturned,
    MemberNotActive,
    MemberNotFound,
    StorageBusy,
)
from library_loans.locks import BookLocks
from library_loans.models import (
    AVAILABLE_LABEL,
    ON_LOAN_LABEL,
    ActiveLoanView,
    Author,
    Book,
    BookDetailView,
    Loan,
    LoanStatus,
    Member,
    MemberStatus,
    parse_date,
)
from library_loans.validators import EmailValidator, PublicationYearValidator, TextValidator

logger = logging.getLogger(__name__)

_BOOK_COLUMNS = """
    b.id, b.title, b.author_id, a.name AS author_name, b.genre, b.publication_year,
    b.is_available, b.created_at, b.updated_at
"""
_LOAN_COLUMNS = "id, book_id, member_id, loan_date, due_date, return_date, status, created_at"


class Library:
    """Manages the catalog, the membership and the loan ledger.

    Every method opens its own connection, so a single instance can be shared
    between threads.  Loan registration, return and reopen are serialized per
    book: an in-process lock keyed by book id wraps a ``BEGIN IMMEDIATE``
    transaction, and the availability flag only changes through a
    compare-and-set update.
    """

    def __init__(self, db_file: Optional[str] = None, today: Optional[Callable[[], date]] = None) -> None:
        # Callers (and tests) may point the module-level default at another file.
        if db_file:
            database.DATABASE_FILE = db_file
        self.db_file = database.DATABASE_FILE
        self._today = today or date.today
        self._book_locks = BookLocks()
        initialize_database(self.db_file)

    def today(self) -> date:
        return self._today()

    def _connect(self) -> sqlite3.Connection:
        return get_db_connection(self.db_file)

    # ------------------------- Authors ------------------------- #
    def add_author(self, name: str, birth_date: Optional[date] = None,
                   nationality: Optional[str] = None) -> Author:
        if not TextValidator.validate_name(name):
            raise InvalidInput("Author name cannot be empty.")
        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO authors (name, birth_date, nationality) VALUES (?, ?, ?)",
                (name.strip(), birth_date.isoformat() if birth_date else None, nationality),
            )
            author_id = cursor.lastrowid
        finally:
            conn.close()
        logger.info(f"Author added: id={author_id} name={name!r}")
        return self.get_author(author_id)

    def get_author(self, author_id: int) -> Optional[Author]:
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT id, name, birth_date, nationality, created_at FROM authors WHERE id = ?",
                (author_id,),
            ).fetchone()
            return Author.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_authors(self) -> List[Author]:
        conn = self._connect()
        try:
            rows = conn.execute(
                "SELECT id, name, birth_date, nationality, created_at FROM authors ORDER BY name"
            ).fetchall()
            return [Author.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_author(self, author_id: int, *, name: Optional[str] = None,
                      birth_date: Optional[date] = None, nationality: Optional[str] = None) -> Optional[Author]:
        """Update an author's details. Returns the updated author or None if not found."""
        if name is None and birth_date is None and nationality is None:
            raise InvalidInput("Nothing to update. Provide name, birth_date and/or nationality.")
        author = self.get_author(author_id)
        if not author:
            return None
        if name is not None and not TextValidator.validate_name(name):
            raise InvalidInput("Author name cannot be empty.")

        new_name = name.strip() if name is not None else author.name
        new_birth = birth_date if birth_date is not None else author.birth_date
        new_nationality = nationality if nationality is not None else author.nationality
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE authors SET name = ?, birth_date = ?, nationality = ? WHERE id = ?",
                (new_name, new_birth.isoformat() if new_birth else None, new_nationality, author_id),
            )
        finally:
            conn.close()
        return self.get_author(author_id)

    def remove_author(self, author_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM authors WHERE id = ?", (author_id,))
            return cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Author {author_id} is still referenced by books.") from e
        finally:
            conn.close()

    # ------------------------- Books ------------------------- #
    def add_book(self, title: str, author_id: int, genre: Optional[str] = None,
                 publication_year: Optional[int] = None) -> Book:
        """Add a book to the catalog. New books are always available."""
        self._validate_book_fields(title, publication_year)
        if self.get_author(author_id) is None:
            raise ConstraintViolation(f"Author {author_id} does not exist.")
        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO books (title, author_id, genre, publication_year) VALUES (?, ?, ?, ?)",
                (title.strip(), author_id, genre, publication_year),
            )
            book_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Could not add book: {e}") from e
        finally:
            conn.close()
        logger.info(f"Book added: id={book_id} title={title!r}")
        return self.get_book(book_id)

    def get_book(self, book_id: int) -> Optional[Book]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books b JOIN authors a ON a.id = b.author_id WHERE b.id = ?",
                (book_id,),
            ).fetchone()
            return Book.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_books(self) -> List[Book]:
        """List all books (fresh from the database on every call)."""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {_BOOK_COLUMNS} FROM books b JOIN authors a ON a.id = b.author_id ORDER BY b.title"
            ).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def search_books(self, query: str) -> List[Book]:
        """Search for books by title or author name."""
        conn = self._connect()
        try:
            rows = conn.execute(
                f"""
                SELECT {_BOOK_COLUMNS} FROM books b JOIN authors a ON a.id = b.author_id
                WHERE b.title LIKE ? OR a.name LIKE ?
                ORDER BY b.title
                """,
                (f"%{query}%", f"%{query}%"),
            ).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def books_by_genre(self, genre: str, available_only: bool = False) -> List[Book]:
        sql = f"""
            SELECT {_BOOK_COLUMNS} FROM books b JOIN authors a ON a.id = b.author_id
            WHERE b.genre = ? COLLATE NOCASE
        """
        if available_only:
            sql += " AND b.is_available = 1"
        conn = self._connect()
        try:
            rows = conn.execute(sql + " ORDER BY b.title", (genre,)).fetchall()
            return [Book.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_book(self, book_id: int, *, title: Optional[str] = None, author_id: Optional[int] = None,
                    genre: Optional[str] = None, publication_year: Optional[int] = None) -> Optional[Book]:
        """Update catalog fields of a book. Returns the updated book or None if not found.

        Availability is deliberately not a parameter: it follows the loans.
        """
        if title is None and author_id is None and genre is None and publication_year is None:
            raise InvalidInput("Nothing to update. Provide title, author_id, genre and/or publication_year.")
        book = self.get_book(book_id)
        if not book:
            return None

        new_title = title if title is not None else book.title
        new_year = publication_year if publication_year is not None else book.publication_year
        self._validate_book_fields(new_title, new_year)
        new_author = author_id if author_id is not None else book.author_id
        if author_id is not None and self.get_author(author_id) is None:
            raise ConstraintViolation(f"Author {author_id} does not exist.")
        new_genre = genre if genre is not None else book.genre

        conn = self._connect()
        try:
            conn.execute(
                "UPDATE books SET title = ?, author_id = ?, genre = ?, publication_year = ? WHERE id = ?",
                (new_title.strip(), new_author, new_genre, new_year, book_id),
            )
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Could not update book {book_id}: {e}") from e
        finally:
            conn.close()
        return self.get_book(book_id)

    def remove_book(self, book_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM books WHERE id = ?", (book_id,))
            return cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Book {book_id} is referenced by loans and cannot be removed.") from e
        finally:
            conn.close()

    def _validate_book_fields(self, title: Optional[str], publication_year: Optional[int]) -> None:
        if not TextValidator.validate_title(title):
            raise InvalidInput("Book title cannot be empty.")
        if not PublicationYearValidator.is_valid_year(publication_year, self.today()):
            raise InvalidInput(
                f"Publication year {publication_year} must be between 1 and {self.today().year}."
            )

    # ------------------------- Members ------------------------- #
    def add_member(self, name: str, email: str, phone: Optional[str] = None,
                   join_date: Optional[date] = None) -> Member:
        if not TextValidator.validate_name(name):
            raise InvalidInput("Member name cannot be empty.")
        if not EmailValidator.is_valid_email(email):
            raise InvalidInput(f"Invalid email address: {email!r}.")
        email = EmailValidator.normalize_email(email)
        join_date = join_date or self.today()

        conn = self._connect()
        try:
            cursor = conn.execute(
                "INSERT INTO members (name, email, phone, join_date) VALUES (?, ?, ?, ?)",
                (name.strip(), email, phone, join_date.isoformat()),
            )
            member_id = cursor.lastrowid
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Member with email {email} already exists.") from e
        finally:
            conn.close()
        logger.info(f"Member enrolled: id={member_id} email={email}")
        return self.get_member(member_id)

    def get_member(self, member_id: int) -> Optional[Member]:
        conn = self._connect()
        try:
            row = conn.execute("SELECT * FROM members WHERE id = ?", (member_id,)).fetchone()
            return Member.from_dict(dict(row)) if row else None
        finally:
            conn.close()

    def list_members(self, status: Optional[MemberStatus] = None) -> List[Member]:
        conn = self._connect()
        try:
            if status is None:
                rows = conn.execute("SELECT * FROM members ORDER BY name").fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM members WHERE status = ? ORDER BY name", (status.value,)
                ).fetchall()
            return [Member.from_dict(dict(row)) for row in rows]
        finally:
            conn.close()

    def update_member(self, member_id: int, *, name: Optional[str] = None, email: Optional[str] = None,
                      phone: Optional[str] = None) -> Optional[Member]:
        """Update contact details. Status has its own operation, ``set_member_status``."""
        if name is None and email is None and phone is None:
            raise InvalidInput("Nothing to update. Provide name, email and/or phone.")
        member = self.get_member(member_id)
        if not member:
            return None
        if name is not None and not TextValidator.validate_name(name):
            raise InvalidInput("Member name cannot be empty.")
        if email is not None and not EmailValidator.is_valid_email(email):
            raise InvalidInput(f"Invalid email address: {email!r}.")

        new_name = name.strip() if name is not None else member.name
        new_email = EmailValidator.normalize_email(email) if email is not None else member.email
        new_phone = phone if phone is not None else member.phone
        conn = self._connect()
        try:
            conn.execute(
                "UPDATE members SET name = ?, email = ?, phone = ? WHERE id = ?",
                (new_name, new_email, new_phone, member_id),
            )
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Member with email {new_email} already exists.") from e
        finally:
            conn.close()
        return self.get_member(member_id)

    def set_member_status(self, member_id: int, status: MemberStatus) -> Optional[Member]:
        conn = self._connect()
        try:
            cursor = conn.execute(
                "UPDATE members SET status = ? WHERE id = ?", (status.value, member_id)
            )
            if cursor.rowcount == 0:
                return None
        finally:
            conn.close()
        logger.info(f"Member {member_id} status set to {status.value}")
        return self.get_member(member_id)

    def remove_member(self, member_id: int) -> bool:
        conn = self._connect()
        try:
            cursor = conn.execute("DELETE FROM members WHERE id = ?", (member_id,))
            return cursor.rowcount > 0
        except sqlite3.IntegrityError as e:
            raise ConstraintViolation(f"Member {member_id} has loans and cannot be removed.") from e
        finally:
            conn.close()

    # ------------------------- Loan lifecycle ------------------------- #
    def register_loan(self, book_id: int, member_id: int, duration_days: int) -> Loan:
        """Lend a book to a member for ``duration_days`` days.

        The book must be available and the member active; otherwise nothing
        changes and ``BookUnavailable`` / ``MemberNotActive`` is raised.
        """
        if duration_days < 0:
            raise InvalidInput("Loan duration cannot be negative.")
        if duration_days > settings.max_loan_days:
            raise InvalidInput(
                f"Loan duration of {duration_days} days is too long (at most {settings.max_loan_days})."
            )
        today = self.today()
        try:
            due_date = today + timedelta(days=duration_days)
        except OverflowError as e:
            raise InvalidInput(f"Loan duration of {duration_days} days is too long.") from e

        with self._book_locks.hold(book_id):
            conn = self._connect()
            try:
                with write_transaction(conn):
                    book = conn.execute(
                        "SELECT is_available FROM books WHERE id = ?", (book_id,)
                    ).fetchone()
                    if book is None:
                        raise BookNotFound(book_id)
                    if not book["is_available"]:
                        raise BookUnavailable(book_id)

                    member = conn.execute(
                        "SELECT status FROM members WHERE id = ?", (member_id,)
                    ).fetchone()
                    if member is None:
                        raise MemberNotFound(member_id)
                    if member["status"] != MemberStatus.ACTIVE.value:
                        raise MemberNotActive(member_id, member["status"])

                    cursor = conn.execute(
                        """
                        INSERT INTO loans (book_id, member_id, loan_date, due_date, status)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (book_id, member_id, today.isoformat(), due_date.isoformat(), LoanStatus.ACTIVE.value),
                    )
                    loan_id = cursor.lastrowid
                    self._set_availability(conn, book_id, available=False)
                    row = conn.execute(
                        f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)
                    ).fetchone()
            except LibraryError as e:
                logger.warning(f"Loan of book {book_id} to member {member_id} refused: {e}")
                raise
            except sqlite3.IntegrityError as e:
                raise ConstraintViolation(f"Loan of book {book_id} violates a constraint: {e}") from e
            except sqlite3.OperationalError as e:
                if not is_busy(e):
                    raise
                logger.warning(f"Loan of book {book_id} gave up waiting for the database: {e}")
                raise StorageBusy(f"Database is busy; loan of book {book_id} not registered.") from e
            finally:
                conn.close()

        logger.info(f"Loan {loan_id} registered: book={book_id} member={member_id} due={due_date}")
        return Loan.from_dict(dict(row), today)

    def return_loan(self, loan_id: int) -> Loan:
        """Mark a loan returned today and put its book back on the shelf.

        Raises ``LoanNotFound`` for an unknown id and ``LoanAlreadyReturned``
        when the loan is already closed.
        """
        book_id = self._loan_book_id(loan_id)
        today = self.today()

        with self._book_locks.hold(book_id):
            conn = self._connect()
            try:
                with write_transaction(conn):
                    loan = conn.execute(
                        "SELECT due_date, return_date FROM loans WHERE id = ?", (loan_id,)
                    ).fetchone()
                    if loan["return_date"] is not None:
                        raise LoanAlreadyReturned(loan_id)

                    late = today > parse_date(loan["due_date"])
                    status = LoanStatus.OVERDUE if late else LoanStatus.RETURNED
                    conn.execute(
                        "UPDATE loans SET return_date = ?, status = ? WHERE id = ?",
                        (today.isoformat(), status.value, loan_id),
                    )
                    self._set_availability(conn, book_id, available=True)
                    row = conn.execute(
                        f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)
                    ).fetchone()
            except LibraryError as e:
                logger.warning(f"Return of loan {loan_id} refused: {e}")
                raise
            except sqlite3.IntegrityError as e:
                raise ConstraintViolation(f"Return of loan {loan_id} violates a constraint: {e}") from e
            except sqlite3.OperationalError as e:
                if not is_busy(e):
                    raise
                logger.warning(f"Return of loan {loan_id} gave up waiting for the database: {e}")
                raise StorageBusy(f"Database is busy; loan {loan_id} not returned.") from e
            finally:
                conn.close()

        logger.info(f"Loan {loan_id} returned: book={book_id} status={status.value}")
        return Loan.from_dict(dict(row), today)

    def reopen_loan(self, loan_id: int) -> Loan:
        """Undo a return: clear the return date and take the book off the shelf again.

        Only a returned loan can be reopened, and only while its book has not
        been lent to someone else in the meantime.
        """
        book_id = self._loan_book_id(loan_id)
        today = self.today()

        with self._book_locks.hold(book_id):
            conn = self._connect()
            try:
                with write_transaction(conn):
                    loan = conn.execute(
                        "SELECT return_date FROM loans WHERE id = ?", (loan_id,)
                    ).fetchone()
                    if loan["return_date"] is None:
                        raise LoanNotReturned(loan_id)
                    book = conn.execute(
                        "SELECT is_available FROM books WHERE id = ?", (book_id,)
                    ).fetchone()
                    if not book["is_available"]:
                        raise BookUnavailable(book_id)

                    conn.execute(
                        "UPDATE loans SET return_date = NULL, status = ? WHERE id = ?",
                        (LoanStatus.ACTIVE.value, loan_id),
                    )
                    self._set_availability(conn, book_id, available=False)
                    row = conn.execute(
                        f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)
                    ).fetchone()
            except LibraryError as e:
                logger.warning(f"Reopen of loan {loan_id} refused: {e}")
                raise
            except sqlite3.IntegrityError as e:
                raise ConstraintViolation(f"Reopen of loan {loan_id} violates a constraint: {e}") from e
            except sqlite3.OperationalError as e:
                if not is_busy(e):
                    raise
                logger.warning(f"Reopen of loan {loan_id} gave up waiting for the database: {e}")
                raise StorageBusy(f"Database is busy; loan {loan_id} not reopened.") from e
            finally:
                conn.close()

        logger.info(f"Loan {loan_id} reopened: book={book_id}")
        return Loan.from_dict(dict(row), today)

    def _loan_book_id(self, loan_id: int) -> int:
        conn = self._connect()
        try:
            row = conn.execute("SELECT book_id FROM loans WHERE id = ?", (loan_id,)).fetchone()
        finally:
            conn.close()
        if row is None:
            logger.warning(f"Loan {loan_id} not found")
            raise LoanNotFound(loan_id)
        return row["book_id"]

    @staticmethod
    def _set_availability(conn: sqlite3.Connection, book_id: int, available: bool) -> None:
        """Flip a book's availability flag, checking it held the opposite value."""
        cursor = conn.execute(
            "UPDATE books SET is_available = ? WHERE id = ? AND is_available = ?",
            (int(available), book_id, int(not available)),
        )
        if cursor.rowcount != 1:
            raise ConstraintViolation(f"Availability of book {book_id} is out of step with its loans.")

    # ------------------------- Loan queries ------------------------- #
    def get_loan(self, loan_id: int) -> Optional[Loan]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {_LOAN_COLUMNS} FROM loans WHERE id = ?", (loan_id,)).fetchone()
            return Loan.from_dict(dict(row), self.today()) if row else None
        finally:
            conn.close()

    def list_loans(self, open_only: bool = False) -> List[Loan]:
        sql = f"SELECT {_LOAN_COLUMNS} FROM loans"
        if open_only:
            sql += " WHERE return_date IS NULL"
        today = self.today()
        conn = self._connect()
        try:
            rows = conn.execute(sql + " ORDER BY id").fetchall()
            return [Loan.from_dict(dict(row), today) for row in rows]
        finally:
            conn.close()

    def member_loans(self, member_id: int) -> List[Loan]:
        """Loan history of a member, newest first."""
        if self.get_member(member_id) is None:
            raise MemberNotFound(member_id)
        today = self.today()
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {_LOAN_COLUMNS} FROM loans WHERE member_id = ? ORDER BY loan_date DESC, id DESC",
                (member_id,),
            ).fetchall()
            return [Loan.from_dict(dict(row), today) for row in rows]
        finally:
            conn.close()

    def overdue_loans(self) -> List[Loan]:
        today = self.today()
        conn = self._connect()
        try:
            rows = conn.execute(
                f"""
                SELECT {_LOAN_COLUMNS} FROM loans
                WHERE return_date IS NULL AND due_date < ?
                ORDER BY due_date, id
                """,
                (today.isoformat(),),
            ).fetchall()
            return [Loan.from_dict(dict(row), today) for row in rows]
        finally:
            conn.close()

    # ------------------------- Derived views ------------------------- #
    def active_loans(self) -> List[ActiveLoanView]:
        """Open loans with book title, member contact and lateness as of today."""
        today = self.today()
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT l.id AS loan_id, b.title AS book_title, m.name AS member_name, m.email,
                       l.loan_date, l.due_date
                FROM loans l
                JOIN books b ON b.id = l.book_id
                JOIN members m ON m.id = l.member_id
                WHERE l.return_date IS NULL
                ORDER BY l.due_date, l.id
                """
            ).fetchall()
        finally:
            conn.close()

        views = []
        for row in rows:
            due_date = parse_date(row["due_date"])
            days = overdue.days_overdue(due_date, None, today)
            views.append(ActiveLoanView(
                loan_id=row["loan_id"],
                book_title=row["book_title"],
                member_name=row["member_name"],
                email=row["email"],
                loan_date=parse_date(row["loan_date"]),
                due_date=due_date,
                days_overdue=days,
                situation=overdue.situation(days),
            ))
        return views

    def book_details(self) -> List[BookDetailView]:
        """Every book with its author's name and an availability label."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT b.id, b.title, a.name AS author, b.genre, b.publication_year, b.is_available
                FROM books b
                INNER JOIN authors a ON a.id = b.author_id
                ORDER BY b.title
                """
            ).fetchall()
            return [
                BookDetailView(
                    book_id=row["id"],
                    title=row["title"],
                    author=row["author"],
                    genre=row["genre"],
                    publication_year=row["publication_year"],
                    status=AVAILABLE_LABEL if row["is_available"] else ON_LOAN_LABEL,
                )
                for row in rows
            ]
        finally:
            conn.close()

    # ------------------------- Consistency & reporting ------------------------- #
    def availability_drift(self) -> List[int]:
        """Ids of books whose availability flag disagrees with the loan records."""
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT b.id FROM books b
                WHERE b.is_available = EXISTS (
                    SELECT 1 FROM loans l WHERE l.book_id = b.id AND l.return_date IS NULL
                )
                ORDER BY b.id
                """
            ).fetchall()
            return [row["id"] for row in rows]
        finally:
            conn.close()

    def get_statistics(self) -> Dict[str, Any]:
        """Get library statistics."""
        conn = self._connect()
        try:
            def count(sql: str, *params: Any) -> int:
                return conn.execute(sql, params).fetchone()[0]

            return {
                "total_books": count("SELECT COUNT(*) FROM books"),
                "available_books": count("SELECT COUNT(*) FROM books WHERE is_available = 1"),
                "total_authors": count("SELECT COUNT(*) FROM authors"),
                "total_members": count("SELECT COUNT(*) FROM members"),
                "active_members": count(
                    "SELECT COUNT(*) FROM members WHERE status = ?", MemberStatus.ACTIVE.value
                ),
                "active_loans": count("SELECT COUNT(*) FROM loans WHERE return_date IS NULL"),
                "overdue_loans": count(
                    "SELECT COUNT(*) FROM loans WHERE return_date IS NULL AND due_date < ?",
                    self.today().isoformat(),
                ),
            }
        finally:
            conn.close()

    def seed(self) -> bool:
        """Load the sample catalog and lend two books, as a demo dataset."""
        conn = self._connect()
        try:
            seeded = database.seed_sample_data(conn)
        finally:
            conn.close()
        if not seeded:
            return False
        book_ids, member_ids = seeded["books"], seeded["members"]
        self.register_loan(book_ids[0], member_ids[0], 14)
        self.register_loan(book_ids[1], member_ids[1], 7)
        return True

    def close(self) -> None:
        """Compatibility helper: connections are opened per operation, so nothing to close."""
        return None
