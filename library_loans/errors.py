"""Error taxonomy for the lending system.

Every failure carries a short ``code`` used by the API and the CLI.  Missing
records are also ``LookupError`` and constraint failures are also
``ValueError`` so callers can catch them the usual way.
"""


class LibraryError(Exception):
    """Base class for all library errors."""

    code = "library_error"


class BookUnavailable(LibraryError):
    code = "book_unavailable"

    def __init__(self, book_id: int) -> None:
        super().__init__(f"Book {book_id} is not available.")
        self.book_id = book_id


class MemberNotActive(LibraryError):
    code = "member_not_active"

    def __init__(self, member_id: int, status: str) -> None:
        super().__init__(f"Member {member_id} is not active (status: {status}).")
        self.member_id = member_id
        self.status = status


class LoanAlreadyReturned(LibraryError):
    code = "loan_already_returned"

    def __init__(self, loan_id: int) -> None:
        super().__init__(f"Loan {loan_id} has already been returned.")
        self.loan_id = loan_id


class LoanNotReturned(LibraryError):
    code = "loan_not_returned"

    def __init__(self, loan_id: int) -> None:
        super().__init__(f"Loan {loan_id} has not been returned.")
        self.loan_id = loan_id


class RecordNotFound(LibraryError, LookupError):
    code = "not_found"
    entity = "Record"

    def __init__(self, record_id: int) -> None:
        super().__init__(f"{self.entity} {record_id} not found.")
        self.record_id = record_id


class LoanNotFound(RecordNotFound):
    code = "loan_not_found"
    entity = "Loan"


class BookNotFound(RecordNotFound):
    code = "book_not_found"
    entity = "Book"


class MemberNotFound(RecordNotFound):
    code = "member_not_found"
    entity = "Member"


class AuthorNotFound(RecordNotFound):
    code = "author_not_found"
    entity = "Author"


class ConstraintViolation(LibraryError, ValueError):
    """Date ordering, uniqueness, referential integrity or field validation failed."""

    code = "constraint_violation"


class InvalidInput(ConstraintViolation):
    """A field value was rejected before reaching the database."""

    code = "invalid_input"


class StorageBusy(LibraryError):
    """Another writer held the database past ``DATABASE_TIMEOUT``; safe to retry."""

    code = "storage_busy"
