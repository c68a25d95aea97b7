from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum

from library_loans import overdue


class MemberStatus(Enum):
    """Membership states; only ACTIVE members may borrow."""
    ACTIVE = "Active"
    SUSPENDED = "Suspended"
    INACTIVE = "Inactive"


class LoanStatus(Enum):
    ACTIVE = "Active"
    RETURNED = "Returned"
    OVERDUE = "Overdue"


def parse_date(value: date | str | None) -> date | None:
    """Normalize SQLite ISO strings (or dates) into ``date`` objects."""
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value is not None else None


class Author:
    """A writer of one or more books in the catalog."""

    def __init__(self, id: int, name: str, birth_date: date | None = None,
                 nationality: str | None = None, created_at: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.birth_date = birth_date
        self.nationality = nationality
        self.created_at = created_at

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return self.name

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "birth_date": _iso(self.birth_date),
            "nationality": self.nationality,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Author":
        return Author(
            id=data["id"],
            name=data["name"],
            birth_date=parse_date(data.get("birth_date")),
            nationality=data.get("nationality"),
            created_at=data.get("created_at"),
        )


class Member:
    """A library member who may borrow books while active."""

    def __init__(self, id: int, name: str, email: str, phone: str | None = None,
                 status: MemberStatus = MemberStatus.ACTIVE, join_date: date | None = None,
                 created_at: str | None = None, updated_at: str | None = None) -> None:
        self.id = id
        self.name = name.strip()
        self.email = email.strip()
        self.phone = phone
        self.status = status
        self.join_date = join_date
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_active(self) -> bool:
        return self.status is MemberStatus.ACTIVE

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.name} <{self.email}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "status": self.status.value,
            "join_date": _iso(self.join_date),
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Member":
        return Member(
            id=data["id"],
            name=data["name"],
            email=data["email"],
            phone=data.get("phone"),
            status=MemberStatus(data.get("status") or MemberStatus.ACTIVE.value),
            join_date=parse_date(data.get("join_date")),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class Book:
    """A catalog entry.

    ``is_available`` mirrors the loan ledger: it is False exactly while the
    book has an unreturned loan.  It is read-only here; only the loan
    lifecycle in ``Library`` flips it in storage.
    """

    def __init__(self, id: int, title: str, author_id: int, genre: str | None = None,
                 publication_year: int | None = None, is_available: bool = True,
                 author_name: str | None = None, created_at: str | None = None,
                 updated_at: str | None = None) -> None:
        self.id = id
        self.title = title.strip()
        self.author_id = author_id
        self.genre = genre
        self.publication_year = publication_year
        self._is_available = bool(is_available)
        self.author_name = author_name
        self.created_at = created_at
        self.updated_at = updated_at

    @property
    def is_available(self) -> bool:
        return self._is_available

    def __str__(self) -> str:  # pragma: no cover - string formatting trivial
        return f"{self.title} (#{self.id})"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "genre": self.genre,
            "publication_year": self.publication_year,
            "is_available": self.is_available,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @staticmethod
    def from_dict(data: dict) -> "Book":
        return Book(
            id=data["id"],
            title=data["title"],
            author_id=data["author_id"],
            genre=data.get("genre"),
            publication_year=data.get("publication_year"),
            is_available=bool(data.get("is_available", True)),
            author_name=data.get("author_name"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class Loan:
    """One book borrowed by one member.

    ``days_overdue`` is computed against ``today`` when the loan is read and
    is never persisted.
    """

    def __init__(self, id: int, book_id: int, member_id: int, loan_date: date, due_date: date,
                 return_date: date | None = None, status: LoanStatus = LoanStatus.ACTIVE,
                 days_overdue: int = 0, created_at: str | None = None) -> None:
        self.id = id
        self.book_id = book_id
        self.member_id = member_id
        self.loan_date = loan_date
        self.due_date = due_date
        self.return_date = return_date
        self.status = status
        self.days_overdue = days_overdue
        self.created_at = created_at

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "book_id": self.book_id,
            "member_id": self.member_id,
            "loan_date": _iso(self.loan_date),
            "due_date": _iso(self.due_date),
            "return_date": _iso(self.return_date),
            "status": self.status.value,
            "days_overdue": self.days_overdue,
            "created_at": self.created_at,
        }

    @staticmethod
    def from_dict(data: dict, today: date) -> "Loan":
        due_date = parse_date(data["due_date"])
        return_date = parse_date(data.get("return_date"))
        return Loan(
            id=data["id"],
            book_id=data["book_id"],
            member_id=data["member_id"],
            loan_date=parse_date(data["loan_date"]),
            due_date=due_date,
            return_date=return_date,
            status=LoanStatus(data.get("status") or LoanStatus.ACTIVE.value),
            days_overdue=overdue.days_overdue(due_date, return_date, today),
            created_at=data.get("created_at"),
        )


# --- Derived views ---

@dataclass
class ActiveLoanView:
    """Row of the active-loans report."""
    loan_id: int
    book_title: str
    member_name: str
    email: str
    loan_date: date
    due_date: date
    days_overdue: int
    situation: str

    def to_dict(self) -> dict:
        return {
            "loan_id": self.loan_id,
            "book_title": self.book_title,
            "member_name": self.member_name,
            "email": self.email,
            "loan_date": _iso(self.loan_date),
            "due_date": _iso(self.due_date),
            "days_overdue": self.days_overdue,
            "situation": self.situation,
        }


AVAILABLE_LABEL = "Available"
ON_LOAN_LABEL = "On loan"


@dataclass
class BookDetailView:
    """Row of the book-details report."""
    book_id: int
    title: str
    author: str
    genre: str | None
    publication_year: int | None
    status: str

    def to_dict(self) -> dict:
        return {
            "book_id": self.book_id,
            "title": self.title,
            "author": self.author,
            "genre": self.genre,
            "publication_year": self.publication_year,
            "status": self.status,
        }
