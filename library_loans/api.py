import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Security
from fastapi.middleware.cors import CORSMiddleware
from fastapi.security import APIKeyHeader
from pydantic import BaseModel, Field

from library_loans.config import settings
from library_loans.database import get_db_connection
from library_loans.errors import (
    BookUnavailable,
    ConstraintViolation,
    InvalidInput,
    LibraryError,
    LoanAlreadyReturned,
    LoanNotReturned,
    MemberNotActive,
    RecordNotFound,
    StorageBusy,
)
from library_loans.library import Library
from library_loans.models import MemberStatus

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

library = Library()

app = FastAPI(title=settings.app_name, version=settings.app_version)

# --- CORS ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# --- Security ---
api_key_header = APIKeyHeader(name="X-API-Key")

def get_api_key(api_key: str = Security(api_key_header)):
    """Dependency that validates the API key."""
    if api_key == settings.api_key:
        return api_key
    else:
        raise HTTPException(
            status_code=403,
            detail="Could not validate credentials",
        )

# --- Error mapping ---
_CONFLICTS = (BookUnavailable, MemberNotActive, LoanAlreadyReturned, LoanNotReturned, ConstraintViolation)

def _http_error(exc: LibraryError) -> HTTPException:
    """Translate a library error into the HTTP status the caller should see."""
    if isinstance(exc, RecordNotFound):
        status_code = 404
    elif isinstance(exc, InvalidInput):
        status_code = 422
    elif isinstance(exc, StorageBusy):
        status_code = 503
    elif isinstance(exc, _CONFLICTS):
        status_code = 409
    else:
        status_code = 400
    return HTTPException(status_code=status_code, detail={"code": exc.code, "message": str(exc)})

def _not_found(entity: str, record_id: int) -> HTTPException:
    code = f"{entity.lower()}_not_found"
    return HTTPException(status_code=404, detail={"code": code, "message": f"{entity} {record_id} not found."})

# --- Models ---
class AuthorModel(BaseModel):
    id: int
    name: str
    birth_date: date | None = None
    nationality: str | None = None
    created_at: str | None = None

class AuthorCreateModel(BaseModel):
    name: str = Field(min_length=1)
    birth_date: date | None = None
    nationality: str | None = None

class AuthorUpdateModel(BaseModel):
    name: str | None = None
    birth_date: date | None = None
    nationality: str | None = None

class MemberModel(BaseModel):
    id: int
    name: str
    email: str
    phone: str | None = None
    status: MemberStatus
    join_date: date | None = None
    created_at: str | None = None
    updated_at: str | None = None

class MemberCreateModel(BaseModel):
    name: str = Field(min_length=1)
    email: str
    phone: str | None = None
    join_date: date | None = None

class MemberUpdateModel(BaseModel):
    name: str | None = None
    email: str | None = None
    phone: str | None = None

class MemberStatusModel(BaseModel):
    status: MemberStatus

class BookModel(BaseModel):
    id: int
    title: str
    author_id: int
    author_name: str | None = None
    genre: str | None = None
    publication_year: int | None = None
    is_available: bool
    created_at: str | None = None
    updated_at: str | None = None

class BookCreateModel(BaseModel):
    title: str = Field(min_length=1)
    author_id: int
    genre: str | None = None
    publication_year: int | None = None

class BookUpdateModel(BaseModel):
    title: str | None = None
    author_id: int | None = None
    genre: str | None = None
    publication_year: int | None = None

class LoanModel(BaseModel):
    id: int
    book_id: int
    member_id: int
    loan_date: date
    due_date: date
    return_date: date | None = None
    status: str
    days_overdue: int
    created_at: str | None = None

class LoanCreateModel(BaseModel):
    book_id: int
    member_id: int
    duration_days: int = Field(default_factory=lambda: settings.default_loan_days, ge=0, le=settings.max_loan_days)

class ActiveLoanModel(BaseModel):
    loan_id: int
    book_title: str
    member_name: str
    email: str
    loan_date: date
    due_date: date
    days_overdue: int
    situation: str

class BookDetailModel(BaseModel):
    book_id: int
    title: str
    author: str
    genre: str | None = None
    publication_year: int | None = None
    status: str

class StatsModel(BaseModel):
    total_books: int
    available_books: int
    total_authors: int
    total_members: int
    active_members: int
    active_loans: int
    overdue_loans: int

# --- Health ---
@app.get("/health")
def health():
    """Lightweight health endpoint with a quick database round trip."""
    db_ok = True
    try:
        conn = get_db_connection(library.db_file)
        conn.execute("SELECT 1")
        conn.close()
    except Exception:
        logger.exception("Health check could not reach the database")
        db_ok = False
    return {
        "status": "healthy" if db_ok else "degraded",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "db": db_ok,
    }

@app.get("/stats", response_model=StatsModel)
def get_library_stats():
    """Counts of books, members and loans."""
    return StatsModel(**library.get_statistics())

# --- Authors ---
@app.get("/authors", response_model=List[AuthorModel])
def get_authors():
    return [AuthorModel(**a.to_dict()) for a in library.list_authors()]

@app.get("/authors/{author_id}", response_model=AuthorModel)
def get_author(author_id: int):
    author = library.get_author(author_id)
    if not author:
        raise _not_found("Author", author_id)
    return AuthorModel(**author.to_dict())

@app.post("/authors", response_model=AuthorModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_author(payload: AuthorCreateModel):
    try:
        author = library.add_author(payload.name, birth_date=payload.birth_date, nationality=payload.nationality)
    except LibraryError as e:
        raise _http_error(e)
    return AuthorModel(**author.to_dict())

@app.put("/authors/{author_id}", response_model=AuthorModel, dependencies=[Depends(get_api_key)])
def update_author(author_id: int, update: AuthorUpdateModel):
    try:
        author = library.update_author(
            author_id, name=update.name, birth_date=update.birth_date, nationality=update.nationality
        )
    except LibraryError as e:
        raise _http_error(e)
    if not author:
        raise _not_found("Author", author_id)
    return AuthorModel(**author.to_dict())

@app.delete("/authors/{author_id}", dependencies=[Depends(get_api_key)])
def delete_author(author_id: int):
    try:
        removed = library.remove_author(author_id)
    except LibraryError as e:
        raise _http_error(e)
    if not removed:
        raise _not_found("Author", author_id)
    return {"message": "Author removed."}

# --- Members ---
@app.get("/members", response_model=List[MemberModel])
def get_members(status: Optional[MemberStatus] = Query(None, description="Filter by membership status")):
    return [MemberModel(**m.to_dict()) for m in library.list_members(status)]

@app.get("/members/{member_id}", response_model=MemberModel)
def get_member(member_id: int):
    member = library.get_member(member_id)
    if not member:
        raise _not_found("Member", member_id)
    return MemberModel(**member.to_dict())

@app.post("/members", response_model=MemberModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_member(payload: MemberCreateModel):
    try:
        member = library.add_member(payload.name, payload.email, phone=payload.phone, join_date=payload.join_date)
    except LibraryError as e:
        raise _http_error(e)
    return MemberModel(**member.to_dict())

@app.put("/members/{member_id}", response_model=MemberModel, dependencies=[Depends(get_api_key)])
def update_member(member_id: int, update: MemberUpdateModel):
    try:
        member = library.update_member(member_id, name=update.name, email=update.email, phone=update.phone)
    except LibraryError as e:
        raise _http_error(e)
    if not member:
        raise _not_found("Member", member_id)
    return MemberModel(**member.to_dict())

@app.put("/members/{member_id}/status", response_model=MemberModel, dependencies=[Depends(get_api_key)])
def set_member_status(member_id: int, payload: MemberStatusModel):
    member = library.set_member_status(member_id, payload.status)
    if not member:
        raise _not_found("Member", member_id)
    return MemberModel(**member.to_dict())

@app.delete("/members/{member_id}", dependencies=[Depends(get_api_key)])
def delete_member(member_id: int):
    try:
        removed = library.remove_member(member_id)
    except LibraryError as e:
        raise _http_error(e)
    if not removed:
        raise _not_found("Member", member_id)
    return {"message": "Member removed."}

@app.get("/members/{member_id}/loans", response_model=List[LoanModel])
def get_member_loans(member_id: int):
    """Loan history of a member, newest first."""
    try:
        loans = library.member_loans(member_id)
    except LibraryError as e:
        raise _http_error(e)
    return [LoanModel(**loan.to_dict()) for loan in loans]

# --- Books ---
@app.get("/books", response_model=List[BookModel])
def get_books(
    q: Optional[str] = Query(None, description="Search title or author"),
    genre: Optional[str] = Query(None, description="Filter by genre"),
    available: Optional[bool] = Query(None, description="Only books on the shelf (true) or on loan (false)"),
):
    """List books with optional search, genre and availability filters."""
    if genre:
        books = library.books_by_genre(genre)
    elif q:
        books = library.search_books(q)
    else:
        books = library.list_books()
    if q and genre:
        term = q.lower()
        books = [b for b in books if term in b.title.lower() or term in (b.author_name or "").lower()]
    if available is not None:
        books = [b for b in books if b.is_available == available]
    return [BookModel(**b.to_dict()) for b in books]

@app.get("/books/{book_id}", response_model=BookModel)
def get_book(book_id: int):
    book = library.get_book(book_id)
    if not book:
        raise _not_found("Book", book_id)
    return BookModel(**book.to_dict())

@app.post("/books", response_model=BookModel, status_code=201, dependencies=[Depends(get_api_key)])
def add_book(payload: BookCreateModel):
    try:
        book = library.add_book(
            payload.title, payload.author_id, genre=payload.genre, publication_year=payload.publication_year
        )
    except LibraryError as e:
        raise _http_error(e)
    return BookModel(**book.to_dict())

@app.put("/books/{book_id}", response_model=BookModel, dependencies=[Depends(get_api_key)])
def update_book(book_id: int, update: BookUpdateModel):
    """Update catalog fields. Availability is not accepted; it follows the loans."""
    try:
        book = library.update_book(
            book_id,
            title=update.title,
            author_id=update.author_id,
            genre=update.genre,
            publication_year=update.publication_year,
        )
    except LibraryError as e:
        raise _http_error(e)
    if not book:
        raise _not_found("Book", book_id)
    return BookModel(**book.to_dict())

@app.delete("/books/{book_id}", dependencies=[Depends(get_api_key)])
def delete_book(book_id: int):
    try:
        removed = library.remove_book(book_id)
    except LibraryError as e:
        raise _http_error(e)
    if not removed:
        raise _not_found("Book", book_id)
    return {"message": "Book removed."}

# --- Loans ---
@app.get("/loans", response_model=List[LoanModel])
def get_loans(open_only: bool = Query(False, description="Only loans not yet returned")):
    return [LoanModel(**loan.to_dict()) for loan in library.list_loans(open_only=open_only)]

@app.get("/loans/overdue", response_model=List[LoanModel])
def get_overdue_loans():
    return [LoanModel(**loan.to_dict()) for loan in library.overdue_loans()]

@app.get("/loans/{loan_id}", response_model=LoanModel)
def get_loan(loan_id: int):
    loan = library.get_loan(loan_id)
    if not loan:
        raise _not_found("Loan", loan_id)
    return LoanModel(**loan.to_dict())

@app.post("/loans", response_model=LoanModel, status_code=201, dependencies=[Depends(get_api_key)])
def register_loan(payload: LoanCreateModel):
    """Lend a book. 409 when the book is on loan or the member is not active."""
    try:
        loan = library.register_loan(payload.book_id, payload.member_id, payload.duration_days)
    except LibraryError as e:
        raise _http_error(e)
    return LoanModel(**loan.to_dict())

@app.post("/loans/{loan_id}/return", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def return_loan(loan_id: int):
    try:
        loan = library.return_loan(loan_id)
    except LibraryError as e:
        raise _http_error(e)
    return LoanModel(**loan.to_dict())

@app.post("/loans/{loan_id}/reopen", response_model=LoanModel, dependencies=[Depends(get_api_key)])
def reopen_loan(loan_id: int):
    """Undo a return, provided the book has not been lent again since."""
    try:
        loan = library.reopen_loan(loan_id)
    except LibraryError as e:
        raise _http_error(e)
    return LoanModel(**loan.to_dict())

# --- Views ---
@app.get("/views/active-loans", response_model=List[ActiveLoanModel])
def get_active_loans_view():
    """Open loans with title, member contact and lateness as of today."""
    return [ActiveLoanModel(**row.to_dict()) for row in library.active_loans()]

@app.get("/views/book-details", response_model=List[BookDetailModel])
def get_book_details_view():
    return [BookDetailModel(**row.to_dict()) for row in library.book_details()]

@app.get("/")
def root() -> Dict[str, str]:
    return {"name": settings.app_name, "version": settings.app_version, "docs": "/docs"}
