import os
import tempfile
from datetime import date, timedelta

# Point the default database at a throwaway file before anything imports the
# package, so module-level instances (api.library) never touch ./library.db.
os.environ.setdefault("LIBRARY_DB_FILE", os.path.join(tempfile.gettempdir(), f"library_loans_test_{os.getpid()}.db"))

import pytest

from library_loans.library import Library


class FakeClock:
    """Callable stand-in for ``date.today`` that tests can move forward."""

    def __init__(self, start: date) -> None:
        self.current = start

    def __call__(self) -> date:
        return self.current

    def advance(self, days: int) -> date:
        self.current += timedelta(days=days)
        return self.current


@pytest.fixture
def clock():
    return FakeClock(date(2024, 3, 1))


@pytest.fixture
def lib(tmp_path, request, clock):
    # Create a unique database file for each test
    db_file = str(tmp_path / f"test_{request.node.name}.db")
    lib = Library(db_file=db_file, today=clock)
    yield lib
    lib.close()


@pytest.fixture
def catalog(lib):
    """One author, two books and three members (two active, one suspended)."""
    from library_loans.models import MemberStatus

    author = lib.add_author("George Orwell", nationality="British")
    b1 = lib.add_book("1984", author.id, genre="Dystopian", publication_year=1949)
    b2 = lib.add_book("Animal Farm", author.id, genre="Satire", publication_year=1945)
    m1 = lib.add_member("Ricardo Fiorini", "ricardo@usf.edu.br", phone="19999999999")
    m2 = lib.add_member("Aluno Exemplo", "aluno@teste.com")
    m3 = lib.add_member("Suspended Reader", "suspended@example.com")
    lib.set_member_status(m3.id, MemberStatus.SUSPENDED)
    return {"author": author, "b1": b1, "b2": b2, "m1": m1, "m2": m2, "suspended": m3}
