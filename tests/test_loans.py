from datetime import date, timedelta

import pytest

from library_loans.config import settings
from library_loans.database import get_db_connection
from library_loans.errors import (
    BookNotFound,
    BookUnavailable,
    ConstraintViolation,
    LoanAlreadyReturned,
    LoanNotFound,
    LoanNotReturned,
    MemberNotActive,
    MemberNotFound,
    StorageBusy,
)
from library_loans.models import LoanStatus, MemberStatus


def _snapshot(lib):
    """Everything a failed operation must leave untouched."""
    return (
        [b.to_dict() for b in lib.list_books()],
        [loan.to_dict() for loan in lib.list_loans()],
    )


def test_register_loan_marks_book_unavailable(lib, catalog, clock):
    b1, m1 = catalog["b1"], catalog["m1"]

    loan = lib.register_loan(b1.id, m1.id, 14)

    assert loan.book_id == b1.id
    assert loan.member_id == m1.id
    assert loan.loan_date == clock()
    assert loan.due_date == clock() + timedelta(days=14)
    assert loan.return_date is None
    assert loan.status is LoanStatus.ACTIVE
    assert loan.days_overdue == 0
    assert lib.get_book(b1.id).is_available is False


def test_second_loan_on_same_book_fails(lib, catalog):
    b1, m1, m2 = catalog["b1"], catalog["m1"], catalog["m2"]
    lib.register_loan(b1.id, m1.id, 14)
    before = _snapshot(lib)

    with pytest.raises(BookUnavailable) as excinfo:
        lib.register_loan(b1.id, m2.id, 7)

    assert excinfo.value.book_id == b1.id
    assert _snapshot(lib) == before


@pytest.mark.parametrize("status", [MemberStatus.SUSPENDED, MemberStatus.INACTIVE])
def test_non_active_member_cannot_borrow(lib, catalog, status):
    b1, m1 = catalog["b1"], catalog["m1"]
    lib.set_member_status(m1.id, status)
    before = _snapshot(lib)

    with pytest.raises(MemberNotActive) as excinfo:
        lib.register_loan(b1.id, m1.id, 14)

    assert excinfo.value.status == status.value
    assert _snapshot(lib) == before
    assert lib.get_book(b1.id).is_available is True


def test_unavailable_book_is_reported_before_member_status(lib, catalog):
    b1, m1 = catalog["b1"], catalog["m1"]
    lib.register_loan(b1.id, m1.id, 14)

    with pytest.raises(BookUnavailable):
        lib.register_loan(b1.id, catalog["suspended"].id, 14)


def test_register_loan_unknown_book_or_member(lib, catalog):
    with pytest.raises(BookNotFound):
        lib.register_loan(999, catalog["m1"].id, 14)
    with pytest.raises(MemberNotFound):
        lib.register_loan(catalog["b1"].id, 999, 14)
    assert lib.list_loans() == []


def test_negative_duration_is_rejected(lib, catalog):
    with pytest.raises(ConstraintViolation):
        lib.register_loan(catalog["b1"].id, catalog["m1"].id, -1)
    assert lib.get_book(catalog["b1"].id).is_available is True


def test_overlong_duration_is_rejected(lib, catalog):
    with pytest.raises(ConstraintViolation, match="too long"):
        lib.register_loan(catalog["b1"].id, catalog["m1"].id, settings.max_loan_days + 1)
    assert lib.get_book(catalog["b1"].id).is_available is True
    assert lib.list_loans() == []


def test_due_date_past_calendar_end_is_rejected(lib, catalog, monkeypatch):
    monkeypatch.setattr(settings, "max_loan_days", 10**8)

    with pytest.raises(ConstraintViolation, match="too long"):
        lib.register_loan(catalog["b1"].id, catalog["m1"].id, 10**7)
    assert lib.get_book(catalog["b1"].id).is_available is True
    assert lib.list_loans() == []


def test_zero_day_loan_is_due_today(lib, catalog, clock):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 0)
    assert loan.due_date == loan.loan_date == clock()


def test_return_on_time(lib, catalog, clock):
    b1, m1 = catalog["b1"], catalog["m1"]
    loan = lib.register_loan(b1.id, m1.id, 14)
    clock.advance(14)

    returned = lib.return_loan(loan.id)

    assert returned.return_date == clock()
    assert returned.status is LoanStatus.RETURNED
    assert returned.days_overdue == 0
    assert lib.get_book(b1.id).is_available is True


def test_return_after_due_date_is_overdue(lib, catalog, clock):
    b1, m1 = catalog["b1"], catalog["m1"]
    loan = lib.register_loan(b1.id, m1.id, 14)
    clock.advance(20)

    returned = lib.return_loan(loan.id)

    assert returned.return_date == clock()
    assert returned.status is LoanStatus.OVERDUE
    assert returned.days_overdue == 6
    assert lib.get_book(b1.id).is_available is True
    # the returned book can be lent again
    assert lib.register_loan(b1.id, catalog["m2"].id, 7).book_id == b1.id


def test_days_overdue_frozen_after_return(lib, catalog, clock):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 7)
    clock.advance(10)
    lib.return_loan(loan.id)
    clock.advance(100)

    assert lib.get_loan(loan.id).days_overdue == 3


def test_days_overdue_recomputed_on_read(lib, catalog, clock):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 7)
    assert lib.get_loan(loan.id).days_overdue == 0

    clock.advance(8)
    assert lib.get_loan(loan.id).days_overdue == 1
    clock.advance(2)
    assert lib.get_loan(loan.id).days_overdue == 3
    # status only changes on return
    assert lib.get_loan(loan.id).status is LoanStatus.ACTIVE


def test_return_unknown_loan(lib, catalog):
    with pytest.raises(LoanNotFound):
        lib.return_loan(12345)


def test_return_twice_is_an_error(lib, catalog, clock):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 14)
    lib.return_loan(loan.id)
    clock.advance(3)

    with pytest.raises(LoanAlreadyReturned):
        lib.return_loan(loan.id)

    # the first return stands
    assert lib.get_loan(loan.id).return_date == clock() - timedelta(days=3)
    assert lib.get_book(catalog["b1"].id).is_available is True


def test_return_dated_before_loan_is_rolled_back(lib, catalog, clock):
    b1 = catalog["b1"]
    loan = lib.register_loan(b1.id, catalog["m1"].id, 14)
    clock.advance(-2)

    with pytest.raises(ConstraintViolation):
        lib.return_loan(loan.id)

    assert lib.get_loan(loan.id).return_date is None
    assert lib.get_loan(loan.id).status is LoanStatus.ACTIVE
    assert lib.get_book(b1.id).is_available is False


def test_loan_operations_report_busy_database(lib, catalog, monkeypatch):
    b1 = catalog["b1"]
    loan = lib.register_loan(b1.id, catalog["m1"].id, 14)
    monkeypatch.setattr(settings, "database_timeout", 0.1)

    blocker = get_db_connection(lib.db_file)
    blocker.execute("BEGIN IMMEDIATE")
    try:
        with pytest.raises(StorageBusy):
            lib.register_loan(catalog["b2"].id, catalog["m2"].id, 7)
        with pytest.raises(StorageBusy):
            lib.return_loan(loan.id)
    finally:
        blocker.execute("ROLLBACK")
        blocker.close()

    assert lib.get_book(catalog["b2"].id).is_available is True
    assert lib.return_loan(loan.id).return_date is not None


def test_reopen_returned_loan(lib, catalog, clock):
    b1 = catalog["b1"]
    loan = lib.register_loan(b1.id, catalog["m1"].id, 14)
    lib.return_loan(loan.id)

    reopened = lib.reopen_loan(loan.id)

    assert reopened.return_date is None
    assert reopened.status is LoanStatus.ACTIVE
    assert reopened.due_date == loan.due_date
    assert lib.get_book(b1.id).is_available is False
    assert lib.availability_drift() == []


def test_reopen_requires_a_returned_loan(lib, catalog):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 14)
    with pytest.raises(LoanNotReturned):
        lib.reopen_loan(loan.id)
    with pytest.raises(LoanNotFound):
        lib.reopen_loan(999)


def test_reopen_refused_when_book_lent_again(lib, catalog):
    b1 = catalog["b1"]
    first = lib.register_loan(b1.id, catalog["m1"].id, 14)
    lib.return_loan(first.id)
    lib.register_loan(b1.id, catalog["m2"].id, 14)

    with pytest.raises(BookUnavailable):
        lib.reopen_loan(first.id)
    assert lib.get_loan(first.id).return_date is not None


def test_availability_matches_open_loans_through_lifecycle(lib, catalog, clock):
    b1, b2 = catalog["b1"], catalog["b2"]
    m1, m2 = catalog["m1"], catalog["m2"]

    def check():
        open_books = {loan.book_id for loan in lib.list_loans(open_only=True)}
        for book in lib.list_books():
            assert book.is_available == (book.id not in open_books)
        assert lib.availability_drift() == []

    check()
    l1 = lib.register_loan(b1.id, m1.id, 14)
    check()
    l2 = lib.register_loan(b2.id, m2.id, 3)
    check()
    clock.advance(5)
    lib.return_loan(l2.id)
    check()
    lib.reopen_loan(l2.id)
    check()
    lib.return_loan(l1.id)
    lib.return_loan(l2.id)
    check()


def test_availability_drift_detects_tampering(lib, catalog):
    b1 = catalog["b1"]
    conn = get_db_connection(lib.db_file)
    try:
        conn.execute("UPDATE books SET is_available = 0 WHERE id = ?", (b1.id,))
    finally:
        conn.close()

    assert lib.availability_drift() == [b1.id]


def test_out_of_step_flag_aborts_registration(lib, catalog):
    """A book marked available while an open loan exists cannot be lent twice."""
    b1 = catalog["b1"]
    lib.register_loan(b1.id, catalog["m1"].id, 14)
    conn = get_db_connection(lib.db_file)
    try:
        conn.execute("UPDATE books SET is_available = 1 WHERE id = ?", (b1.id,))
    finally:
        conn.close()

    with pytest.raises(ConstraintViolation):
        lib.register_loan(b1.id, catalog["m2"].id, 7)
    assert len(lib.list_loans(open_only=True)) == 1


def test_member_loans_history_newest_first(lib, catalog, clock):
    m1 = catalog["m1"]
    first = lib.register_loan(catalog["b1"].id, m1.id, 14)
    clock.advance(1)
    second = lib.register_loan(catalog["b2"].id, m1.id, 14)

    history = lib.member_loans(m1.id)

    assert [loan.id for loan in history] == [second.id, first.id]
    assert lib.member_loans(catalog["m2"].id) == []
    with pytest.raises(MemberNotFound):
        lib.member_loans(999)


def test_overdue_loans(lib, catalog, clock):
    late = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 2)
    lib.register_loan(catalog["b2"].id, catalog["m2"].id, 30)
    clock.advance(5)

    overdue = lib.overdue_loans()

    assert [loan.id for loan in overdue] == [late.id]
    assert overdue[0].days_overdue == 3


def test_loan_blocks_deleting_book_and_member(lib, catalog):
    b1, m1 = catalog["b1"], catalog["m1"]
    lib.register_loan(b1.id, m1.id, 14)

    with pytest.raises(ConstraintViolation):
        lib.remove_book(b1.id)
    with pytest.raises(ConstraintViolation):
        lib.remove_member(m1.id)


def test_statistics(lib, catalog, clock):
    lib.register_loan(catalog["b1"].id, catalog["m1"].id, 1)
    clock.advance(2)

    stats = lib.get_statistics()

    assert stats == {
        "total_books": 2,
        "available_books": 1,
        "total_authors": 1,
        "total_members": 3,
        "active_members": 2,
        "active_loans": 1,
        "overdue_loans": 1,
    }


def test_seed_loads_sample_data_once(lib):
    assert lib.seed() is True
    assert len(lib.list_books()) == 3
    assert len(lib.active_loans()) == 2
    assert lib.availability_drift() == []

    assert lib.seed() is False
    assert len(lib.list_books()) == 3


def test_loan_dates_use_injected_clock(lib, catalog):
    loan = lib.register_loan(catalog["b1"].id, catalog["m1"].id, 14)
    assert loan.loan_date == date(2024, 3, 1)
    assert loan.due_date == date(2024, 3, 15)
