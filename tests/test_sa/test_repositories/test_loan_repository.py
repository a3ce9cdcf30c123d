# tests/test_sa/test_repositories/test_loan_repository.py
import pytest
from datetime import datetime, timedelta, UTC

from rbibli.config import LoanPolicy
from rbibli.errors import (
    ConflictError, InvalidStateError, NotFoundError, NotLoanableError, PolicyExceededError
)
from rbibli.sa.repositories.loan import LoanRepository
from rbibli.sa.repositories.volume import VolumeRepository
from rbibli.sa.models import Loan, LoanState, Volume


@pytest.fixture
def loan_repo(db_session, policy, clock):
    """Fixture to create a LoanRepository with a controllable clock."""
    return LoanRepository(db_session, policy=policy, clock=clock)


@pytest.fixture
def second_volume(db_session, sample_title):
    volume = Volume(title_id=sample_title.id, copy_number=2, barcode="BC-0002")
    db_session.add(volume)
    db_session.commit()
    return volume


def test_checkout_default_policy(loan_repo, clock, sample_volume, sample_borrower):
    """Test that a borrower without a group gets a 21 day loan."""
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)

    assert loan.state == LoanState.ACTIVE
    assert loan.checkout_date == clock.now
    assert loan.due_date == clock.now + timedelta(days=21)
    assert loan.extension_count == 0
    assert loan.returned_date is None


def test_checkout_group_policy(loan_repo, clock, sample_volume, group_borrower):
    """Test that group members get the group's loan length."""
    loan = loan_repo.checkout(sample_volume.id, group_borrower.id)
    assert loan.due_date == clock.now + timedelta(days=60)


def test_checkout_by_barcode(loan_repo, sample_volume, sample_borrower):
    loan = loan_repo.checkout_by_barcode("BC-0001", sample_borrower.id)
    assert loan.volume_id == sample_volume.id
    with pytest.raises(NotFoundError):
        loan_repo.checkout_by_barcode("UNKNOWN", sample_borrower.id)


def test_checkout_missing_entities(loan_repo, sample_volume, sample_borrower):
    with pytest.raises(NotFoundError):
        loan_repo.checkout("missing", sample_borrower.id)
    with pytest.raises(NotFoundError):
        loan_repo.checkout(sample_volume.id, "missing")


def test_checkout_not_loanable(loan_repo, db_session, sample_volume, sample_borrower):
    """Test that damaged or withdrawn volumes cannot be lent."""
    VolumeRepository(db_session).update_volume(sample_volume.id, condition="damaged")
    with pytest.raises(NotLoanableError):
        loan_repo.checkout(sample_volume.id, sample_borrower.id)
    assert db_session.query(Loan).count() == 0


def test_checkout_already_on_loan(loan_repo, db_session, sample_volume, sample_borrower, group_borrower):
    """Test that a volume has at most one active loan."""
    loan_repo.checkout(sample_volume.id, sample_borrower.id)
    with pytest.raises(ConflictError):
        loan_repo.checkout(sample_volume.id, group_borrower.id)
    assert db_session.query(Loan).count() == 1


def test_concurrent_double_checkout(database, sample_volume, sample_borrower, group_borrower, policy):
    """Test that two sessions racing for one volume produce exactly one loan."""
    first_session = database.get_session()
    second_session = database.get_session()
    try:
        first = LoanRepository(first_session, policy=policy)
        second = LoanRepository(second_session, policy=policy)

        # Both pass their pre-checks before either commits
        assert first.get_active_loan_for_volume(sample_volume.id) is None
        assert second.get_active_loan_for_volume(sample_volume.id) is None
        second.get_active_loan_for_volume = lambda volume_id: None

        first.checkout(sample_volume.id, sample_borrower.id)
        with pytest.raises(ConflictError):
            second.checkout(sample_volume.id, group_borrower.id)

        assert first_session.query(Loan).filter(Loan.returned_date.is_(None)).count() == 1
    finally:
        first_session.close()
        second_session.close()


def test_renew(loan_repo, clock, sample_volume, sample_borrower):
    """Test that renewing restarts the loan window from now."""
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    clock.advance(days=10)

    renewed = loan_repo.renew(loan.id)

    assert renewed.extension_count == 1
    assert renewed.due_date == clock.now + timedelta(days=21)
    assert renewed.due_date >= renewed.checkout_date


def test_renew_at_limit(loan_repo, db_session, clock, sample_volume, sample_borrower):
    """Test that a renewal past the limit fails and leaves the loan unchanged."""
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    loan_repo.renew(loan.id)
    due_before = loan_repo.get_by_id(loan.id).due_date
    clock.advance(days=5)

    with pytest.raises(PolicyExceededError):
        loan_repo.renew(loan.id)

    db_session.expire_all()
    unchanged = loan_repo.get_by_id(loan.id)
    assert unchanged.extension_count == 1
    assert unchanged.due_date == due_before


def test_renew_group_limit(loan_repo, sample_volume, group_borrower):
    """Test that group members may renew up to the group's limit."""
    loan = loan_repo.checkout(sample_volume.id, group_borrower.id)
    for _ in range(3):
        loan_repo.renew(loan.id)
    assert loan_repo.get_by_id(loan.id).extension_count == 3
    with pytest.raises(PolicyExceededError):
        loan_repo.renew(loan.id)


def test_renew_with_zero_day_policy(db_session, clock, sample_volume, sample_borrower):
    """Test that the due date never falls before the checkout date."""
    repo = LoanRepository(db_session, policy=LoanPolicy(max_loan_days=0, max_renewals=2), clock=clock)
    loan = repo.checkout(sample_volume.id, sample_borrower.id)
    assert loan.due_date == loan.checkout_date

    clock.now = clock.now - timedelta(hours=3)
    renewed = repo.renew(loan.id)
    assert renewed.due_date == renewed.checkout_date


def test_renew_overdue_loan(loan_repo, clock, sample_volume, sample_borrower):
    """Test that an overdue loan can still be renewed."""
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    clock.advance(days=30)
    assert loan_repo.is_overdue(loan)

    renewed = loan_repo.renew(loan.id)
    assert not loan_repo.is_overdue(renewed)


def test_renew_returned_loan(loan_repo, sample_volume, sample_borrower):
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    loan_repo.return_loan(loan.id)
    with pytest.raises(InvalidStateError):
        loan_repo.renew(loan.id)


def test_renew_missing_loan(loan_repo):
    with pytest.raises(NotFoundError):
        loan_repo.renew("missing")


def test_return_loan(loan_repo, clock, sample_volume, sample_borrower):
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    clock.advance(days=3)

    returned = loan_repo.return_loan(loan.id)

    assert returned.state == LoanState.RETURNED
    assert returned.returned_date == clock.now
    assert not loan_repo.is_overdue(returned, clock.now + timedelta(days=100))


def test_return_twice(loan_repo, sample_volume, sample_borrower):
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    loan_repo.return_loan(loan.id)
    with pytest.raises(InvalidStateError):
        loan_repo.return_loan(loan.id)


def test_return_then_checkout_again(loan_repo, clock, sample_volume, sample_borrower, group_borrower):
    """Test that a returned volume can be lent again and history is kept."""
    first = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    clock.advance(days=7)
    loan_repo.return_loan(first.id)
    clock.advance(days=1)

    second = loan_repo.checkout(sample_volume.id, group_borrower.id)

    history = loan_repo.loan_history(sample_volume.id)
    assert [loan.id for loan in history] == [first.id, second.id]
    assert [loan.state for loan in history] == [LoanState.RETURNED, LoanState.ACTIVE]
    assert loan_repo.get_active_loan_for_volume(sample_volume.id).id == second.id


def test_is_overdue_boundary(loan_repo, clock, sample_volume, sample_borrower):
    """Test that a loan is overdue only once now is past the due date."""
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    assert not loan_repo.is_overdue(loan, loan.due_date)
    assert loan_repo.is_overdue(loan, loan.due_date + timedelta(seconds=1))


def test_list_active_loans(loan_repo, clock, sample_volume, second_volume, sample_borrower, group_borrower):
    """Test that active loans come newest first and can be filtered by borrower."""
    older = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    clock.advance(hours=1)
    newer = loan_repo.checkout(second_volume.id, group_borrower.id)

    assert [loan.id for loan in loan_repo.list_active_loans()] == [newer.id, older.id]
    assert [loan.id for loan in loan_repo.list_active_loans(borrower_id=sample_borrower.id)] == [older.id]

    loan_repo.return_loan(newer.id)
    assert [loan.id for loan in loan_repo.list_active_loans()] == [older.id]


def test_list_overdue_loans(loan_repo, clock, sample_volume, second_volume, sample_borrower, group_borrower):
    """Test that overdue loans come most overdue first."""
    short = loan_repo.checkout(sample_volume.id, sample_borrower.id)   # due in 21 days
    long = loan_repo.checkout(second_volume.id, group_borrower.id)     # due in 60 days

    clock.advance(days=22)
    assert [loan.id for loan in loan_repo.list_overdue_loans()] == [short.id]

    clock.advance(days=40)
    assert [loan.id for loan in loan_repo.list_overdue_loans()] == [short.id, long.id]
    assert [loan.id for loan in loan_repo.list_overdue_loans(borrower_id=group_borrower.id)] == [long.id]

    loan_repo.return_loan(short.id)
    assert [loan.id for loan in loan_repo.list_overdue_loans()] == [long.id]


def test_borrower_history(loan_repo, sample_volume, sample_borrower):
    loan = loan_repo.checkout(sample_volume.id, sample_borrower.id)
    loan_repo.return_loan(loan.id)
    assert [past.id for past in loan_repo.borrower_history(sample_borrower.id)] == [loan.id]
    with pytest.raises(NotFoundError):
        loan_repo.borrower_history("missing")


def test_loan_history_missing_volume(loan_repo):
    with pytest.raises(NotFoundError):
        loan_repo.loan_history("missing")
