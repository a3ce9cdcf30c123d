# rbibli/sa/repositories/loan.py
import logging
from datetime import datetime, timedelta
from typing import Optional, List, Callable
from sqlalchemy.orm import Session, joinedload

from rbibli.config import LoanPolicy
from rbibli.errors import ConflictError, InvalidStateError, NotFoundError, NotLoanableError, PolicyExceededError
from rbibli.sa.models import Loan, Volume, utcnow
from .base import BaseRepository
from .borrower import BorrowerRepository
from .volume import VolumeRepository

logger = logging.getLogger(__name__)


class LoanRepository(BaseRepository[Loan]):
    """Checkout, renewal and return of volumes.

    A loan is active while ``returned_date`` is NULL. Every transition is a
    single transaction: all checks run first, then the write, then one
    commit. A competing writer that slips in between is caught by the
    database (unique active loan per volume, or a conditional UPDATE that
    matches no row) and reported as ConflictError or InvalidStateError.

    Args:
        session: SQLAlchemy session for database operations
        policy: Loan policy for borrowers without a group (default: from config)
        clock: Callable returning the current aware UTC datetime
    """

    model = Loan
    entity_name = 'Loan'

    def __init__(
        self,
        session: Session,
        policy: Optional[LoanPolicy] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        super().__init__(session)
        self.borrowers = BorrowerRepository(session, policy=policy)
        self.volumes = VolumeRepository(session)
        self.clock = clock or utcnow

    def get_active_loan_for_volume(self, volume_id: str) -> Optional[Loan]:
        return self.volumes.get_active_loan(volume_id)

    def checkout(self, volume_id: str, borrower_id: str) -> Loan:
        """Lend a volume to a borrower.

        The due date is now plus the borrower's effective max_loan_days.

        Args:
            volume_id: The volume to lend
            borrower_id: The borrower taking it

        Returns:
            The new active Loan

        Raises:
            NotFoundError: If the volume or borrower does not exist
            NotLoanableError: If the volume is not loanable
            ConflictError: If the volume is already on loan
        """
        volume = self.volumes.require(volume_id)
        borrower = self.borrowers.require(borrower_id)
        if not volume.loanable:
            logger.warning("Refused checkout of non-loanable volume %s", volume.barcode)
            raise NotLoanableError(f"Volume '{volume.barcode}' is not loanable")
        if self.get_active_loan_for_volume(volume.id) is not None:
            logger.warning("Refused checkout of volume %s: already on loan", volume.barcode)
            raise ConflictError(f"Volume '{volume.barcode}' is already on loan")

        policy = self.borrowers.effective_policy(borrower)
        now = self.clock()
        loan = Loan(
            volume_id=volume.id,
            borrower_id=borrower.id,
            checkout_date=now,
            due_date=now + timedelta(days=policy.max_loan_days),
            extension_count=0
        )
        self.session.add(loan)
        self._commit(f"Volume '{volume.barcode}' is already on loan")
        logger.info("Checked out volume %s to borrower %s, due %s", volume.barcode, borrower.id, loan.due_date)
        return loan

    def checkout_by_barcode(self, barcode: str, borrower_id: str) -> Loan:
        """Lend the volume with the given barcode.

        Raises:
            NotFoundError: If no volume has this barcode or the borrower does not exist
        """
        volume = self.volumes.get_by_barcode(barcode)
        if volume is None:
            raise NotFoundError('Volume', barcode)
        return self.checkout(volume.id, borrower_id)

    def renew(self, loan_id: str) -> Loan:
        """Extend an active loan, overdue or not.

        The new due date is now plus the borrower's effective max_loan_days,
        never earlier than the checkout date.

        Args:
            loan_id: The loan to renew

        Returns:
            The renewed Loan

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan has been returned
            PolicyExceededError: If the renewal limit is reached
            ConflictError: If the loan changed concurrently
        """
        loan = self.require(loan_id)
        if not loan.is_active:
            raise InvalidStateError(f"Loan '{loan_id}' has been returned and cannot be renewed")

        policy = self.borrowers.effective_policy(loan.borrower)
        if loan.extension_count >= policy.max_renewals:
            logger.warning("Refused renewal of loan %s: %d of %d used",
                           loan_id, loan.extension_count, policy.max_renewals)
            raise PolicyExceededError(
                f"Loan '{loan_id}' has reached its renewal limit ({policy.max_renewals})"
            )

        due_date = max(self.clock() + timedelta(days=policy.max_loan_days), loan.checkout_date)
        extension_count = loan.extension_count
        with self._rollback_on_error():
            updated = (
                self.session.query(Loan)
                .filter(
                    Loan.id == loan.id,
                    Loan.extension_count == extension_count,
                    Loan.returned_date.is_(None)
                )
                .update(
                    {Loan.due_date: due_date, Loan.extension_count: extension_count + 1},
                    synchronize_session=False
                )
            )
            if not updated:
                raise ConflictError(f"Loan '{loan_id}' was modified concurrently")
            self.session.commit()
        logger.info("Renewed loan %s (%d/%d), due %s", loan_id, extension_count + 1, policy.max_renewals, due_date)
        return loan

    def return_loan(self, loan_id: str) -> Loan:
        """Close an active loan, making its volume available again.

        Raises:
            NotFoundError: If the loan does not exist
            InvalidStateError: If the loan has already been returned
        """
        loan = self.require(loan_id)
        if not loan.is_active:
            raise InvalidStateError(f"Loan '{loan_id}' has already been returned")

        now = self.clock()
        with self._rollback_on_error():
            updated = (
                self.session.query(Loan)
                .filter(Loan.id == loan.id, Loan.returned_date.is_(None))
                .update({Loan.returned_date: now}, synchronize_session=False)
            )
            if not updated:
                raise InvalidStateError(f"Loan '{loan_id}' has already been returned")
            self.session.commit()
        logger.info("Returned loan %s", loan_id)
        return loan

    def is_overdue(self, loan: Loan, now: Optional[datetime] = None) -> bool:
        return loan.is_overdue(now or self.clock())

    def list_active_loans(self, borrower_id: Optional[str] = None) -> List[Loan]:
        """Get active loans, newest checkout first.

        Args:
            borrower_id: Only list loans held by this borrower
        """
        query = (
            self.session.query(Loan)
            .options(joinedload(Loan.volume).joinedload(Volume.title), joinedload(Loan.borrower))
            .filter(Loan.returned_date.is_(None))
        )
        if borrower_id is not None:
            query = query.filter(Loan.borrower_id == borrower_id)
        return query.order_by(Loan.checkout_date.desc()).all()

    def list_overdue_loans(self, borrower_id: Optional[str] = None) -> List[Loan]:
        """Get active loans past their due date, most overdue first"""
        query = (
            self.session.query(Loan)
            .options(joinedload(Loan.volume).joinedload(Volume.title), joinedload(Loan.borrower))
            .filter(Loan.returned_date.is_(None), Loan.due_date < self.clock())
        )
        if borrower_id is not None:
            query = query.filter(Loan.borrower_id == borrower_id)
        return query.order_by(Loan.due_date.asc()).all()

    def loan_history(self, volume_id: str) -> List[Loan]:
        """Get every loan of a volume, active or returned, oldest first.

        Raises:
            NotFoundError: If the volume does not exist
        """
        self.volumes.require(volume_id)
        return (
            self.session.query(Loan)
            .options(joinedload(Loan.borrower))
            .filter(Loan.volume_id == volume_id)
            .order_by(Loan.checkout_date)
            .all()
        )

    def borrower_history(self, borrower_id: str) -> List[Loan]:
        self.borrowers.require(borrower_id)
        return (
            self.session.query(Loan)
            .filter(Loan.borrower_id == borrower_id)
            .order_by(Loan.checkout_date)
            .all()
        )
