# rbibli/sa/models/loan.py
from datetime import datetime
from enum import Enum
from sqlalchemy import Integer, String, ForeignKey, Index, CheckConstraint, text
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, UTCDateTime, new_id, utcnow


class LoanState(str, Enum):
    ACTIVE = "active"
    RETURNED = "returned"


class Loan(Base, TimestampMixin):
    """A checkout of one volume by one borrower.

    State is derived from returned_date: NULL means active, anything else
    means returned. Overdue is never stored, see is_overdue().
    """
    __tablename__ = 'loan'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    volume_id: Mapped[str] = mapped_column(ForeignKey('volume.id'), nullable=False)
    borrower_id: Mapped[str] = mapped_column(ForeignKey('borrower.id'), nullable=False)
    checkout_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    due_date: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    extension_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    returned_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Relationships
    volume = relationship('Volume')
    borrower = relationship('Borrower')

    __table_args__ = (
        # At most one active loan per volume
        Index(
            'uix_loan_active_volume',
            'volume_id',
            unique=True,
            sqlite_where=text('returned_date IS NULL'),
            postgresql_where=text('returned_date IS NULL'),
        ),
        CheckConstraint('due_date >= checkout_date', name='ck_loan_due_after_checkout'),
        CheckConstraint('extension_count >= 0', name='ck_loan_extension_count'),
        Index('idx_loan_borrower_id', 'borrower_id'),
        Index('idx_loan_due_date', 'due_date'),
    )

    @property
    def state(self) -> LoanState:
        return LoanState.ACTIVE if self.returned_date is None else LoanState.RETURNED

    @property
    def is_active(self) -> bool:
        return self.returned_date is None

    def is_overdue(self, now: datetime | None = None) -> bool:
        """True iff the loan is active and now is past the due date"""
        if not self.is_active:
            return False
        return (now or utcnow()) > self.due_date
