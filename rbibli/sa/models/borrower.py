# rbibli/sa/models/borrower.py
from sqlalchemy import Integer, String, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class BorrowerGroup(Base, TimestampMixin):
    """Named loan policy shared by its borrowers"""
    __tablename__ = 'borrower_group'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    max_loan_days: Mapped[int] = mapped_column(Integer, nullable=False)
    max_renewals: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Convenience relationship
    borrowers = relationship('Borrower', viewonly=True)

    __table_args__ = (
        CheckConstraint('max_loan_days >= 0', name='ck_borrower_group_max_loan_days'),
        CheckConstraint('max_renewals >= 0', name='ck_borrower_group_max_renewals'),
    )


class Borrower(Base, TimestampMixin):
    __tablename__ = 'borrower'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    zip: Mapped[str | None] = mapped_column(String(20), nullable=True)
    group_id: Mapped[str | None] = mapped_column(ForeignKey('borrower_group.id', ondelete='SET NULL'), nullable=True)

    # Relationships
    group = relationship('BorrowerGroup')

    # Convenience relationship
    loans = relationship('Loan', viewonly=True, order_by='Loan.checkout_date')

    __table_args__ = (
        Index('idx_borrower_name', 'name'),
        Index('idx_borrower_group_id', 'group_id'),
    )
