# rbibli/sa/models/volume.py
from enum import Enum
from sqlalchemy import String, Integer, Boolean, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class VolumeCondition(str, Enum):
    EXCELLENT = "excellent"  # Like new
    GOOD = "good"            # Minor wear
    FAIR = "fair"            # Noticeable wear, readable
    POOR = "poor"            # Loose pages, markings
    DAMAGED = "damaged"      # Never loanable until re-enabled by hand


class Volume(Base, TimestampMixin):
    """A physical copy of a title"""
    __tablename__ = 'volume'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    title_id: Mapped[str] = mapped_column(ForeignKey('title.id'), nullable=False)
    copy_number: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    barcode: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)
    condition: Mapped[str] = mapped_column(String(20), nullable=False, default=VolumeCondition.EXCELLENT.value)
    loanable: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    location_id: Mapped[str | None] = mapped_column(ForeignKey('location.id', ondelete='SET NULL'), nullable=True)
    individual_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Relationships
    title = relationship('Title')
    location = relationship('Location')

    # Convenience relationship
    loans = relationship('Loan', viewonly=True, order_by='Loan.checkout_date')

    __table_args__ = (
        CheckConstraint(
            "condition IN ('excellent', 'good', 'fair', 'poor', 'damaged')",
            name='ck_volume_condition'
        ),
        Index('idx_volume_title_id', 'title_id'),
        Index('idx_volume_location_id', 'location_id'),
    )
