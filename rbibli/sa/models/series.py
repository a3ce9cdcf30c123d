# rbibli/sa/models/series.py
from sqlalchemy import String, Text, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class Series(Base, TimestampMixin):
    __tablename__ = 'series'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(500), nullable=False)  # Match title name length
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Convenience relationship
    titles = relationship('Title', viewonly=True, order_by='Title.series_number')

    __table_args__ = (
        Index('idx_series_name', 'name'),
    )
