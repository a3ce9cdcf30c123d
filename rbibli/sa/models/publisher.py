# rbibli/sa/models/publisher.py
from sqlalchemy import Integer, String, Text, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class Publisher(Base, TimestampMixin):
    __tablename__ = 'publisher'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    website: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    country: Mapped[str | None] = mapped_column(String(100), nullable=True)
    founded_year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Convenience relationship
    titles = relationship('Title', viewonly=True)

    __table_args__ = (
        # Search index
        Index('idx_publisher_name', 'name'),
    )
