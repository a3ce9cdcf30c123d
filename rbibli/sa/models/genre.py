# rbibli/sa/models/genre.py
from sqlalchemy import String, Text
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class Genre(Base, TimestampMixin):
    __tablename__ = 'genre'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Convenience relationship
    titles = relationship('Title', viewonly=True)
