# rbibli/sa/models/author.py
from datetime import date
from sqlalchemy import String, Date, Text, Index
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class Author(Base, TimestampMixin):
    __tablename__ = 'author'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    biography: Mapped[str | None] = mapped_column(Text, nullable=True)
    birth_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    death_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    nationality: Mapped[str | None] = mapped_column(String(100), nullable=True)
    website: Mapped[str | None] = mapped_column(String(1024), nullable=True)

    # Relationships
    title_authors = relationship('TitleAuthor', back_populates='author', cascade='all, delete-orphan')

    # Convenience relationship
    titles = relationship('Title', secondary='title_author', viewonly=True)

    __table_args__ = (
        # Search indexes
        Index('idx_author_name', 'name'),
    )
