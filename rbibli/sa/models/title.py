# rbibli/sa/models/title.py
from enum import Enum
from sqlalchemy import String, Integer, Text, LargeBinary, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class AuthorRole(str, Enum):
    MAIN_AUTHOR = "main_author"
    CO_AUTHOR = "co_author"
    TRANSLATOR = "translator"
    ILLUSTRATOR = "illustrator"
    EDITOR = "editor"


_ROLE_VALUES = ", ".join(f"'{role.value}'" for role in AuthorRole)


class TitleAuthor(Base, TimestampMixin):
    """Association model for authors of a title, keyed by role"""
    __tablename__ = 'title_author'

    title_id: Mapped[str] = mapped_column(ForeignKey('title.id', ondelete='CASCADE'), primary_key=True)
    author_id: Mapped[str] = mapped_column(ForeignKey('author.id', ondelete='CASCADE'), primary_key=True)
    role: Mapped[str] = mapped_column(String(20), primary_key=True, default=AuthorRole.MAIN_AUTHOR.value)
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Relationships
    title = relationship('Title', back_populates='title_authors')
    author = relationship('Author', back_populates='title_authors')

    __table_args__ = (
        CheckConstraint(f"role IN ({_ROLE_VALUES})", name='ck_title_author_role'),
        CheckConstraint('display_order >= 1', name='ck_title_author_display_order'),
        Index('idx_title_author_author_id', 'author_id'),
    )


class Title(Base, TimestampMixin):
    __tablename__ = 'title'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    subtitle: Mapped[str | None] = mapped_column(String(500), nullable=True)
    isbn: Mapped[str | None] = mapped_column(String(20), nullable=True)
    pages: Mapped[int | None] = mapped_column(Integer, nullable=True)
    language: Mapped[str | None] = mapped_column(String(50), nullable=True)
    publication_year: Mapped[int | None] = mapped_column(Integer, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    dewey_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    # Classification, all set-null on delete
    genre_id: Mapped[str | None] = mapped_column(ForeignKey('genre.id', ondelete='SET NULL'), nullable=True)
    publisher_id: Mapped[str | None] = mapped_column(ForeignKey('publisher.id', ondelete='SET NULL'), nullable=True)
    series_id: Mapped[str | None] = mapped_column(ForeignKey('series.id', ondelete='SET NULL'), nullable=True)
    series_number: Mapped[str | None] = mapped_column(String(50), nullable=True)  # "1", "1.5", "Book 1" etc.

    # Cover image
    image_data: Mapped[bytes | None] = mapped_column(LargeBinary, nullable=True, deferred=True)
    image_mime_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    image_filename: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Relationships
    genre = relationship('Genre')
    publisher = relationship('Publisher')
    series = relationship('Series')
    title_authors = relationship(
        'TitleAuthor',
        back_populates='title',
        cascade='all, delete-orphan',
        order_by='TitleAuthor.display_order'
    )

    # Convenience relationships
    authors = relationship('Author', secondary='title_author', viewonly=True)
    volumes = relationship('Volume', viewonly=True, order_by='Volume.copy_number')

    __table_args__ = (
        # Search indexes
        Index('idx_title_name', 'name'),
        Index('idx_title_isbn', 'isbn'),
        Index('idx_title_genre_id', 'genre_id'),
        Index('idx_title_publisher_id', 'publisher_id'),
        Index('idx_title_series_id', 'series_id'),
    )
