# rbibli/sa/models/location.py
from enum import Enum
from sqlalchemy import String, Text, ForeignKey, Index, CheckConstraint
from sqlalchemy.orm import relationship, Mapped, mapped_column
from .base import Base, TimestampMixin, new_id


class LocationKind(str, Enum):
    ROOM = "room"
    BOOKSHELF = "bookshelf"
    SHELF = "shelf"


class Location(Base, TimestampMixin):
    """A node in the storage forest. Roots have no parent."""
    __tablename__ = 'location'

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default=LocationKind.ROOM.value)
    parent_id: Mapped[str | None] = mapped_column(ForeignKey('location.id'), nullable=True)

    # Relationships
    parent = relationship('Location', remote_side='Location.id')

    # Convenience relationships
    children = relationship('Location', viewonly=True, order_by='Location.name')
    volumes = relationship('Volume', viewonly=True)

    __table_args__ = (
        CheckConstraint("kind IN ('room', 'bookshelf', 'shelf')", name='ck_location_kind'),
        Index('idx_location_parent_id', 'parent_id'),
        Index('idx_location_name', 'name'),
    )
