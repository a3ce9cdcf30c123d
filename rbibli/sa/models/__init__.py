# rbibli/sa/models/__init__.py
from .base import Base, TimestampMixin, UTCDateTime, new_id, utcnow
from .genre import Genre
from .publisher import Publisher
from .series import Series
from .author import Author
from .title import Title, TitleAuthor, AuthorRole
from .location import Location, LocationKind
from .volume import Volume, VolumeCondition
from .borrower import Borrower, BorrowerGroup
from .loan import Loan, LoanState

__all__ = [
    'Base',
    'TimestampMixin',
    'UTCDateTime',
    'new_id',
    'utcnow',
    'Genre',
    'Publisher',
    'Series',
    'Author',
    'Title',
    'TitleAuthor',
    'AuthorRole',
    'Location',
    'LocationKind',
    'Volume',
    'VolumeCondition',
    'Borrower',
    'BorrowerGroup',
    'Loan',
    'LoanState'
]
