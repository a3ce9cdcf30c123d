# rbibli/sa/__init__.py
from .database import Database
from .models import (
    Base, Genre, Publisher, Series, Author,
    Title, TitleAuthor, AuthorRole, Location, LocationKind,
    Volume, VolumeCondition, Borrower, BorrowerGroup, Loan, LoanState
)

__all__ = [
    'Database',
    'Base',
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
