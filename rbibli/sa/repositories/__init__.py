# rbibli/sa/repositories/__init__.py
from .base import BaseRepository
from .genre import GenreRepository
from .publisher import PublisherRepository
from .series import SeriesRepository
from .author import AuthorRepository
from .title import TitleRepository
from .volume import VolumeRepository
from .location import LocationRepository
from .borrower import BorrowerGroupRepository, BorrowerRepository
from .loan import LoanRepository

__all__ = [
    'BaseRepository',
    'GenreRepository',
    'PublisherRepository',
    'SeriesRepository',
    'AuthorRepository',
    'TitleRepository',
    'VolumeRepository',
    'LocationRepository',
    'BorrowerGroupRepository',
    'BorrowerRepository',
    'LoanRepository',
]
