# tests/test_sa/conftest.py
import os
import sys
import pytest
from pathlib import Path
from datetime import datetime, UTC

# Add project root to Python path
project_root = str(Path(__file__).parent.parent.parent)
if project_root not in sys.path:
    sys.path.insert(0, project_root)

from sqlalchemy.orm import Session

from rbibli.config import LoanPolicy
from rbibli.sa.database import Database
from rbibli.sa.models import (
    Base, Genre, Publisher, Series, Author, Title, Location, Volume, BorrowerGroup, Borrower
)
from tests.test_sa.utils import FakeClock, make_image


@pytest.fixture(scope="session")
def test_db_path(tmp_path_factory):
    """Create a temporary directory for the test database."""
    test_dir = tmp_path_factory.mktemp("test_db")
    return str(test_dir / "test_rbibli.db")


@pytest.fixture(scope="session")
def database(test_db_path):
    """Create a test database instance"""
    db = Database(f"sqlite:///{test_db_path}")

    # Drop all tables and recreate schema
    Base.metadata.drop_all(db.engine)
    db.init_db()

    yield db

    db.engine.dispose()
    try:
        os.remove(test_db_path)
    except OSError:
        pass  # Ignore errors if file doesn't exist


@pytest.fixture(autouse=True)
def cleanup_db(db_session):
    """Clean up database tables before each test"""
    # Children first so no foreign key is left dangling
    for table in reversed(Base.metadata.sorted_tables):
        db_session.execute(table.delete())
    db_session.commit()
    yield
    db_session.rollback()


@pytest.fixture(scope="function")
def db_session(database):
    """Create a new database session for a test"""
    session: Session = database._SessionFactory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def policy():
    """Default policy for borrowers without a group: 21 days, 1 renewal"""
    return LoanPolicy(max_loan_days=21, max_renewals=1)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 10, 0, tzinfo=UTC))


@pytest.fixture
def sample_genre(db_session):
    """Create a sample genre for testing."""
    genre = Genre(name="Science Fiction")
    db_session.add(genre)
    db_session.commit()
    return genre


@pytest.fixture
def sample_publisher(db_session):
    publisher = Publisher(name="Ace Books", country="US", founded_year=1952)
    db_session.add(publisher)
    db_session.commit()
    return publisher


@pytest.fixture
def sample_series(db_session):
    series = Series(name="Dune Chronicles")
    db_session.add(series)
    db_session.commit()
    return series


@pytest.fixture
def sample_author(db_session):
    """Create a sample author for testing."""
    author = Author(name="Frank Herbert", nationality="American")
    db_session.add(author)
    db_session.commit()
    return author


@pytest.fixture
def sample_title(db_session):
    """Create a sample title without classification or volumes."""
    title = Title(name="Dune", isbn="9780441013593", pages=412, publication_year=1965, language="en")
    db_session.add(title)
    db_session.commit()
    return title


@pytest.fixture
def sample_location(db_session):
    """Create a room > bookshelf > shelf chain and return the shelf."""
    room = Location(name="Office", kind="room")
    db_session.add(room)
    db_session.flush()
    bookshelf = Location(name="Bookshelf A", kind="bookshelf", parent_id=room.id)
    db_session.add(bookshelf)
    db_session.flush()
    shelf = Location(name="Shelf 2", kind="shelf", parent_id=bookshelf.id)
    db_session.add(shelf)
    db_session.commit()
    return shelf


@pytest.fixture
def sample_volume(db_session, sample_title):
    """Create a loanable copy of the sample title."""
    volume = Volume(title_id=sample_title.id, copy_number=1, barcode="BC-0001", condition="good", loanable=True)
    db_session.add(volume)
    db_session.commit()
    return volume


@pytest.fixture
def sample_group(db_session):
    group = BorrowerGroup(name="Family", max_loan_days=60, max_renewals=3)
    db_session.add(group)
    db_session.commit()
    return group


@pytest.fixture
def sample_borrower(db_session):
    """Create a borrower without a group (default policy applies)."""
    borrower = Borrower(name="Alice Martin", email="alice@example.com")
    db_session.add(borrower)
    db_session.commit()
    return borrower


@pytest.fixture
def group_borrower(db_session, sample_group):
    borrower = Borrower(name="Bob Martin", group_id=sample_group.id)
    db_session.add(borrower)
    db_session.commit()
    return borrower


@pytest.fixture
def png_bytes():
    return make_image("PNG")
