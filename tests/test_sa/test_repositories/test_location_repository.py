# tests/test_sa/test_repositories/test_location_repository.py
import pytest

from rbibli.errors import ConflictError, NotFoundError, ValidationError
from rbibli.sa.repositories.location import LocationRepository
from rbibli.sa.models import Location, Volume


@pytest.fixture
def location_repo(db_session):
    """Fixture to create a LocationRepository instance."""
    return LocationRepository(db_session)


@pytest.fixture
def tree(location_repo):
    """Office > Bookshelf A > {Shelf 1, Shelf 2} and a separate Attic root."""
    office = location_repo.create_location("Office")
    bookshelf = location_repo.create_location("Bookshelf A", parent_id=office.id, kind="bookshelf")
    shelf_1 = location_repo.create_location("Shelf 1", parent_id=bookshelf.id, kind="shelf")
    shelf_2 = location_repo.create_location("Shelf 2", parent_id=bookshelf.id, kind="shelf")
    attic = location_repo.create_location("Attic")
    return {
        "office": office.id,
        "bookshelf": bookshelf.id,
        "shelf_1": shelf_1.id,
        "shelf_2": shelf_2.id,
        "attic": attic.id,
    }


def _snapshot(db_session):
    return sorted((loc.id, loc.parent_id) for loc in db_session.query(Location).all())


def test_create_location(location_repo):
    location = location_repo.create_location(" Living room ", description="Ground floor")
    assert location.name == "Living room"
    assert location.kind == "room"
    assert location.parent_id is None


def test_create_location_invalid(location_repo):
    with pytest.raises(ValidationError):
        location_repo.create_location("")
    with pytest.raises(ValidationError):
        location_repo.create_location("Box", kind="drawer")
    with pytest.raises(NotFoundError):
        location_repo.create_location("Shelf", parent_id="missing")


def test_full_path(location_repo, tree):
    """Test that the path lists ancestor names root first."""
    assert location_repo.full_path(tree["shelf_2"]) == "Office > Bookshelf A > Shelf 2"
    assert location_repo.full_path(tree["office"]) == "Office"
    assert location_repo.full_path(tree["shelf_1"], separator="/") == "Office/Bookshelf A/Shelf 1"
    assert list(location_repo.iter_path(tree["bookshelf"])) == ["Office", "Bookshelf A"]


def test_list_children(location_repo, tree):
    assert [loc.name for loc in location_repo.list_children()] == ["Attic", "Office"]
    assert [loc.name for loc in location_repo.list_children(tree["bookshelf"])] == ["Shelf 1", "Shelf 2"]
    assert location_repo.list_children(tree["shelf_1"]) == []


def test_list_with_paths(location_repo, db_session, tree, sample_title):
    """Test the listing with path, level, child and volume counts."""
    db_session.add(Volume(title_id=sample_title.id, copy_number=1, barcode="BC-1", location_id=tree["shelf_1"]))
    db_session.commit()

    rows = {path: (level, children, volumes) for _, path, level, children, volumes in location_repo.list_with_paths()}
    assert rows == {
        "Attic": (0, 0, 0),
        "Office": (0, 1, 0),
        "Office > Bookshelf A": (1, 2, 0),
        "Office > Bookshelf A > Shelf 1": (2, 0, 1),
        "Office > Bookshelf A > Shelf 2": (2, 0, 0),
    }


def test_update_location(location_repo, tree):
    updated = location_repo.update_location(tree["attic"], name="Loft", kind="room", description="Dusty")
    assert updated.name == "Loft"
    assert updated.description == "Dusty"


def test_failed_update_location_leaves_row_unchanged(location_repo, db_session, tree):
    """Test that a rejected update is not written by a later commit on the same session."""
    with pytest.raises(ValidationError):
        location_repo.update_location(tree["office"], name="Renamed", kind="drawer")
    location_repo.create_location("Garage")

    db_session.expire_all()
    office = db_session.get(Location, tree["office"])
    assert office.name == "Office"
    assert office.kind == "room"
    assert sorted(loc.name for loc in location_repo.list_children()) == ["Attic", "Garage", "Office"]


def test_move_location(location_repo, tree):
    location_repo.move_location(tree["bookshelf"], tree["attic"])
    assert location_repo.full_path(tree["shelf_1"]) == "Attic > Bookshelf A > Shelf 1"

    location_repo.move_location(tree["bookshelf"], None)
    assert location_repo.full_path(tree["shelf_1"]) == "Bookshelf A > Shelf 1"


@pytest.mark.parametrize("node,new_parent", [
    ("office", "office"),
    ("office", "bookshelf"),
    ("office", "shelf_2"),
    ("bookshelf", "shelf_1"),
])
def test_move_rejects_cycles(location_repo, db_session, tree, node, new_parent):
    """Test that a node can never be moved under itself or a descendant."""
    before = _snapshot(db_session)
    with pytest.raises(ConflictError):
        location_repo.move_location(tree[node], tree[new_parent])
    db_session.rollback()
    assert _snapshot(db_session) == before


def test_move_to_missing_parent(location_repo, tree):
    with pytest.raises(NotFoundError):
        location_repo.move_location(tree["office"], "missing")


def test_corrupted_chain_is_bounded(location_repo, db_session, tree):
    """Test that a cycle written behind the repository's back does not hang path walks."""
    db_session.query(Location).filter(Location.id == tree["office"]).update(
        {Location.parent_id: tree["shelf_1"]}, synchronize_session=False
    )
    db_session.commit()
    with pytest.raises(ConflictError):
        location_repo.full_path(tree["shelf_1"])


def test_delete_leaf_detaches_volumes(location_repo, db_session, tree, sample_title):
    db_session.add(Volume(title_id=sample_title.id, copy_number=1, barcode="BC-1", location_id=tree["shelf_1"]))
    db_session.commit()

    assert location_repo.delete_location(tree["shelf_1"]) == 1
    assert location_repo.get_by_id(tree["shelf_1"]) is None
    assert db_session.query(Volume).one().location_id is None


def test_delete_with_children_requires_cascade(location_repo, db_session, tree):
    """Test that a failed non-cascade delete leaves the tree unchanged."""
    before = _snapshot(db_session)

    with pytest.raises(ConflictError) as exc:
        location_repo.delete_location(tree["bookshelf"])

    assert exc.value.blocking == ["Shelf 1", "Shelf 2"]
    assert _snapshot(db_session) == before


def test_cascade_delete(location_repo, db_session, tree, sample_title):
    """Test that a cascading delete removes the subtree and keeps its volumes."""
    db_session.add_all([
        Volume(title_id=sample_title.id, copy_number=1, barcode="BC-1", location_id=tree["shelf_1"]),
        Volume(title_id=sample_title.id, copy_number=2, barcode="BC-2", location_id=tree["bookshelf"]),
        Volume(title_id=sample_title.id, copy_number=3, barcode="BC-3", location_id=tree["attic"]),
    ])
    db_session.commit()

    detached = location_repo.delete_location(tree["office"], cascade=True)

    assert detached == 2
    assert [loc.name for loc in db_session.query(Location).all()] == ["Attic"]
    assert db_session.query(Volume).count() == 3
    assert db_session.query(Volume).filter_by(barcode="BC-3").one().location_id == tree["attic"]
