# rbibli/sa/repositories/location.py
import logging
from typing import Optional, List, Tuple, Iterator, Dict
from sqlalchemy import func

from rbibli.errors import ConflictError, NotFoundError, ValidationError
from rbibli.sa.integrity import detach_on_delete
from rbibli.sa.models import Location, LocationKind, Volume
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)

PATH_SEPARATOR = " > "


def normalize_kind(kind: str) -> str:
    try:
        return LocationKind(kind).value
    except ValueError:
        allowed = ", ".join(k.value for k in LocationKind)
        raise ValidationError(f"Invalid location kind '{kind}' (expected one of: {allowed})") from None


class LocationRepository(BaseRepository[Location]):
    """Repository for the room / bookshelf / shelf forest.

    Locations form a forest through ``parent_id``. Every walk over the tree
    is iterative and bounded by the number of stored locations, so a
    corrupted parent chain raises instead of looping.
    """

    model = Location
    entity_name = 'Location'

    def _walk_limit(self) -> int:
        return self.session.query(func.count(Location.id)).scalar()

    def iter_ancestors(self, location_id: Optional[str]) -> Iterator[Location]:
        """Yield the location and then each of its ancestors, up to the root.

        Raises:
            NotFoundError: If the location does not exist
            ConflictError: If the parent chain is longer than the table (a cycle)
        """
        limit = self._walk_limit()
        current = self.require(location_id)
        steps = 0
        while current is not None:
            steps += 1
            if steps > limit:
                raise ConflictError(f"Parent chain of location '{location_id}' does not terminate")
            yield current
            current = current.parent

    def iter_path(self, location_id: str) -> Iterator[str]:
        """Lazily yield the location names from the root down to the location"""
        yield from reversed([location.name for location in self.iter_ancestors(location_id)])

    def full_path(self, location_id: str, separator: str = PATH_SEPARATOR) -> str:
        """Get the display path of a location, e.g. "Office > Shelf A > Row 2".

        Args:
            location_id: The ID of the location
            separator: String placed between ancestor names

        Returns:
            Ancestor names joined root first
        """
        return separator.join(self.iter_path(location_id))

    def list_children(self, location_id: Optional[str] = None) -> List[Location]:
        """List the direct children of a location, or the roots when no id is given"""
        if location_id is not None:
            self.require(location_id)
        query = self.session.query(Location)
        if location_id is None:
            query = query.filter(Location.parent_id.is_(None))
        else:
            query = query.filter(Location.parent_id == location_id)
        return query.order_by(Location.name).all()

    def list_with_paths(self, separator: str = PATH_SEPARATOR) -> List[Tuple[Location, str, int, int, int]]:
        """List every location with its display data.

        Returns:
            List of (Location, full_path, level, child_count, volume_count)
            tuples ordered by full path. Roots are at level 0.
        """
        locations: Dict[str, Location] = {loc.id: loc for loc in self.session.query(Location).all()}
        child_counts = dict(
            self.session.query(Location.parent_id, func.count(Location.id))
            .filter(Location.parent_id.isnot(None))
            .group_by(Location.parent_id)
            .all()
        )
        volume_counts = dict(
            self.session.query(Volume.location_id, func.count(Volume.id))
            .filter(Volume.location_id.isnot(None))
            .group_by(Volume.location_id)
            .all()
        )

        rows = []
        for location in locations.values():
            names = []
            current = location
            while current is not None:
                if len(names) > len(locations):
                    raise ConflictError(f"Parent chain of location '{location.id}' does not terminate")
                names.append(current.name)
                current = locations.get(current.parent_id) if current.parent_id else None
            names.reverse()
            rows.append((
                location,
                separator.join(names),
                len(names) - 1,
                child_counts.get(location.id, 0),
                volume_counts.get(location.id, 0),
            ))
        rows.sort(key=lambda row: row[1])
        return rows

    def _check_parent(self, location_id: Optional[str], parent_id: Optional[str]) -> None:
        """Ensure the parent exists and that attaching to it creates no cycle.

        Walks from the proposed parent towards the root; meeting the location
        itself on the way means the move would close a loop.

        Raises:
            NotFoundError: If the parent does not exist
            ConflictError: If the location would become its own ancestor
        """
        if parent_id is None:
            return
        if self.get_by_id(parent_id) is None:
            raise NotFoundError('Location', parent_id)
        if location_id is None:
            return
        for ancestor in self.iter_ancestors(parent_id):
            if ancestor.id == location_id:
                logger.warning("Rejected move of location %s under %s: cycle", location_id, parent_id)
                raise ConflictError(f"Location '{location_id}' cannot be placed under its own descendant")

    def create_location(
        self,
        name: str,
        parent_id: Optional[str] = None,
        kind: str = LocationKind.ROOM.value,
        description: Optional[str] = None
    ) -> Location:
        """Create a new location.

        Args:
            name: Non-empty display name
            parent_id: Parent location, None for a root
            kind: room, bookshelf or shelf
            description: Optional free text

        Returns:
            The created Location object

        Raises:
            ValidationError: If the name is blank or the kind unknown
            NotFoundError: If the parent does not exist
        """
        name = require_text(name)
        kind = normalize_kind(kind)
        self._check_parent(None, parent_id)

        location = Location(name=name, parent_id=parent_id, kind=kind, description=description)
        self.session.add(location)
        self._commit(f"Could not create location '{name}'")
        return location

    def update_location(
        self,
        location_id: str,
        name: Optional[str] = None,
        description: Optional[str] = None,
        kind: Optional[str] = None
    ) -> Location:
        """Update a location's name, description and/or kind.

        Every value is checked before the location is touched.

        Raises:
            NotFoundError: If the location does not exist
            ValidationError: If the new name is blank or the kind unknown
        """
        location = self.require(location_id)
        fields = {}
        if name is not None:
            fields['name'] = require_text(name)
        if description is not None:
            fields['description'] = description
        if kind is not None:
            fields['kind'] = normalize_kind(kind)
        self._apply_updates(location, fields, ('name', 'description', 'kind'))
        self._commit(f"Could not update location '{location_id}'")
        return location

    def move_location(self, location_id: str, new_parent_id: Optional[str]) -> Location:
        """Re-parent a location; None makes it a root.

        Raises:
            NotFoundError: If the location or the new parent does not exist
            ConflictError: If the move would introduce a cycle
        """
        location = self.require(location_id)
        self._check_parent(location.id, new_parent_id)
        location.parent_id = new_parent_id
        self._commit(f"Could not move location '{location_id}'")
        logger.info("Moved location %s under %s", location_id, new_parent_id or "<root>")
        return location

    def _subtree_ids(self, location_id: str) -> List[str]:
        """Ids of the location and all its descendants, deepest first"""
        limit = self._walk_limit()
        order: List[str] = []
        stack = [location_id]
        while stack:
            current = stack.pop()
            order.append(current)
            if len(order) > limit:
                raise ConflictError(f"Subtree of location '{location_id}' does not terminate")
            stack.extend(
                child_id for (child_id,) in
                self.session.query(Location.id).filter(Location.parent_id == current).all()
            )
        order.reverse()
        return order

    def delete_location(self, location_id: str, cascade: bool = False) -> int:
        """Delete a location.

        Volumes stored at a deleted location keep existing with no location.

        Args:
            location_id: The ID of the location to delete
            cascade: Also delete every descendant location

        Returns:
            Number of volumes whose location was cleared

        Raises:
            NotFoundError: If the location does not exist
            ConflictError: If the location has children and cascade is False
        """
        location = self.require(location_id)
        children = self.list_children(location.id)
        if children and not cascade:
            raise ConflictError(
                f"Cannot delete location '{location.name}'",
                blocking=[child.name for child in children]
            )

        with self._rollback_on_error():
            doomed = self._subtree_ids(location.id)
            detached = detach_on_delete(self.session, Volume.location_id, *doomed)
            # Children before parents so no row ever points at a deleted parent
            for doomed_id in doomed:
                self.session.query(Location).filter(Location.id == doomed_id).delete(synchronize_session=False)
            self.session.commit()
        logger.info("Deleted %d location(s) under %s, detached %d volume(s)", len(doomed), location_id, detached)
        return detached
