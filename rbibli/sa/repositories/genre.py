# rbibli/sa/repositories/genre.py
import logging
from typing import List, Optional, Tuple
from sqlalchemy import func
from rbibli.errors import ConflictError
from rbibli.sa.integrity import detach_on_delete
from rbibli.sa.models import Genre, Title
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)


class GenreRepository(BaseRepository[Genre]):
    """Repository for managing Genre entities."""

    model = Genre
    entity_name = 'Genre'

    def get_by_name(self, name: str) -> Optional[Genre]:
        """Get a genre by its name.

        Args:
            name: The name of the genre to retrieve

        Returns:
            The Genre object if found, None otherwise
        """
        return self.session.query(Genre).filter(Genre.name == name).first()

    def search_genres(self, query: str, limit: int = 20) -> List[Genre]:
        """Search for genres by name.

        Args:
            query: The search query string
            limit: Maximum number of results to return (default: 20)

        Returns:
            List of matching Genre objects
        """
        base_query = self.session.query(Genre)
        if query:
            base_query = base_query.filter(Genre.name.ilike(f"%{query}%"))
        return base_query.order_by(Genre.name).limit(limit).all()

    def list_with_title_counts(self) -> List[Tuple[Genre, int]]:
        """Get all genres with the number of titles classified under each.

        Returns:
            List of (Genre, title_count) tuples ordered by genre name
        """
        return (
            self.session.query(Genre, func.count(Title.id))
            .outerjoin(Title, Title.genre_id == Genre.id)
            .group_by(Genre.id)
            .order_by(Genre.name)
            .all()
        )

    def create_genre(self, name: str, description: Optional[str] = None) -> Genre:
        """Create a new genre.

        Args:
            name: Unique, non-empty genre name
            description: Optional free text

        Returns:
            The created Genre object

        Raises:
            ValidationError: If the name is blank
            ConflictError: If a genre with the given name already exists
        """
        name = require_text(name)
        if self.get_by_name(name):
            raise ConflictError(f"Genre with name '{name}' already exists")

        genre = Genre(name=name, description=description)
        self.session.add(genre)
        self._commit(f"Genre with name '{name}' already exists")
        return genre

    def update_genre(self, genre_id: str, name: Optional[str] = None, description: Optional[str] = None) -> Genre:
        """Update a genre's name and/or description.

        Raises:
            NotFoundError: If the genre does not exist
            ValidationError: If the new name is blank
            ConflictError: If the new name is taken by another genre
        """
        genre = self.require(genre_id)
        if name is not None:
            name = require_text(name)
            existing = self.get_by_name(name)
            if existing and existing.id != genre.id:
                raise ConflictError(f"Genre with name '{name}' already exists")
            genre.name = name
        if description is not None:
            genre.description = description
        self._commit(f"Genre with name '{name}' already exists")
        return genre

    def delete_genre(self, genre_id: str) -> int:
        """Delete a genre, detaching it from every title that references it.

        Args:
            genre_id: The ID of the genre to delete

        Returns:
            Number of titles whose genre was cleared

        Raises:
            NotFoundError: If the genre does not exist
        """
        genre = self.require(genre_id)
        with self._rollback_on_error():
            detached = detach_on_delete(self.session, Title.genre_id, genre.id)
            self.session.delete(genre)
            self.session.commit()
        logger.info("Deleted genre %s, detached %d title(s)", genre_id, detached)
        return detached

    def merge_genres(self, source_id: str, target_id: str) -> Genre:
        """Merge one genre into another.

        Every title classified under the source genre is moved to the target
        genre, then the source genre is deleted.

        Args:
            source_id: ID of the genre to merge from
            target_id: ID of the genre to merge into

        Returns:
            The target Genre object

        Raises:
            NotFoundError: If either genre does not exist
            ConflictError: If source and target are the same genre
        """
        source = self.require(source_id)
        target = self.require(target_id)
        if source.id == target.id:
            raise ConflictError("Cannot merge a genre into itself")

        with self._rollback_on_error():
            moved = (
                self.session.query(Title)
                .filter(Title.genre_id == source.id)
                .update({Title.genre_id: target.id}, synchronize_session=False)
            )
            self.session.delete(source)
            self.session.commit()
        logger.info("Merged genre %s into %s (%d title(s) moved)", source_id, target_id, moved)
        return target
