# rbibli/sa/repositories/publisher.py
import logging
from typing import List, Optional, Tuple
from sqlalchemy import func
from rbibli.errors import ValidationError
from rbibli.sa.integrity import detach_on_delete
from rbibli.sa.models import Publisher, Title
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)

PUBLISHER_FIELDS = ('name', 'description', 'website', 'country', 'founded_year')


class PublisherRepository(BaseRepository[Publisher]):
    """Repository for managing Publisher entities."""

    model = Publisher
    entity_name = 'Publisher'

    def search_publishers(self, query: str, limit: int = 20) -> List[Publisher]:
        """Search publishers by name"""
        base_query = self.session.query(Publisher)
        if query:
            base_query = base_query.filter(Publisher.name.ilike(f"%{query}%"))
        return base_query.order_by(Publisher.name).limit(limit).all()

    def list_with_title_counts(self) -> List[Tuple[Publisher, int]]:
        """Get all publishers with their number of titles, ordered by name"""
        return (
            self.session.query(Publisher, func.count(Title.id))
            .outerjoin(Title, Title.publisher_id == Publisher.id)
            .group_by(Publisher.id)
            .order_by(Publisher.name)
            .all()
        )

    def _validate(self, fields: dict) -> dict:
        if 'name' in fields:
            fields['name'] = require_text(fields['name'])
        year = fields.get('founded_year')
        if year is not None and (isinstance(year, bool) or not isinstance(year, int)):
            raise ValidationError(f"founded_year must be an integer, got {year!r}")
        return fields

    def create_publisher(self, name: str, **fields) -> Publisher:
        """Create a new publisher.

        Args:
            name: Non-empty publisher name
            fields: Optional description, website, country, founded_year

        Returns:
            The created Publisher object

        Raises:
            ValidationError: If the name is blank or a field is unknown or malformed
        """
        fields = self._validate({'name': name, **fields})
        publisher = Publisher()
        self._apply_updates(publisher, fields, PUBLISHER_FIELDS)
        self.session.add(publisher)
        self._commit(f"Could not create publisher '{fields['name']}'")
        return publisher

    def update_publisher(self, publisher_id: str, **fields) -> Publisher:
        """Update the given publisher fields.

        Raises:
            NotFoundError: If the publisher does not exist
            ValidationError: If a field is unknown or malformed
        """
        publisher = self.require(publisher_id)
        fields = self._validate(dict(fields))
        self._apply_updates(publisher, fields, PUBLISHER_FIELDS)
        self._commit(f"Could not update publisher '{publisher_id}'")
        return publisher

    def delete_publisher(self, publisher_id: str) -> int:
        """Delete a publisher and clear it from referencing titles.

        Returns:
            Number of titles whose publisher was cleared
        """
        publisher = self.require(publisher_id)
        with self._rollback_on_error():
            detached = detach_on_delete(self.session, Title.publisher_id, publisher.id)
            self.session.delete(publisher)
            self.session.commit()
        logger.info("Deleted publisher %s, detached %d title(s)", publisher_id, detached)
        return detached
