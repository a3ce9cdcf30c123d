# rbibli/sa/repositories/series.py
import logging
from typing import Optional, List, Tuple
from sqlalchemy import func
from sqlalchemy.orm import joinedload
from rbibli.sa.integrity import detach_on_delete
from rbibli.sa.models import Series, Title
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)


class SeriesRepository(BaseRepository[Series]):
    model = Series
    entity_name = 'Series'

    def search_series(self, query: str, limit: int = 20) -> List[Series]:
        """Search for series whose names match the given query (case-insensitive).

        Args:
            query: Substring to look for in series names
            limit: Maximum number of results to return

        Returns:
            List of matching Series objects ordered by name
        """
        return (
            self.session.query(Series)
            .filter(Series.name.ilike(f"%{query}%"))
            .order_by(Series.name)
            .limit(limit)
            .all()
        )

    def get_series_with_titles(self, series_id: str) -> Optional[Series]:
        """Get a series along with its titles in one round trip.

        Args:
            series_id: The ID of the series

        Returns:
            Series with titles loaded or None if not found
        """
        return (
            self.session.query(Series)
            .options(joinedload(Series.titles))
            .filter(Series.id == series_id)
            .first()
        )

    def list_with_title_counts(self) -> List[Tuple[Series, int]]:
        """Get all series with the number of titles in each.

        Returns:
            List of (Series, title_count) tuples ordered by series name
        """
        return (
            self.session.query(Series, func.count(Title.id))
            .outerjoin(Title, Title.series_id == Series.id)
            .group_by(Series.id)
            .order_by(Series.name)
            .all()
        )

    def create_series(self, name: str, description: Optional[str] = None) -> Series:
        """Create a new series. Names need not be unique.

        Args:
            name: Non-empty series name
            description: Optional free text

        Returns:
            The created Series object

        Raises:
            ValidationError: If the name is blank
        """
        series = Series(name=require_text(name), description=description)
        self.session.add(series)
        self._commit(f"Could not create series '{name}'")
        return series

    def update_series(self, series_id: str, name: Optional[str] = None, description: Optional[str] = None) -> Series:
        """Update a series' name and/or description.

        Raises:
            NotFoundError: If the series does not exist
            ValidationError: If the new name is blank
        """
        series = self.require(series_id)
        if name is not None:
            series.name = require_text(name)
        if description is not None:
            series.description = description
        self._commit(f"Could not update series '{series_id}'")
        return series

    def delete_series(self, series_id: str) -> int:
        """Delete a series. Its titles stay in the catalog with series_id cleared.

        Args:
            series_id: The ID of the series to delete

        Returns:
            Number of titles detached from the series

        Raises:
            NotFoundError: If the series does not exist
        """
        series = self.require(series_id)
        with self._rollback_on_error():
            detached = detach_on_delete(self.session, Title.series_id, series.id)
            self.session.delete(series)
            self.session.commit()
        logger.info("Deleted series %s, detached %d title(s)", series_id, detached)
        return detached
