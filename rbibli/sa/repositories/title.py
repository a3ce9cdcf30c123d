# rbibli/sa/repositories/title.py
import logging
import re
from difflib import SequenceMatcher
from enum import Enum
from typing import Optional, List, Tuple, Dict, Any, NamedTuple, Set
from sqlalchemy import func, or_, select
from sqlalchemy.orm import joinedload

from rbibli.errors import ConflictError, NotFoundError, ValidationError
from rbibli.sa.integrity import cascade_or_reject
from rbibli.sa.models import (
    Title, TitleAuthor, AuthorRole, Author, Genre, Publisher, Series, Volume, Loan
)
from rbibli.utils.image import CoverImage, prepare_cover
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)

TITLE_FIELDS = (
    'name', 'subtitle', 'isbn', 'pages', 'language', 'publication_year', 'summary',
    'dewey_code', 'genre_id', 'publisher_id', 'series_id', 'series_number'
)

# Foreign key field -> (model, entity name) used to validate references
CLASSIFICATION_REFERENCES = {
    'genre_id': (Genre, 'Genre'),
    'publisher_id': (Publisher, 'Publisher'),
    'series_id': (Series, 'Series'),
}


class DuplicateConfidence(str, Enum):
    HIGH = 'high'
    MEDIUM = 'medium'
    LOW = 'low'


class DuplicatePair(NamedTuple):
    first: Title
    second: Title
    score: float
    confidence: DuplicateConfidence
    reasons: List[str]


def clean_text(text: str) -> str:
    """Lowercase and drop punctuation and articles so near-identical names compare equal"""
    text = text.lower()
    text = re.sub(r'[^\w\s]', '', text)
    text = re.sub(r'\b(the|a|an)\b', '', text)
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_isbn(isbn: Optional[str]) -> str:
    return (isbn or '').replace('-', '').replace(' ', '')


def score_similarity(
    first: Title,
    second: Title,
    first_authors: Set[str] = frozenset(),
    second_authors: Set[str] = frozenset()
) -> Tuple[float, List[str]]:
    """Score how likely two titles describe the same book.

    A matching ISBN is definitive. Otherwise the cleaned names carry up to
    70 points, a close publication year and a shared author add to that,
    and names of very different length cost 20.

    Returns:
        (score between 0 and 100, human readable reasons)
    """
    first_isbn, second_isbn = normalize_isbn(first.isbn), normalize_isbn(second.isbn)
    if first_isbn and first_isbn == second_isbn:
        return 100.0, ["ISBN match"]

    reasons = []
    first_name, second_name = clean_text(first.name), clean_text(second.name)
    ratio = SequenceMatcher(None, first_name, second_name).ratio()
    score = ratio * 70.0
    if ratio > 0.85:
        reasons.append(f"Name similarity: {ratio:.0%}")
    if first_name == second_name:
        score = max(score, 70.0)
        reasons.append("Exact name match")

    longest = max(len(first_name), len(second_name))
    if longest:
        length_diff = abs(len(first_name) - len(second_name)) / longest
        if length_diff > 0.3:
            score -= 20.0
            reasons.append(f"Name length differs by {length_diff:.0%}")

    if first.publication_year is not None and second.publication_year is not None:
        year_diff = abs(first.publication_year - second.publication_year)
        if year_diff == 0:
            score += 15.0
            reasons.append("Same publication year")
        elif year_diff <= 2:
            score += 10.0
            reasons.append(f"Publication years {year_diff} apart")

    if first_authors & second_authors:
        score += 15.0
        reasons.append("Shared author")

    return min(max(score, 0.0), 100.0), reasons


class TitleRepository(BaseRepository[Title]):
    """Repository for titles, their author roles and cover images."""

    model = Title
    entity_name = 'Title'

    def get_title_with_details(self, title_id: str) -> Optional[Title]:
        """Get a title with its classification, authors and volumes loaded.

        Args:
            title_id: The ID of the title

        Returns:
            Title with loaded relationships or None if not found
        """
        return (
            self.session.query(Title)
            .filter(Title.id == title_id)
            .options(
                joinedload(Title.genre),
                joinedload(Title.publisher),
                joinedload(Title.series),
                joinedload(Title.title_authors).joinedload(TitleAuthor.author),
                joinedload(Title.volumes)
            )
            .first()
        )

    def list_titles(
        self,
        query: Optional[str] = None,
        genre_id: Optional[str] = None,
        publisher_id: Optional[str] = None,
        series_id: Optional[str] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Tuple[Title, int]]:
        """List titles with their number of volumes.

        Args:
            query: Case-insensitive match against name, subtitle or ISBN
            genre_id: Only titles in this genre
            publisher_id: Only titles from this publisher
            series_id: Only titles in this series
            limit: Maximum number of results to return
            offset: Number of records to skip

        Returns:
            List of (Title, volume_count) tuples ordered by name
        """
        base_query = (
            self.session.query(Title, func.count(Volume.id))
            .outerjoin(Volume, Volume.title_id == Title.id)
        )
        base_query = self._apply_filters(base_query, query, genre_id, publisher_id, series_id)
        return (
            base_query
            .group_by(Title.id)
            .order_by(Title.name)
            .offset(offset)
            .limit(limit)
            .all()
        )

    def count_titles(
        self,
        query: Optional[str] = None,
        genre_id: Optional[str] = None,
        publisher_id: Optional[str] = None,
        series_id: Optional[str] = None
    ) -> int:
        """Count titles matching the same filters as list_titles"""
        base_query = self._apply_filters(self.session.query(Title), query, genre_id, publisher_id, series_id)
        return base_query.count()

    def _apply_filters(self, base_query, query, genre_id, publisher_id, series_id):
        if query and query.strip():
            pattern = f"%{query.strip()}%"
            base_query = base_query.filter(
                or_(Title.name.ilike(pattern), Title.subtitle.ilike(pattern), Title.isbn.ilike(pattern))
            )
        if genre_id:
            base_query = base_query.filter(Title.genre_id == genre_id)
        if publisher_id:
            base_query = base_query.filter(Title.publisher_id == publisher_id)
        if series_id:
            base_query = base_query.filter(Title.series_id == series_id)
        return base_query

    def _validate_fields(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        """Check field names, values and classification references before any mutation"""
        unknown = set(fields) - set(TITLE_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown title field(s): {', '.join(sorted(unknown))}")
        if 'name' in fields:
            fields['name'] = require_text(fields['name'])
        for numeric in ('pages', 'publication_year'):
            value = fields.get(numeric)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, int):
                raise ValidationError(f"{numeric} must be an integer, got {value!r}")
            if numeric == 'pages' and value < 0:
                raise ValidationError(f"pages must be >= 0, got {value}")
        for field, (model, entity) in CLASSIFICATION_REFERENCES.items():
            ref_id = fields.get(field)
            if ref_id is not None and self.session.get(model, ref_id) is None:
                raise NotFoundError(entity, ref_id)
        return fields

    def create_title(self, name: str, **fields) -> Title:
        """Create a title. A title may exist without any volume (wishlist).

        Args:
            name: Non-empty title name
            fields: Any of subtitle, isbn, pages, language, publication_year, summary,
                    dewey_code, genre_id, publisher_id, series_id, series_number

        Returns:
            The created Title object

        Raises:
            ValidationError: If the name is blank or a field is unknown or malformed
            NotFoundError: If a referenced genre, publisher or series does not exist
        """
        fields = self._validate_fields({'name': name, **fields})
        title = Title(**fields)
        self.session.add(title)
        self._commit(f"Could not create title '{fields['name']}'")
        logger.info("Created title %s (%s)", title.id, title.name)
        return title

    def update_title(self, title_id: str, **fields) -> Title:
        """Update the given title fields. Passing None for a classification id clears it.

        Raises:
            NotFoundError: If the title or a referenced classification does not exist
            ValidationError: If a field is unknown or malformed
        """
        title = self.require(title_id)
        fields = self._validate_fields(dict(fields))
        self._apply_updates(title, fields, TITLE_FIELDS)
        self._commit(f"Could not update title '{title_id}'")
        return title

    def assign_genre(self, title_id: str, genre_id: Optional[str]) -> Title:
        return self.update_title(title_id, genre_id=genre_id)

    def assign_publisher(self, title_id: str, publisher_id: Optional[str]) -> Title:
        return self.update_title(title_id, publisher_id=publisher_id)

    def assign_series(self, title_id: str, series_id: Optional[str], series_number: Optional[str] = None) -> Title:
        fields = {'series_id': series_id}
        if series_id is None or series_number is not None:
            fields['series_number'] = series_number
        return self.update_title(title_id, **fields)

    def list_authors(self, title_id: str) -> List[TitleAuthor]:
        """Get the author links of a title in display order"""
        self.require(title_id)
        return (
            self.session.query(TitleAuthor)
            .options(joinedload(TitleAuthor.author))
            .filter(TitleAuthor.title_id == title_id)
            .order_by(TitleAuthor.display_order, TitleAuthor.role)
            .all()
        )

    def add_author(
        self,
        title_id: str,
        author_id: str,
        role: str = AuthorRole.MAIN_AUTHOR.value,
        display_order: int = 1
    ) -> TitleAuthor:
        """Attach an author to a title in the given role.

        Args:
            title_id: The title
            author_id: The author
            role: One of main_author, co_author, translator, illustrator, editor
            display_order: Position in author listings, starting at 1

        Returns:
            The created TitleAuthor link

        Raises:
            NotFoundError: If the title or author does not exist
            ValidationError: If the role or display order is invalid
            ConflictError: If the author already has this role on the title
        """
        try:
            role = AuthorRole(role).value
        except ValueError:
            raise ValidationError(f"Invalid author role '{role}'") from None
        if isinstance(display_order, bool) or not isinstance(display_order, int) or display_order < 1:
            raise ValidationError(f"display_order must be an integer >= 1, got {display_order!r}")
        self.require(title_id)
        if self.session.get(Author, author_id) is None:
            raise NotFoundError('Author', author_id)
        if self.session.get(TitleAuthor, (title_id, author_id, role)) is not None:
            raise ConflictError(f"Author '{author_id}' is already {role} of title '{title_id}'")

        link = TitleAuthor(title_id=title_id, author_id=author_id, role=role, display_order=display_order)
        self.session.add(link)
        self._commit(f"Author '{author_id}' is already {role} of title '{title_id}'")
        return link

    def remove_author(self, title_id: str, author_id: str, role: Optional[str] = None) -> int:
        """Detach an author from a title, in one role or in all roles.

        Returns:
            Number of links removed

        Raises:
            NotFoundError: If no matching link exists
        """
        query = self.session.query(TitleAuthor).filter(
            TitleAuthor.title_id == title_id,
            TitleAuthor.author_id == author_id
        )
        if role is not None:
            query = query.filter(TitleAuthor.role == role)
        links = query.all()
        if not links:
            raise NotFoundError('TitleAuthor', f"{title_id}/{author_id}")
        for link in links:
            self.session.delete(link)
        self._commit(f"Could not remove author '{author_id}' from title '{title_id}'")
        return len(links)

    def set_cover(self, title_id: str, image_data: bytes, filename: Optional[str] = None, resize: bool = False) -> Title:
        """Validate and store a cover image on a title.

        Raises:
            NotFoundError: If the title does not exist
            ValidationError: If the image is empty, too large or not a supported format
        """
        title = self.require(title_id)
        cover = prepare_cover(image_data, filename=filename, resize=resize)
        title.image_data = cover.data
        title.image_mime_type = cover.mime_type
        title.image_filename = cover.filename
        self._commit(f"Could not store cover for title '{title_id}'")
        return title

    def get_cover(self, title_id: str) -> Optional[CoverImage]:
        """Get the stored cover of a title, or None if it has none"""
        title = self.require(title_id)
        if title.image_data is None or title.image_mime_type is None:
            return None
        return CoverImage(data=title.image_data, mime_type=title.image_mime_type, filename=title.image_filename)

    def clear_cover(self, title_id: str) -> Title:
        title = self.require(title_id)
        title.image_data = None
        title.image_mime_type = None
        title.image_filename = None
        self._commit(f"Could not clear cover for title '{title_id}'")
        return title

    def delete_title(self, title_id: str) -> int:
        """Delete a title together with its volumes and their closed loans.

        Args:
            title_id: The ID of the title to delete

        Returns:
            Number of volumes deleted with the title

        Raises:
            NotFoundError: If the title does not exist
            ConflictError: If any volume of the title is on loan; `blocking` lists their barcodes
        """
        title = self.require(title_id)
        on_loan = (
            self.session.query(Volume)
            .join(Loan, Loan.volume_id == Volume.id)
            .filter(Volume.title_id == title.id, Loan.returned_date.is_(None))
            .order_by(Volume.barcode)
            .all()
        )
        volume_ids = select(Volume.id).where(Volume.title_id == title.id)
        volumes_deleted = self.session.query(Volume).filter(Volume.title_id == title.id).count()

        with self._rollback_on_error():
            cascade_or_reject(
                f"title '{title.name}'",
                (volume.barcode for volume in on_loan),
                self.session.query(Loan).filter(Loan.volume_id.in_(volume_ids)),
                self.session.query(Volume).filter(Volume.title_id == title.id),
            )
            self.session.delete(title)
            self.session.commit()
        logger.info("Deleted title %s with %d volume(s)", title_id, volumes_deleted)
        return volumes_deleted

    def merge_titles(self, primary_id: str, secondary_id: str) -> Title:
        """Merge a duplicate title into another.

        Volumes of the secondary title are renumbered after the primary's copies
        and moved over, author links the primary lacks are copied, then the
        secondary title is deleted.

        Args:
            primary_id: Title that survives
            secondary_id: Duplicate title to fold into the primary

        Returns:
            The primary Title object

        Raises:
            NotFoundError: If either title does not exist
            ConflictError: If both ids name the same title
        """
        primary = self.require(primary_id)
        secondary = self.require(secondary_id)
        if primary.id == secondary.id:
            raise ConflictError("Cannot merge a title into itself")

        with self._rollback_on_error():
            next_copy = (
                self.session.query(func.coalesce(func.max(Volume.copy_number), 0))
                .filter(Volume.title_id == primary.id)
                .scalar()
            ) + 1
            moved = (
                self.session.query(Volume)
                .filter(Volume.title_id == secondary.id)
                .order_by(Volume.copy_number)
                .all()
            )
            for volume in moved:
                volume.title_id = primary.id
                volume.copy_number = next_copy
                next_copy += 1

            existing = {(link.author_id, link.role) for link in primary.title_authors}
            for link in secondary.title_authors:
                if (link.author_id, link.role) not in existing:
                    self.session.add(TitleAuthor(
                        title_id=primary.id,
                        author_id=link.author_id,
                        role=link.role,
                        display_order=link.display_order
                    ))
            self.session.flush()
            self.session.delete(secondary)
            self.session.commit()
        logger.info("Merged title %s into %s (%d volume(s) moved)", secondary_id, primary_id, len(moved))
        return primary

    def detect_duplicates(self, min_score: float = 50.0) -> List[DuplicatePair]:
        """Find pairs of titles that probably describe the same book.

        Every pair of titles is scored with score_similarity, so this is
        quadratic in the size of the catalog. Pairs feed merge_titles.

        Args:
            min_score: Lowest score reported, clamped to 0-100

        Returns:
            List of DuplicatePair ordered by descending score. Scores of 90
            and above are high confidence, 70 and above medium, the rest low.
        """
        min_score = min(max(min_score, 0.0), 100.0)
        titles = self.session.query(Title).order_by(Title.name, Title.id).all()
        authors: Dict[str, Set[str]] = {}
        for title_id, author_id in self.session.query(TitleAuthor.title_id, TitleAuthor.author_id):
            authors.setdefault(title_id, set()).add(author_id)

        pairs = []
        for index, first in enumerate(titles):
            for second in titles[index + 1:]:
                score, reasons = score_similarity(
                    first, second, authors.get(first.id, set()), authors.get(second.id, set())
                )
                if score < min_score:
                    continue
                if score >= 90.0:
                    confidence = DuplicateConfidence.HIGH
                elif score >= 70.0:
                    confidence = DuplicateConfidence.MEDIUM
                else:
                    confidence = DuplicateConfidence.LOW
                pairs.append(DuplicatePair(first, second, score, confidence, reasons))

        pairs.sort(key=lambda pair: pair.score, reverse=True)
        logger.info("Compared %d titles, found %d likely duplicate pair(s)", len(titles), len(pairs))
        return pairs
