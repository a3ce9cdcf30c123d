# rbibli/sa/repositories/author.py
from typing import Optional, List, Tuple
from sqlalchemy import func, distinct
from rbibli.sa.models import Author, TitleAuthor
from .base import BaseRepository, require_text

AUTHOR_FIELDS = ('name', 'biography', 'birth_date', 'death_date', 'nationality', 'website')


class AuthorRepository(BaseRepository[Author]):
    model = Author
    entity_name = 'Author'

    def search_authors(self, query: str, limit: int = 20) -> List[Author]:
        """Search authors by name"""
        base_query = self.session.query(Author)
        if query:  # Only apply filter if query is not empty
            base_query = base_query.filter(Author.name.ilike(f"%{query}%"))
        return base_query.order_by(Author.name).limit(limit).all()

    def list_with_title_counts(self) -> List[Tuple[Author, int]]:
        """Get all authors with the number of distinct titles they worked on"""
        return (
            self.session.query(Author, func.count(distinct(TitleAuthor.title_id)))
            .outerjoin(TitleAuthor, TitleAuthor.author_id == Author.id)
            .group_by(Author.id)
            .order_by(Author.name)
            .all()
        )

    def create_author(self, name: str, **fields) -> Author:
        """Create an author. Only the name is required."""
        author = Author()
        self._apply_updates(author, {'name': require_text(name), **fields}, AUTHOR_FIELDS)
        self.session.add(author)
        self._commit(f"Could not create author '{name}'")
        return author

    def update_author(self, author_id: str, **fields) -> Author:
        author = self.require(author_id)
        if 'name' in fields:
            fields['name'] = require_text(fields['name'])
        self._apply_updates(author, fields, AUTHOR_FIELDS)
        self._commit(f"Could not update author '{author_id}'")
        return author

    def delete_author(self, author_id: str) -> None:
        """Delete an author; its title links go with it, the titles stay"""
        author = self.require(author_id)
        self.session.delete(author)
        self._commit(f"Could not delete author '{author_id}'")
