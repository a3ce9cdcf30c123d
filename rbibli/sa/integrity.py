# rbibli/sa/integrity.py
"""Deletion strategies for the two kinds of relation in the catalog.

Classification and location metadata is organizational: deleting it must
never take titles or volumes with it, so referencing rows are detached
(``detach_on_delete``). Ownership relations (title -> volume,
volume -> loan, borrower -> loan) either take their owned rows with them
or are refused outright when an active loan would be lost
(``cascade_or_reject``).

Both functions work inside the caller's transaction and never commit.
"""
import logging
from typing import Iterable, List
from sqlalchemy.orm import Query, Session
from sqlalchemy.orm.attributes import InstrumentedAttribute

from rbibli.errors import ConflictError

logger = logging.getLogger(__name__)


def detach_on_delete(session: Session, column: InstrumentedAttribute, *referenced_ids: str) -> int:
    """Set-null strategy: clear ``column`` on every row that references one of the ids.

    Args:
        session: Session holding the caller's transaction
        column: Nullable foreign key attribute, e.g. ``Title.genre_id``
        referenced_ids: Ids of the rows about to be deleted

    Returns:
        Number of referencing rows that were detached
    """
    if not referenced_ids:
        return 0
    model = column.class_
    detached = (
        session.query(model)
        .filter(column.in_(referenced_ids))
        .update({column: None}, synchronize_session=False)
    )
    if detached:
        logger.info("Detached %d %s row(s) from %s", detached, model.__tablename__, column.key)
    return detached


def cascade_or_reject(owner: str, blockers: Iterable[str], *owned: Query) -> int:
    """Ownership strategy: refuse when anything blocks, otherwise delete the owned rows.

    Args:
        owner: Human readable description of the row being deleted
        blockers: Descriptions of rows that forbid the deletion (e.g. volumes on loan)
        owned: Queries selecting owned rows, deleted in the given order

    Returns:
        Total number of owned rows deleted

    Raises:
        ConflictError: If any blocker exists; nothing is deleted in that case
    """
    blocking: List[str] = list(blockers)
    if blocking:
        logger.warning("Refusing to delete %s: %d blocker(s)", owner, len(blocking))
        raise ConflictError(f"Cannot delete {owner}", blocking=blocking)
    return sum(query.delete(synchronize_session=False) for query in owned)
