# rbibli/sa/repositories/borrower.py
import logging
from typing import Optional, List, Tuple
from sqlalchemy import func, and_

from rbibli.config import LoanPolicy, default_loan_policy, validate_policy_values
from rbibli.errors import ConflictError, NotFoundError
from rbibli.sa.integrity import cascade_or_reject, detach_on_delete
from rbibli.sa.models import Borrower, BorrowerGroup, Loan
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)

BORROWER_FIELDS = ('name', 'email', 'phone', 'address', 'city', 'zip', 'group_id')


class BorrowerGroupRepository(BaseRepository[BorrowerGroup]):
    """Repository for borrower groups and the loan policy they carry."""

    model = BorrowerGroup
    entity_name = 'BorrowerGroup'

    def get_by_name(self, name: str) -> Optional[BorrowerGroup]:
        return self.session.query(BorrowerGroup).filter(BorrowerGroup.name == name).first()

    def list_groups(self) -> List[Tuple[BorrowerGroup, int]]:
        """Get all groups with their number of members, ordered by name"""
        return (
            self.session.query(BorrowerGroup, func.count(Borrower.id))
            .outerjoin(Borrower, Borrower.group_id == BorrowerGroup.id)
            .group_by(BorrowerGroup.id)
            .order_by(BorrowerGroup.name)
            .all()
        )

    def create_group(
        self,
        name: str,
        max_loan_days: int,
        max_renewals: int,
        description: Optional[str] = None
    ) -> BorrowerGroup:
        """Create a borrower group.

        Args:
            name: Unique, non-empty group name
            max_loan_days: Length of a loan for members, in days
            max_renewals: Number of renewals allowed per loan
            description: Optional free text

        Returns:
            The created BorrowerGroup object

        Raises:
            ValidationError: If the name is blank or a policy value is not an int >= 0
            ConflictError: If a group with the given name already exists
        """
        name = require_text(name)
        validate_policy_values(max_loan_days, max_renewals)
        if self.get_by_name(name):
            raise ConflictError(f"Borrower group with name '{name}' already exists")

        group = BorrowerGroup(
            name=name,
            max_loan_days=max_loan_days,
            max_renewals=max_renewals,
            description=description
        )
        self.session.add(group)
        self._commit(f"Borrower group with name '{name}' already exists")
        return group

    def update_group(
        self,
        group_id: str,
        name: Optional[str] = None,
        max_loan_days: Optional[int] = None,
        max_renewals: Optional[int] = None,
        description: Optional[str] = None
    ) -> BorrowerGroup:
        """Update a group. Policy changes apply to later checkouts and renewals only.

        Raises:
            NotFoundError: If the group does not exist
            ValidationError: If a new value is malformed
            ConflictError: If the new name is taken by another group
        """
        group = self.require(group_id)
        validate_policy_values(
            group.max_loan_days if max_loan_days is None else max_loan_days,
            group.max_renewals if max_renewals is None else max_renewals,
        )
        if name is not None:
            name = require_text(name)
            existing = self.get_by_name(name)
            if existing and existing.id != group.id:
                raise ConflictError(f"Borrower group with name '{name}' already exists")
            group.name = name
        if max_loan_days is not None:
            group.max_loan_days = max_loan_days
        if max_renewals is not None:
            group.max_renewals = max_renewals
        if description is not None:
            group.description = description
        self._commit(f"Borrower group with name '{name}' already exists")
        return group

    def delete_group(self, group_id: str, detach_borrowers: bool = False) -> int:
        """Delete a group.

        Args:
            group_id: The ID of the group to delete
            detach_borrowers: Clear the group of every member instead of refusing

        Returns:
            Number of borrowers detached from the group

        Raises:
            NotFoundError: If the group does not exist
            ConflictError: If borrowers still belong to the group and
                detach_borrowers is False
        """
        group = self.require(group_id)
        members = (
            self.session.query(Borrower.name)
            .filter(Borrower.group_id == group.id)
            .order_by(Borrower.name)
            .all()
        )
        if members and not detach_borrowers:
            logger.warning("Refusing to delete borrower group %s: %d member(s)", group_id, len(members))
            raise ConflictError(
                f"Cannot delete borrower group '{group.name}'",
                blocking=[name for (name,) in members]
            )

        with self._rollback_on_error():
            detached = detach_on_delete(self.session, Borrower.group_id, group.id)
            self.session.delete(group)
            self.session.commit()
        logger.info("Deleted borrower group %s, detached %d borrower(s)", group_id, detached)
        return detached


class BorrowerRepository(BaseRepository[Borrower]):
    """Repository for borrowers.

    Borrowers without a group fall back to the default loan policy, which
    can be injected for tests; otherwise it is read from the environment.
    """

    model = Borrower
    entity_name = 'Borrower'

    def __init__(self, session, policy: Optional[LoanPolicy] = None):
        super().__init__(session)
        self.default_policy = policy

    def effective_policy(self, borrower: Borrower) -> LoanPolicy:
        """Resolve the loan policy that applies to a borrower.

        Args:
            borrower: The borrower whose policy is needed

        Returns:
            The group's policy if the borrower belongs to one, otherwise the default
        """
        if borrower.group_id is not None:
            group = borrower.group
            return LoanPolicy(max_loan_days=group.max_loan_days, max_renewals=group.max_renewals)
        return self.default_policy or default_loan_policy()

    def search_borrowers(self, query: str, limit: int = 20) -> List[Borrower]:
        base_query = self.session.query(Borrower)
        if query:
            base_query = base_query.filter(Borrower.name.ilike(f"%{query}%"))
        return base_query.order_by(Borrower.name).limit(limit).all()

    def list_borrowers(self, group_id: Optional[str] = None) -> List[Tuple[Borrower, int]]:
        """Get borrowers with the number of loans they currently hold.

        Args:
            group_id: Only list members of this group

        Returns:
            List of (Borrower, active_loan_count) tuples ordered by name
        """
        query = (
            self.session.query(Borrower, func.count(Loan.id))
            .outerjoin(Loan, and_(Loan.borrower_id == Borrower.id, Loan.returned_date.is_(None)))
        )
        if group_id is not None:
            query = query.filter(Borrower.group_id == group_id)
        return query.group_by(Borrower.id).order_by(Borrower.name).all()

    def _check_group(self, group_id: Optional[str]) -> None:
        if group_id is not None and self.session.get(BorrowerGroup, group_id) is None:
            raise NotFoundError('BorrowerGroup', group_id)

    def create_borrower(self, name: str, **fields) -> Borrower:
        """Create a borrower.

        Args:
            name: Non-empty borrower name
            **fields: Optional email, phone, address, city, zip and group_id

        Returns:
            The created Borrower object

        Raises:
            ValidationError: If the name is blank or a field is unknown
            NotFoundError: If the group does not exist
        """
        borrower = Borrower(name=require_text(name))
        self._apply_updates(borrower, fields, BORROWER_FIELDS)
        self._check_group(fields.get('group_id'))
        self.session.add(borrower)
        self._commit(f"Could not create borrower '{borrower.name}'")
        return borrower

    def update_borrower(self, borrower_id: str, **fields) -> Borrower:
        borrower = self.require(borrower_id)
        if 'name' in fields:
            fields['name'] = require_text(fields['name'])
        if 'group_id' in fields:
            self._check_group(fields['group_id'])
        self._apply_updates(borrower, fields, BORROWER_FIELDS)
        self._commit(f"Could not update borrower '{borrower_id}'")
        return borrower

    def delete_borrower(self, borrower_id: str) -> int:
        """Delete a borrower together with their closed loan history.

        Returns:
            Number of closed loans removed

        Raises:
            NotFoundError: If the borrower does not exist
            ConflictError: If the borrower still holds a loan
        """
        borrower = self.require(borrower_id)
        active = (
            self.session.query(Loan.id)
            .filter(Loan.borrower_id == borrower.id, Loan.returned_date.is_(None))
            .all()
        )
        with self._rollback_on_error():
            removed = cascade_or_reject(
                f"borrower '{borrower.name}'",
                (f"loan {loan_id}" for (loan_id,) in active),
                self.session.query(Loan).filter(Loan.borrower_id == borrower.id),
            )
            self.session.delete(borrower)
            self.session.commit()
        logger.info("Deleted borrower %s and %d closed loan(s)", borrower_id, removed)
        return removed
