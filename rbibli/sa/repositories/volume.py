# rbibli/sa/repositories/volume.py
import logging
from typing import Optional, List
from sqlalchemy import func

from rbibli.errors import ConflictError, NotFoundError, ValidationError
from rbibli.sa.integrity import cascade_or_reject
from rbibli.sa.models import Volume, VolumeCondition, Title, Location, Loan
from .base import BaseRepository, require_text

logger = logging.getLogger(__name__)

VOLUME_FIELDS = ('barcode', 'condition', 'loanable', 'location_id', 'individual_notes')


def normalize_condition(condition: str) -> str:
    """Return the stored value for a condition name.

    Raises:
        ValidationError: If the condition is not one of the known values
    """
    try:
        return VolumeCondition(condition).value
    except ValueError:
        allowed = ", ".join(c.value for c in VolumeCondition)
        raise ValidationError(f"Invalid condition '{condition}' (expected one of: {allowed})") from None


class VolumeRepository(BaseRepository[Volume]):
    """Repository for physical copies of titles."""

    model = Volume
    entity_name = 'Volume'

    def get_by_barcode(self, barcode: str) -> Optional[Volume]:
        """Get a volume by its barcode.

        Args:
            barcode: The barcode to search for

        Returns:
            The Volume object if found, None otherwise
        """
        return self.session.query(Volume).filter(Volume.barcode == barcode).first()

    def list_volumes(self, title_id: Optional[str] = None, location_id: Optional[str] = None) -> List[Volume]:
        """List volumes, optionally restricted to one title or one location"""
        query = self.session.query(Volume)
        if title_id is not None:
            query = query.filter(Volume.title_id == title_id)
        if location_id is not None:
            query = query.filter(Volume.location_id == location_id)
        return query.order_by(Volume.title_id, Volume.copy_number).all()

    def get_active_loan(self, volume_id: str) -> Optional[Loan]:
        return (
            self.session.query(Loan)
            .filter(Loan.volume_id == volume_id, Loan.returned_date.is_(None))
            .one_or_none()
        )

    def is_available(self, volume_id: str) -> bool:
        """A volume is available when it is loanable and not currently on loan"""
        volume = self.require(volume_id)
        return volume.loanable and self.get_active_loan(volume.id) is None

    def _check_location(self, location_id: Optional[str]) -> None:
        if location_id is not None and self.session.get(Location, location_id) is None:
            raise NotFoundError('Location', location_id)

    def _check_barcode_free(self, barcode: str, volume_id: Optional[str] = None) -> None:
        existing = self.get_by_barcode(barcode)
        if existing and existing.id != volume_id:
            raise ConflictError(f"Volume with barcode '{barcode}' already exists")

    def create_volume(
        self,
        title_id: str,
        barcode: str,
        condition: str = VolumeCondition.EXCELLENT.value,
        loanable: bool = True,
        location_id: Optional[str] = None,
        individual_notes: Optional[str] = None
    ) -> Volume:
        """Create a physical copy of a title.

        The copy number is the next free number for the title. A damaged
        volume is never loanable, whatever the caller asked for.

        Args:
            title_id: The title this volume is a copy of
            barcode: Barcode unique across all volumes
            condition: excellent, good, fair, poor or damaged
            loanable: Whether the copy may be checked out
            location_id: Optional storage location
            individual_notes: Notes about this specific copy

        Returns:
            The created Volume object

        Raises:
            ValidationError: If the barcode is blank or the condition unknown
            NotFoundError: If the title or location does not exist
            ConflictError: If the barcode is already in use
        """
        barcode = require_text(barcode, 'barcode')
        condition = normalize_condition(condition)
        if self.session.get(Title, title_id) is None:
            raise NotFoundError('Title', title_id)
        self._check_location(location_id)
        self._check_barcode_free(barcode)

        copy_number = (
            self.session.query(func.coalesce(func.max(Volume.copy_number), 0))
            .filter(Volume.title_id == title_id)
            .scalar()
        ) + 1
        volume = Volume(
            title_id=title_id,
            barcode=barcode,
            copy_number=copy_number,
            condition=condition,
            loanable=bool(loanable) and condition != VolumeCondition.DAMAGED.value,
            location_id=location_id,
            individual_notes=individual_notes
        )
        self.session.add(volume)
        self._commit(f"Volume with barcode '{barcode}' already exists")
        logger.info("Created volume %s (copy %d of title %s)", barcode, copy_number, title_id)
        return volume

    def update_volume(self, volume_id: str, **fields) -> Volume:
        """Update the given volume fields.

        Setting the condition to damaged forces loanable to False. Moving away
        from damaged leaves loanable untouched; it has to be re-enabled
        explicitly.

        Raises:
            NotFoundError: If the volume or location does not exist
            ValidationError: If a field is unknown or malformed
            ConflictError: If the new barcode is already in use
        """
        volume = self.require(volume_id)
        unknown = set(fields) - set(VOLUME_FIELDS)
        if unknown:
            raise ValidationError(f"Unknown volume field(s): {', '.join(sorted(unknown))}")
        if 'barcode' in fields:
            fields['barcode'] = require_text(fields['barcode'], 'barcode')
            self._check_barcode_free(fields['barcode'], volume.id)
        if 'condition' in fields:
            fields['condition'] = normalize_condition(fields['condition'])
        if 'location_id' in fields:
            self._check_location(fields['location_id'])
        if 'loanable' in fields:
            fields['loanable'] = bool(fields['loanable'])

        condition = fields.get('condition', volume.condition)
        if condition == VolumeCondition.DAMAGED.value:
            fields['loanable'] = False

        self._apply_updates(volume, fields, VOLUME_FIELDS)
        self._commit(f"Could not update volume '{volume_id}'")
        return volume

    def set_condition(self, volume_id: str, condition: str) -> Volume:
        return self.update_volume(volume_id, condition=condition)

    def move_volume(self, volume_id: str, location_id: Optional[str]) -> Volume:
        return self.update_volume(volume_id, location_id=location_id)

    def delete_volume(self, volume_id: str) -> None:
        """Delete a volume and its closed loan history.

        Raises:
            NotFoundError: If the volume does not exist
            ConflictError: If the volume is currently on loan
        """
        volume = self.require(volume_id)
        active = self.get_active_loan(volume.id)
        with self._rollback_on_error():
            cascade_or_reject(
                f"volume '{volume.barcode}'",
                [f"loan {active.id}"] if active else [],
                self.session.query(Loan).filter(Loan.volume_id == volume.id),
                self.session.query(Volume).filter(Volume.id == volume.id),
            )
            self.session.commit()
        logger.info("Deleted volume %s", volume_id)
