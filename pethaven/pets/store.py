"""Pet Record Store for pet report persistence."""

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from pethaven.db.models import Pet, utcnow
from pethaven.db.session import translate_storage_errors
from pethaven.exceptions import NotFound
from pethaven.verification.models import Disposition

log = logging.getLogger(__name__)


class PetRecordStore:
    """Store for pet reports.

    Exposes the two operations verification depends on, ``find_by_id`` and
    ``update_disposition``, plus report creation and listing.
    """

    def __init__(self, db: Session):
        """Initialize store with database session.

        Args:
            db: SQLAlchemy session
        """
        self.db = db

    def create(
        self,
        owner: str,
        disposition: Disposition,
        name: str = "",
        animal_type: str = "",
        description: Optional[str] = None,
    ) -> Pet:
        """Create a new pet report.

        Args:
            owner: Reporter's contact email
            disposition: ``lost`` or ``found``
            name: Pet name, if known
            animal_type: Species, e.g. "dog"
            description: Free text

        Returns:
            Created Pet instance
        """
        pet = Pet(
            id=str(uuid.uuid4()),
            owner=owner,
            disposition=Disposition(disposition).value,
            name=name,
            animal_type=animal_type,
            description=description,
        )
        with translate_storage_errors(self.db, "pet.create"):
            self.db.add(pet)
            self.db.commit()
            self.db.refresh(pet)
        log.info(f"Created pet report {pet.id} ({pet.disposition})")
        return pet

    def find_by_id(self, pet_id: str) -> Optional[Pet]:
        """Get a pet by ID.

        Returns:
            Pet if found, None otherwise
        """
        with translate_storage_errors(self.db, "pet.find_by_id"):
            return self.db.query(Pet).filter(Pet.id == pet_id).first()

    def list_reports(self, disposition: Optional[Disposition] = None) -> list[Pet]:
        """List pet reports, newest first, optionally filtered by disposition."""
        with translate_storage_errors(self.db, "pet.list"):
            query = self.db.query(Pet)
            if disposition is not None:
                query = query.filter(Pet.disposition == Disposition(disposition).value)
            return query.order_by(Pet.created_at.desc()).all()

    def update_disposition(
        self,
        pet_id: str,
        disposition: Disposition,
        commit: bool = True,
    ) -> Pet:
        """Change a pet's disposition.

        Args:
            pet_id: Pet UUID
            disposition: New disposition
            commit: Commit immediately. Pass False to join the caller's
                transaction (the verification update that triggered it).

        Returns:
            The updated Pet

        Raises:
            NotFound: No pet with this ID
        """
        pet = self.find_by_id(pet_id)
        if pet is None:
            raise NotFound("Pet not found")

        old = pet.disposition
        pet.disposition = Disposition(disposition).value
        pet.updated_at = utcnow()
        if commit:
            with translate_storage_errors(self.db, "pet.update_disposition"):
                self.db.commit()
                self.db.refresh(pet)
        log.info(f"Pet {pet_id} disposition {old} -> {pet.disposition}")
        return pet
