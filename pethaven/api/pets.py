"""Pet report endpoints.

A minimal report surface so verifications have pets to refer to. Listing
and viewing are public; reporting requires an authenticated caller, who
becomes the reporter of record.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from pethaven.api.models import CreatePetRequest, PetListResponse, PetResponse
from pethaven.audit import get_audit_logger
from pethaven.auth.identity import ResolvedIdentity, get_identity
from pethaven.db.models import Pet
from pethaven.db.session import get_db
from pethaven.exceptions import NotFound
from pethaven.pets.store import PetRecordStore
from pethaven.verification.models import Disposition

log = logging.getLogger(__name__)
router = APIRouter(prefix="/pets", tags=["pets"])


def _pet_to_response(pet: Pet) -> PetResponse:
    return PetResponse(
        id=pet.id,
        name=pet.name,
        animal_type=pet.animal_type,
        description=pet.description,
        disposition=pet.disposition,
        owner=pet.owner,
        created_at=pet.created_at.isoformat(),
        updated_at=pet.updated_at.isoformat(),
    )


@router.post("", response_model=PetResponse, status_code=201)
async def report_pet(
    body: CreatePetRequest,
    identity: ResolvedIdentity = Depends(get_identity),
    db: Session = Depends(get_db),
) -> PetResponse:
    """Report a lost or found pet."""
    pet = PetRecordStore(db).create(
        owner=identity.email,
        disposition=Disposition(body.disposition),
        name=body.name,
        animal_type=body.animal_type,
        description=body.description,
    )
    get_audit_logger().log(
        action="pet.report",
        principal=identity.email,
        resource_type="pet",
        resource_id=pet.id,
        details={"disposition": pet.disposition},
    )
    return _pet_to_response(pet)


@router.get("", response_model=PetListResponse)
async def list_pets(
    disposition: Optional[Disposition] = Query(None, description="Filter by disposition"),
    db: Session = Depends(get_db),
) -> PetListResponse:
    """List pet reports, newest first."""
    pets = PetRecordStore(db).list_reports(disposition)
    return PetListResponse(pets=[_pet_to_response(p) for p in pets], count=len(pets))


@router.get("/{pet_id}", response_model=PetResponse)
async def get_pet(pet_id: str, db: Session = Depends(get_db)) -> PetResponse:
    pet = PetRecordStore(db).find_by_id(pet_id)
    if pet is None:
        raise NotFound("Pet not found")
    return _pet_to_response(pet)
