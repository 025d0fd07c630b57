"""Pet record store.

Pet reports are owned by the wider platform; verification only reads them
and, on a verified claim, flips their disposition.
"""

from pethaven.pets.store import PetRecordStore

__all__ = ["PetRecordStore"]
