"""PetHaven pet-ownership verification service."""

__version__ = "0.1.0"
