"""Principal/user store."""

from pethaven.users.store import UserStore

__all__ = ["UserStore"]
