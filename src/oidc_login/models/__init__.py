from .base import Base, GUID
from .users import Domain, User

__all__ = [
    "Base",
    "Domain",
    "GUID",
    "User",
]
