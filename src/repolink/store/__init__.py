from .database import Database
from .queries import LocalStore

__all__ = ["Database", "LocalStore"]
