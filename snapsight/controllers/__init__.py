"""FastAPI routers acting as controllers in the MVC architecture."""

from . import session

__all__ = ["session"]
