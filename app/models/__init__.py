"""
Kindred — ORM model registry.

Importing every model here ensures that Alembic (and any other tool that
inspects ``Base.metadata``) discovers all tables automatically.
"""

from app.models.profile import ProfileRow
from app.models.match import BlockRow, MatchRow

__all__ = [
    "ProfileRow",
    "MatchRow",
    "BlockRow",
]
