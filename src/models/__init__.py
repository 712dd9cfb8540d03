"""Expose ORM models at package level.

The `F401` noqa suppresses unused-import warnings for the explicit re-exports.
"""

from .assessments import Assessment  # noqa: F401
from .base import Base  # noqa: F401
