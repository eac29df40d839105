"""Connection-scoped repositories for the Nolej bridge tables."""

from nolej.persistence.repositories.activities import ActivitiesRepository
from nolej.persistence.repositories.config import ConfigRepository
from nolej.persistence.repositories.documents import DocumentsRepository
from nolej.persistence.repositories.packages import PackagesRepository

__all__ = [
    "ActivitiesRepository",
    "ConfigRepository",
    "DocumentsRepository",
    "PackagesRepository",
]
