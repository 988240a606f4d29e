"""Book catalog module.

Provides functionality for:
- Adding, updating and removing catalog entries
- Adjusting available quantity
- Seeding a sample catalog
"""

from .seed import SAMPLE_BOOKS, seed_catalog, seed_users
from .store import CatalogStore

__all__ = [
    "CatalogStore",
    "SAMPLE_BOOKS",
    "seed_catalog",
    "seed_users",
]
