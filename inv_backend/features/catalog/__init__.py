"""
Catalog feature: packages, files and their preview state.
"""

from .models import RESTORABLE_SOURCES, FileRecord, Package
from .store import CatalogStore, package_filter_clause

__all__ = [
    "CatalogStore",
    "FileRecord",
    "Package",
    "RESTORABLE_SOURCES",
    "package_filter_clause",
]
