"""Catalog module for gitcatalog.

Discovers packages published as repositories on the hosting service.
This module handles:
- Source and repository listing
- Manifest and release lookups
- Icon caching
- Version reconciliation against installed packages
"""

from .client import CatalogError, RemoteCatalogClient
from .icons import IconResolver
from .models import IconImage, PackageManifest, RepositoryInfo, VersionInfo, select_current_version
from .sync import CatalogSession

__all__ = [
    "CatalogError",
    "RemoteCatalogClient",
    "IconResolver",
    "IconImage",
    "PackageManifest",
    "RepositoryInfo",
    "VersionInfo",
    "select_current_version",
    "CatalogSession",
]
