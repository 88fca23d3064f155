"""Installed packages: backend boundary, index and install orchestration."""

from .backend import BackendError, BackendRequest, InstallationBackend, ManifestFileBackend, PackageRecord
from .index import InstalledPackageIndex

__all__ = [
    "BackendError",
    "BackendRequest",
    "InstallationBackend",
    "ManifestFileBackend",
    "PackageRecord",
    "InstalledPackageIndex",
]
