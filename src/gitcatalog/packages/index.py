"""Installed-package index.

A snapshot of what the backend reports as installed, rebuilt in full on
every refresh. Queries match by substring on the record id, and the first
match for a query is remembered under the query string itself.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .backend import BackendRequest, InstallationBackend, PackageRecord, wait_for_request

logger = logging.getLogger(__name__)


class InstalledPackageIndex:

    def __init__(self, backend: InstallationBackend, poll_interval_s: float = 0.01):
        self.backend = backend
        self.poll_interval_s = poll_interval_s
        self._cache: Dict[str, PackageRecord] = {}
        self._ready = False

    @property
    def is_ready(self) -> bool:
        return self._ready

    async def refresh(self) -> bool:
        """Clear and repopulate from a full backend listing."""
        self._cache.clear()
        self._ready = False

        request: BackendRequest = await wait_for_request(
            self.backend.list(include_indirect=True),
            self.poll_interval_s,
        )
        if not request.succeeded:
            logger.error("Listing installed packages failed: %s", request.error)
            return False

        for record in request.result or []:
            self._cache_record(record.id, record)

        self._ready = True
        logger.debug("Installed-package index holds %d package(s)", len(self.records()))
        return True

    def _cache_record(self, key: str, record: PackageRecord) -> None:
        # First writer wins; only refresh() replaces entries.
        if key not in self._cache:
            self._cache[key] = record

    def exists(self, bundle: str, version: Optional[str] = None) -> bool:
        """True if a record id contains ``bundle`` (and has ``version`` if given)."""
        if not bundle:
            return False

        alias = self._cache.get(bundle)
        if alias is not None and (version is None or alias.version == version):
            return True

        for record in list(self._cache.values()):
            if bundle not in record.id:
                continue
            if version is not None and record.version != version:
                continue
            self._cache_record(bundle, record)
            return True

        return False

    def get_record(self, bundle: str) -> Optional[PackageRecord]:
        return self._cache.get(bundle)

    def records(self) -> List[PackageRecord]:
        seen: Dict[str, PackageRecord] = {}
        for record in self._cache.values():
            seen.setdefault(record.id, record)
        return list(seen.values())
