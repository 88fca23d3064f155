"""Installation orchestrator.

Turns catalog actions (import, remove, update) into backend requests and
waits for them cooperatively. Only one multi-dependency install may be
outstanding at a time; a second one is rejected, not queued.
"""

from __future__ import annotations

import inspect
import logging
from enum import Enum
from typing import Any, Callable, List, Optional

from ..catalog.models import PackageManifest
from .backend import BackendRequest, InstallationBackend, wait_for_request
from .index import InstalledPackageIndex

logger = logging.getLogger(__name__)

# Process-wide: one install in flight across all orchestrators.
_install_in_flight = False


def install_in_flight() -> bool:
    return _install_in_flight


class UpdateOutcome(str, Enum):
    UPDATED = "updated"
    INSTALLED = "installed"  # package was absent, plain import
    INSTALL_FAILED = "install_failed"  # package was absent and still is
    REJECTED = "rejected"  # another install in flight
    REMOVE_FAILED = "remove_failed"  # nothing changed
    REMOVED_NOT_REINSTALLED = "removed_not_reinstalled"  # package left absent


def package_reference(clone_url: str, version: str) -> str:
    return f"{clone_url}#v{version}" if version else clone_url


def build_import_references(clone_url: str, manifest: PackageManifest) -> List[str]:
    """Dependencies, then third-party sources, then the package itself.

    Version constraints are passed through verbatim.
    """
    references = [f"{name}@{constraint}" for name, constraint in manifest.dependencies.items()]
    references.extend(url for url in manifest.third_party_dependencies.values() if url)
    references.append(package_reference(clone_url, manifest.version))
    return references


class InstallationOrchestrator:
    """Issues import/remove/update against a backend and refreshes the index."""

    def __init__(
        self,
        backend: InstallationBackend,
        index: InstalledPackageIndex,
        on_reload: Optional[Callable[[], Any]] = None,
        poll_interval_s: float = 0.01,
        request_timeout_s: Optional[float] = None,
    ):
        self.backend = backend
        self.index = index
        self.on_reload = on_reload
        self.poll_interval_s = poll_interval_s
        self.request_timeout_s = request_timeout_s

    async def wait_for(self, request: BackendRequest) -> BackendRequest:
        return await wait_for_request(request, self.poll_interval_s, self.request_timeout_s)

    async def _after_success(self) -> None:
        await self.index.refresh()
        if self.on_reload is not None:
            result = self.on_reload()
            if inspect.isawaitable(result):
                await result

    async def _import(self, clone_url: str, manifest: PackageManifest) -> bool:
        references = build_import_references(clone_url, manifest)
        main_reference = references[-1]
        hints = {main_reference: manifest.name} if manifest.name else None
        logger.info("Installing %d package(s) for %s", len(references), manifest.name or clone_url)
        for reference in references:
            logger.debug("  %s", reference)

        request = await self.wait_for(self.backend.add(references, name_hints=hints))
        if not request.succeeded:
            logger.error("Failed to install packages: %s", request.error)
            return False

        resolve = await self.wait_for(self.backend.resolve())
        if not resolve.succeeded:
            logger.error("Package resolution failed: %s", resolve.error)
            return False

        logger.info("Successfully installed %d package(s)", len(references))
        self.backend.request_compilation()
        await self._after_success()
        return True

    async def import_package(self, clone_url: str, manifest: PackageManifest) -> bool:
        """Install ``manifest``'s package and all its declared dependencies in one batch."""
        global _install_in_flight

        if _install_in_flight:
            logger.warning("Installation is already in progress; rejecting %s", manifest.name or clone_url)
            return False

        _install_in_flight = True
        try:
            return await self._import(clone_url, manifest)
        finally:
            _install_in_flight = False

    async def remove_package(self, name: str) -> bool:
        if not name:
            return False

        logger.info("Removing package: %s...", name)
        request = await self.wait_for(self.backend.remove([name]))
        if not request.succeeded:
            logger.error("Package remove failed: %s: %s", name, request.error)
            return False

        logger.info("Package removed: %s", name)
        await self._after_success()
        return True

    async def update_package(self, name: str, clone_url: str, manifest: PackageManifest) -> UpdateOutcome:
        """Two phases: remove ``name``, then import ``manifest`` at its version.

        The install slot is held across both phases, so no other import can
        start in between. The import only runs if the remove succeeded. An
        import failure after that leaves the package uninstalled; nothing is
        rolled back.
        """
        global _install_in_flight

        if _install_in_flight:
            logger.warning("Installation is already in progress; rejecting update of %s", name)
            return UpdateOutcome.REJECTED

        _install_in_flight = True
        try:
            if not self.index.exists(name):
                if await self._import(clone_url, manifest):
                    return UpdateOutcome.INSTALLED
                return UpdateOutcome.INSTALL_FAILED

            if not await self.remove_package(name):
                return UpdateOutcome.REMOVE_FAILED

            if not await self._import(clone_url, manifest):
                logger.error(
                    "Update of %s failed after removal; the package is no longer installed",
                    name,
                )
                return UpdateOutcome.REMOVED_NOT_REINSTALLED

            return UpdateOutcome.UPDATED
        finally:
            _install_in_flight = False
