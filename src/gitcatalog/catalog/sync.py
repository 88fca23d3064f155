"""Catalog sync engine.

Holds the selected source and the in-memory catalog of repositories. On
every source selection the catalog is replaced wholesale: repositories are
listed, then each one is resolved (manifest, icon and releases issued
concurrently) and appended as soon as it is complete.

Each selection bumps ``generation``. A resolution started for an older
generation never lands in the current catalog.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Tuple

from ..config import Settings
from ..credentials import Credentials, get_credentials
from ..packages.index import InstalledPackageIndex
from .client import RemoteCatalogClient
from .icons import IconResolver
from .models import IconImage, PackageManifest, RepositoryInfo, VersionInfo

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


class CatalogSession:
    """Source selection plus the repository catalog for that source."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        index: Optional[InstalledPackageIndex] = None,
        credentials: Optional[Credentials] = None,
        client: Optional[RemoteCatalogClient] = None,
        icons: Optional[IconResolver] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        self.settings = settings or Settings.load()
        self.index = index
        self.credentials = credentials
        self.client = client
        self.icons = icons
        self.on_progress = on_progress

        self.sources: List[str] = []
        self.selected_source: Optional[str] = None
        self.generation = 0
        self.loaded = 0
        self.total = 0
        self.is_loading = False
        self._repositories: List[RepositoryInfo] = []

    # --- Setup ---

    async def authenticate(self) -> List[str]:
        """Obtain credentials (if not given), build the client, list sources.

        Raises:
            CredentialError: the credential helper failed.
        """
        if self.credentials is None:
            self.credentials = await asyncio.to_thread(
                get_credentials,
                self.settings.protocol,
                self.settings.host,
                self.settings.credential_helper,
            )
        if self.client is None:
            self.client = RemoteCatalogClient(self.settings, self.credentials)
        if self.icons is None:
            self.icons = IconResolver.from_settings(self.settings, self.client.download)

        self.sources = await self.client.list_sources()
        if not self.sources:
            logger.warning("No sources available yet")
        return self.sources

    async def start(self) -> List[RepositoryInfo]:
        """Refresh the index, authenticate and load the first source."""
        if self.index is not None:
            await self.index.refresh()
        await self.authenticate()
        if not self.sources:
            return []
        return await self.select_source(self.sources[0])

    # --- Catalog ---

    @property
    def repositories(self) -> Tuple[RepositoryInfo, ...]:
        return tuple(self._repositories)

    def packages_only(self) -> List[RepositoryInfo]:
        return [repo for repo in self._repositories if repo.has_package]

    def find(self, name: str) -> Optional[RepositoryInfo]:
        for repo in self._repositories:
            if repo.name == name or repo.full_name == name:
                return repo
        return None

    async def refresh_installed(self) -> bool:
        if self.index is None:
            return False
        return await self.index.refresh()

    def _report_progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.loaded, self.total)

    async def select_source(self, source: str) -> List[RepositoryInfo]:
        """Replace the catalog with the repositories of ``source``.

        Returns the repositories appended by this selection (empty if a newer
        selection superseded it).
        """
        if self.client is None:
            raise RuntimeError("authenticate() must run before select_source()")

        self.generation += 1
        generation = self.generation
        self.selected_source = source
        self._repositories = []
        self.loaded = 0
        self.total = 0
        self.is_loading = True
        appended: List[RepositoryInfo] = []

        try:
            items = await self.client.list_repositories(source)
            if generation != self.generation:
                return []

            self.total = len(items)
            self._report_progress()
            tasks = [asyncio.ensure_future(self._resolve_repository(item)) for item in items]

            try:
                for next_done in asyncio.as_completed(tasks):
                    try:
                        repo = await next_done
                    except Exception:
                        logger.exception("Error resolving a repository of %s", source)
                        repo = None

                    if generation != self.generation:
                        logger.debug("Discarding results for stale selection %s", source)
                        return []
                    if repo is None:
                        continue

                    self._repositories.append(repo)
                    appended.append(repo)
                    await asyncio.sleep(self.settings.result_delay_s)
                    if generation != self.generation:
                        logger.debug("Discarding results for stale selection %s", source)
                        return []
                    self.loaded += 1
                    self._report_progress()
            finally:
                for task in tasks:
                    if not task.done():
                        task.cancel()
        finally:
            if generation == self.generation:
                self.is_loading = False

        return appended

    async def _resolve_repository(self, item: dict) -> Optional[RepositoryInfo]:
        owner_data = item.get("owner") if isinstance(item.get("owner"), dict) else {}
        owner = str(owner_data.get("login") or "")
        name = str(item.get("name") or "")
        if not name:
            return None

        ref = str(item.get("default_branch") or "main")
        manifest_task = asyncio.ensure_future(self.client.fetch_manifest(owner, name))

        async def resolve_icon() -> IconImage:
            manifest = await asyncio.shield(manifest_task)
            return await self.icons.get_icon(name, self.client.icon_url(owner, name, manifest.icon_path, ref))

        manifest: PackageManifest
        icon: IconImage
        versions: List[VersionInfo]
        manifest, icon, versions = await asyncio.gather(
            manifest_task,
            resolve_icon(),
            self.client.fetch_releases(owner, name, self.index),
        )

        is_installed = self.index.exists(name) if self.index is not None else False
        return RepositoryInfo.from_api(
            item,
            icon=icon,
            versions=versions,
            is_installed=is_installed,
            manifest=manifest,
        )
