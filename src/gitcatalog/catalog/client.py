"""Remote catalog client.

Read-only client for the hosting API (GitHub REST v3). Lists the sources an
identity can see, the repositories of a source, a repository's package
manifest at a ref, and its releases.

Every public lookup is a coroutine. The underlying ``requests`` call runs in
a worker thread so the event loop keeps serving other lookups; results are
only consumed back on the loop. Lookups never raise on transport or payload
errors: they log and return an empty/default value so one bad repository
cannot stop discovery of the rest.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import requests

from ..config import Settings
from ..credentials import Credentials
from ..urls import api_url, contents_path, raw_file_url
from .models import PackageManifest, VersionInfo
from .reconcile import build_versions

if TYPE_CHECKING:
    from ..packages.index import InstalledPackageIndex

logger = logging.getLogger(__name__)


class CatalogError(Exception):
    """Error from hosting API requests."""
    pass


def parse_manifest_payload(data: Any, label: str = "") -> PackageManifest:
    """Decode a contents-endpoint payload into a manifest.

    The payload carries the file base64-encoded (wrapped at 60 columns).
    Anything missing or malformed yields the default manifest.
    """
    content = data.get("content") if isinstance(data, dict) else None
    if not content:
        logger.warning("Manifest content is empty or not found for %s", label)
        return PackageManifest()

    try:
        text = base64.b64decode(content).decode("utf-8-sig")
        parsed = json.loads(text)
    except (binascii.Error, UnicodeDecodeError, ValueError) as e:
        logger.error("Error parsing manifest for %s: %s", label, e)
        return PackageManifest()

    if not isinstance(parsed, dict):
        logger.error("Manifest for %s is not a JSON object", label)
        return PackageManifest()

    return PackageManifest.from_dict(parsed)


class RemoteCatalogClient:
    """Client for the repository hosting API.

    Authenticates every request with the bearer token from ``credentials``
    and a fixed user agent. A missing token is a caller error.
    """

    def __init__(self, settings: Optional[Settings] = None, credentials: Optional[Credentials] = None):
        self.settings = settings or Settings.load()
        self.credentials = credentials
        self.username = credentials.username if credentials else ""
        self._session = requests.Session()
        self._update_auth_headers()

    def _update_auth_headers(self) -> None:
        """Update session headers with user agent and authentication."""
        self._session.headers.clear()
        self._session.headers["User-Agent"] = self.settings.user_agent
        self._session.headers["Accept"] = "application/vnd.github+json"

        if self.credentials and self.credentials.token:
            self._session.headers["Authorization"] = f"Bearer {self.credentials.token}"

    def _url(self, path: str) -> str:
        return api_url(self.settings.api_url, path)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Make a blocking HTTP request; raise CatalogError on any failure."""
        try:
            response = self._session.request(method, url, timeout=self.settings.timeout_s, **kwargs)
            response.raise_for_status()
            return response
        except requests.exceptions.HTTPError as e:
            if e.response is not None:
                try:
                    error_detail = e.response.json().get("message", str(e))
                except (ValueError, AttributeError):
                    error_detail = e.response.text or str(e)
                raise CatalogError(f"API error {e.response.status_code}: {error_detail}") from e
            raise CatalogError(f"HTTP error: {e}") from e
        except requests.exceptions.ConnectionError as e:
            raise CatalogError(f"Cannot connect to {url}") from e
        except Exception as e:
            raise CatalogError(f"Request failed: {e}") from e

    def _get_json_sync(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        response = self._request("GET", self._url(path), params=params)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise CatalogError(f"Invalid JSON from {path}: {e}") from e

    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return await asyncio.to_thread(self._get_json_sync, path, params)

    async def _get_paged(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[dict]:
        """Collect list pages until a short page or ``max_pages``."""
        items: List[dict] = []
        per_page = self.settings.per_page
        for page in range(1, max(self.settings.max_pages, 1) + 1):
            data = await self._get_json(path, {**(params or {}), "per_page": per_page, "page": page})
            if not isinstance(data, list):
                raise CatalogError(f"Expected a list from {path}")
            items.extend(item for item in data if isinstance(item, dict))
            if len(data) < per_page:
                break
        return items

    # --- Sources ---

    async def list_sources(self) -> List[str]:
        """Authenticated login first, then its organizations.

        An empty result means "not available yet", not "no sources".
        """
        sources: List[str] = []

        try:
            user = await self._get_json("/user")
            login = user.get("login") if isinstance(user, dict) else None
            if login:
                sources.append(str(login))
                self.username = str(login)
        except CatalogError as e:
            logger.error("Error fetching user info: %s", e)

        try:
            orgs = await self._get_json("/user/orgs")
            for org in orgs if isinstance(orgs, list) else []:
                login = org.get("login") if isinstance(org, dict) else None
                if login:
                    sources.append(str(login))
        except CatalogError as e:
            logger.error("Error fetching organizations: %s", e)

        return sources

    async def list_repositories(self, source: str) -> List[dict]:
        """Raw repository records owned by ``source``."""
        if self.username and source == self.username:
            path, params = "/user/repos", {"affiliation": "owner"}
        else:
            path, params = f"/orgs/{source}/repos", None

        try:
            return await self._get_paged(path, params)
        except CatalogError as e:
            logger.error("Error fetching repositories for %s: %s", source, e)
            return []

    # --- Manifests ---

    async def fetch_manifest(self, owner: str, repo: str, ref: Optional[str] = None) -> PackageManifest:
        """Manifest at ``ref`` (default branch when None); never raises."""
        params = {"ref": ref} if ref else None
        label = f"{owner}/{repo}" + (f"@{ref}" if ref else "")
        logger.debug("Requesting manifest for %s", label)

        try:
            data = await self._get_json(contents_path(owner, repo, self.settings.manifest_path), params)
        except CatalogError as e:
            logger.warning("Failed to fetch %s for %s: %s", self.settings.manifest_path, label, e)
            return PackageManifest()

        return parse_manifest_payload(data, label)

    def icon_url(self, owner: str, repo: str, icon_path: str, ref: str = "main") -> str:
        return raw_file_url(owner, repo, ref, icon_path, self.settings.raw_url)

    async def download(self, url: str) -> Optional[bytes]:
        """Raw bytes of ``url`` with the session's auth headers, or None."""
        try:
            response = await asyncio.to_thread(self._request, "GET", url)
        except CatalogError as e:
            logger.warning("Failed to download %s: %s", url, e)
            return None
        return response.content or None

    # --- Releases ---

    async def get_latest_release_id(self, owner: str, repo: str) -> Optional[int]:
        try:
            data = await self._get_json(f"/repos/{owner}/{repo}/releases/latest")
        except CatalogError as e:
            # 404 simply means there is no published non-draft release
            logger.debug("No latest release for %s/%s: %s", owner, repo, e)
            return None
        try:
            return int(data["id"])
        except (KeyError, TypeError, ValueError):
            return None

    async def list_releases(self, owner: str, repo: str) -> List[dict]:
        try:
            return await self._get_paged(f"/repos/{owner}/{repo}/releases")
        except CatalogError as e:
            logger.error("Error fetching releases for %s/%s: %s", owner, repo, e)
            return []

    async def fetch_releases(
        self,
        owner: str,
        repo: str,
        index: Optional["InstalledPackageIndex"] = None,
    ) -> List[VersionInfo]:
        """Releases in API order, each with the manifest at its tag."""
        latest_id, releases = await asyncio.gather(
            self.get_latest_release_id(owner, repo),
            self.list_releases(owner, repo),
        )
        manifests = await asyncio.gather(
            *(self.fetch_manifest(owner, repo, release.get("tag_name") or None) for release in releases)
        )
        return build_versions(releases, list(manifests), latest_id, index)

    def close(self) -> None:
        self._session.close()
