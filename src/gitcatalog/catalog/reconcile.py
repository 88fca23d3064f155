"""Merge releases, manifests and installed state into a version list."""

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional, Sequence

from .models import PackageManifest, VersionInfo, select_current_version

if TYPE_CHECKING:
    from ..packages.index import InstalledPackageIndex

__all__ = ["build_version", "build_versions", "select_current_version"]


def _release_id(release: dict) -> Optional[int]:
    try:
        return int(release["id"])
    except (KeyError, TypeError, ValueError):
        return None


def build_version(
    release: dict,
    manifest: PackageManifest,
    latest_release_id: Optional[int],
    index: Optional["InstalledPackageIndex"] = None,
) -> VersionInfo:
    release_id = _release_id(release)
    is_installed = False
    if index is not None and manifest.name:
        is_installed = index.exists(manifest.name, manifest.version)

    return VersionInfo(
        manifest=manifest,
        release_id=release_id,
        tag=str(release.get("tag_name") or ""),
        release_date=str(release.get("published_at") or ""),
        changelog_body=str(release.get("body") or ""),
        changelog_url=str(release.get("html_url") or ""),
        is_installed=is_installed,
        is_latest=latest_release_id is not None and release_id == latest_release_id,
        is_prerelease=bool(release.get("prerelease", False)),
        is_draft=bool(release.get("draft", False)),
    )


def build_versions(
    releases: Sequence[dict],
    manifests: Sequence[PackageManifest],
    latest_release_id: Optional[int],
    index: Optional["InstalledPackageIndex"] = None,
) -> List[VersionInfo]:
    """Pair ``releases[i]`` with ``manifests[i]``, keeping API order.

    No sorting is applied; the list is in whatever order the API returned
    releases.
    """
    if len(releases) != len(manifests):
        raise ValueError("releases and manifests must have the same length")

    return [
        build_version(release, manifest, latest_release_id, index)
        for release, manifest in zip(releases, manifests)
    ]
