"""Catalog data model.

Package manifests, release versions and repository entries as they are
assembled from the hosting API. Manifests are never missing: anything that
cannot be read becomes a manifest with every field at its empty default.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from ..urls import releases_page_url


def _str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _str_map(value: Any) -> Dict[str, str]:
    if not isinstance(value, dict):
        return {}
    return {str(k): _str(v) for k, v in value.items()}


@dataclass
class PackageManifest:
    """Package descriptor (``package.json``) of one repository at one ref."""
    name: str = ""
    version: str = ""
    display_name: str = ""
    description: str = ""
    documentation_url: str = ""
    license_url: str = ""
    icon_path: str = ""
    dependencies: Dict[str, str] = field(default_factory=dict)  # name -> version constraint
    third_party_dependencies: Dict[str, str] = field(default_factory=dict)  # label -> source URL

    @property
    def is_empty(self) -> bool:
        return not self.name

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "version": self.version,
            "displayName": self.display_name,
            "description": self.description,
            "documentationUrl": self.documentation_url,
            "licensesUrl": self.license_url,
            "iconPath": self.icon_path,
            "dependencies": dict(self.dependencies),
            "thirdPartyDependencies": dict(self.third_party_dependencies),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "PackageManifest":
        if not isinstance(data, dict):
            return cls()
        return cls(
            name=_str(data.get("name")),
            version=_str(data.get("version")),
            display_name=_str(data.get("displayName")),
            description=_str(data.get("description")),
            documentation_url=_str(data.get("documentationUrl")),
            license_url=_str(data.get("licensesUrl", data.get("licenseUrl"))),
            icon_path=_str(data.get("iconPath")),
            dependencies=_str_map(data.get("dependencies")),
            third_party_dependencies=_str_map(data.get("thirdPartyDependencies")),
        )


@dataclass
class VersionInfo:
    """One release of a repository paired with the manifest at its tag."""
    manifest: PackageManifest
    release_id: Optional[int] = None
    tag: str = ""
    release_date: str = ""
    changelog_body: str = ""
    changelog_url: str = ""
    is_installed: bool = False
    is_latest: bool = False
    is_prerelease: bool = False
    is_draft: bool = False

    @property
    def version(self) -> str:
        return self.manifest.version or self.tag


@dataclass
class IconImage:
    """Encoded icon bytes plus where they came from."""
    data: bytes
    origin: Literal["cache", "network", "placeholder"] = "placeholder"
    path: Optional[str] = None

    @property
    def is_placeholder(self) -> bool:
        return self.origin == "placeholder"


def select_current_version(versions: List[VersionInfo]) -> Optional[VersionInfo]:
    """Non-draft latest, else first non-draft, else None."""
    first_non_draft: Optional[VersionInfo] = None
    for version in versions:
        if version.is_draft:
            continue
        if version.is_latest:
            return version
        if first_non_draft is None:
            first_non_draft = version
    return first_non_draft


@dataclass
class RepositoryInfo:
    """One discovered repository, rebuilt from scratch on every fetch."""
    owner: str
    name: str
    clone_url: str = ""
    stars: int = 0
    updated_at: str = ""
    html_url: str = ""  # repository web page, e.g. https://github.com/acme/tool
    icon: Optional[IconImage] = None
    versions: List[VersionInfo] = field(default_factory=list)
    is_installed: bool = False
    manifest: PackageManifest = field(default_factory=PackageManifest)  # default-branch manifest

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def has_package(self) -> bool:
        return len(self.versions) > 0

    @property
    def releases_url(self) -> str:
        if not self.has_package:
            return ""
        if self.html_url:
            return f"{self.html_url.rstrip('/')}/releases"
        return releases_page_url(self.owner, self.name)

    def current_version(self) -> Optional[VersionInfo]:
        return select_current_version(self.versions)

    def display_name(self) -> str:
        current = self.current_version()
        if current and current.manifest.display_name:
            return current.manifest.display_name
        return self.name

    def find_version(self, version: str) -> Optional[VersionInfo]:
        """Match by manifest version or tag, with or without a leading 'v'."""
        wanted = version.lstrip("v")
        for info in self.versions:
            if info.manifest.version == wanted or info.tag.lstrip("v") == wanted:
                return info
        return None

    @classmethod
    def from_api(
        cls,
        data: dict,
        icon: Optional[IconImage] = None,
        versions: Optional[List[VersionInfo]] = None,
        is_installed: bool = False,
        manifest: Optional[PackageManifest] = None,
    ) -> "RepositoryInfo":
        owner = data.get("owner") or {}
        return cls(
            owner=_str(owner.get("login")) if isinstance(owner, dict) else "",
            name=_str(data.get("name")),
            clone_url=_str(data.get("clone_url")),
            stars=int(data.get("stargazers_count") or 0),
            updated_at=_str(data.get("updated_at")),
            html_url=_str(data.get("html_url")),
            icon=icon,
            versions=list(versions or []),
            is_installed=is_installed,
            manifest=manifest or PackageManifest(),
        )
