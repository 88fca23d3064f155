"""Tests for catalog models and version reconciliation."""

from unittest.mock import Mock

import pytest

from gitcatalog.catalog.models import (
    IconImage,
    PackageManifest,
    RepositoryInfo,
    VersionInfo,
    select_current_version,
)
from gitcatalog.catalog.reconcile import build_version, build_versions


def version(tag, is_latest=False, is_draft=False, name="com.acme.tool"):
    return VersionInfo(
        manifest=PackageManifest(name=name, version=tag.lstrip("v")),
        tag=tag,
        is_latest=is_latest,
        is_draft=is_draft,
    )


class TestPackageManifest:
    """Tests for PackageManifest."""

    def test_default_values(self):
        """Test every field defaults to empty."""
        manifest = PackageManifest()
        assert manifest.name == ""
        assert manifest.version == ""
        assert manifest.dependencies == {}
        assert manifest.third_party_dependencies == {}
        assert manifest.is_empty is True

    def test_from_dict(self):
        """Test deserialization from manifest JSON keys."""
        manifest = PackageManifest.from_dict({
            "name": "com.acme.tool",
            "version": "1.2.0",
            "displayName": "Acme Tool",
            "description": "Does things",
            "documentationUrl": "https://docs.acme.dev",
            "licensesUrl": "https://acme.dev/license",
            "iconPath": "icon.png",
            "dependencies": {"com.acme.core": "1.0.0"},
            "thirdPartyDependencies": {"json": "https://github.com/acme/json.git"},
            "unity": "2021.3",
        })

        assert manifest.display_name == "Acme Tool"
        assert manifest.documentation_url == "https://docs.acme.dev"
        assert manifest.license_url == "https://acme.dev/license"
        assert manifest.third_party_dependencies == {"json": "https://github.com/acme/json.git"}

    def test_from_dict_tolerates_bad_types(self):
        """Test non-object input and non-map dependencies."""
        assert PackageManifest.from_dict(None).is_empty
        assert PackageManifest.from_dict([1, 2]).is_empty

        manifest = PackageManifest.from_dict({"name": "x", "version": 2, "dependencies": ["a"]})
        assert manifest.version == "2"
        assert manifest.dependencies == {}

    def test_dependency_mapping_round_trip(self):
        """Test dependency maps survive serialization unchanged."""
        manifest = PackageManifest(
            name="com.acme.tool",
            version="1.2.0",
            dependencies={"com.acme.core": "^1.0.0", "com.acme.log": "2.1.0"},
            third_party_dependencies={"json": "https://github.com/acme/json.git#v3"},
        )
        restored = PackageManifest.from_dict(manifest.to_dict())

        assert restored == manifest
        assert list(restored.dependencies) == ["com.acme.core", "com.acme.log"]


class TestSelectCurrentVersion:
    """Tests for the current-version selection rule."""

    def test_latest_wins_over_draft_and_older(self):
        """Test [draft, latest, old] selects latest."""
        draft, latest, old = version("v3.0.0", is_draft=True), version("v2.0.0", is_latest=True), version("v1.0.0")
        assert select_current_version([draft, latest, old]) is latest

    def test_only_draft(self):
        """Test [draft] selects nothing."""
        assert select_current_version([version("v1.0.0", is_draft=True)]) is None

    def test_no_latest_flag(self):
        """Test [old1, old2] selects the first."""
        old1, old2 = version("v1.1.0"), version("v1.0.0")
        assert select_current_version([old1, old2]) is old1

    def test_draft_marked_latest_is_skipped(self):
        """Test a draft carrying the latest flag is never current."""
        draft_latest, old = version("v2.0.0", is_latest=True, is_draft=True), version("v1.0.0")
        assert select_current_version([draft_latest, old]) is old

    def test_empty(self):
        """Test no versions selects nothing."""
        assert select_current_version([]) is None


class TestRepositoryInfo:
    """Tests for RepositoryInfo."""

    def test_from_api(self):
        """Test creating a repository from an API record."""
        data = {
            "name": "tool",
            "owner": {"login": "acme"},
            "clone_url": "https://github.com/acme/tool.git",
            "stargazers_count": 42,
            "updated_at": "2024-05-01T10:00:00Z",
        }
        icon = IconImage(data=b"png", origin="cache")
        repo = RepositoryInfo.from_api(data, icon=icon, versions=[version("v1.0.0")], is_installed=True)

        assert repo.full_name == "acme/tool"
        assert repo.clone_url == "https://github.com/acme/tool.git"
        assert repo.stars == 42
        assert repo.icon is icon
        assert repo.is_installed is True
        assert repo.has_package is True
        assert repo.releases_url == "https://github.com/acme/tool/releases"

    def test_releases_url_follows_repository_page(self):
        """Test an enterprise repository links to its own host's release page."""
        data = {
            "name": "tool",
            "owner": {"login": "acme"},
            "html_url": "https://ghe.example.com/acme/tool",
        }
        repo = RepositoryInfo.from_api(data, versions=[version("v1.0.0")])

        assert repo.html_url == "https://ghe.example.com/acme/tool"
        assert repo.releases_url == "https://ghe.example.com/acme/tool/releases"

    def test_zero_releases(self):
        """Test a repository without releases is not a package."""
        repo = RepositoryInfo.from_api({"name": "notes", "owner": {"login": "acme"}})

        assert repo.has_package is False
        assert repo.current_version() is None
        assert repo.releases_url == ""
        assert repo.display_name() == "notes"

    def test_display_name_from_current_version(self):
        """Test display name comes from the current version's manifest."""
        current = version("v2.0.0", is_latest=True)
        current.manifest.display_name = "Acme Tool"
        repo = RepositoryInfo(owner="acme", name="tool", versions=[version("v1.0.0"), current])

        assert repo.display_name() == "Acme Tool"

    def test_find_version(self):
        """Test lookup by version with or without a leading v."""
        v1, v2 = version("v1.0.0"), version("v2.0.0")
        repo = RepositoryInfo(owner="acme", name="tool", versions=[v2, v1])

        assert repo.find_version("1.0.0") is v1
        assert repo.find_version("v2.0.0") is v2
        assert repo.find_version("3.0.0") is None


class TestReconcile:
    """Tests for building version lists from releases."""

    def test_build_version_fields(self):
        """Test release fields are mapped onto the version."""
        release = {
            "id": 7,
            "tag_name": "v1.2.0",
            "published_at": "2024-02-01T00:00:00Z",
            "body": "Fixes",
            "html_url": "https://github.com/acme/tool/releases/tag/v1.2.0",
            "prerelease": True,
            "draft": False,
        }
        info = build_version(release, PackageManifest(name="com.acme.tool", version="1.2.0"), 7)

        assert info.release_id == 7
        assert info.tag == "v1.2.0"
        assert info.release_date == "2024-02-01T00:00:00Z"
        assert info.changelog_body == "Fixes"
        assert info.is_latest is True
        assert info.is_prerelease is True
        assert info.is_draft is False
        assert info.is_installed is False

    def test_latest_by_id(self):
        """Test exactly the release whose id equals the latest id is latest."""
        releases = [{"id": 3}, {"id": 2}, {"id": 1}]
        manifests = [PackageManifest() for _ in releases]

        versions = build_versions(releases, manifests, 2)
        assert [v.is_latest for v in versions] == [False, True, False]

        versions = build_versions(releases, manifests, None)
        assert not any(v.is_latest for v in versions)

    def test_installed_from_index(self):
        """Test installed state is checked by manifest name and version."""
        index = Mock()
        index.exists.side_effect = lambda name, ver=None: (name, ver) == ("com.acme.tool", "1.0.0")
        releases = [{"id": 2, "tag_name": "v2.0.0"}, {"id": 1, "tag_name": "v1.0.0"}]
        manifests = [
            PackageManifest(name="com.acme.tool", version="2.0.0"),
            PackageManifest(name="com.acme.tool", version="1.0.0"),
        ]

        versions = build_versions(releases, manifests, 2, index)

        assert [v.is_installed for v in versions] == [False, True]

    def test_unnamed_manifest_never_installed(self):
        """Test a default manifest is never matched against the index."""
        index = Mock()
        index.exists.return_value = True

        info = build_version({"id": 1}, PackageManifest(), None, index)

        assert info.is_installed is False
        index.exists.assert_not_called()

    def test_length_mismatch(self):
        """Test releases and manifests must pair up."""
        with pytest.raises(ValueError):
            build_versions([{"id": 1}], [], None)
