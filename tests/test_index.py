"""Tests for the installed-package index."""

import asyncio
import json

from gitcatalog.packages.backend import BackendRequest, ManifestFileBackend, PackageRecord
from gitcatalog.packages.index import InstalledPackageIndex


class StaticBackend(ManifestFileBackend):
    """Backend listing a fixed set of records."""

    def __init__(self, records, fail=False):
        super().__init__("unused.json")
        self.records = list(records)
        self.fail = fail

    def list(self, include_indirect=True):
        request = BackendRequest("list")
        if self.fail:
            request.fail("backend offline")
        else:
            request.complete(list(self.records))
        return request


TOOL = PackageRecord(id="com.acme.tool", name="com.acme.tool", version="1.2.0")


def make_index(records, fail=False):
    index = InstalledPackageIndex(StaticBackend(records, fail=fail), poll_interval_s=0)
    asyncio.run(index.refresh())
    return index


class TestInstalledPackageIndex:
    """Tests for InstalledPackageIndex."""

    def test_exists_examples(self):
        """Test substring and version matching."""
        index = make_index([TOOL])

        assert index.exists("acme.tool") is True
        assert index.exists("acme.tool", "1.2.0") is True
        assert index.exists("acme.tool", "9.9.9") is False
        assert index.exists("nomatch") is False
        assert index.exists("") is False

    def test_first_match_is_cached_under_query(self):
        """Test a matched query is remembered under the query string."""
        index = make_index([TOOL])

        assert index.get_record("acme.tool") is None
        index.exists("acme.tool")
        assert index.get_record("acme.tool") is TOOL

    def test_cached_alias_not_overwritten(self):
        """Test the first cached match survives until refresh."""
        other = PackageRecord(id="com.acme.tools-extra", name="com.acme.tools-extra", version="0.1.0")
        index = make_index([TOOL, other])

        index.exists("acme.tool")
        index.exists("acme.tool", "0.1.0")

        assert index.get_record("acme.tool") is TOOL

    def test_alias_with_other_version_rescans(self):
        """Test a version mismatch on the alias still finds another record."""
        newer = PackageRecord(id="com.acme.tool.core", name="com.acme.tool.core", version="2.0.0")
        index = make_index([TOOL, newer])

        assert index.exists("acme.tool") is True
        assert index.exists("acme.tool", "2.0.0") is True

    def test_refresh_rebuilds(self):
        """Test refresh replaces the whole snapshot."""
        backend = StaticBackend([TOOL])
        index = InstalledPackageIndex(backend, poll_interval_s=0)
        asyncio.run(index.refresh())
        assert index.exists("acme.tool")

        backend.records = []
        asyncio.run(index.refresh())

        assert index.exists("acme.tool") is False
        assert index.records() == []

    def test_refresh_failure(self):
        """Test a failed listing leaves the index empty and not ready."""
        index = make_index([TOOL], fail=True)

        assert index.is_ready is False
        assert index.exists("acme.tool") is False

    def test_records_are_distinct(self):
        """Test aliases do not duplicate records."""
        index = make_index([TOOL])
        index.exists("acme")
        index.exists("tool")

        assert index.records() == [TOOL]

    def test_manifest_backend(self, tmp_path):
        """Test the index over a manifest file."""
        path = tmp_path / "manifest.json"
        ref = "https://github.com/acme/tool.git#v1.2.0"
        path.write_text(json.dumps({"dependencies": {"com.acme.tool": ref}}))
        index = InstalledPackageIndex(ManifestFileBackend(path), poll_interval_s=0)

        assert asyncio.run(index.refresh()) is True
        assert index.is_ready
        assert index.exists("com.acme.tool", "1.2.0")
        assert not index.exists("com.acme.tool", "1.3.0")
