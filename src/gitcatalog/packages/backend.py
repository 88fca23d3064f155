"""Installation backend boundary.

A backend performs the actual add/remove of packages. Every mutation returns
a :class:`BackendRequest` handle whose completion is observed by polling
``is_completed`` / ``status``; callers await :func:`wait_for_request`, which
samples the handle on the event loop between short sleeps.

:class:`ManifestFileBackend` is the concrete backend shipped with
gitcatalog: it edits the ``dependencies`` map of a project manifest file
(the layout of a Unity ``Packages/manifest.json``).
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence
from urllib.parse import urlparse

logger = logging.getLogger(__name__)


class BackendError(Exception):
    """Error raised by a backend while executing a request."""
    pass


class RequestStatus(str, Enum):
    IN_PROGRESS = "in_progress"
    SUCCESS = "success"
    FAILURE = "failure"


@dataclass(frozen=True)
class PackageRecord:
    """Installed package as reported by the backend."""
    id: str        # e.g. "com.acme.tool@https://github.com/acme/tool.git#v1.2.0"
    name: str      # e.g. "com.acme.tool"
    version: str   # e.g. "1.2.0"

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict) -> "PackageRecord":
        return cls(
            id=str(data.get("id", "")),
            name=str(data.get("name", "")),
            version=str(data.get("version", "")),
        )


class BackendRequest:
    """Handle for one asynchronous backend operation.

    ``operation`` runs on the first :meth:`poll`; its return value becomes
    ``result``. A ``BackendError`` (or ``OSError``) raised by it marks the
    request failed with that message.
    """

    def __init__(self, description: str, operation: Optional[Callable[[], Any]] = None):
        self.description = description
        self._operation = operation
        self.status = RequestStatus.IN_PROGRESS
        self.error: Optional[str] = None
        self.result: Any = None

    @property
    def is_completed(self) -> bool:
        return self.status != RequestStatus.IN_PROGRESS

    @property
    def succeeded(self) -> bool:
        return self.status == RequestStatus.SUCCESS

    def complete(self, result: Any = None) -> None:
        self.result = result
        self.status = RequestStatus.SUCCESS

    def fail(self, error: str) -> None:
        self.error = error
        self.status = RequestStatus.FAILURE

    def poll(self) -> bool:
        if not self.is_completed and self._operation is not None:
            operation, self._operation = self._operation, None
            try:
                self.complete(operation())
            except (BackendError, OSError) as e:
                self.fail(str(e))
        return self.is_completed

    def __repr__(self) -> str:
        return f"BackendRequest({self.description!r}, status={self.status.value})"


async def wait_for_request(
    request: BackendRequest,
    poll_interval_s: float = 0.01,
    timeout_s: Optional[float] = None,
) -> BackendRequest:
    """Sample ``request`` until it completes, yielding to the loop between polls."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_s if timeout_s else None

    while not request.poll():
        if deadline is not None and loop.time() >= deadline:
            request.fail(f"{request.description} timed out after {timeout_s}s")
            break
        await asyncio.sleep(poll_interval_s)

    return request


class InstallationBackend(ABC):
    """Operations gitcatalog needs from a package installation backend."""

    @abstractmethod
    def list(self, include_indirect: bool = True) -> BackendRequest:
        """Request the installed package records (result: list of PackageRecord)."""

    @abstractmethod
    def add(self, references: Sequence[str], name_hints: Optional[Mapping[str, str]] = None) -> BackendRequest:
        """Request installation of every reference in one batch.

        ``name_hints`` maps a reference to the package name it provides, for
        references (git URLs) whose name cannot be read from the reference.
        """

    @abstractmethod
    def remove(self, names: Sequence[str]) -> BackendRequest:
        """Request removal of the named packages."""

    @abstractmethod
    def add_and_remove(
        self,
        add: Sequence[str],
        remove: Sequence[str],
        name_hints: Optional[Mapping[str, str]] = None,
    ) -> BackendRequest:
        """Request one combined change: remove ``remove``, then add ``add``."""

    def resolve(self) -> BackendRequest:
        """Force re-resolution after a batch change."""
        request = BackendRequest("resolve")
        request.complete()
        return request

    def request_compilation(self) -> None:
        """Ask the host to recompile after installs."""
        return None


# --- Reference parsing ---

_VERSION_FRAGMENT = re.compile(r"^v?(?P<version>\d[\w.+-]*)$")


def is_url_reference(reference: str) -> bool:
    return "://" in reference or reference.startswith("git@") or reference.startswith("file:")


def reference_version(reference: str) -> str:
    """Version encoded in a reference.

    ``https://host/acme/tool.git#v1.2.0`` -> ``1.2.0``; ``1.2.0`` -> ``1.2.0``;
    a URL without a version fragment -> ``""``. Registry constraints are
    returned verbatim.
    """
    if is_url_reference(reference):
        _, _, fragment = reference.partition("#")
        match = _VERSION_FRAGMENT.match(fragment)
        return match.group("version") if match else ""
    return reference


def split_reference(reference: str, name_hints: Optional[Mapping[str, str]] = None) -> tuple[str, str]:
    """Split a reference into ``(package name, manifest value)``."""
    reference = reference.strip()
    if name_hints and reference in name_hints:
        return name_hints[reference], reference

    if is_url_reference(reference):
        url, _, _ = reference.partition("#")
        path = urlparse(url).path if "://" in url else url.rsplit(":", 1)[-1]
        name = path.rstrip("/").rsplit("/", 1)[-1]
        if name.endswith(".git"):
            name = name[: -len(".git")]
        return name, reference

    name, sep, constraint = reference.partition("@")
    if not sep or not name:
        raise BackendError(f"Invalid package reference: {reference!r}")
    return name, constraint


class ManifestFileBackend(InstallationBackend):
    """Backend that keeps installed packages in a manifest JSON file.

    The file holds ``{"dependencies": {name: reference}}``; other top-level
    keys are preserved. Requests execute when first polled.
    """

    def __init__(self, manifest_path: Path | str):
        self.manifest_path = Path(manifest_path)

    def _load(self) -> dict:
        if not self.manifest_path.exists():
            return {"dependencies": {}}
        try:
            data = json.loads(self.manifest_path.read_text(encoding="utf-8"))
        except ValueError as e:
            raise BackendError(f"Cannot parse {self.manifest_path}: {e}") from e
        if not isinstance(data, dict):
            raise BackendError(f"{self.manifest_path} is not a JSON object")
        if not isinstance(data.get("dependencies"), dict):
            data["dependencies"] = {}
        return data

    def _save(self, data: dict) -> None:
        self.manifest_path.parent.mkdir(parents=True, exist_ok=True)
        self.manifest_path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")

    def _records(self) -> List[PackageRecord]:
        dependencies: Dict[str, str] = self._load()["dependencies"]
        return [
            PackageRecord(id=f"{name}@{value}", name=name, version=reference_version(str(value)))
            for name, value in dependencies.items()
        ]

    def list(self, include_indirect: bool = True) -> BackendRequest:
        # Only direct dependencies are recorded in the manifest file.
        return BackendRequest("list", self._records)

    def _apply(self, add: Sequence[str], remove: Sequence[str], name_hints: Optional[Mapping[str, str]]) -> List[PackageRecord]:
        data = self._load()
        dependencies: Dict[str, str] = data["dependencies"]

        missing = [name for name in remove if name not in dependencies]
        if missing:
            raise BackendError(f"Package not installed: {', '.join(missing)}")
        for name in remove:
            del dependencies[name]

        added: List[PackageRecord] = []
        for reference in add:
            name, value = split_reference(reference, name_hints)
            dependencies[name] = value
            added.append(PackageRecord(id=f"{name}@{value}", name=name, version=reference_version(value)))

        self._save(data)
        return added

    def add(self, references: Sequence[str], name_hints: Optional[Mapping[str, str]] = None) -> BackendRequest:
        refs = list(references)
        return BackendRequest(f"add {len(refs)} package(s)", lambda: self._apply(refs, [], name_hints))

    def remove(self, names: Sequence[str]) -> BackendRequest:
        names = list(names)
        return BackendRequest(f"remove {', '.join(names)}", lambda: self._apply([], names, None))

    def add_and_remove(
        self,
        add: Sequence[str],
        remove: Sequence[str],
        name_hints: Optional[Mapping[str, str]] = None,
    ) -> BackendRequest:
        add, remove = list(add), list(remove)
        return BackendRequest("add and remove", lambda: self._apply(add, remove, name_hints))

    def resolve(self) -> BackendRequest:
        return BackendRequest("resolve", lambda: len(self._load()["dependencies"]))

    def request_compilation(self) -> None:
        logger.debug("Compilation requested for %s", self.manifest_path.parent)
