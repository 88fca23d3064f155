"""Repository icon resolution with an on-disk cache.

Icons are cached as ``<repo name>.png`` in a per-user cache directory. A
cached file is served without touching the network; otherwise the icon is
downloaded once, written to the cache and returned. Anything that cannot be
resolved falls back to a placeholder.

The cache is bounded: once it holds more than ``max_entries`` files the least
recently used ones (by mtime, refreshed on every hit) are deleted.
"""

from __future__ import annotations

import asyncio
import logging
import os
import struct
import zlib
from importlib import resources
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional, Sequence

from ..config import Settings, config_dir
from .models import IconImage

logger = logging.getLogger(__name__)

PLACEHOLDER_SIZE = 128
PLACEHOLDER_GRAY = 128
PLACEHOLDER_FILE = "placeholder.png"

_PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"
_IMAGE_SIGNATURES = (
    _PNG_SIGNATURE,
    b"\xff\xd8\xff",  # JPEG
    b"GIF87a",
    b"GIF89a",
    b"BM",
)


def looks_like_image(data: bytes) -> bool:
    if data.startswith(_IMAGE_SIGNATURES):
        return True
    return data[:4] == b"RIFF" and data[8:12] == b"WEBP"


def _png_chunk(tag: bytes, payload: bytes) -> bytes:
    crc = zlib.crc32(tag + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + tag + payload + struct.pack(">I", crc)


def synthesize_placeholder(size: int = PLACEHOLDER_SIZE, gray: int = PLACEHOLDER_GRAY) -> bytes:
    """Uniform gray ``size`` x ``size`` PNG (8-bit grayscale)."""
    row = b"\x00" + bytes([gray]) * size  # filter byte + pixels
    header = struct.pack(">IIBBBBB", size, size, 8, 0, 0, 0, 0)
    return (
        _PNG_SIGNATURE
        + _png_chunk(b"IHDR", header)
        + _png_chunk(b"IDAT", zlib.compress(row * size))
        + _png_chunk(b"IEND", b"")
    )


def default_placeholder_paths() -> List[Path]:
    """Packaged asset first, then a user-supplied file in the config dir."""
    paths: List[Path] = []
    try:
        packaged = resources.files("gitcatalog") / "assets" / PLACEHOLDER_FILE
        paths.append(Path(str(packaged)))
    except (ModuleNotFoundError, TypeError):
        pass
    paths.append(config_dir() / PLACEHOLDER_FILE)
    return paths


class IconResolver:
    """Cached icon lookup keyed by repository name.

    ``download`` fetches the raw bytes of an icon URL (None on failure).
    Concurrent requests for the same repository share one download. Results
    that are not images, and failed downloads, resolve to the placeholder.
    """

    def __init__(
        self,
        cache_dir: Path,
        download: Callable[[str], Awaitable[Optional[bytes]]],
        max_entries: int = 256,
        placeholder_paths: Optional[Sequence[Path]] = None,
    ):
        self.cache_dir = Path(cache_dir)
        self._download = download
        self.max_entries = max_entries
        self._placeholder_paths = list(placeholder_paths) if placeholder_paths is not None else default_placeholder_paths()
        self._placeholder: Optional[IconImage] = None
        self._pending: Dict[str, "asyncio.Future[IconImage]"] = {}

    @classmethod
    def from_settings(cls, settings: Settings, download: Callable[[str], Awaitable[Optional[bytes]]]) -> "IconResolver":
        return cls(
            cache_dir=settings.icon_cache_path(),
            download=download,
            max_entries=settings.icon_cache_max_entries,
        )

    def cache_path(self, repo_name: str) -> Path:
        # keep the file inside cache_dir
        safe = repo_name.replace("/", "_").replace("\\", "_")
        return self.cache_dir / f"{safe}.png"

    async def get_icon(self, repo_name: str, icon_url: str) -> IconImage:
        if not icon_url:
            return self.placeholder()

        cached = self._read_cached(self.cache_path(repo_name))
        if cached is not None:
            return cached

        pending = self._pending.get(repo_name)
        if pending is None:
            pending = asyncio.ensure_future(self._download_and_store(repo_name, icon_url))
            self._pending[repo_name] = pending
            pending.add_done_callback(lambda _f: self._pending.pop(repo_name, None))

        return await asyncio.shield(pending)

    def _read_cached(self, path: Path) -> Optional[IconImage]:
        if not path.is_file():
            return None
        try:
            data = path.read_bytes()
            os.utime(path)
        except OSError as e:
            logger.warning("Cannot read cached icon %s: %s", path, e)
            return None
        return IconImage(data=data, origin="cache", path=str(path))

    async def _download_and_store(self, repo_name: str, icon_url: str) -> IconImage:
        data = await self._download(icon_url)
        if not data:
            return self.placeholder()
        if not looks_like_image(data):
            logger.warning("Icon for %s at %s is not an image", repo_name, icon_url)
            return self.placeholder()

        path = self.cache_path(repo_name)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.warning("Cannot write icon cache %s: %s", path, e)
            return IconImage(data=data, origin="network")

        self._evict(keep=path)
        return IconImage(data=data, origin="network", path=str(path))

    def _evict(self, keep: Path) -> None:
        if self.max_entries <= 0:
            return
        try:
            entries = [(p.stat().st_mtime_ns, p) for p in self.cache_dir.glob("*.png") if p != keep]
        except OSError as e:
            logger.warning("Cannot scan icon cache %s: %s", self.cache_dir, e)
            return

        excess = len(entries) + 1 - self.max_entries
        if excess <= 0:
            return
        for _, stale in sorted(entries)[:excess]:
            try:
                stale.unlink()
                logger.debug("Evicted cached icon %s", stale.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning("Cannot evict cached icon %s: %s", stale, e)

    def placeholder(self) -> IconImage:
        if self._placeholder is None:
            self._placeholder = self._load_placeholder()
        return self._placeholder

    def _load_placeholder(self) -> IconImage:
        for candidate in self._placeholder_paths:
            try:
                if candidate.is_file():
                    return IconImage(data=candidate.read_bytes(), origin="placeholder", path=str(candidate))
            except OSError as e:
                logger.debug("Placeholder %s unreadable: %s", candidate, e)
        return IconImage(data=synthesize_placeholder(), origin="placeholder")
