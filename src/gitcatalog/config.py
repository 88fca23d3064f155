from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .env import load_env_files
from .urls import api_root_url

APP = "gitcatalog"


def config_dir() -> Path:
    """
    Cross-platform config directory:
      - Windows: %APPDATA%\\gitcatalog
      - macOS/Linux: $XDG_CONFIG_HOME/gitcatalog or ~/.config/gitcatalog
    """
    if os.name == "nt":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    return Path(os.environ.get("XDG_CONFIG_HOME", str(Path.home() / ".config"))) / APP


def config_path() -> Path:
    return config_dir() / "config.json"


def cache_dir() -> Path:
    """
    Per-user cache directory:
      - Windows: %LOCALAPPDATA%\\gitcatalog
      - macOS: ~/Library/Caches/gitcatalog
      - Linux: $XDG_CACHE_HOME/gitcatalog or ~/.cache/gitcatalog
    """
    if os.name == "nt":
        base = os.environ.get("LOCALAPPDATA") or os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Caches" / APP
    return Path(os.environ.get("XDG_CACHE_HOME", str(Path.home() / ".cache"))) / APP


@dataclass
class Settings:
    api_url: str = "https://api.github.com"
    raw_url: str = "https://raw.githubusercontent.com"  # icons and other raw files
    host: str = "github.com"
    protocol: str = "https"
    user_agent: str = "gitcatalog"
    manifest_path: str = "package.json"  # read from every repository
    timeout_s: int = 30
    per_page: int = 100
    max_pages: int = 10
    icon_cache_dir: str = ""  # empty = <cache_dir>/icons
    icon_cache_max_entries: int = 256  # 0 = unbounded
    poll_interval_s: float = 0.01
    request_timeout_s: float = 600.0
    result_delay_s: float = 0.05
    project_manifest: str = "Packages/manifest.json"
    credential_helper: str = "git"

    def icon_cache_path(self) -> Path:
        if self.icon_cache_dir:
            return Path(self.icon_cache_dir).expanduser()
        return cache_dir() / "icons"

    @staticmethod
    def load(path: Optional[Path] = None) -> "Settings":
        path = path or config_path()

        # Priority: config dir .env < current dir .env < existing env vars
        load_env_files(config_dir())

        data: dict = {}

        if path.exists():
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, ValueError):
                data = {}

        s = Settings(
            api_url=str(data.get("api_url", Settings.api_url)),
            raw_url=str(data.get("raw_url", Settings.raw_url)),
            host=str(data.get("host", Settings.host)),
            protocol=str(data.get("protocol", Settings.protocol)),
            user_agent=str(data.get("user_agent", Settings.user_agent)),
            manifest_path=str(data.get("manifest_path", Settings.manifest_path)),
            timeout_s=int(data.get("timeout_s", Settings.timeout_s)),
            per_page=int(data.get("per_page", Settings.per_page)),
            max_pages=int(data.get("max_pages", Settings.max_pages)),
            icon_cache_dir=str(data.get("icon_cache_dir", Settings.icon_cache_dir)),
            icon_cache_max_entries=int(data.get("icon_cache_max_entries", Settings.icon_cache_max_entries)),
            poll_interval_s=float(data.get("poll_interval_s", Settings.poll_interval_s)),
            request_timeout_s=float(data.get("request_timeout_s", Settings.request_timeout_s)),
            result_delay_s=float(data.get("result_delay_s", Settings.result_delay_s)),
            project_manifest=str(data.get("project_manifest", Settings.project_manifest)),
            credential_helper=str(data.get("credential_helper", Settings.credential_helper)),
        )

        # Environment overrides (highest priority)
        s.api_url = os.environ.get("GITCATALOG_API_URL", s.api_url)
        s.raw_url = os.environ.get("GITCATALOG_RAW_URL", s.raw_url)
        s.host = os.environ.get("GITCATALOG_HOST", s.host)
        s.user_agent = os.environ.get("GITCATALOG_USER_AGENT", s.user_agent)
        s.manifest_path = os.environ.get("GITCATALOG_MANIFEST_PATH", s.manifest_path)
        s.icon_cache_dir = os.environ.get("GITCATALOG_ICON_CACHE_DIR", s.icon_cache_dir)
        s.project_manifest = os.environ.get("GITCATALOG_PROJECT_MANIFEST", s.project_manifest)

        s.api_url = api_root_url(s.api_url)
        s.raw_url = api_root_url(s.raw_url)

        return s

    def to_dict(self) -> dict:
        return {
            "api_url": self.api_url,
            "raw_url": self.raw_url,
            "host": self.host,
            "protocol": self.protocol,
            "user_agent": self.user_agent,
            "manifest_path": self.manifest_path,
            "timeout_s": self.timeout_s,
            "per_page": self.per_page,
            "max_pages": self.max_pages,
            "icon_cache_dir": self.icon_cache_dir,
            "icon_cache_max_entries": self.icon_cache_max_entries,
            "poll_interval_s": self.poll_interval_s,
            "request_timeout_s": self.request_timeout_s,
            "result_delay_s": self.result_delay_s,
            "project_manifest": self.project_manifest,
            "credential_helper": self.credential_helper,
        }

    def save(self, path: Optional[Path] = None) -> Path:
        path = path or config_path()
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path
