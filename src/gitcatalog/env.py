"""Minimal .env loader.

Lets a headless session supply GITCATALOG_* settings (including a token that
bypasses the git credential helper) without exporting them in the shell.

Priority order (highest to lowest):
1. Existing environment variables (never overwritten)
2. .env in current working directory
3. .env in the gitcatalog config directory
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Dict, Iterable

_QUOTES = ('"', "'")


def _unquote(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in _QUOTES:
        return value[1:-1]
    return value


def parse_env_lines(lines: Iterable[str]) -> Dict[str, str]:
    """Parse ``KEY=value`` lines.

    Blank lines and ``#`` comments are skipped, an ``export`` prefix is
    accepted, and matching surrounding quotes are stripped from values.
    """
    result: Dict[str, str] = {}

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()

        key, sep, value = line.partition("=")
        key = key.strip()
        if not sep or not key:
            continue
        result[key] = _unquote(value.strip())

    return result


def parse_env_file(path: Path) -> Dict[str, str]:
    if not path.is_file():
        return {}
    try:
        return parse_env_lines(path.read_text(encoding="utf-8").splitlines())
    except OSError:
        return {}


def load_env_files(config_dir: Path) -> Dict[str, str]:
    """Load .env files into ``os.environ`` and return what was applied."""
    combined: Dict[str, str] = {}
    for env_file in (config_dir / ".env", Path.cwd() / ".env"):
        combined.update(parse_env_file(env_file))

    applied: Dict[str, str] = {}
    for key, value in combined.items():
        if key not in os.environ:
            os.environ[key] = value
            applied[key] = value
    return applied
