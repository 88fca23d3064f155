"""Credential lookup through the local git credential helper.

``git credential fill`` is fed ``protocol=...`` / ``host=...`` on stdin and
answers with ``key=value`` lines. Whatever helper git is configured with
(manager, osxkeychain, store, ...) produces the token; gitcatalog never
stores it.
"""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Dict

logger = logging.getLogger(__name__)

TOKEN_ENV = "GITCATALOG_TOKEN"
USERNAME_ENV = "GITCATALOG_USERNAME"


class CredentialError(Exception):
    """Credentials could not be obtained."""
    pass


@dataclass(frozen=True)
class Credentials:
    username: str
    token: str

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, token='***')"


def parse_credential_output(output: str) -> Dict[str, str]:
    values: Dict[str, str] = {}
    for line in output.splitlines():
        key, sep, value = line.partition("=")
        if sep and key:
            values[key.strip()] = value
    return values


def get_credentials(protocol: str = "https", host: str = "github.com", helper: str = "git") -> Credentials:
    """Return username/token for ``protocol://host``.

    ``GITCATALOG_TOKEN`` short-circuits the helper for headless runs.

    Raises:
        CredentialError: helper missing, non-zero exit, or no username/password.
    """
    env_token = os.environ.get(TOKEN_ENV, "")
    if env_token:
        logger.debug("Using token from %s", TOKEN_ENV)
        return Credentials(username=os.environ.get(USERNAME_ENV, ""), token=env_token)

    if not shutil.which(helper):
        raise CredentialError(f"Credential helper not found: {helper}")

    payload = f"protocol={protocol}\nhost={host}\n\n"
    try:
        proc = subprocess.run(
            [helper, "credential", "fill"],
            input=payload,
            capture_output=True,
            text=True,
            timeout=60,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except (OSError, subprocess.SubprocessError) as e:
        raise CredentialError(f"Error running credential helper: {e}") from e

    if proc.returncode != 0:
        raise CredentialError(f"Error fetching credentials: {proc.stderr.strip()}")

    values = parse_credential_output(proc.stdout)
    username = values.get("username")
    password = values.get("password")
    if username is None or password is None:
        raise CredentialError(f"Credential helper returned no username/password for {host}")

    return Credentials(username=username, token=password)
