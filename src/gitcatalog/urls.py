"""URL helpers.

gitcatalog talks to three kinds of URLs on the hosting side:

- REST API endpoints under the API root (e.g. https://api.github.com/user)
- raw file content (icons), served from raw.githubusercontent.com on
  github.com; GitHub Enterprise hosts use their own raw root
- web pages shown to the user (release pages)

Users may configure the API root with or without a scheme or trailing slash
(``api.github.com``, ``https://ghe.example.com/api/v3/``). These helpers
normalize the root once and build every endpoint from it.
"""

from __future__ import annotations

from urllib.parse import quote, urlencode, urlparse

RAW_CONTENT_ROOT = "https://raw.githubusercontent.com"
WEB_ROOT = "https://github.com"


def _ensure_scheme(url: str) -> str:
    url = (url or "").strip()
    if not url:
        return url
    if "://" not in url:
        return "https://" + url
    return url


def api_root_url(api_url: str) -> str:
    """Return ``scheme://host[/path]`` without a trailing slash."""
    u = urlparse(_ensure_scheme(api_url))
    scheme = u.scheme or "https"
    netloc = u.netloc or u.path
    path = u.path if u.netloc else ""
    return f"{scheme}://{netloc}{path}".rstrip("/")


def api_url(root: str, path: str, params: dict | None = None) -> str:
    url = f"{root.rstrip('/')}/{path.lstrip('/')}"
    if params:
        url = f"{url}?{urlencode(params)}"
    return url


def contents_path(owner: str, repo: str, file_path: str) -> str:
    return f"/repos/{owner}/{repo}/contents/{quote(file_path.lstrip('/'))}"


def raw_file_url(owner: str, repo: str, ref: str, file_path: str, root: str = RAW_CONTENT_ROOT) -> str:
    """Raw content URL, or empty string when there is no file path."""
    file_path = (file_path or "").strip().lstrip("/")
    if not file_path:
        return ""
    return f"{api_root_url(root)}/{owner}/{repo}/{ref}/{quote(file_path)}"


def releases_page_url(owner: str, repo: str, root: str = WEB_ROOT) -> str:
    return f"{api_root_url(root)}/{owner}/{repo}/releases"
