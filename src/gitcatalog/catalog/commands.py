"""Catalog CLI commands for gitcatalog.

Top-level commands:
- config
- sources/repos/versions
- installed
- install/update/remove
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import datetime
from typing import Awaitable, Callable, Optional, Tuple

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from ..config import Settings, config_path
from ..credentials import CredentialError
from ..packages.backend import ManifestFileBackend
from ..packages.index import InstalledPackageIndex
from ..packages.orchestrator import InstallationOrchestrator, UpdateOutcome
from .client import CatalogError
from .models import RepositoryInfo, VersionInfo
from .sync import CatalogSession

console = Console()


def _format_date(value: str) -> str:
    if not value:
        return ""
    try:
        ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return ts.strftime("%Y-%m-%d")
    except ValueError:
        return value


def _yes(flag: bool) -> str:
    return "[green]Yes[/green]" if flag else "[dim]No[/dim]"


def _make_index(settings: Settings) -> InstalledPackageIndex:
    backend = ManifestFileBackend(settings.project_manifest)
    return InstalledPackageIndex(backend, poll_interval_s=settings.poll_interval_s)


def _make_orchestrator(settings: Settings, index: InstalledPackageIndex) -> InstallationOrchestrator:
    return InstallationOrchestrator(
        index.backend,
        index,
        poll_interval_s=settings.poll_interval_s,
        request_timeout_s=settings.request_timeout_s,
    )


def _run(command: Callable[[], Awaitable[int]]) -> int:
    """Drive an async command; map authentication and API errors to exit codes."""
    try:
        return asyncio.run(command())
    except CredentialError as e:
        console.print(f"[red]Authentication failed:[/red] {e}")
        return 2
    except CatalogError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


async def _open_session(
    settings: Settings,
    index: InstalledPackageIndex,
    source: Optional[str],
) -> Optional[CatalogSession]:
    """Authenticate, then load ``source`` (or the first source)."""
    session = CatalogSession(settings, index)
    await index.refresh()
    sources = await session.authenticate()

    source = source or (sources[0] if sources else None)
    if not source:
        console.print("[yellow]No sources available yet.[/yellow]")
        session.client.close()
        return None

    with console.status(f"Loading repositories of {source}...") as status:
        session.on_progress = lambda loaded, total: status.update(
            f"Loading repositories of {source}... {loaded}/{total}"
        )
        await session.select_source(source)
    return session


def _split_repo(value: str, source: Optional[str]) -> Tuple[Optional[str], str]:
    """``owner/name`` selects the owner as source; a bare name keeps ``source``."""
    owner, sep, name = value.partition("/")
    if sep and owner and name:
        return owner, name
    return source, value


async def _find_repository(settings: Settings, index: InstalledPackageIndex, args: argparse.Namespace):
    source, name = _split_repo(args.repo, args.source)
    session = await _open_session(settings, index, source)
    if session is None:
        return None, None

    try:
        repo = session.find(name)
    finally:
        session.client.close()

    if repo is None:
        console.print(f"[red]Repository '{args.repo}' not found in {session.selected_source}.[/red]")
    return session, repo


def _pick_version(repo: RepositoryInfo, wanted: Optional[str]) -> Optional[VersionInfo]:
    if not repo.has_package:
        console.print(f"[yellow]{repo.full_name} has no releases.[/yellow]")
        return None

    version = repo.find_version(wanted) if wanted else repo.current_version()
    if version is None:
        msg = f"Version {wanted} not found" if wanted else "No installable version"
        console.print(f"[red]{msg} for {repo.full_name}.[/red]")
        return None
    if version.manifest.is_empty:
        console.print(f"[red]{repo.full_name} {version.tag} has no readable package manifest.[/red]")
        return None
    return version


# --- Configuration ---

def cmd_config(args: argparse.Namespace) -> int:
    """Show configuration, saving any overrides given."""
    settings = Settings.load()

    changed = False
    if args.api_url:
        settings.api_url = args.api_url
        changed = True
    if args.raw_url:
        settings.raw_url = args.raw_url
        changed = True
    if args.project_manifest:
        settings.project_manifest = args.project_manifest
        changed = True

    if changed:
        path = settings.save()
        console.print(f"[green]Saved:[/green] {path}")

    lines = [f"[bold]{key}:[/bold] {value}" for key, value in settings.to_dict().items()]
    lines.append("")
    lines.append(f"[dim]{config_path()}[/dim]")
    console.print(Panel("\n".join(lines), title="gitcatalog configuration", border_style="cyan"))
    return 0


# --- Discovery ---

def cmd_sources(args: argparse.Namespace) -> int:
    """List sources visible to the authenticated identity."""
    settings = Settings.load()

    async def run() -> int:
        session = CatalogSession(settings, _make_index(settings))
        try:
            sources = await session.authenticate()
        finally:
            if session.client is not None:
                session.client.close()

        if not sources:
            console.print("[yellow]No sources available yet.[/yellow]")
            return 1

        for i, source in enumerate(sources):
            marker = " [dim](you)[/dim]" if i == 0 and source == session.client.username else ""
            console.print(f"  {source}{marker}")
        return 0

    return _run(run)


def cmd_repos(args: argparse.Namespace) -> int:
    """List repositories of a source."""
    settings = Settings.load()

    async def run() -> int:
        session = await _open_session(settings, _make_index(settings), args.source)
        if session is None:
            return 1
        session.client.close()

        repos = session.packages_only() if args.packages_only else list(session.repositories)
        if not repos:
            console.print("[yellow]No repositories found.[/yellow]")
            return 0

        table = Table(title=f"Repositories of {session.selected_source}")
        table.add_column("Name", style="bold")
        table.add_column("Package", style="cyan")
        table.add_column("Current")
        table.add_column("Stars", justify="right")
        table.add_column("Updated")
        table.add_column("Installed", justify="center")

        for repo in repos:
            current = repo.current_version()
            table.add_row(
                repo.display_name(),
                repo.manifest.name or (current.manifest.name if current else ""),
                current.version if current else "[dim]-[/dim]",
                str(repo.stars),
                _format_date(repo.updated_at),
                _yes(repo.is_installed),
            )

        console.print(table)
        packages = len([r for r in repos if r.has_package])
        console.print(f"\n[bold]Total:[/bold] {len(repos)} ({packages} with releases)")
        return 0

    return _run(run)


def cmd_versions(args: argparse.Namespace) -> int:
    """List the releases of a repository."""
    settings = Settings.load()

    async def run() -> int:
        _, repo = await _find_repository(settings, _make_index(settings), args)
        if repo is None:
            return 1
        if not repo.has_package:
            console.print(f"[yellow]{repo.full_name} has no releases.[/yellow]")
            return 0

        current = repo.current_version()
        table = Table(title=f"{repo.display_name()} ({repo.full_name})")
        table.add_column("Version", style="bold")
        table.add_column("Tag", style="cyan")
        table.add_column("Released")
        table.add_column("Latest", justify="center")
        table.add_column("Pre-release", justify="center")
        table.add_column("Draft", justify="center")
        table.add_column("Installed", justify="center")

        for info in repo.versions:
            version = f"{info.version} *" if info is current else info.version
            table.add_row(
                version,
                info.tag,
                _format_date(info.release_date),
                _yes(info.is_latest),
                _yes(info.is_prerelease),
                _yes(info.is_draft),
                _yes(info.is_installed),
            )

        console.print(table)
        console.print(f"\n[dim]* current version. Changelog: {repo.releases_url}[/dim]")
        return 0

    return _run(run)


# --- Installed packages ---

def cmd_installed(args: argparse.Namespace) -> int:
    """List packages recorded in the project manifest."""
    settings = Settings.load()

    async def run() -> int:
        index = _make_index(settings)
        if not await index.refresh():
            console.print(f"[red]Cannot read {settings.project_manifest}.[/red]")
            return 1

        records = index.records()
        if not records:
            console.print("[yellow]No packages installed.[/yellow]")
            return 0

        table = Table(title="Installed Packages")
        table.add_column("Name", style="cyan")
        table.add_column("Version")
        table.add_column("Reference", style="dim")
        for record in sorted(records, key=lambda r: r.name):
            table.add_row(record.name, record.version or "-", record.id.partition("@")[2])

        console.print(table)
        console.print(f"\n[bold]Total:[/bold] {len(records)} package(s)")
        return 0

    return _run(run)


def cmd_install(args: argparse.Namespace) -> int:
    """Install a repository's package with its dependencies."""
    settings = Settings.load()

    async def run() -> int:
        index = _make_index(settings)
        _, repo = await _find_repository(settings, index, args)
        if repo is None:
            return 1
        version = _pick_version(repo, args.version)
        if version is None:
            return 1

        console.print(f"Installing {version.manifest.name} {version.version}...")
        orchestrator = _make_orchestrator(settings, index)
        if not await orchestrator.import_package(repo.clone_url, version.manifest):
            console.print("[red]Installation failed.[/red]")
            return 1

        console.print(f"[green]Installed {version.manifest.name} {version.version}.[/green]")
        return 0

    return _run(run)


_UPDATE_MESSAGES = {
    UpdateOutcome.UPDATED: "[green]Updated {name} to {version}.[/green]",
    UpdateOutcome.INSTALLED: "[green]{name} was not installed; installed {version}.[/green]",
    UpdateOutcome.INSTALL_FAILED: "[red]{name} was not installed and installing {version} failed.[/red]",
    UpdateOutcome.REJECTED: "[yellow]Another installation is in progress.[/yellow]",
    UpdateOutcome.REMOVE_FAILED: "[red]Could not remove {name}; nothing changed.[/red]",
    UpdateOutcome.REMOVED_NOT_REINSTALLED: "[red]{name} was removed but {version} failed to install.[/red]",
}


def cmd_update(args: argparse.Namespace) -> int:
    """Replace an installed package with another release."""
    settings = Settings.load()

    async def run() -> int:
        index = _make_index(settings)
        _, repo = await _find_repository(settings, index, args)
        if repo is None:
            return 1
        version = _pick_version(repo, args.version)
        if version is None:
            return 1

        name = version.manifest.name
        orchestrator = _make_orchestrator(settings, index)
        outcome = await orchestrator.update_package(name, repo.clone_url, version.manifest)

        console.print(_UPDATE_MESSAGES[outcome].format(name=name, version=version.version))
        return 0 if outcome in (UpdateOutcome.UPDATED, UpdateOutcome.INSTALLED) else 1

    return _run(run)


def cmd_remove(args: argparse.Namespace) -> int:
    """Remove an installed package."""
    settings = Settings.load()

    async def run() -> int:
        index = _make_index(settings)
        orchestrator = _make_orchestrator(settings, index)
        if not await orchestrator.remove_package(args.package):
            console.print(f"[red]Could not remove {args.package}.[/red]")
            return 1
        console.print(f"[green]Removed {args.package}.[/green]")
        return 0

    return _run(run)


# --- Parser Setup ---

def add_catalog_commands(parser: argparse.ArgumentParser, subparsers: argparse._SubParsersAction) -> None:
    """Add catalog commands to the main parser."""

    # config
    p_config = subparsers.add_parser("config", help="Show or update configuration")
    p_config.add_argument("--api-url", help="Hosting API root (e.g. https://api.github.com)")
    p_config.add_argument("--raw-url", help="Raw file root for icons (e.g. https://raw.githubusercontent.com)")
    p_config.add_argument("--project-manifest", help="Project manifest file managed by install/remove")
    p_config.set_defaults(func=cmd_config)

    # sources
    p_sources = subparsers.add_parser("sources", help="List available sources")
    p_sources.set_defaults(func=cmd_sources)

    # repos
    p_repos = subparsers.add_parser("repos", help="List repositories of a source")
    p_repos.add_argument("--source", "-s", help="User or organization (default: first source)")
    p_repos.add_argument("--packages-only", "-p", action="store_true", help="Only repositories with releases")
    p_repos.set_defaults(func=cmd_repos)

    # versions
    p_versions = subparsers.add_parser("versions", help="List releases of a repository")
    p_versions.add_argument("repo", help="Repository name or owner/name")
    p_versions.add_argument("--source", "-s", help="User or organization")
    p_versions.set_defaults(func=cmd_versions)

    # installed
    p_installed = subparsers.add_parser("installed", help="List installed packages")
    p_installed.set_defaults(func=cmd_installed)

    # install
    p_install = subparsers.add_parser("install", help="Install a repository's package")
    p_install.add_argument("repo", help="Repository name or owner/name")
    p_install.add_argument("--version", "-v", help="Release version (default: current)")
    p_install.add_argument("--source", "-s", help="User or organization")
    p_install.set_defaults(func=cmd_install)

    # update
    p_update = subparsers.add_parser("update", help="Switch an installed package to another release")
    p_update.add_argument("repo", help="Repository name or owner/name")
    p_update.add_argument("--version", "-v", required=True, help="Release version")
    p_update.add_argument("--source", "-s", help="User or organization")
    p_update.set_defaults(func=cmd_update)

    # remove
    p_remove = subparsers.add_parser("remove", help="Remove an installed package")
    p_remove.add_argument("package", help="Package name")
    p_remove.set_defaults(func=cmd_remove)


def run_catalog_command(args: argparse.Namespace) -> int:
    """Run a catalog command if func is set."""
    if hasattr(args, "func") and args.func:
        return args.func(args)
    return -1  # Not a catalog command
