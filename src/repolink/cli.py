# src/repolink/cli.py: Command-Line Interface (CLI) entry point.
# Implemented using Typer, this module provides the 'repolink' command. It is
# also the composition root: it loads the configuration, sets up logging,
# opens the database and the backend client, wires them into a SyncService,
# and closes everything when the command finishes.

from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.table import Table

from .config import Config, get_config_path, load_config
from .gitwrap import GitCliInspector
from .models import SyncStatus
from .remote import BackendClient
from .session import KeyringSessionProvider, Session
from .store import Database, LocalStore
from .sync import SyncService
from .util.errors import RepolinkError
from .util.locking import lock_path_for
from .util.log import setup_logging
from .util.paths import get_xdg_config_home, get_xdg_data_home, get_xdg_state_home

app = typer.Typer(
    help="Track local Git repositories and sync their commits with the backend."
)
console = Console()

_SYNC_STYLES = {
    SyncStatus.SYNCED: "green",
    SyncStatus.MISSING_REMOTE: "yellow",
    SyncStatus.MISSING_LOCAL: "red",
    SyncStatus.OFFLINE: "dim",
}


def get_config() -> Config:
    """Loads the config and handles errors."""
    try:
        return load_config()
    except RepolinkError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(e.exit_code)


@contextmanager
def open_service() -> Iterator[SyncService]:
    config = get_config()
    setup_logging(config.logging.level, config.logging.json_format)
    db = Database(config.storage.path)
    backend = BackendClient(config.backend.base_url, timeout=config.backend.timeout_sec)
    try:
        db.open()
        yield SyncService(
            store=LocalStore(db),
            inspector=GitCliInspector(timeout=config.git.timeout_sec, stat_width=config.git.stat_width),
            backend=backend,
            sessions=KeyringSessionProvider(),
        )
    except RepolinkError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(e.exit_code)
    finally:
        backend.close()
        db.close()


@app.command()
def register(
    path: Path = typer.Argument(..., help="Path to the root of the Git working tree."),
    name: Optional[str] = typer.Option(None, help="Display name (defaults to the directory name)."),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project id to attach the repository to."),
    description: str = typer.Option("", help="Short description."),
):
    """Validate a local repository and register it with the backend."""
    with open_service() as service:
        repo = service.register_repository(
            name=name or path.resolve().name, path=str(path), project_id=project, description=description
        )
    console.print(f"[bold green]Registered[/bold green] {repo.name} as [cyan]{repo.repo_id}[/cyan]")
    console.print(f"Fingerprint: {repo.repo_fingerprint}")


@app.command()
def extract(repo_id: str = typer.Argument(..., help="Backend id of the repository.")):
    """Extract new commits authored by the configured git user."""
    with open_service() as service:
        with console.status(f"Extracting commits for [bold cyan]{repo_id}[/bold cyan]...", spinner="dots"):
            commits = service.extract_commits(repo_id)
    console.print(f"Found {len(commits)} commit(s) by you.")
    for commit in commits:
        first_line = commit.message.splitlines()[0] if commit.message else ""
        console.print(f"  [yellow]{commit.commit_hash[:10]}[/yellow] [dim]{commit.branch}[/dim] {first_line}")


@app.command()
def sync(repo_id: str = typer.Argument(..., help="Backend id of the repository.")):
    """Extract new commits and upload every unsynced commit."""
    with open_service() as service:
        with console.status(f"Syncing [bold cyan]{repo_id}[/bold cyan]...", spinner="dots"):
            result = service.sync_commits(repo_id)
    console.print(f"[bold green]{result.message}[/bold green]")


@app.command()
def repos():
    """Show local and remote repositories and how they line up."""
    with open_service() as service:
        view = service.get_repositories_view()

    console.print(f"Status: [bold]{view.status.value}[/bold] - {view.message}")
    table = Table("Repo ID", "Name", "Path", "Status", "Sync")
    for repo in view.repositories:
        style = _SYNC_STYLES.get(repo.sync_status, "")
        table.add_row(
            repo.repo_id,
            repo.name,
            repo.path or "",
            repo.status or "",
            f"[{style}]{repo.sync_status.value}[/{style}]" if style else repo.sync_status.value,
        )
    console.print(table)


@app.command()
def health(
    repo_id: Optional[str] = typer.Argument(None, help="Check a single repository."),
    fingerprint: bool = typer.Option(True, help="Also verify the root-commit fingerprint."),
):
    """Check that registered repositories are still where they were left."""
    with open_service() as service:
        if repo_id:
            reports = [service.sync_repo_status(repo_id, validate_fingerprint=fingerprint)]
        else:
            reports = service.check_all_repo_health(validate_fingerprint=fingerprint).reports

    if not reports:
        console.print("No local repositories found to check.")
        return
    table = Table("Repo ID", "Path", "Status", "Message", "Remote")
    for report in reports:
        remote = "" if report.remote_updated is None else ("updated" if report.remote_updated else f"failed: {report.remote_error}")
        table.add_row(report.repo_id, report.path, report.status, report.message, remote)
    console.print(table)


@app.command()
def relocate(
    repo_id: str = typer.Argument(..., help="Backend id of the repository."),
    new_path: Path = typer.Argument(..., help="New location of the working tree."),
):
    """Point a registered repository at a new path holding the same history."""
    with open_service() as service:
        repo = service.relocate_repository(repo_id, str(new_path))
    console.print(f"[bold green]{repo.repo_id}[/bold green] now at {repo.path}")


@app.command()
def setup(
    repo_id: str = typer.Argument(..., help="Backend id of a repository missing locally."),
    path: Path = typer.Argument(..., help="Local clone of that repository."),
):
    """Record a local clone of a repository that only exists on the backend."""
    with open_service() as service:
        remote = service.find_remote_repository(repo_id)
        repo = service.setup_missing_local_repository(remote, str(path))
    console.print(f"[bold green]{repo.name}[/bold green] set up at {repo.path}")


@app.command()
def edit(
    repo_id: str = typer.Argument(..., help="Backend id of the repository."),
    name: Optional[str] = typer.Option(None, help="New name."),
    description: Optional[str] = typer.Option(None, help="New description."),
):
    """Change a repository's name or description."""
    with open_service() as service:
        service.update_repository_details(repo_id, name=name, description=description)
    console.print(f"Updated [bold cyan]{repo_id}[/bold cyan].")


@app.command()
def details(repo_id: str = typer.Argument(..., help="Backend id of the repository.")):
    """Show a repository with its commit counts."""
    with open_service() as service:
        info = service.get_local_repository_details(repo_id)
    repo = info.repository
    table = Table(show_header=False)
    for label, value in (
        ("Repo ID", repo.repo_id),
        ("Name", repo.name),
        ("Path", repo.path),
        ("Status", repo.status.value),
        ("Project", repo.project_id or ""),
        ("Fingerprint", repo.repo_fingerprint),
        ("Last synced", repo.last_synced_at.isoformat() if repo.last_synced_at else "never"),
        ("Commits", str(info.total_commits)),
        ("Unsynced", str(info.unsynced_commits)),
    ):
        table.add_row(label, value)
    console.print(table)


@app.command()
def commits():
    """List stored commits per repository."""
    with open_service() as service:
        listing = service.list_commits()
    for repo in listing:
        console.print(f"[bold]{repo.repo_name}[/bold] ({repo.repo_id}): {repo.total_commits} commit(s)")
        for commit in repo.commits:
            flag = "[green]synced[/green]" if commit.synced else "[yellow]pending[/yellow]"
            first_line = commit.message.splitlines()[0] if commit.message else ""
            console.print(f"  {commit.commit_hash[:10]} {commit.timestamp:%Y-%m-%d %H:%M} {flag} {first_line}")


@app.command()
def projects():
    """List the developer's projects."""
    with open_service() as service:
        listing = service.get_my_projects()
    console.print(f"Status: [bold]{listing.status}[/bold]")
    table = Table("Project ID", "Name", "Local repositories")
    for project in listing.projects:
        table.add_row(project.project_id, project.name, str(len(project.repositories)))
    console.print(table)


@app.command()
def paths():
    """Print resolved configuration, data and lock paths as JSON."""
    import orjson

    config = get_config()
    data = {
        "config_file": str(get_config_path()),
        "config_dir": str(get_xdg_config_home()),
        "data_dir": str(get_xdg_data_home()),
        "state_dir": str(get_xdg_state_home()),
        "database": str(config.storage.path),
        "lock_dir": str(lock_path_for("_").parent),
        "backend_url": config.backend.base_url,
    }
    print(orjson.dumps(data, option=orjson.OPT_INDENT_2).decode())


@app.command()
def login(
    user_id: str = typer.Option(..., help="Developer id issued by the backend."),
    token: str = typer.Option(..., prompt=True, hide_input=True, help="Bearer access token."),
    expires_at: Optional[datetime] = typer.Option(None, help="Token expiry (ISO 8601)."),
    email: Optional[str] = typer.Option(None),
):
    """Store a session obtained from the backend in the OS keyring."""
    try:
        KeyringSessionProvider().save(
            Session(user_id=user_id, access_token=token, expires_at=expires_at, email=email)
        )
    except RepolinkError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(e.exit_code)
    console.print(f"Logged in as [bold green]{email or user_id}[/bold green]")


@app.command()
def logout():
    """Forget the stored session."""
    try:
        KeyringSessionProvider().clear()
    except RepolinkError as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(e.exit_code)
    console.print("Logged out.")


if __name__ == "__main__":
    app()
