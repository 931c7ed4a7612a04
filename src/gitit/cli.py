import argparse
import datetime
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import daemon
from .browse import BrowseService, DirectoryListing
from .config import Config
from .constants import APP_NAME, CONFIG_FILE, DEFAULT_LOG_LIMIT
from .diff import ChangeKind
from .errors import ConfigError, GititError
from .objects import EntryMode
from .registry import MirrorState, Registry
from .scheduler import SyncReport
from .sync import SyncResult, SyncStatus

logger = logging.getLogger(APP_NAME)
console = Console()
err_console = Console(stderr=True)

_STATUS_STYLE = {
    "success": "green",
    "failed": "bold red",
    "skipped": "yellow",
    "syncing": "cyan",
    "unknown": "dim",
}

_CHANGE_STYLE = {
    ChangeKind.ADDED: ("A", "green"),
    ChangeKind.REMOVED: ("D", "red"),
    ChangeKind.MODIFIED: ("M", "yellow"),
}


def _format_time(ts: float | None) -> str:
    if ts is None:
        return "-"
    return datetime.datetime.fromtimestamp(ts).strftime("%Y-%m-%d %H:%M:%S")


def print_sync_results(results: list[SyncResult]) -> None:
    """Renders sync outcomes as a table."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Result")
    table.add_column("Details")
    table.add_column("Time", justify="right", style="dim")

    for result in results:
        style = _STATUS_STYLE[result.status.value]
        if result.status is SyncStatus.SUCCESS:
            details = "cloned" if result.cloned else (
                "updated" if result.changed else "up to date"
            )
        else:
            details = escape(result.reason or "")
        table.add_row(
            result.name,
            f"[{style}]{result.status.value}[/{style}]",
            details,
            f"{result.duration:.1f}s",
        )

    console.print(table)


def print_status(states: list[MirrorState]) -> None:
    """Renders the registry as a table."""
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan")
    table.add_column("Title")
    table.add_column("Mirror")
    table.add_column("Status")
    table.add_column("Last Sync", justify="right", style="dim")

    for state in states:
        status = state.status
        style = _STATUS_STYLE[status]
        if state.last_sync_result and state.last_sync_result.reason:
            status = f"{status}: {state.last_sync_result.reason}"
        table.add_row(
            state.name,
            escape(state.repo.title),
            str(state.local_path) if state.present else "[dim]absent[/dim]",
            f"[{style}]{escape(status)}[/{style}]",
            _format_time(state.last_sync_time),
        )

    console.print(table)


def print_listing(listing: DirectoryListing) -> None:
    console.print(
        f"[bold]{escape(listing.repo)}[/bold]:/{escape(listing.path)} "
        f"@ [yellow]{listing.commit[:7]}[/yellow]"
    )
    for entry in listing.entries:
        if entry.mode is EntryMode.DIRECTORY:
            console.print(f"  [bold blue]{escape(entry.name)}/[/bold blue]")
        elif entry.mode is EntryMode.SUBMODULE:
            console.print(f"  [magenta]{escape(entry.name)}[/magenta] @ {entry.oid[:7]}")
        elif entry.mode is EntryMode.SYMLINK:
            console.print(f"  [cyan]{escape(entry.name)}[/cyan] [dim](symlink)[/dim]")
        else:
            console.print(f"  {escape(entry.name)}")


def cmd_sync(config: Config, names: list[str]) -> int:
    with daemon.build_scheduler(config) as scheduler:
        with console.status("Syncing repositories...", spinner="dots"):
            if names:
                report = SyncReport([scheduler.sync_by_name(n) for n in names])
            else:
                report = scheduler.sync_all()
    print_sync_results(report.results)
    return 0 if report.ok else 1


def cmd_log(service: BrowseService, args: argparse.Namespace) -> None:
    commits = service.commit_log(
        args.repo, args.ref, limit=args.limit, first_parent=not args.all_parents
    )
    for commit in commits:
        when = commit.author.when.strftime("%Y-%m-%d %H:%M")
        stat = ""
        if args.stat:
            s = service.show_commit(args.repo, commit.id).stat
            stat = f" [green]+{s.added}[/green] [red]-{s.removed}[/red]"
        console.print(
            f"[yellow]{commit.short_id}[/yellow] [dim]{when}[/dim] "
            f"{escape(commit.summary)} [cyan]({escape(commit.author.name)})[/cyan]{stat}"
        )


def cmd_show(service: BrowseService, args: argparse.Namespace) -> None:
    detail = service.show_commit(args.repo, args.commit)
    commit = detail.commit
    console.print(f"[bold yellow]commit {commit.id}[/bold yellow]")
    for parent in commit.parents:
        console.print(f"parent {parent}")
    console.print(
        f"Author: {escape(commit.author.name)} <{escape(commit.author.email)}>"
    )
    console.print(f"Date:   {commit.author.when.isoformat()}")
    console.print()
    console.print(escape(commit.message.rstrip()))
    console.print()
    console.print(
        f"{len(detail.changes)} files changed, "
        f"[green]+{detail.stat.added}[/green] [red]-{detail.stat.removed}[/red]"
    )
    for change in detail.changes:
        letter, style = _CHANGE_STYLE[change.kind]
        console.print(f"[{style}]{letter}[/{style}]  {escape(change.path)}")


def cmd_diff(service: BrowseService, args: argparse.Namespace) -> None:
    if args.patch:
        sys.stdout.write(service.patch(args.repo, args.commit_a, args.commit_b))
        return
    for change in service.diff(args.repo, args.commit_a, args.commit_b):
        letter, style = _CHANGE_STYLE[change.kind]
        console.print(f"[{style}]{letter}[/{style}]  {escape(change.path)}")


def cmd_cat(service: BrowseService, args: argparse.Namespace) -> None:
    content = service.read_file(args.repo, args.ref, args.path)
    sys.stdout.buffer.write(content.data)
    sys.stdout.buffer.flush()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME, description="Mirror Git repositories and browse them."
    )
    parser.add_argument(
        "--config",
        "-c",
        type=Path,
        default=CONFIG_FILE,
        help=f"Path to the configuration file (default: {CONFIG_FILE})",
    )
    parser.add_argument(
        "--verbose", "-v", action="store_true", help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    sync_parser = subparsers.add_parser("sync", help="Sync all or named repositories")
    sync_parser.add_argument("names", nargs="*", help="Repositories to sync")

    subparsers.add_parser("status", help="Show mirror status")
    subparsers.add_parser("repos", help="List configured repositories")
    subparsers.add_parser("watch", help="Sync periodically until interrupted")

    ls_parser = subparsers.add_parser("ls", help="List a directory")
    ls_parser.add_argument("repo")
    ls_parser.add_argument("path", nargs="?", default="")
    ls_parser.add_argument("--ref", "-r", default="HEAD")

    cat_parser = subparsers.add_parser("cat", help="Print a file")
    cat_parser.add_argument("repo")
    cat_parser.add_argument("path")
    cat_parser.add_argument("--ref", "-r", default="HEAD")

    log_parser = subparsers.add_parser("log", help="Show commit history")
    log_parser.add_argument("repo")
    log_parser.add_argument("--ref", "-r", default="HEAD")
    log_parser.add_argument(
        "--limit",
        "-n",
        type=int,
        default=DEFAULT_LOG_LIMIT,
        help=f"Maximum commits to show (default: {DEFAULT_LOG_LIMIT})",
    )
    log_parser.add_argument(
        "--all-parents", action="store_true", help="Follow merged branches too"
    )
    log_parser.add_argument(
        "--stat", action="store_true", help="Show added and removed line counts"
    )

    show_parser = subparsers.add_parser("show", help="Show a commit and its changes")
    show_parser.add_argument("repo")
    show_parser.add_argument("commit", nargs="?", default="HEAD")

    diff_parser = subparsers.add_parser("diff", help="Compare two commits")
    diff_parser.add_argument("repo")
    diff_parser.add_argument("commit_a")
    diff_parser.add_argument("commit_b")
    diff_parser.add_argument(
        "--patch", "-p", action="store_true", help="Print a unified diff"
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the gitit CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    daemon.setup_logging(interactive=args.command != "watch", verbose=args.verbose)

    try:
        config = Config.load(args.config)
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {escape(str(e))}")
        return 2

    if args.command == "watch":
        daemon.run(config)
        return 0

    service = BrowseService(Registry.from_config(config))
    try:
        if args.command == "sync":
            return cmd_sync(config, args.names)
        elif args.command == "status":
            print_status(service.registry.list())
        elif args.command == "repos":
            for repo in service.list_repos():
                marker = "[green]●[/green]" if repo.synced else "[dim]○[/dim]"
                console.print(
                    f"{marker} [cyan]{repo.name}[/cyan] {escape(repo.title)} "
                    f"[dim]{escape(repo.url)}[/dim]"
                )
        elif args.command == "ls":
            print_listing(service.list_directory(args.repo, args.ref, args.path))
        elif args.command == "cat":
            cmd_cat(service, args)
        elif args.command == "log":
            cmd_log(service, args)
        elif args.command == "show":
            cmd_show(service, args)
        elif args.command == "diff":
            cmd_diff(service, args)
    except GititError as e:
        err_console.print(
            f"[bold red]{type(e).__name__}:[/bold red] {escape(str(e))}"
        )
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
