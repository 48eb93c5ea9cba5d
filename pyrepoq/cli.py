"""Defines the command-line interface for the repoq application.

This module uses the `click` library for the command surface and `rich` for
output. It is the entry point for looking up package revisions, running
batches of lookups, checking repository URLs and clearing the repoquery
cache.
"""
import json
import logging
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import click
from halo import Halo
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from .core.command import RepoQueryCommand
from .core.config import Config
from .core.errors import RepoQueryError
from .core.models import PackageRevision, RepoQueryParams, RepoUrl
from .core.pool import QueryTask, failures, run_queries
from .utils.cache_cleaner import RepoqueryCacheCleaner
from .utils.process import ProcessRunner

console = Console(emoji=False, highlight=False)

logger = logging.getLogger(__name__)


class RepoqGroup(click.Group):
    """Command group that accepts short aliases and unambiguous prefixes.

    `repoq q ...` runs `query` and `repoq val ...` runs `validate`. The
    aliases are listed in `repoq --help`.
    """

    aliases: Dict[str, str] = {"q": "query", "b": "batch"}

    def get_command(self, ctx: click.Context, cmd_name: str) -> Optional[click.Command]:
        name = cmd_name.lower()
        name = self.aliases.get(name, name)
        command = super().get_command(ctx, name)
        if command is not None:
            return command
        matches = sorted(x for x in self.list_commands(ctx) if x.startswith(name))
        if len(matches) > 1:
            ctx.fail(f"Ambiguous command: '{cmd_name}'. Matches: {', '.join(matches)}")
        return super().get_command(ctx, matches[0]) if matches else None

    def resolve_command(self, ctx: click.Context, args: List[str]) -> Tuple[Optional[str], Optional[click.Command], List[str]]:
        # Usage lines and error messages name the real command, not the alias.
        _, command, rest = super().resolve_command(ctx, args)
        return (command.name if command else None), command, rest

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        super().format_commands(ctx, formatter)
        with formatter.section("Aliases"):
            formatter.write_dl([(alias, name) for alias, name in sorted(self.aliases.items())])



def repository_options(func):
    """Adds the options that select the repository to query."""
    func = click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")(func)
    func = click.option("--password", help="Repository password (default: REPOQ_PASSWORD for http/https).")(func)
    func = click.option("--username", help="Repository username (default: REPOQ_USERNAME for http/https).")(func)
    func = click.option("--repo-id", help="Repository id (defaults to a hash of the URL).")(func)
    func = click.option("--repo", "repo_name", help="Name of a repository from the config file.")(func)
    func = click.option("--url", help="Repository URL (http, https or file).")(func)
    return func


def _resolve_repository(
    config: Config,
    url: Optional[str],
    repo_name: Optional[str],
    username: Optional[str],
    password: Optional[str],
) -> Tuple[RepoUrl, Optional[str]]:
    """Turns the repository options into a location and optional repo id.

    Options given on the command line win over the config file. The
    top-level `username`/`password` settings (and `REPOQ_USERNAME`/
    `REPOQ_PASSWORD`) only fill in credentials for http and https URLs.
    """
    if bool(url) == bool(repo_name):
        raise click.UsageError("Specify exactly one of --url or --repo.")
    if repo_name:
        try:
            repo_url, repo_id = config.repository(repo_name)
        except KeyError as e:
            raise click.UsageError(str(e.args[0])) from e
        if username:
            repo_url.username = username
        if password:
            repo_url.password = password
        return repo_url, repo_id
    repo_url = RepoUrl(url, username, password)
    config.apply_default_credentials(repo_url)
    return repo_url, None



def _cleaner(config: Config) -> Optional[RepoqueryCacheCleaner]:
    if not config.get("cache.cleanup", True):
        return None
    return RepoqueryCacheCleaner(Path(config.get("cache.root", "/var/tmp")))


def _check_url(repo_url: RepoUrl) -> None:
    errors = repo_url.validate()
    if errors:
        for error in errors:
            console.print(f"[red]{escape(error)}[/red]")
        sys.exit(1)


@click.group(cls=RepoqGroup, invoke_without_command=True, context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="pyrepoq")
@click.option("--verbose", is_flag=True, help="Enable verbose output.")
@click.option("--debug", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, verbose: bool, debug: bool) -> None:
    """Look up package revisions on yum repositories via repoquery.

    repoq points repoquery at a repository URL without registering it,
    resolves a package spec to exactly one RPM and reports its revision,
    build time, packager and download location.
    """
    log_level = logging.DEBUG if debug else logging.INFO if verbose else logging.WARNING
    logging.basicConfig(level=log_level, format='%(asctime)s - %(levelname)s - %(message)s')
    logger.debug("Debug mode enabled.")

    if ctx.invoked_subcommand is None:
        console.print("Use 'repoq query <spec> --url <repo>' to look up a package, or 'repoq --help' for more commands.")


def _display_revision(spec: str, revision: PackageRevision) -> None:
    if revision.is_absent:
        console.print(f"[yellow]No package matching '{escape(spec)}' was found.[/yellow]")
        return
    rows = [
        ("Revision", revision.revision),
        ("Built at", revision.timestamp.isoformat() if revision.timestamp else None),
        ("Packager", revision.user),
        ("Location", revision.package_location),
        ("Trackback URL", revision.trackback_url),
        ("Comment", revision.revision_comment),
    ]
    panel_content = "\n".join(f"[bold]{label}[/bold]: {escape(value or 'N/A')}" for label, value in rows)
    console.print(Panel(panel_content, title=f"Package {escape(spec)}", expand=False))


@main.command()
@click.argument("spec", type=str)
@repository_options
@click.option("--json", "json_output", is_flag=True, help="Output the revision as JSON.")
@click.option("--no-cleanup", is_flag=True, help="Keep the repoquery cache around the query.")
def query(spec: str, url: Optional[str], repo_name: Optional[str], repo_id: Optional[str], username: Optional[str],
          password: Optional[str], config_path: Optional[str], json_output: bool, no_cleanup: bool) -> None:
    """Resolve SPEC to a single package on a repository and show its revision.

    The command fails if repoquery fails or if SPEC matches more than one
    file (for example the same version built for several architectures).
    """
    config_obj = Config(config_path=config_path)
    repo_url, configured_id = _resolve_repository(config_obj, url, repo_name, username, password)
    _check_url(repo_url)
    params = RepoQueryParams(repo_id or configured_id or repo_url.repo_id(), repo_url, spec)
    cleaner = None if no_cleanup else _cleaner(config_obj)

    if cleaner:
        cleaner.perform_cleanup()
    try:
        with Halo(text=f"Querying {repo_url.url} for {spec}...", spinner="dots") as spinner:
            try:
                revision = RepoQueryCommand(params, ProcessRunner()).execute()
                spinner.succeed(f"Query complete for {spec}")
            except RepoQueryError as e:
                spinner.fail(f"Query failed for {spec}")
                console.print(f"[red]{escape(str(e))}[/red]")
                sys.exit(1)
    finally:
        if cleaner:
            cleaner.perform_cleanup()

    if json_output:
        click.echo(json.dumps(revision.to_dict(), indent=2))
    else:
        _display_revision(spec, revision)


@main.command()
@click.argument("specs", nargs=-1, required=True)
@repository_options
@click.option("--workers", "-w", type=int, default=None, help="Number of concurrent queries.")
@click.option("--json", "json_output", is_flag=True, help="Output the results as JSON.")
def batch(specs: Tuple[str, ...], url: Optional[str], repo_name: Optional[str], repo_id: Optional[str],
          username: Optional[str], password: Optional[str], config_path: Optional[str], workers: Optional[int],
          json_output: bool) -> None:
    """Resolve several SPECS on one repository concurrently.

    Every spec is looked up independently; the command exits with a
    non-zero status if any of them fails.
    """
    config_obj = Config(config_path=config_path)
    repo_url, configured_id = _resolve_repository(config_obj, url, repo_name, username, password)
    _check_url(repo_url)
    resolved_id = repo_id or configured_id or repo_url.repo_id()
    tasks = [QueryTask(spec, RepoQueryParams(resolved_id, repo_url, spec)) for spec in specs]
    pool_size = workers or config_obj.get("workers", 20)

    with Halo(text=f"Running {len(tasks)} queries...", spinner="dots"):
        outcomes = run_queries(tasks, workers=pool_size, process_runner=ProcessRunner(), cleaner=_cleaner(config_obj))

    if json_output:
        results: List[Dict] = []
        for outcome in outcomes:
            revision = outcome.result.revision if outcome.ok else None
            results.append({
                "spec": outcome.task.label,
                "revision": revision.to_dict() if revision else None,
                "error": None if outcome.ok else str(outcome.exception or outcome.result.error),
            })
        click.echo(json.dumps(results, indent=2))
    else:
        table = Table(title=f"Package revisions on {repo_url.url}")
        table.add_column("Spec", style="cyan")
        table.add_column("Revision", style="magenta")
        table.add_column("Status", style="bold")
        for outcome in outcomes:
            if outcome.ok:
                revision = outcome.result.revision
                if revision.is_absent:
                    table.add_row(outcome.task.label, "-", "[yellow]NOT FOUND[/yellow]")
                else:
                    table.add_row(outcome.task.label, revision.revision, "[green]OK[/green]")
            else:
                error = outcome.exception or outcome.result.error
                table.add_row(outcome.task.label, "-", f"[red]ERROR[/red] {escape(str(error))}")
        console.print(table)

    if failures(outcomes):
        sys.exit(1)


@main.command()
@repository_options
def validate(url: Optional[str], repo_name: Optional[str], repo_id: Optional[str], username: Optional[str],
             password: Optional[str], config_path: Optional[str]) -> None:
    """Check that a repository URL can be handed to repoquery."""
    config_obj = Config(config_path=config_path)
    repo_url, _ = _resolve_repository(config_obj, url, repo_name, username, password)
    _check_url(repo_url)
    console.print(f"[green]Repository URL {repo_url.url} is valid.[/green]")


@main.command()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="Path to a custom config file.")
def cleanup(config_path: Optional[str]) -> None:
    """Remove the repoquery metadata cache of the current user."""
    config_obj = Config(config_path=config_path)
    cleaner = RepoqueryCacheCleaner(Path(config_obj.get("cache.root", "/var/tmp")))
    removed = cleaner.cache_dirs()
    cleaner.perform_cleanup()
    console.print(f"[green]Removed {len(removed)} cache director{'y' if len(removed) == 1 else 'ies'} under {cleaner.cache_root}.[/green]")


@main.command()
@click.argument("action", type=click.Choice(['get', 'set', 'list', 'reset']), required=True)
@click.argument("key", type=str, required=False)
@click.argument("value", type=str, required=False)
def config(action: str, key: Optional[str], value: Optional[str]) -> None:
    """Manage the repoq configuration.

    \b
    ACTION:
        get <key>         Get a configuration value.
        set <key> <value> Set a configuration value.
        list              List all current configuration values.
        reset             Reset the configuration to its default state.
    """
    config_obj = Config()
    if action == "list":
        shown = dict(config_obj.config)
        if shown.get("password"):
            shown["password"] = "****"
        console.print(Panel(escape(json.dumps(shown, indent=2)), title="Current Configuration"))
    elif action == "get":
        if not key:
            console.print("[red]Error: 'get' action requires a key.[/red]")
            sys.exit(1)
        console.print(config_obj.get(key))
    elif action == "set":
        if not key or value is None:
            console.print("[red]Error: 'set' action requires a key and a value.[/red]")
            sys.exit(1)
        if value.lower() in ('true', 'false'):
            processed_value = value.lower() == 'true'
        elif value.isdigit():
            processed_value = int(value)
        else:
            processed_value = value
        config_obj.set(key, processed_value)
        try:
            config_obj.save_user_config()
            console.print(f"[green]'{key}' set to '{processed_value}' and saved to user config.[/green]")
        except IOError as e:
            console.print(f"[red]Error saving configuration: {e}[/red]")
            sys.exit(1)
    elif action == "reset":
        if config_obj.reset_user_config():
            console.print("[green]Configuration reset to defaults.[/green]")
        else:
            console.print("[yellow]No user configuration file to reset.[/yellow]")


if __name__ == "__main__":
    main()
