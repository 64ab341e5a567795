"""Command line interface for Rifler."""

import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, Callable, List, Optional

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Config, ConfigManager
from .filesystem import LocalFileSystemProvider
from .models import SearchOptions, SearchRequest, SearchResult, SearchScope
from .replacer import NOTHING_TO_REPLACE, Notifier, ReplaceEngine
from .search.engine import SearchEngine
from .search.ripgrep import file_seems_present, get_ripgrep_command_candidates
from .utils.exception_logger import ExceptionLogger

console = Console()

SCOPE_CHOICES = [scope.value for scope in SearchScope]


def run_async(coro):
    """Run a coroutine from a synchronous click command."""
    return asyncio.run(coro)


class ConsoleNotifier(Notifier):
    """Prints replace outcomes to the terminal."""

    def __init__(self, output: Console):
        self.output = output

    def show_info(self, message: str) -> None:
        self.output.print(f"✅ {message}", style="green")

    def show_error(self, message: str) -> None:
        self.output.print(f"❌ {message}", style="red")


def search_options(func: Callable) -> Callable:
    """Options shared by the search and replace commands."""
    decorators = [
        click.option(
            "--scope",
            type=click.Choice(SCOPE_CHOICES),
            default=SearchScope.PROJECT.value,
            show_default=True,
            help="Where to search",
        ),
        click.option(
            "--path",
            "scope_path",
            type=str,
            default=None,
            help="Directory, module or file for the directory/module/file scopes",
        ),
        click.option("--match-case", is_flag=True, help="Case-sensitive matching"),
        click.option("--whole-word", is_flag=True, help="Match whole words only"),
        click.option("--regex", "use_regex", is_flag=True, help="Treat QUERY as a regex"),
        click.option(
            "--multiline", is_flag=True, help="Allow newlines in QUERY to match line breaks"
        ),
        click.option("--mask", default="", help="File mask, e.g. '*.py, !test_*'"),
        click.option("--max-results", type=int, default=None, help="Result cap"),
        click.option(
            "--no-smart-excludes",
            is_flag=True,
            help="Also search dependency caches, build output and VCS metadata",
        ),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _build_request(
    config: Config,
    query: str,
    scope: str,
    scope_path: Optional[str],
    match_case: bool,
    whole_word: bool,
    use_regex: bool,
    multiline: bool,
    mask: str,
    max_results: Optional[int],
    no_smart_excludes: bool,
) -> SearchRequest:
    search_scope = SearchScope(scope)
    if search_scope != SearchScope.PROJECT and not scope_path:
        raise click.UsageError(f"--path is required for the {scope} scope")

    return SearchRequest(
        query=query,
        scope=search_scope,
        options=SearchOptions(
            match_case=match_case,
            whole_word=whole_word,
            use_regex=use_regex,
            multiline=multiline,
            file_mask=mask,
        ),
        directory_path=scope_path if search_scope == SearchScope.DIRECTORY else None,
        module_path=scope_path if search_scope == SearchScope.MODULE else None,
        file_path=scope_path if search_scope == SearchScope.FILE else None,
        max_results=max_results or config.max_results,
        smart_excludes_enabled=config.smart_excludes_enabled and not no_smart_excludes,
    )


def _decode_query(query: str, multiline: bool) -> str:
    # Shells make literal newlines awkward; accept "\n" in multiline mode
    return query.replace("\\n", "\n") if multiline else query


def _results_table(results: List[SearchResult]) -> Table:
    table = Table(title=f"{len(results)} matches")
    table.add_column("File", style="cyan")
    table.add_column("Line", justify="right")
    table.add_column("Col", justify="right")
    table.add_column("Preview")
    for result in results:
        table.add_row(
            result.relative_path,
            str(result.line + 1),
            str(result.character + 1),
            result.preview,
        )
    return table


@click.group()
@click.option(
    "--workspace",
    "-w",
    "workspaces",
    multiple=True,
    type=click.Path(exists=True, file_okay=False),
    help="Workspace root (repeatable, defaults to the current directory)",
)
@click.option("--config", "-c", type=click.Path(dir_okay=False), help="Config file path")
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__, prog_name="rifler")
@click.pass_context
def cli(ctx: click.Context, workspaces, config: Optional[str], verbose: bool):
    """Rifler - find and replace across a workspace.

    \b
    Examples:
      rifler search "TODO"
      rifler search "def \\w+_test" --regex --mask "*.py"
      rifler -w ./repo search "old_name" --scope directory --path ./repo/src
      rifler replace "old_name" "new_name" --whole-word
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s:%(name)s:%(message)s",
    )

    folders = [str(Path(w).resolve()) for w in workspaces] or [str(Path.cwd())]
    config_path = Path(config) if config else Path(folders[0]) / ".rifler" / "config.json"

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["workspace_folders"] = folders
    ctx.obj["config_manager"] = ConfigManager(config_path)


def _load_config(ctx: click.Context) -> Config:
    manager: ConfigManager = ctx.obj["config_manager"]
    try:
        return manager.load()
    except ValueError as e:
        console.print(f"❌ {e}", style="red")
        sys.exit(1)


def _load_engine(ctx: click.Context) -> SearchEngine:
    config = _load_config(ctx)
    folders = ctx.obj["workspace_folders"]
    exception_logger = ExceptionLogger.initialize(Path(folders[0]))
    exception_logger.install_thread_exception_hook()
    return SearchEngine(LocalFileSystemProvider(folders), config)


@cli.command()
@click.argument("query")
@search_options
@click.option("--json", "as_json", is_flag=True, help="Print results as JSON")
@click.pass_context
def search(ctx: click.Context, query: str, as_json: bool, **kwargs: Any):
    """Search the workspace for QUERY."""
    engine = _load_engine(ctx)
    query = _decode_query(query, kwargs["multiline"])
    request = _build_request(engine.config, query, **kwargs)

    results = run_async(engine.search(request))

    if as_json:
        click.echo(json.dumps([r.to_dict() for r in results], indent=2))
        return

    if not results:
        console.print("No matches found.", style="yellow")
        return
    console.print(_results_table(results))
    if ctx.obj["verbose"]:
        console.print(f"backend: {engine.last_backend}", style="dim")


@cli.command()
@click.argument("query")
@click.argument("replacement")
@search_options
@click.pass_context
def replace(ctx: click.Context, query: str, replacement: str, **kwargs: Any):
    """Replace every occurrence of QUERY with REPLACEMENT."""
    engine = _load_engine(ctx)
    query = _decode_query(query, kwargs["multiline"])
    request = _build_request(engine.config, query, **kwargs)
    replacer = ReplaceEngine(engine, ConsoleNotifier(console))

    async def refresh() -> None:
        remaining = await engine.search(request)
        console.print(f"{len(remaining)} occurrences remaining.", style="dim")

    async def run():
        return await replacer.replace_all(
            request.query,
            replacement,
            request.scope,
            request.options,
            directory_path=request.directory_path,
            module_path=request.module_path,
            file_path=request.file_path,
            on_refresh=refresh,
            max_results=request.max_results,
            smart_excludes_enabled=request.smart_excludes_enabled,
        )

    outcome = run_async(run())
    if not outcome.success and outcome.message != NOTHING_TO_REPLACE:
        sys.exit(1)


@cli.command()
@click.pass_context
def candidates(ctx: click.Context):
    """List the ripgrep executables that will be tried, in order."""
    config = _load_config(ctx)

    table = Table(title="ripgrep candidates")
    table.add_column("#", justify="right")
    table.add_column("Command")
    table.add_column("Present")
    for index, command in enumerate(get_ripgrep_command_candidates(config), start=1):
        present = "PATH lookup" if not Path(command).is_absolute() else (
            "yes" if file_seems_present(command) else "no"
        )
        table.add_row(str(index), command, present)
    console.print(table)


@cli.command()
@click.option("--force", "-f", is_flag=True, help="Overwrite existing configuration")
@click.pass_context
def init(ctx: click.Context, force: bool):
    """Write a default configuration file."""
    manager: ConfigManager = ctx.obj["config_manager"]
    if manager.config_path.exists() and not force:
        console.print(
            f"Configuration already exists at {manager.config_path} (use --force to overwrite)",
            style="yellow",
        )
        return
    manager.save(Config())
    console.print(f"✅ Wrote {manager.config_path}", style="green")


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
