"""CLI entry point for worktmux."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table
from rich.text import Text

from worktmux import __version__
from worktmux.config import (
    Config,
    TodoStatus,
    default_config,
    display_config_warnings,
    load_config,
    save_config,
    save_todos,
)
from worktmux.errors import ConfigurationError, GitError, TmuxError
from worktmux.git_worktrees import (
    Worktree,
    create_worktree,
    find_worktree,
    get_repo_root,
    list_worktrees,
    remove_worktree,
    worktree_path,
)
from worktmux.layouts import SplitDirection, parse_percentage, plan_layout, resolve_layout, row_heights
from worktmux.tmux_manager import kill_session, list_sessions, provision_and_attach
from worktmux.utils import compress_path, is_fzf_available, sanitize_session_name, select_with_fzf
from worktmux.xdg_paths import get_config_file_path, get_project_config_path

app = typer.Typer(
    name="worktmux",
    help="Git worktrees, each in its own tmux session with a fixed pane layout.",
    no_args_is_help=False,
)
layout_app = typer.Typer(name="layout", help="Inspect the configured pane layout.")
app.add_typer(layout_app)

console = Console()
err_console = Console(stderr=True)


@dataclass
class AppState:
    """Options shared by every command."""

    config_path: Path | None = None
    dry_run: bool = False
    strict: bool = False
    debug: bool = False


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"worktmux {__version__}")
        raise typer.Exit()


def _setup_logging(verbose: int, debug: bool) -> None:
    """Route log records to stderr through rich."""
    if debug or verbose > 1:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=err_console, show_time=False, show_path=debug)],
        force=True,
    )


def _fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    err_console.print(f"[red]Error:[/] {message}")
    raise typer.Exit(1)


def _state(ctx: typer.Context) -> AppState:
    return ctx.obj if isinstance(ctx.obj, AppState) else AppState()


def _load(state: AppState) -> tuple[Config, Path]:
    """Find the repository root and load its layered config."""
    try:
        repo_root = get_repo_root()
    except GitError as e:
        _fail(str(e))

    config, warnings = load_config(state.config_path, project_dir=repo_root, strict=state.strict)
    if warnings:
        display_config_warnings(warnings, err_console)
        if state.strict:
            raise typer.Exit(1)

    if state.debug:
        console.print(f"[dim]User config: {state.config_path or get_config_file_path()}[/]")
        console.print(f"[dim]Project config: {get_project_config_path(repo_root)}[/]")
    return config, repo_root


def _worktrees(repo_root: Path) -> list[Worktree]:
    try:
        return list_worktrees(repo_root)
    except GitError as e:
        _fail(str(e))


def _print_commands(commands: list[str]) -> None:
    console.print("[yellow]Commands that would be executed:[/]")
    for cmd in commands:
        console.print(f"  {cmd}", markup=False, highlight=False)
    console.print(
        "[dim]Note: Actual execution targets panes by ID (%N) instead of index; "
        "the indices shown assume pane-base-index 0.[/]"
    )


def _save_todos(config: Config, repo_root: Path) -> None:
    """Persist the task list, warning instead of failing the command."""
    try:
        save_todos(config.todos, repo_root)
    except ConfigurationError as e:
        err_console.print(f"[yellow]Warning:[/] task list not saved: {e}")


def _open(worktree: Worktree, config: Config, state: AppState) -> None:
    """Provision the worktree's session and attach to it."""
    rows = resolve_layout(config)
    try:
        commands = provision_and_attach(worktree.name, worktree.path, rows, config, dry_run=state.dry_run)
    except ConfigurationError as e:
        _fail(f"{e} (run 'worktmux init-config' to write a default layout)")
    except TmuxError as e:
        _fail(str(e))

    if state.dry_run:
        _print_commands(commands)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Annotated[
        Path | None,
        typer.Option("--config", "-C", help="User config file path."),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", "-n", help="Preview tmux commands without executing."),
    ] = False,
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", count=True, help="Increase verbosity."),
    ] = 0,
    debug: Annotated[
        bool,
        typer.Option("--debug", "-D", help="Enable debug output."),
    ] = False,
    strict: Annotated[
        bool,
        typer.Option("--strict", help="Exit with error on config validation warnings."),
    ] = False,
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version."),
    ] = None,
) -> None:
    """Pick a worktree and open its tmux session."""
    _setup_logging(verbose, debug)
    state = AppState(config_path=config_path, dry_run=dry_run, strict=strict, debug=debug)
    ctx.obj = state

    if ctx.invoked_subcommand is not None:
        return

    if not is_fzf_available():
        _fail("fzf is required to pick a worktree; use 'worktmux open NAME' instead.")

    config, repo_root = _load(state)
    worktrees = _worktrees(repo_root)
    selected = select_with_fzf([wt.name for wt in worktrees], prompt="Worktree: ")
    if not selected:
        raise typer.Exit(0)

    worktree = find_worktree(selected, worktrees)
    if worktree is None:
        _fail(f"worktree '{selected}' not found")
    _open(worktree, config, state)


@app.command("open")
def open_worktree(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Worktree name (directory basename).")],
) -> None:
    """Create or reattach the tmux session for a worktree."""
    state = _state(ctx)
    config, repo_root = _load(state)
    worktree = find_worktree(name, _worktrees(repo_root))
    if worktree is None:
        _fail(f"worktree '{name}' not found")
    _open(worktree, config, state)


@app.command("new")
def new_worktree(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Name for the new worktree and its branch.")],
    description: Annotated[
        str | None,
        typer.Option("--description", "-m", help="What the worktree is for; shown in its status pane."),
    ] = None,
    no_open: Annotated[
        bool,
        typer.Option("--no-open", help="Create the worktree without opening a session."),
    ] = False,
) -> None:
    """Create a worktree on a new branch and open its session."""
    state = _state(ctx)
    config, repo_root = _load(state)

    if state.dry_run:
        path = worktree_path(name, repo_root, config.worktree_dir)
        console.print(f"[yellow]Would create worktree:[/] {name} at {compress_path(str(path))}")
        if description:
            console.print(Text.assemble(("Would record task: ", "yellow"), description))
    else:
        try:
            path = create_worktree(name, repo_root, config.worktree_dir)
        except GitError as e:
            _fail(str(e))
        console.print(f"[green]✓[/] Created worktree {name} at {compress_path(str(path))}")
        if description:
            config.add_todo(description, path.name)
            _save_todos(config, repo_root)

    if not no_open:
        _open(Worktree(path=path, branch=f"refs/heads/{name}"), config, state)


@app.command("list")
def list_command(ctx: typer.Context) -> None:
    """List worktrees and whether their tmux session is running."""
    state = _state(ctx)
    _config, repo_root = _load(state)
    worktrees = _worktrees(repo_root)
    running = set(list_sessions())

    table = Table(title="Worktrees", show_header=True, header_style="bold")
    table.add_column("Name", style="cyan")
    table.add_column("Branch")
    table.add_column("Path", style="dim")
    table.add_column("Session")

    for i, worktree in enumerate(worktrees):
        session = sanitize_session_name(worktree.name)
        status = Text("● running", style="green") if session in running else Text("-", style="dim")
        name = f"{worktree.name} (main)" if i == 0 else worktree.name
        branch = worktree.short_branch or f"detached {worktree.commit[:7]}"
        table.add_row(name, branch, compress_path(str(worktree.path)), status)

    console.print(table)


@app.command("remove")
def remove_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Worktree name.")],
    delete_branch: Annotated[
        bool,
        typer.Option("--delete-branch", "-d", help="Also delete the worktree's branch."),
    ] = False,
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Remove even with uncommitted changes."),
    ] = False,
) -> None:
    """Kill a worktree's session and remove the worktree."""
    state = _state(ctx)
    config, repo_root = _load(state)
    worktrees = _worktrees(repo_root)
    worktree = find_worktree(name, worktrees)
    if worktree is None:
        _fail(f"worktree '{name}' not found")
    if worktree.path == worktrees[0].path:
        _fail("refusing to remove the main worktree")

    try:
        commands = kill_session(sanitize_session_name(name), dry_run=state.dry_run)
    except TmuxError as e:
        _fail(str(e))

    if state.dry_run:
        commands.append(f"git worktree remove {worktree.path}")
        _print_commands(commands)
        return

    try:
        remove_worktree(worktree, repo_root, delete_branch=delete_branch, force=force)
    except GitError as e:
        _fail(str(e))
    console.print(f"[green]✓[/] Removed worktree {name}")

    if config.mark_todo_done(worktree.name):
        _save_todos(config, repo_root)


@app.command("kill")
def kill_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Worktree name.")],
) -> None:
    """Kill a worktree's tmux session, keeping the worktree."""
    state = _state(ctx)
    session_name = sanitize_session_name(name)
    try:
        commands = kill_session(session_name, dry_run=state.dry_run)
    except TmuxError as e:
        _fail(str(e))

    if not commands:
        err_console.print(f"[yellow]No session named {session_name}[/]")
        raise typer.Exit(1)
    if state.dry_run:
        _print_commands(commands)
    else:
        console.print(f"[green]✓[/] Killed session {session_name}")


@app.command("info")
def info_command(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Worktree name.")],
) -> None:
    """Summarise a worktree and its task (runs in the status pane)."""
    state = _state(ctx)
    config, repo_root = _load(state)
    worktree = find_worktree(name, _worktrees(repo_root))
    if worktree is None:
        _fail(f"worktree '{name}' not found")
    if state.debug:
        console.print(f"[dim]Repository: {repo_root}[/]")

    todo = config.get_todo(worktree.name)
    line = Text()
    line.append(f" {worktree.name}", style="bold cyan")
    line.append(f"  {worktree.short_branch or 'detached'}", style="green")
    line.append(f"  {worktree.commit[:7]}", style="yellow")
    line.append(f"  {compress_path(str(worktree.path))}", style="dim")
    if todo is not None:
        line.append(f"  [{todo.status}]", style="green" if todo.status == TodoStatus.DONE else "magenta")
    console.print(line)

    if todo is None:
        console.print(" [dim italic]No description available.[/]")
    else:
        console.print(Markdown(todo.description))


@layout_app.command("show")
def layout_show(ctx: typer.Context) -> None:
    """Show the resolved layout rows and the splits that build them."""
    state = _state(ctx)
    config, _repo_root = _load(state)
    rows = resolve_layout(config)
    if not rows:
        _fail("no layout defined in config (run 'worktmux init-config')")

    source = "layout" if config.layout else "windows (legacy)"
    rows_table = Table(title=f"Rows from '{source}'", show_header=True, header_style="bold")
    rows_table.add_column("#", justify="right")
    rows_table.add_column("Height")
    rows_table.add_column("Panes")
    rows_table.add_column("Commands", style="dim")

    for i, (row, height) in enumerate(zip(rows, row_heights(rows), strict=True)):
        height_text = f"{height}%"
        if parse_percentage(row.height) != height:
            height_text += f" (configured: {row.height or 'unset'})"
        if row.panes:
            panes = ", ".join(p.name for p in row.panes)
            cmds = ", ".join(p.command or "-" for p in row.panes)
        else:
            panes = row.name or "-"
            cmds = row.command or "-"
        rows_table.add_row(str(i), height_text, panes, cmds)
    console.print(rows_table)

    try:
        steps = plan_layout(rows)
    except ConfigurationError as e:
        _fail(str(e))

    plan_table = Table(title="Splits", show_header=True, header_style="bold")
    plan_table.add_column("Step")
    plan_table.add_column("Target pane", justify="right")
    plan_table.add_column("Direction")
    plan_table.add_column("New pane %", justify="right")
    for step in steps:
        direction = "vertical" if step.direction == SplitDirection.VERTICAL else "horizontal"
        plan_table.add_row(step.step, str(step.target_index), direction, str(step.percent))
    console.print(plan_table)


@app.command()
def init_config() -> None:
    """Write a project .worktmux.yaml with the default layout."""
    try:
        repo_root = get_repo_root()
    except GitError as e:
        _fail(str(e))

    config_file = get_project_config_path(repo_root)
    if config_file.exists():
        err_console.print(f"[yellow]Config file already exists:[/] {config_file}")
        raise typer.Exit(1)

    save_config(default_config(name=repo_root.name), config_file)
    console.print(f"[green]✓[/] Created config file: {config_file}")


if __name__ == "__main__":
    app()
