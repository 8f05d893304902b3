"""Configuration management for worktmux."""

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import cast

import yaml
from pydantic import BaseModel, ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from worktmux.errors import ConfigurationError
from worktmux.xdg_paths import get_config_file_path, get_project_config_path, get_project_local_config_path


class Pane(BaseModel):
    """One column of a multi-pane row."""

    name: str
    command: str | None = None
    width: str | None = None  # e.g. "50%"; kept in the file but splits are always equal-share


class LayoutRow(BaseModel):
    """One horizontal band of the work area."""

    height: str = ""  # percentage of the work area, e.g. "40%"
    name: str = ""  # single-pane rows only
    command: str | None = None  # single-pane rows only
    panes: list[Pane] = []  # non-empty for rows split into columns


class LegacyWindow(BaseModel):
    """Entry of the older ``windows:`` list, replaced by ``layout:``."""

    name: str
    command: str | None = None


class TodoStatus(StrEnum):
    """Progress of the task a worktree was created for."""

    PENDING = "pending"
    DONE = "done"


class Todo(BaseModel):
    """A task description attached to a worktree."""

    description: str
    status: TodoStatus = TodoStatus.PENDING
    worktree: str = ""


# Written by ``worktmux init-config``; not applied implicitly so a legacy
# ``windows:`` list in an existing file still takes effect.
DEFAULT_LAYOUT: list[LayoutRow] = [
    LayoutRow(height="33%", name="code"),
    LayoutRow(height="34%", name="server"),
    LayoutRow(
        height="33%",
        panes=[Pane(name="shell", width="50%"), Pane(name="git", width="50%", command="git status")],
    ),
]


@dataclass
class ConfigWarning:
    """A config validation warning."""

    file: str
    field_name: str
    message: str
    value: object = field(default=None, repr=False)


class Config(BaseModel):
    """Configuration settings for worktmux."""

    name: str = ""
    worktree_dir: str = "."  # relative to the main worktree root
    layout: list[LayoutRow] = []
    windows: list[LegacyWindow] = []  # deprecated, read only when layout is empty

    # Commands for the two fixed panes; {worktree}, {path} and {session} are filled in
    status_command: str = "worktmux info {worktree}"
    agent_command: str = "claude"
    mouse: bool = True

    # When true in a project config, ignore the user config
    ignore_parent_configs: bool = False

    todos: list[Todo] = []  # newest first

    def add_todo(self, description: str, worktree: str) -> Todo:
        """Record a pending task for a worktree ahead of older ones."""
        todo = Todo(description=description, worktree=worktree)
        self.todos.insert(0, todo)
        return todo

    def get_todo(self, worktree: str) -> Todo | None:
        """Find the newest task recorded for a worktree."""
        return next((todo for todo in self.todos if todo.worktree == worktree), None)

    def mark_todo_done(self, worktree: str) -> bool:
        """Mark a worktree's newest task done; False if it has none."""
        todo = self.get_todo(worktree)
        if todo is None:
            return False
        todo.status = TodoStatus.DONE
        return True


def default_config(name: str = "") -> Config:
    """Build the config written for a freshly initialised project."""
    return Config(name=name, layout=[row.model_copy(deep=True) for row in DEFAULT_LAYOUT])


def _deep_merge(base: dict[str, object], override: dict[str, object]) -> dict[str, object]:
    """Merge override into a copy of base.

    Nested mappings are merged key by key. Anything else in override,
    lists included, replaces the value in base.
    """
    result = dict(base)
    for key, value in override.items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = _deep_merge(current, value)
        else:
            result[key] = value
    return result


def _load_yaml_file(path: Path) -> tuple[dict[str, object], list[ConfigWarning]]:
    """Read one YAML config file.

    A missing or empty file is an empty layer. An unreadable or malformed
    file is also an empty layer, reported as a warning.

    Args:
        path: Path to the YAML file.

    Returns:
        Tuple of (top-level mapping, warnings).
    """
    if not path.is_file():
        return {}, []
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        return {}, [ConfigWarning(file=str(path), field_name="(file)", message=f"YAML parse error: {e}")]
    except OSError as e:
        return {}, [ConfigWarning(file=str(path), field_name="(file)", message=f"File read error: {e}")]

    if raw is None:
        return {}, []
    if not isinstance(raw, dict):
        message = f"expected a mapping at the top level, got {type(raw).__name__}"
        return {}, [ConfigWarning(file=str(path), field_name="(file)", message=message)]
    return cast(dict[str, object], raw), []


def _collect_layers(
    config_path: Path | None, project_dir: Path | None
) -> tuple[list[dict[str, object]], list[ConfigWarning]]:
    """Read every config file that applies, lowest precedence first."""
    paths = [config_path or get_config_file_path()]
    if project_dir is not None:
        paths += [get_project_config_path(project_dir), get_project_local_config_path(project_dir)]

    layers: list[dict[str, object]] = []
    warnings: list[ConfigWarning] = []
    for path in paths:
        data, file_warnings = _load_yaml_file(path)
        layers.append(data)
        warnings.extend(file_warnings)

    # Either project file can cut the user config out of the merge
    if any(layer.get("ignore_parent_configs") for layer in layers[1:]):
        layers = layers[1:]
    return layers, warnings


def _validation_warnings(error: ValidationError) -> list[ConfigWarning]:
    return [
        ConfigWarning(
            file="merged config",
            field_name=".".join(str(loc) for loc in detail["loc"]),
            message=detail["msg"],
            value=detail.get("input"),
        )
        for detail in error.errors()
    ]


def load_config(
    config_path: Path | None = None,
    project_dir: Path | None = None,
    strict: bool = False,
) -> tuple[Config, list[ConfigWarning]]:
    """Load the user and project configs and merge them.

    Layers, later ones winning:

    1. User config (``$XDG_CONFIG_HOME/worktmux/config.yaml``)
    2. ``.worktmux.yaml`` in the repository root, shared with the team
    3. ``.worktmux.yaml.local`` next to it, personal overrides

    ``layout`` and ``windows`` are lists, so a higher layer replaces them
    outright. ``ignore_parent_configs: true`` in either project file drops the
    user layer.

    A value that fails validation is reported and its top-level key is
    dropped, so the rest of the config still applies. With ``strict`` the
    defaults are returned instead.

    Args:
        config_path: User config file. Uses the XDG location if None.
        project_dir: Repository root holding the project config files.
        strict: Return defaults instead of recovering from validation errors.

    Returns:
        Tuple of (Config, warnings).
    """
    layers, warnings = _collect_layers(config_path, project_dir)
    merged: dict[str, object] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)

    try:
        return Config.model_validate(merged), warnings
    except ValidationError as e:
        failed_keys = {str(detail["loc"][0]) for detail in e.errors() if detail["loc"]}
        warnings.extend(_validation_warnings(e))

    if strict:
        return Config(), warnings

    for key in failed_keys:
        merged.pop(key, None)
    try:
        return Config.model_validate(merged), warnings
    except ValidationError:
        return Config(), warnings


def display_config_warnings(warnings: list[ConfigWarning], console: Console) -> None:
    """Print config warnings as a table in a yellow panel."""
    if not warnings:
        return

    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_column(style="yellow")
    for warning in warnings:
        message = warning.message
        if warning.value is not None:
            message += f" (got: {warning.value!r})"
        table.add_row(warning.file, warning.field_name, message)

    console.print(Panel(table, title="[yellow]Config Warnings[/]", border_style="yellow"))


def save_config(config: Config, config_path: Path | None = None) -> None:
    """Write a config as YAML, creating parent directories.

    Args:
        config: The configuration to write.
        config_path: Destination. Uses the user config location if None.
    """
    path = config_path or get_config_file_path()
    path.parent.mkdir(parents=True, exist_ok=True)

    # Unset commands and widths are left out rather than written as null
    data = config.model_dump(mode="json", exclude_none=True)
    for key in ("windows", "todos"):
        if not data[key]:
            del data[key]
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8")


def save_todos(todos: list[Todo], project_dir: Path) -> Path:
    """Write the task list into the project's local config file.

    Only the ``todos`` key is replaced; the file's other settings are kept
    and nothing from the merged user or project layers is copied in.

    Args:
        todos: The full task list, newest first.
        project_dir: The repository root.

    Returns:
        The file written.

    Raises:
        ConfigurationError: If the existing local config can't be read.
    """
    path = get_project_local_config_path(project_dir)
    data, warnings = _load_yaml_file(path)
    if warnings:
        raise ConfigurationError(f"cannot update {path}: {warnings[0].message}")

    data["todos"] = [todo.model_dump(mode="json") for todo in todos]
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8")
    return path
