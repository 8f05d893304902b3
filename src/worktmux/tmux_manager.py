"""Tmux session management for worktmux."""

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

from worktmux.config import Config, LayoutRow
from worktmux.errors import ConfigurationError, PaneSplitError, TmuxError, TmuxNotFoundError
from worktmux.layouts import apply_pane_layout, format_pane_command, plan_layout, run_best_effort
from worktmux.utils import sanitize_session_name

logger = logging.getLogger(__name__)

# Tab separates fields in -F output; window names may contain colons
_FIELD_SEP = "\t"


@dataclass
class Window:
    """A tmux window as reported by list-windows."""

    id: str  # "@N", unchanged when renumber-windows shifts indices
    index: int
    name: str


def is_installed() -> bool:
    """Check if the tmux binary is on PATH."""
    return shutil.which("tmux") is not None


def is_inside_tmux() -> bool:
    """Check if we're running inside a tmux session."""
    return os.environ.get("TMUX") is not None


def session_exists(session_name: str) -> bool:
    """Check if a tmux session with the given name exists.

    Args:
        session_name: The session name to check.

    Returns:
        True if the session exists, False otherwise.
    """
    try:
        result = subprocess.run(
            ["tmux", "has-session", "-t", f"={session_name}"],
            capture_output=True,
            check=False,
        )
    except FileNotFoundError:
        return False
    return result.returncode == 0


def list_sessions() -> list[str]:
    """List the names of all running tmux sessions.

    Returns:
        Session names; empty when no tmux server is running.
    """
    try:
        result = subprocess.run(
            ["tmux", "list-sessions", "-F", "#{session_name}"],
            capture_output=True,
            text=True,
            check=False,
        )
    except FileNotFoundError:
        return []
    if result.returncode != 0:
        # "no server running" is reported as a failure
        return []
    return [line for line in result.stdout.strip().split("\n") if line]


def list_windows(session_name: str) -> list[Window]:
    """List the windows of a session.

    Args:
        session_name: The session name.

    Returns:
        The session's windows in index order.

    Raises:
        TmuxError: If tmux cannot list the session's windows.
    """
    fmt = _FIELD_SEP.join(["#{window_id}", "#{window_index}", "#{window_name}"])
    result = subprocess.run(
        ["tmux", "list-windows", "-t", f"={session_name}", "-F", fmt],
        capture_output=True,
        text=True,
        check=False,
    )
    if result.returncode != 0:
        raise TmuxError(f"failed to list windows of {session_name}: {result.stderr.strip()}")

    windows: list[Window] = []
    for line in result.stdout.strip().split("\n"):
        fields = line.split(_FIELD_SEP, 2)
        if len(fields) != 3 or not fields[0].startswith("@"):
            if line:
                logger.debug("Skipping unparseable window line %r", line)
            continue
        try:
            windows.append(Window(id=fields[0], index=int(fields[1]), name=fields[2]))
        except ValueError:
            logger.debug("Skipping unparseable window line %r", line)
    return windows


def _run_structural(cmd: list[str], step: str, commands: list[str], dry_run: bool) -> str:
    """Run a tmux command the layout depends on and return its stdout.

    Raises:
        PaneSplitError: If the command fails.
    """
    commands.append(" ".join(cmd))
    if dry_run:
        return ""
    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise PaneSplitError(step, (e.stderr or "").strip()) from e
    except OSError as e:
        raise PaneSplitError(step, str(e)) from e
    return result.stdout.strip()


def _build_panes(
    session_name: str,
    window_ref: str,
    base_pane_id: str,
    worktree_name: str,
    project_dir: Path,
    rows: list[LayoutRow],
    config: Config,
    dry_run: bool,
) -> list[str]:
    """Fill the fixed-pane command templates and lay out the window."""
    values = {"worktree": worktree_name, "path": str(project_dir), "session": session_name}
    return apply_pane_layout(
        window_ref,
        base_pane_id,
        rows,
        project_dir,
        status_command=format_pane_command(config.status_command, **values) if config.status_command else "",
        agent_command=format_pane_command(config.agent_command, **values) if config.agent_command else "",
        dry_run=dry_run,
    )


def create_session(
    session_name: str,
    worktree_name: str,
    project_dir: Path,
    rows: list[LayoutRow],
    config: Config,
    dry_run: bool = False,
) -> list[str]:
    """Create a detached session whose only window holds the full pane layout.

    The window is named after the session; that name is the marker
    ``ensure_layout`` looks for on later runs.

    Args:
        session_name: The sanitized session name.
        worktree_name: The worktree name, for the fixed-pane commands.
        project_dir: The worktree directory.
        rows: The layout rows.
        config: The loaded configuration.
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed.

    Raises:
        TmuxError: If the directory is missing (not checked in dry run).
        PaneSplitError: If creating the session or a pane fails.
    """
    if not dry_run and not project_dir.is_dir():
        raise TmuxError(f"path does not exist: {project_dir}")

    commands: list[str] = []
    dir_str = str(project_dir)

    new_cmd = ["tmux", "new-session", "-d", "-s", session_name, "-c", dir_str, "-P", "-F", "#{pane_id}"]
    base_pane_id = _run_structural(new_cmd, "session", commands, dry_run)

    # Dry-run output only; pane indices assume pane-base-index 0
    window_ref = f"{session_name}:"
    rename_target = window_ref if dry_run else base_pane_id
    _run_structural(["tmux", "rename-window", "-t", rename_target, session_name], "marker window", commands, dry_run)

    if config.mouse:
        mouse_cmd = ["tmux", "set-option", "-t", session_name, "mouse", "on"]
        run_best_effort(mouse_cmd, "enable mouse mode", commands, dry_run)

    commands.extend(
        _build_panes(session_name, window_ref, base_pane_id, worktree_name, project_dir, rows, config, dry_run)
    )
    return commands


def ensure_layout(
    session_name: str,
    worktree_name: str,
    project_dir: Path,
    rows: list[LayoutRow],
    config: Config,
    dry_run: bool = False,
) -> list[str]:
    """Rebuild an existing session's layout unless its marker window is present.

    Only the window name is checked. A marker window whose panes were closed
    or resized by hand is left alone.

    When the marker is missing, a new marker window is created first (so the
    session survives) and every older window is killed.

    Args:
        session_name: The sanitized session name, also the marker window name.
        worktree_name: The worktree name, for the fixed-pane commands.
        project_dir: The worktree directory.
        rows: The layout rows.
        config: The loaded configuration.
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed; empty when the
        marker window exists.

    Raises:
        TmuxError: If the session's windows cannot be listed.
        PaneSplitError: If creating the window or a pane fails.
    """
    windows = list_windows(session_name)
    if any(window.name == session_name for window in windows):
        logger.info("Session %s already has its layout", session_name)
        return []

    logger.info("Rebuilding layout of session %s", session_name)
    commands: list[str] = []
    new_cmd = [
        "tmux",
        "new-window",
        "-t",
        f"={session_name}:",
        "-n",
        session_name,
        "-c",
        str(project_dir),
        "-P",
        "-F",
        "#{pane_id}",
    ]
    base_pane_id = _run_structural(new_cmd, "marker window", commands, dry_run)

    # By id: with renumber-windows on, every kill shifts the remaining indices
    for window in windows:
        kill_cmd = ["tmux", "kill-window", "-t", window.id]
        commands.append(" ".join(kill_cmd))
        if dry_run:
            continue
        result = subprocess.run(kill_cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            logger.debug("Ignoring failure to kill window %s (%s): %s", window.id, window.name, result.stderr.strip())

    window_ref = f"{session_name}:{session_name}"
    commands.extend(
        _build_panes(session_name, window_ref, base_pane_id, worktree_name, project_dir, rows, config, dry_run)
    )
    return commands


def attach_session(session_name: str, dry_run: bool = False) -> list[str]:
    """Attach to an existing tmux session, or switch to it from inside tmux.

    Args:
        session_name: The session name to attach to.
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed.

    Raises:
        TmuxError: If tmux exits with an error.
    """
    if is_inside_tmux():
        cmd = ["tmux", "switch-client", "-t", session_name]
    else:
        cmd = ["tmux", "attach-session", "-t", session_name]
    if not dry_run:
        # Inherits this process's terminal; blocks until detach
        result = subprocess.run(cmd, check=False)
        if result.returncode != 0:
            raise TmuxError(f"failed to attach to session {session_name} (exit status {result.returncode})")
    return [" ".join(cmd)]


def provision_and_attach(
    worktree_name: str,
    project_dir: Path,
    rows: list[LayoutRow],
    config: Config | None = None,
    dry_run: bool = False,
) -> list[str]:
    """Create or reuse the worktree's tmux session, then attach to it.

    Args:
        worktree_name: The worktree name; sanitized into the session name.
        project_dir: The worktree directory.
        rows: The layout rows; must not be empty.
        config: The loaded configuration (fixed-pane commands, mouse mode).
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed.

    Raises:
        TmuxNotFoundError: If tmux is not installed.
        ConfigurationError: If the layout is empty or its heights don't fit.
        PaneSplitError: If building the layout fails.
        TmuxError: For other tmux failures, including attaching.
    """
    if not dry_run and not is_installed():
        raise TmuxNotFoundError()
    if not rows:
        raise ConfigurationError("no layout defined in config")
    # Validates the heights before any session is created
    plan_layout(rows)

    config = config or Config()
    project_dir = project_dir.resolve()
    session_name = sanitize_session_name(worktree_name)

    commands: list[str] = []
    if session_exists(session_name):
        commands.extend(ensure_layout(session_name, worktree_name, project_dir, rows, config, dry_run))
    else:
        logger.info("Creating session %s in %s", session_name, project_dir)
        commands.extend(create_session(session_name, worktree_name, project_dir, rows, config, dry_run))

    commands.extend(attach_session(session_name, dry_run))
    return commands


def kill_session(session_name: str, dry_run: bool = False) -> list[str]:
    """Kill a tmux session if it exists.

    Args:
        session_name: The session name.
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed.

    Raises:
        TmuxError: If tmux fails to kill an existing session.
    """
    if not session_exists(session_name):
        return []

    cmd = ["tmux", "kill-session", "-t", f"={session_name}"]
    if not dry_run:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        if result.returncode != 0:
            raise TmuxError(f"failed to kill session {session_name}: {result.stderr.strip()}")
    return [" ".join(cmd)]
