"""Utility functions for worktmux."""

import subprocess
from pathlib import Path

# tmux rewrites "." in session names and reads ":" as a target separator
_SESSION_NAME_RESERVED = (".", ":")


def sanitize_session_name(name: str) -> str:
    """Convert a worktree name into a name tmux accepts for a session.

    Only the characters tmux rejects are replaced; everything else is kept
    as-is, so two worktrees that differ only by "." vs "_" share a session.

    Args:
        name: The worktree name.

    Returns:
        The session name.
    """
    result = name
    for char in _SESSION_NAME_RESERVED:
        result = result.replace(char, "_")
    return result


def get_worktree_name(path: Path | str) -> str:
    """Get the worktree name (its directory basename) from a path."""
    return Path(path).name


def select_with_fzf(entries: list[str], prompt: str = "Select: ") -> str | None:
    """Use fzf to select from a list of entries.

    Args:
        entries: List of entries to choose from.
        prompt: The prompt to display.

    Returns:
        The selected entry, or None if cancelled or fzf not available.
    """
    if not entries:
        return None

    try:
        result = subprocess.run(
            ["fzf", "--prompt", prompt, "--height", "40%", "--reverse"],
            input="\n".join(entries),
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except FileNotFoundError:
        # fzf not installed
        pass
    return None


def is_fzf_available() -> bool:
    """Check if fzf is available on the system."""
    try:
        subprocess.run(["fzf", "--version"], capture_output=True, check=True)
        return True
    except (FileNotFoundError, subprocess.CalledProcessError):
        return False


DEFAULT_PATH_MAX_LEN = 50


def compress_path(path: str, max_len: int = DEFAULT_PATH_MAX_LEN) -> str:
    """Compress a file path by replacing home with ~ and truncating from the start.

    Args:
        path: The path to compress.
        max_len: Maximum length before truncation.

    Returns:
        Compressed path with ~ for home directory.
    """
    if not path:
        return ""

    home = str(Path.home())
    if path.startswith(home):
        path = "~" + path[len(home) :]

    if len(path) <= max_len:
        return path

    # Truncate from the beginning, preserving the worktree directory name
    return "..." + path[-(max_len - 3) :]
