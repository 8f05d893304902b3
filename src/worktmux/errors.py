"""Exceptions raised by worktmux."""


class ConfigurationError(Exception):
    """Layout configuration is missing or cannot be turned into splits."""


class GitError(Exception):
    """A git command failed."""


class TmuxError(Exception):
    """A tmux command failed."""


class TmuxNotFoundError(TmuxError):
    """The tmux binary is not on PATH."""

    def __init__(self) -> None:
        super().__init__("tmux is not installed")


class PaneSplitError(TmuxError):
    """Creating the session, a window or a pane failed part-way through a build.

    Panes created before the failure are left in place.
    """

    def __init__(self, step: str, detail: str = "") -> None:
        self.step = step
        self.detail = detail
        message = f"failed to create {step}"
        if detail:
            message += f": {detail}"
        super().__init__(message)
