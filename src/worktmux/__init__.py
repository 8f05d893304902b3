"""Git worktrees bound to tmux sessions with a fixed pane layout."""

__version__ = "0.3.0"
