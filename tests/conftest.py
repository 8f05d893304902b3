"""Shared fixtures for worktmux tests."""

import os
import subprocess
from collections.abc import Callable, Iterator
from unittest.mock import patch

import pytest


class FakeTmux:
    """Stand-in for subprocess.run that answers tmux commands from memory.

    Commands run with -P print the next pane ID (%0, %1, ...), so the session
    base pane is %0, the agent pane %1 and the work area %2. Windows get IDs
    @0, @1, ... in creation order; with ``renumber`` set, killing a window
    shifts the indices of the ones after it like renumber-windows does.
    """

    def __init__(
        self,
        sessions: set[str] | None = None,
        windows: dict[str, list[str]] | None = None,
        fail_on: Callable[[list[str]], bool] | None = None,
        renumber: bool = False,
    ) -> None:
        self.calls: list[list[str]] = []
        self.sessions = sessions or set()
        self.fail_on = fail_on
        self.renumber = renumber
        self.next_pane = 0
        self.next_window = 0
        # session -> [(window id, index, name)]
        self.windows: dict[str, list[tuple[str, int, str]]] = {}
        for session, names in (windows or {}).items():
            for name in names:
                self.add_window(session, name)

    def add_window(self, session: str, name: str) -> str:
        """Append a window after the highest index and return its ID."""
        current = self.windows.setdefault(session, [])
        window_id = f"@{self.next_window}"
        self.next_window += 1
        current.append((window_id, current[-1][1] + 1 if current else 0, name))
        return window_id

    def window_names(self, session: str) -> list[str]:
        """Names of a session's windows in index order."""
        return [name for _, _, name in self.windows.get(session, [])]

    def _kill_window(self, target: str) -> bool:
        for session, current in self.windows.items():
            for window_id, index, name in current:
                if target in (window_id, f"={session}:{index}"):
                    current.remove((window_id, index, name))
                    if self.renumber:
                        self.windows[session] = [(wid, i, n) for i, (wid, _, n) in enumerate(current)]
                    return True
        return False

    def __call__(self, cmd: list[str], check: bool = False, **kwargs: object) -> subprocess.CompletedProcess[str]:
        cmd = list(cmd)
        self.calls.append(cmd)

        if self.fail_on is not None and self.fail_on(cmd):
            if check:
                raise subprocess.CalledProcessError(1, cmd, output="", stderr="boom")
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="boom")

        subcommand = cmd[1]
        stdout = ""
        if subcommand == "has-session":
            returncode = 0 if cmd[3].lstrip("=") in self.sessions else 1
            return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")
        if subcommand == "list-windows":
            session = cmd[3].lstrip("=")
            lines = [f"{wid}\t{index}\t{name}" for wid, index, name in self.windows.get(session, [])]
            stdout = "\n".join(lines) + "\n"
        if subcommand == "new-window":
            self.add_window(flag_value(cmd, "-t").strip("=:"), flag_value(cmd, "-n"))
        if subcommand == "kill-window" and not self._kill_window(cmd[3]):
            return subprocess.CompletedProcess(cmd, 1, stdout="", stderr=f"can't find window: {cmd[3]}")
        if "-P" in cmd:
            stdout = f"%{self.next_pane}\n"
            self.next_pane += 1
        return subprocess.CompletedProcess(cmd, 0, stdout=stdout, stderr="")

    def subcommands(self) -> list[str]:
        """The tmux subcommand of every call, in order."""
        return [cmd[1] for cmd in self.calls]

    def find(self, subcommand: str) -> list[list[str]]:
        """All calls of one tmux subcommand."""
        return [cmd for cmd in self.calls if cmd[1] == subcommand]


def flag_value(cmd: list[str], flag: str) -> str:
    """Get the argument following a flag in a command list."""
    return cmd[cmd.index(flag) + 1]


@pytest.fixture
def outside_tmux() -> Iterator[None]:
    """Run with TMUX unset and tmux on PATH."""
    env = os.environ.copy()
    env.pop("TMUX", None)
    with (
        patch.dict(os.environ, env, clear=True),
        patch("worktmux.tmux_manager.shutil.which", return_value="/usr/bin/tmux"),
    ):
        yield


@pytest.fixture
def fake_tmux(outside_tmux: None) -> Iterator[FakeTmux]:
    """Patch subprocess.run with a FakeTmux that has no sessions."""
    fake = FakeTmux()
    with patch("subprocess.run", fake):
        yield fake
