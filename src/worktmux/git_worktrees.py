"""Git worktree operations for worktmux."""

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path

from worktmux.errors import GitError
from worktmux.utils import get_worktree_name

logger = logging.getLogger(__name__)


@dataclass
class Worktree:
    """A git worktree as reported by ``git worktree list --porcelain``."""

    path: Path
    branch: str = ""  # full ref, e.g. refs/heads/main; empty when detached
    commit: str = ""

    @property
    def name(self) -> str:
        """The worktree name (its directory basename)."""
        return get_worktree_name(self.path)

    @property
    def short_branch(self) -> str:
        """The branch without its refs/heads/ prefix."""
        return self.branch.removeprefix("refs/heads/")


def _run_git(args: list[str], cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Run a git command, capturing output.

    Raises:
        GitError: If git is not installed.
    """
    try:
        return subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=False)
    except FileNotFoundError as e:
        raise GitError("git is not installed") from e


def parse_worktree_list(output: str) -> list[Worktree]:
    """Parse ``git worktree list --porcelain`` output.

    Args:
        output: The command's stdout.

    Returns:
        Worktrees in the order git lists them (main worktree first).
    """
    worktrees: list[Worktree] = []
    current: Worktree | None = None
    for raw in output.splitlines():
        line = raw.strip()
        if line.startswith("worktree "):
            if current is not None:
                worktrees.append(current)
            current = Worktree(path=Path(line.removeprefix("worktree ")))
        elif current is None:
            continue
        elif line.startswith("branch "):
            current.branch = line.removeprefix("branch ")
        elif line.startswith("HEAD "):
            current.commit = line.removeprefix("HEAD ")
    if current is not None:
        worktrees.append(current)
    return worktrees


def list_worktrees(cwd: Path | None = None) -> list[Worktree]:
    """List all worktrees of the repository containing cwd.

    Raises:
        GitError: If git fails, e.g. outside a repository.
    """
    result = _run_git(["worktree", "list", "--porcelain"], cwd=cwd)
    if result.returncode != 0:
        raise GitError(f"failed to list worktrees: {result.stderr.strip()}")
    return parse_worktree_list(result.stdout)


def get_repo_root(cwd: Path | None = None) -> Path:
    """Get the main worktree's root, even when called from a linked worktree.

    Args:
        cwd: Directory inside the repository. Uses the current directory if None.

    Returns:
        The main worktree path.

    Raises:
        GitError: If cwd is not inside a git repository.
    """
    try:
        worktrees = list_worktrees(cwd)
    except GitError:
        worktrees = []
    if worktrees:
        return worktrees[0].path

    # Repositories without worktree support still have a toplevel
    result = _run_git(["rev-parse", "--show-toplevel"], cwd=cwd)
    if result.returncode != 0:
        raise GitError("not in a git repository")
    return Path(result.stdout.strip())


def find_worktree(name: str, worktrees: list[Worktree]) -> Worktree | None:
    """Find a worktree by name."""
    for worktree in worktrees:
        if worktree.name == name:
            return worktree
    return None


def worktree_path(name: str, repo_root: Path, base_dir: str = ".") -> Path:
    """Where a new worktree called name is placed."""
    return (repo_root / base_dir / name).resolve()


def create_worktree(name: str, repo_root: Path, base_dir: str = ".") -> Path:
    """Create a worktree on a new branch of the same name.

    Args:
        name: Worktree and branch name.
        repo_root: The main worktree root.
        base_dir: Directory for new worktrees, relative to repo_root.

    Returns:
        The new worktree's path.

    Raises:
        GitError: If git refuses, e.g. the branch already exists.
    """
    path = worktree_path(name, repo_root, base_dir)
    result = _run_git(["worktree", "add", "-b", name, str(path)], cwd=repo_root)
    if result.returncode != 0:
        raise GitError(f"failed to create worktree: {(result.stderr or result.stdout).strip()}")
    logger.info("Created worktree %s at %s", name, path)
    return path


def remove_worktree(worktree: Worktree, repo_root: Path, delete_branch: bool = False, force: bool = False) -> None:
    """Remove a worktree and optionally its branch.

    A failure to delete the branch is logged, not raised.

    Args:
        worktree: The worktree to remove.
        repo_root: The main worktree root.
        delete_branch: Also delete the worktree's branch.
        force: Remove even with uncommitted changes.

    Raises:
        GitError: If the worktree cannot be removed.
    """
    args = ["worktree", "remove"]
    if force:
        args.append("--force")
    args.append(str(worktree.path))
    result = _run_git(args, cwd=repo_root)
    if result.returncode != 0:
        raise GitError(f"failed to remove worktree: {(result.stderr or result.stdout).strip()}")

    if delete_branch and worktree.short_branch:
        result = _run_git(["branch", "-D", worktree.short_branch], cwd=repo_root)
        if result.returncode != 0:
            logger.warning("Failed to delete branch %s: %s", worktree.short_branch, result.stderr.strip())
