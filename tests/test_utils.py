"""Tests for worktmux.utils module."""

import subprocess
from pathlib import Path
from unittest.mock import patch

from worktmux.utils import (
    compress_path,
    get_worktree_name,
    is_fzf_available,
    sanitize_session_name,
    select_with_fzf,
)


class TestSanitizeSessionName:
    """Tests for sanitize_session_name function."""

    def test_dots_replaced(self) -> None:
        """Should replace every dot with an underscore."""
        assert sanitize_session_name("a.b.c") == "a_b_c"
        assert sanitize_session_name("...") == "___"

    def test_colons_replaced(self) -> None:
        """Should replace colons, which tmux reads as target separators."""
        assert sanitize_session_name("fix:login") == "fix_login"

    def test_other_characters_kept(self) -> None:
        """Should leave case, hyphens and underscores alone."""
        assert sanitize_session_name("no-dots") == "no-dots"
        assert sanitize_session_name("Feature_X") == "Feature_X"

    def test_version_branch(self) -> None:
        """Should handle a version-style worktree name."""
        assert sanitize_session_name("release-1.2.0") == "release-1_2_0"

    def test_empty(self) -> None:
        """Should return an empty name unchanged."""
        assert sanitize_session_name("") == ""


class TestGetWorktreeName:
    """Tests for get_worktree_name function."""

    def test_basename(self) -> None:
        """Should return the directory basename."""
        assert get_worktree_name(Path("/home/user/trees/feat-x")) == "feat-x"

    def test_string_path(self) -> None:
        """Should accept a string."""
        assert get_worktree_name("/home/user/trees/feat-x/") == "feat-x"


class TestCompressPath:
    """Tests for compress_path function."""

    def test_empty_path(self) -> None:
        """Should return empty string for empty input."""
        assert compress_path("") == ""

    def test_home_directory_replaced_with_tilde(self) -> None:
        """Home directory should be replaced with ~."""
        with patch.object(Path, "home", return_value=Path("/home/user")):
            assert compress_path("/home/user/trees/feat-x") == "~/trees/feat-x"

    def test_non_home_path_not_modified(self) -> None:
        """Paths not under home should not get ~ prefix."""
        with patch.object(Path, "home", return_value=Path("/home/user")):
            assert compress_path("/srv/trees/feat-x") == "/srv/trees/feat-x"

    def test_long_path_truncated_from_beginning(self) -> None:
        """Long paths should keep their tail."""
        with patch.object(Path, "home", return_value=Path("/home/user")):
            result = compress_path("/home/user/" + "a" * 100 + "/feat-x", max_len=30)
            assert result.startswith("...")
            assert result.endswith("/feat-x")
            assert len(result) == 30


class TestSelectWithFzf:
    """Tests for select_with_fzf function."""

    def test_empty_entries_returns_none(self) -> None:
        """Should return None when entries list is empty."""
        assert select_with_fzf([]) is None

    def test_successful_selection(self) -> None:
        """Should return selected entry on success."""
        mock_result = subprocess.CompletedProcess(args=["fzf"], returncode=0, stdout="feat-x\n", stderr="")
        with patch("worktmux.utils.subprocess.run", return_value=mock_result) as mock_run:
            assert select_with_fzf(["main", "feat-x"], prompt="Worktree: ") == "feat-x"
            call_args = mock_run.call_args[0][0]
            assert call_args[call_args.index("--prompt") + 1] == "Worktree: "
            assert mock_run.call_args.kwargs["input"] == "main\nfeat-x"

    def test_cancelled_selection_returns_none(self) -> None:
        """Should return None when the user cancels."""
        mock_result = subprocess.CompletedProcess(args=["fzf"], returncode=130, stdout="", stderr="")
        with patch("worktmux.utils.subprocess.run", return_value=mock_result):
            assert select_with_fzf(["main"]) is None

    def test_fzf_not_installed_returns_none(self) -> None:
        """Should return None when fzf is not installed."""
        with patch("worktmux.utils.subprocess.run", side_effect=FileNotFoundError):
            assert select_with_fzf(["main"]) is None


class TestIsFzfAvailable:
    """Tests for is_fzf_available function."""

    def test_fzf_available(self) -> None:
        """Should return True when fzf is installed."""
        mock_result = subprocess.CompletedProcess(args=["fzf", "--version"], returncode=0, stdout="0.50.0", stderr="")
        with patch("worktmux.utils.subprocess.run", return_value=mock_result):
            assert is_fzf_available() is True

    def test_fzf_not_found(self) -> None:
        """Should return False when fzf is not installed."""
        with patch("worktmux.utils.subprocess.run", side_effect=FileNotFoundError):
            assert is_fzf_available() is False

    def test_fzf_check_fails(self) -> None:
        """Should return False when fzf --version fails."""
        with patch("worktmux.utils.subprocess.run", side_effect=subprocess.CalledProcessError(1, "fzf")):
            assert is_fzf_available() is False
