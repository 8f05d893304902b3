"""XDG-compliant path management for worktmux."""

from pathlib import Path

from xdg_base_dirs import xdg_config_home

APP_NAME = "worktmux"

# Project-level config files, looked up in the main worktree root
PROJECT_CONFIG_NAME = ".worktmux.yaml"
PROJECT_LOCAL_CONFIG_NAME = ".worktmux.yaml.local"


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    return xdg_config_home() / APP_NAME


def get_config_file_path() -> Path:
    """Get the user config.yaml file path."""
    return get_config_dir() / "config.yaml"


def get_project_config_path(repo_root: Path) -> Path:
    """Get the shared project config path for a repository."""
    return repo_root / PROJECT_CONFIG_NAME


def get_project_local_config_path(repo_root: Path) -> Path:
    """Get the personal (uncommitted) project config path for a repository."""
    return repo_root / PROJECT_LOCAL_CONFIG_NAME
