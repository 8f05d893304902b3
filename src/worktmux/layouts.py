"""Pane layout resolution and split arithmetic for worktmux.

Every window is built the same way:

    ---------------------------------
    | status                    5%  |
    |-------------------------------|
    | agent          45% of the rest|
    |-------------------------------|
    | row 0                         |
    |-------------------------------|
    | row 1  | pane a  | pane b     |
    ---------------------------------

The status and agent panes are fixed. The rows below them come from the
``layout:`` config, each row's height being a share of the work area.
"""

import logging
import subprocess
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from worktmux.config import Config, LayoutRow
from worktmux.errors import ConfigurationError, PaneSplitError

logger = logging.getLogger(__name__)

# Splitting the window's first pane: the new (lower) pane gets 95%, the
# original keeps the top 5% as the status pane.
STATUS_PANE_SPLIT = 95
# Splitting the lower 95%: the new pane (the work area) gets 55%, the
# original keeps 45% as the agent pane.
AGENT_PANE_SPLIT = 55

STATUS_PANE_INDEX = 0
AGENT_PANE_INDEX = 1
WORK_PANE_INDEX = 2


class SplitDirection(StrEnum):
    """Direction for a pane split."""

    HORIZONTAL = "h"  # side-by-side (left/right)
    VERTICAL = "v"  # stacked (top/bottom)


@dataclass
class SplitStep:
    """One split-window call of a layout build, addressed by pane index."""

    step: str
    target_index: int
    direction: SplitDirection
    percent: int


def resolve_layout(config: Config) -> list[LayoutRow]:
    """Get the rows of the work area, converting the legacy windows format.

    Args:
        config: The loaded configuration.

    Returns:
        The layout rows, top to bottom. Empty when neither ``layout`` nor
        ``windows`` is set.
    """
    if config.layout:
        return list(config.layout)

    if config.windows:
        height = f"{100 // len(config.windows)}%"
        return [LayoutRow(height=height, name=window.name, command=window.command) for window in config.windows]

    return []


def parse_percentage(text: str) -> int:
    """Parse a percentage string like "40%" into 40, or 0 if it isn't one."""
    value = text.strip().removesuffix("%").strip()
    try:
        return int(value)
    except ValueError:
        return 0


def row_heights(rows: list[LayoutRow]) -> list[int]:
    """Get each row's height, defaulting bad values to an equal share.

    A height that doesn't parse, or falls outside 1-100, becomes
    ``100 // len(rows)``.

    Args:
        rows: The layout rows.

    Returns:
        Integer heights, one per row.
    """
    if not rows:
        return []
    default = 100 // len(rows)
    heights: list[int] = []
    for row in rows:
        height = parse_percentage(row.height)
        heights.append(height if 0 < height <= 100 else default)
    return heights


def vertical_split_percents(heights: list[int]) -> list[int]:
    """Compute the split-window percentages that stack rows of the given heights.

    Rows are carved off the bottom of the work area one at a time. Split i
    targets the most recently created pane, which holds rows i-1 onwards, and
    gives the new pane everything from row i down, as a percentage of that
    pane's current size.

    Example: heights [50, 30, 20] give [50, 40]. The first split leaves 50%
    for row 0; the second gives 40% of the remaining half to row 2.

    Args:
        heights: Row heights in percent of the work area.

    Returns:
        One percentage per row after the first.

    Raises:
        ConfigurationError: If the rows before the last use up 100% or more.
    """
    percents: list[int] = []
    remaining_percent = 100
    for row_idx in range(1, len(heights)):
        if remaining_percent <= 0:
            raise ConfigurationError(f"row heights {heights} leave no room for row {row_idx}")
        remaining_height = sum(heights[row_idx:])
        percents.append((remaining_height * 100) // remaining_percent)
        remaining_percent -= heights[row_idx - 1]
    return percents


def horizontal_split_percents(pane_count: int) -> list[int]:
    """Compute the split-window percentages for the columns of a multi-pane row.

    Widths are ignored: split j gives the new pane (remaining - 1) / remaining
    of the row's first pane, e.g. [75, 66, 50] for four panes.

    Args:
        pane_count: Number of panes in the row.

    Returns:
        One percentage per pane after the first.
    """
    percents: list[int] = []
    for pane_idx in range(1, pane_count):
        remaining_panes = pane_count - pane_idx + 1
        percents.append((100 * (remaining_panes - 1)) // remaining_panes)
    return percents


def plan_layout(rows: list[LayoutRow]) -> list[SplitStep]:
    """List every split a build performs, with tmux pane indices as targets.

    Args:
        rows: The layout rows.

    Returns:
        The split steps in execution order, fixed panes included.

    Raises:
        ConfigurationError: If rows is empty or the heights don't fit.
    """
    if not rows:
        raise ConfigurationError("no layout defined in config")

    steps = [
        SplitStep("status pane", STATUS_PANE_INDEX, SplitDirection.VERTICAL, STATUS_PANE_SPLIT),
        SplitStep("agent pane", AGENT_PANE_INDEX, SplitDirection.VERTICAL, AGENT_PANE_SPLIT),
    ]
    for row_idx, percent in enumerate(vertical_split_percents(row_heights(rows)), start=1):
        steps.append(SplitStep(f"row {row_idx}", WORK_PANE_INDEX + row_idx - 1, SplitDirection.VERTICAL, percent))

    row_start = WORK_PANE_INDEX
    for row_idx, row in enumerate(rows):
        for pane_idx, percent in enumerate(horizontal_split_percents(len(row.panes)), start=1):
            steps.append(
                SplitStep(f"horizontal pane {pane_idx} in row {row_idx}", row_start, SplitDirection.HORIZONTAL, percent)
            )
        row_start += max(len(row.panes), 1)
    return steps


def format_pane_command(template: str, **values: str) -> str:
    """Fill {worktree}, {path} and {session} into a fixed-pane command.

    A template with an unknown placeholder is returned unchanged.
    """
    try:
        return template.format(**values)
    except (KeyError, IndexError, ValueError) as e:
        logger.warning("Leaving command %r unformatted: %s", template, e)
        return template


def _validate_pane_id(pane_id: str, context: str) -> None:
    """Validate that a captured pane ID looks correct.

    Raises:
        PaneSplitError: If pane ID is empty or malformed.
    """
    if not pane_id or not pane_id.startswith("%"):
        raise PaneSplitError(context, f"tmux returned invalid pane ID {pane_id!r}")


def _split_pane(
    target: str,
    direction: SplitDirection,
    percent: int,
    start_dir: str,
    step: str,
    commands: list[str],
    dry_run: bool,
) -> str:
    """Split a pane and return the new pane's ID ("" in dry run).

    Raises:
        PaneSplitError: If tmux fails or returns no pane ID.
    """
    # -d keeps focus where it is; the agent pane is selected at the end
    cmd = [
        "tmux",
        "split-window",
        "-d",
        "-P",
        "-F",
        "#{pane_id}",
        "-t",
        target,
        f"-{direction.value}",
        "-p",
        str(percent),
        "-c",
        start_dir,
    ]
    commands.append(" ".join(cmd))
    if dry_run:
        return ""

    try:
        result = subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        raise PaneSplitError(step, (e.stderr or "").strip()) from e
    except OSError as e:
        raise PaneSplitError(step, str(e)) from e

    pane_id = result.stdout.strip()
    _validate_pane_id(pane_id, step)
    logger.debug("Created %s as %s (%s%% of %s)", step, pane_id, percent, target)
    return pane_id


def run_best_effort(cmd: list[str], what: str, commands: list[str], dry_run: bool = False) -> None:
    """Run a tmux command whose failure leaves the session usable."""
    commands.append(" ".join(cmd))
    if dry_run:
        return
    try:
        subprocess.run(cmd, check=True, capture_output=True, text=True)
    except subprocess.CalledProcessError as e:
        logger.warning("Failed to %s: %s", what, (e.stderr or "").strip() or f"exit status {e.returncode}")
    except OSError as e:
        logger.warning("Failed to %s: %s", what, e)


def send_command(target: str, command: str, label: str, commands: list[str], dry_run: bool = False) -> None:
    """Type a shell command into a pane and press Enter.

    Failures are logged and otherwise ignored.

    Args:
        target: Pane ID or index target.
        command: The shell command.
        label: Pane name used in the warning.
        commands: Command log to append to.
        dry_run: If True, only record the command.
    """
    send_cmd = ["tmux", "send-keys", "-t", target, command, "Enter"]
    run_best_effort(send_cmd, f"run command in pane {label}", commands, dry_run)


def apply_pane_layout(
    window_ref: str,
    base_pane_id: str,
    rows: list[LayoutRow],
    project_dir: Path,
    status_command: str = "",
    agent_command: str = "",
    dry_run: bool = False,
) -> list[str]:
    """Build the status pane, agent pane and layout rows in a single-pane window.

    Panes are targeted by the IDs tmux reports for them. In dry run there are
    no IDs, so targets are written as ``window_ref.index`` using the indices
    tmux would assign.

    Args:
        window_ref: Target of the window, e.g. "my-session:0" (dry run only).
        base_pane_id: ID of the window's only pane ("" in dry run).
        rows: The layout rows; must not be empty.
        project_dir: Start directory for new panes.
        status_command: Command for the status pane, if any.
        agent_command: Command for the agent pane, if any.
        dry_run: If True, return commands without executing.

    Returns:
        List of commands that were (or would be) executed.

    Raises:
        ConfigurationError: If rows is empty or the heights don't fit.
        PaneSplitError: If a split fails; no later command is issued.
    """
    if not rows:
        raise ConfigurationError("no layout defined in config")
    # Computed up front so bad heights fail before tmux is touched
    vertical_percents = vertical_split_percents(row_heights(rows))

    commands: list[str] = []
    start_dir = str(project_dir)

    def ref(pane_id: str, index: int) -> str:
        return f"{window_ref}.{index}" if dry_run else pane_id

    # Fixed panes: status on top, agent below it, work area at the bottom
    status_pane = base_pane_id
    agent_pane = _split_pane(
        ref(status_pane, STATUS_PANE_INDEX),
        SplitDirection.VERTICAL,
        STATUS_PANE_SPLIT,
        start_dir,
        "status pane",
        commands,
        dry_run,
    )
    if status_command:
        send_command(ref(status_pane, STATUS_PANE_INDEX), status_command, "status", commands, dry_run)

    work_pane = _split_pane(
        ref(agent_pane, AGENT_PANE_INDEX),
        SplitDirection.VERTICAL,
        AGENT_PANE_SPLIT,
        start_dir,
        "agent pane",
        commands,
        dry_run,
    )
    if agent_command:
        send_command(ref(agent_pane, AGENT_PANE_INDEX), agent_command, "agent", commands, dry_run)

    # Vertical pass: each split carves the remaining rows off the last pane
    row_panes = [work_pane]
    for row_idx, percent in enumerate(vertical_percents, start=1):
        last_index = WORK_PANE_INDEX + row_idx - 1
        new_pane = _split_pane(
            ref(row_panes[-1], last_index),
            SplitDirection.VERTICAL,
            percent,
            start_dir,
            f"row {row_idx}",
            commands,
            dry_run,
        )
        row_panes.append(new_pane)

    # Horizontal pass: columns are always split off the row's first pane.
    # tmux numbers panes by position, so each row starts after all columns
    # of the rows above it.
    row_start = WORK_PANE_INDEX
    for row_idx, row in enumerate(rows):
        first_pane = row_panes[row_idx]
        if row.panes:
            created: list[str] = []
            for pane_idx, percent in enumerate(horizontal_split_percents(len(row.panes)), start=1):
                created.append(
                    _split_pane(
                        ref(first_pane, row_start),
                        SplitDirection.HORIZONTAL,
                        percent,
                        start_dir,
                        f"horizontal pane {pane_idx} in row {row_idx}",
                        commands,
                        dry_run,
                    )
                )

            # Each new column lands right of the first pane, pushing older ones right
            columns = [first_pane, *reversed(created)]
            for pane_idx, (pane, pane_id) in enumerate(zip(row.panes, columns, strict=True)):
                if pane.command:
                    send_command(ref(pane_id, row_start + pane_idx), pane.command, pane.name, commands, dry_run)
            row_start += len(row.panes)
        else:
            if row.command:
                send_command(ref(first_pane, row_start), row.command, row.name or f"row {row_idx}", commands, dry_run)
            row_start += 1

    run_best_effort(
        ["tmux", "select-pane", "-t", ref(agent_pane, AGENT_PANE_INDEX)],
        "select agent pane",
        commands,
        dry_run,
    )

    return commands
