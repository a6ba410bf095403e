"""Unified diff parser."""

from __future__ import annotations

import re
from typing import List, Optional

from scanweave.core.logging import get_logger
from scanweave.diff.models import DiffData, FileChange, Hunk, LineRange

LOGGER = get_logger(__name__)

HUNK_HEADER = re.compile(r"^@@ -(\d+)(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
NEW_FILE_HEADER = "+++ "
OLD_FILE_HEADER = "--- "
DEV_NULL = "/dev/null"


def _header_path(line: str) -> Optional[str]:
    """Extract the path from a ``+++`` header, or None for deleted files."""
    path = line[len(NEW_FILE_HEADER):].split("\t", 1)[0].strip()
    if path.startswith('"') and path.endswith('"') and len(path) > 1:
        path = path[1:-1]
    if path == DEV_NULL:
        return None
    if path.startswith("b/"):
        path = path[2:]
    return path.replace("\\", "/")


def _is_file_header(lines: List[str], index: int) -> bool:
    """True if ``lines[index]`` opens a ``---``/``+++`` file header pair.

    Used inside a hunk, where the header would otherwise read as a removed
    line when the hunk's counts overstate its body.
    """
    if not lines[index].startswith(OLD_FILE_HEADER):
        return False
    if index + 1 >= len(lines) or not lines[index + 1].startswith(NEW_FILE_HEADER):
        return False
    if index + 2 >= len(lines):
        return True
    following = lines[index + 2]
    return following.startswith("@@") or following.startswith("diff ")


def parse_diff(text: str) -> DiffData:
    """Parse unified diff text into per-file changed lines and ranges.

    A ``+++`` header opens a file. A hunk header records the hunk, seeds a
    modified range ``[new_start, new_start + new_count - 1]`` and resets
    the line cursor to ``new_start``. Within a hunk, an added line records
    the cursor and advances it, a removed line only counts a deletion, and
    a context line only advances the cursor. A ``---``/``+++`` header pair
    always closes the current hunk, whatever its counts say.

    Args:
        text: Unified diff text (``git diff`` output).

    Returns:
        DiffData for every file with a new side.
    """
    diff = DiffData()
    current: Optional[FileChange] = None
    cursor = 0
    old_remaining = 0
    new_remaining = 0
    lines = text.splitlines()

    for index, line in enumerate(lines):
        in_hunk = current is not None and (old_remaining > 0 or new_remaining > 0)

        if line.startswith("diff "):
            current = None
            old_remaining = new_remaining = 0
            continue

        if in_hunk and _is_file_header(lines, index):
            if old_remaining > 0 or new_remaining > 0:
                LOGGER.debug(f"Hunk in {current.path} ended {old_remaining}/{new_remaining} line(s) short")
            old_remaining = new_remaining = 0
            continue

        if not in_hunk or line.startswith("@@"):
            if line.startswith(NEW_FILE_HEADER):
                path = _header_path(line)
                if path is None:
                    current = None
                    continue
                current = diff.files.get(path)
                if current is None:
                    current = FileChange(path=path)
                    diff.files[path] = current
                continue

            match = HUNK_HEADER.match(line)
            if match:
                if current is None:
                    LOGGER.debug(f"Hunk header outside a file section ignored: {line}")
                    continue
                old_start = int(match.group(1))
                old_count = int(match.group(2)) if match.group(2) is not None else 1
                new_start = int(match.group(3))
                new_count = int(match.group(4)) if match.group(4) is not None else 1
                current.hunks.append(Hunk(old_start, old_count, new_start, new_count))
                if new_count > 0:
                    current.modified_line_ranges.append(
                        LineRange(new_start, new_start + new_count - 1)
                    )
                cursor = new_start
                old_remaining = old_count
                new_remaining = new_count
                continue

            if not in_hunk:
                # File metadata such as "index", "---", mode lines.
                continue

        if current is None:
            continue

        if line.startswith("+"):
            current.added_lines.add(cursor)
            current.additions += 1
            diff.total_additions += 1
            cursor += 1
            new_remaining -= 1
        elif line.startswith("-"):
            current.deletions += 1
            diff.total_deletions += 1
            old_remaining -= 1
        elif line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        else:
            cursor += 1
            old_remaining -= 1
            new_remaining -= 1

    return diff
