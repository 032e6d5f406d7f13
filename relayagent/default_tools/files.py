"""
File tools run on behalf of the agent.

Every path goes through the workspace sandbox first; nothing is read or
written outside the working directory. Failures come back as
ToolOutput(ok=False) with a plain message, never as exceptions.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field

from relayagent.core.errors import SandboxViolation, SizeLimitExceeded
from relayagent.core.sandbox import WorkspaceSandbox
from relayagent.core.truncation import MAX_BYTES, MAX_LINES, truncate_line
from relayagent.models.tool_output import ToolOutput

logger = logging.getLogger(__name__)

# =============================================================================
# Read File
# =============================================================================


class ReadFileInput(BaseModel):
    """Input for read_file."""

    path: str = Field(description="File path to read")
    line_offset: int = Field(default=1, ge=1, description="Line number to start from")
    n_lines: int = Field(default=MAX_LINES, ge=1, description="Number of lines to read")


def check_file_size(path: Path, limit: int = MAX_BYTES) -> int:
    """Return the size of path, raising SizeLimitExceeded above limit."""
    size = path.stat().st_size
    if size > limit:
        raise SizeLimitExceeded(f"File too large (max {limit // 1000}KB)")
    return size


def read_file(work_dir: str, input: ReadFileInput) -> ToolOutput:
    """
    Read numbered lines from a text file.

    At most MAX_LINES lines and roughly MAX_BYTES bytes are returned; lines
    longer than MAX_LINE_LENGTH are cut with '...'.

    Examples:
        >>> read_file("/repo", ReadFileInput(path="README.md"))
        >>> read_file("/repo", ReadFileInput(path="src/app.py", line_offset=40, n_lines=20))
    """
    try:
        resolved = WorkspaceSandbox(work_dir).resolve(input.path, must_exist=True)
    except SandboxViolation as e:
        return ToolOutput.fail(str(e))

    if not resolved.is_file():
        return ToolOutput.fail("Path is not a file")

    try:
        check_file_size(resolved)
    except SizeLimitExceeded as e:
        return ToolOutput.fail(str(e))
    except OSError as e:
        return ToolOutput.fail(f"Failed to read file metadata: {e}")

    start = max(input.line_offset, 1)
    max_lines = min(max(input.n_lines, 1), MAX_LINES)

    lines: list[tuple[int, str]] = []
    truncated_lines: list[int] = []
    total_bytes = 0
    try:
        with open(resolved, encoding="utf-8", errors="replace") as f:
            for line_no, raw in enumerate(f, start=1):
                if line_no < start:
                    continue
                text, was_cut = truncate_line(raw.rstrip("\n"))
                if was_cut:
                    truncated_lines.append(line_no)
                total_bytes += len(text.encode("utf-8"))
                lines.append((line_no, text))
                if len(lines) >= max_lines or total_bytes >= MAX_BYTES:
                    break
    except OSError as e:
        return ToolOutput.fail(f"Failed to read file: {e}")

    output = "".join(f"{line_no:6}\t{text}\n" for line_no, text in lines)

    if lines:
        summary = f"{len(lines)} lines read from file starting at line {start}."
    else:
        summary = "No lines read from file."
    if len(lines) >= MAX_LINES:
        summary += " Max lines reached."
    elif total_bytes >= MAX_BYTES:
        summary += " Max bytes reached."
    if truncated_lines:
        summary += f" Lines {truncated_lines} were truncated."

    return ToolOutput.success(summary, output)


# =============================================================================
# Write File
# =============================================================================


class WriteFileInput(BaseModel):
    """Input for write_file."""

    path: str = Field(description="File path to write")
    content: str = Field(description="Content to write")
    mode: Literal["overwrite", "append"] = Field(default="overwrite", description="Write mode")


def write_file(work_dir: str, input: WriteFileInput) -> ToolOutput:
    """
    Overwrite or append to a file. The parent directory must already exist.

    Examples:
        >>> write_file("/repo", WriteFileInput(path="notes.md", content="# Notes\\n"))
        >>> write_file("/repo", WriteFileInput(path="log.txt", content="more\\n", mode="append"))
    """
    try:
        resolved = WorkspaceSandbox(work_dir).resolve(input.path, must_exist=False)
    except SandboxViolation as e:
        return ToolOutput.fail(str(e))

    if not resolved.parent.exists():
        return ToolOutput.fail("Parent directory does not exist")

    if input.mode == "append":
        try:
            with open(resolved, "a", encoding="utf-8") as f:
                f.write(input.content)
        except OSError as e:
            return ToolOutput.fail(f"Failed to append to file: {e}")
        return ToolOutput.success("File successfully appended to.")

    try:
        resolved.write_text(input.content, encoding="utf-8")
    except OSError as e:
        return ToolOutput.fail(f"Failed to write file: {e}")
    return ToolOutput.success("File successfully overwritten.")


# =============================================================================
# String Replace
# =============================================================================


class ReplaceEdit(BaseModel):
    """One string replacement."""

    old: str = Field(description="Text to find")
    new: str = Field(description="Replacement text")
    replace_all: bool = Field(default=False, description="Replace every occurrence")


class StrReplaceFileInput(BaseModel):
    """Input for str_replace_file."""

    path: str = Field(description="File path to edit")
    edit: ReplaceEdit | list[ReplaceEdit] = Field(description="One edit or a list of edits")

    @property
    def edits(self) -> list[ReplaceEdit]:
        return self.edit if isinstance(self.edit, list) else [self.edit]


def str_replace_file(work_dir: str, input: StrReplaceFileInput) -> ToolOutput:
    """
    Apply string replacements to a file, in order, then write it once.

    If no edit changes the content the file is left untouched and the call
    fails.
    """
    try:
        resolved = WorkspaceSandbox(work_dir).resolve(input.path, must_exist=True)
    except SandboxViolation as e:
        return ToolOutput.fail(str(e))

    if not resolved.is_file():
        return ToolOutput.fail("Path is not a file")

    try:
        # newline="" keeps \r\n intact so untouched lines round-trip byte for byte.
        with open(resolved, encoding="utf-8", newline="") as f:
            original = f.read()
    except (OSError, UnicodeDecodeError) as e:
        return ToolOutput.fail(f"Failed to read file: {e}")

    edits = input.edits
    updated = original
    replacements = 0
    for edit in edits:
        if not edit.old:
            continue
        if edit.replace_all:
            replacements += updated.count(edit.old)
            updated = updated.replace(edit.old, edit.new)
        elif edit.old in updated:
            updated = updated.replace(edit.old, edit.new, 1)
            replacements += 1

    if updated == original:
        return ToolOutput.fail("No replacements were made. The old string was not found.")

    try:
        with open(resolved, "w", encoding="utf-8", newline="") as f:
            f.write(updated)
    except OSError as e:
        return ToolOutput.fail(f"Failed to write file: {e}")

    return ToolOutput.success(
        f"File successfully edited. Applied {len(edits)} edit(s) with {replacements} replacement(s)."
    )


# =============================================================================
# Workspace file search (for @-mentions in the UI)
# =============================================================================

IGNORED_NAMES = frozenset({
    ".git", ".svn", ".hg", ".DS_Store",
    "node_modules", "target", "dist", "build",
    ".venv", "venv", "__pycache__", ".pytest_cache",
    ".idea", ".vscode", ".next", ".nuxt",
})
LIST_FILES_LIMIT = 50


def _is_ignored(name: str) -> bool:
    return name in IGNORED_NAMES or name.startswith(".")


def list_files(work_dir: str, query: str | None = None, limit: int = LIST_FILES_LIMIT) -> list[str]:
    """
    Relative paths under work_dir whose path contains query (case-insensitive).

    Hidden entries and build/vendor directories are skipped. Collection
    stops at `limit` entries; the result is sorted.
    """
    root = Path(work_dir)
    if not root.is_dir():
        return []

    needle = (query or "").lower()
    found: list[str] = []

    def walk(directory: Path) -> None:
        try:
            entries = sorted(os.scandir(directory), key=lambda e: e.name)
        except OSError:
            return
        for entry in entries:
            if len(found) >= limit:
                return
            if _is_ignored(entry.name):
                continue
            path = Path(entry.path)
            rel = path.relative_to(root).as_posix()
            if not needle or needle in rel.lower():
                found.append(rel)
            if entry.is_dir(follow_symlinks=False):
                walk(path)

    walk(root)
    return sorted(found)
