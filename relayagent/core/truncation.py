"""
Deterministic truncation for tool output.

Lengths are counted in characters (code points), not bytes.
"""

from __future__ import annotations

MAX_LINES = 1000
MAX_LINE_LENGTH = 2000
MAX_BYTES = 100_000
MAX_OUTPUT_CHARS = 50_000
MAX_OUTPUT_LINE_LENGTH = 2000

TRUNCATION_MARKER = "[...truncated]"
READ_LINE_MARKER = "..."
TRUNCATION_NOTICE = "Output is truncated to fit in the message."


def _cut(text: str, max_len: int, marker: str) -> str:
    max_len = max(max_len, len(marker))
    return text[: max_len - len(marker)] + marker


def truncate_line(line: str, max_len: int = MAX_LINE_LENGTH) -> tuple[str, bool]:
    """Truncate a read-file line body, marking the cut with '...'."""
    if len(line) <= max_len:
        return line, False
    return _cut(line, max_len, READ_LINE_MARKER), True


def _split_inclusive(text: str) -> list[str]:
    # str.splitlines() also breaks on lone \r and other separators; only \n counts here.
    pieces = text.split("\n")
    lines = [piece + "\n" for piece in pieces[:-1]]
    if pieces[-1]:
        lines.append(pieces[-1])
    return lines


def _split_line_break(line: str) -> tuple[str, str]:
    if line.endswith("\r\n"):
        return line[:-2], "\r\n"
    if line.endswith("\n"):
        return line[:-1], "\n"
    return line, ""


def truncate_output_line(
    line: str, max_len: int = MAX_OUTPUT_LINE_LENGTH, line_break: str = ""
) -> tuple[str, bool]:
    if len(line) <= max_len:
        return line + line_break, False
    return _cut(line, max_len, TRUNCATION_MARKER) + line_break, True


def truncate_output(
    text: str,
    max_chars: int = MAX_OUTPUT_CHARS,
    max_line_length: int = MAX_OUTPUT_LINE_LENGTH,
) -> tuple[str, bool]:
    """
    Bound combined tool output.

    Over-long lines are cut with a marker (keeping their line break), and
    accumulation stops at max_chars, cutting the final line at the boundary.
    Running it again on its own output changes nothing.

    Returns:
        (output, truncated)
    """
    parts: list[str] = []
    total = 0
    truncated = False

    for line in _split_inclusive(text):
        if total >= max_chars:
            truncated = True
            break

        body, line_break = _split_line_break(line)
        line_text, line_truncated = truncate_output_line(body, max_line_length, line_break)
        if line_truncated:
            truncated = True

        remaining = max_chars - total
        if len(line_text) > remaining:
            cut = line_text[:remaining]
            if line_break == "\r\n" and len(cut) == len(line_text) - 1:
                # A lone \r would read back as part of the line body.
                cut = cut[:-1]
            parts.append(cut)
            truncated = True
            break

        parts.append(line_text)
        total += len(line_text)

    return "".join(parts), truncated


def append_truncation(summary: str, truncated: bool) -> str:
    """Merge the truncation notice onto a summary sentence."""
    if not truncated:
        return summary
    if not summary:
        return TRUNCATION_NOTICE
    if summary.endswith("."):
        return f"{summary} {TRUNCATION_NOTICE}"
    return f"{summary}. {TRUNCATION_NOTICE}"
