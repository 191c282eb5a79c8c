"""Reading source lines around a given line number, with a file cache."""

from __future__ import annotations

import threading


def calculate_context_lines(
    lines: list[bytes] | None, line: int, context: int
) -> tuple[list[bytes], int]:
    """Return the lines around 1-based ``line`` and the index of that line in them.

    An empty list is returned when ``line`` is out of range.
    """
    line -= 1
    context_line = context

    if lines is None or line >= len(lines) or line < 0:
        return [], 0

    if context < 0:
        context = 0
        context_line = 0

    start = line - context
    if start < 0:
        context_line += start
        start = 0

    end = min(line + context + 1, len(lines))
    return lines[start:end], context_line


class SourceReader:
    """Reads source files once and serves context lines from a cache."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.cache: dict[str, list[bytes] | None] = {}

    def read_context_lines(
        self, filename: str, line: int, context: int
    ) -> tuple[list[bytes], int]:
        with self._lock:
            if filename in self.cache:
                lines = self.cache[filename]
            else:
                try:
                    with open(filename, "rb") as handle:
                        data = handle.read()
                except OSError:
                    self.cache[filename] = None
                    return [], 0
                lines = data.split(b"\n")
                self.cache[filename] = lines
            return calculate_context_lines(lines, line, context)