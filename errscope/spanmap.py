"""Mapping from OpenTelemetry span identifiers to unfinished spans."""

from __future__ import annotations

import threading
from typing import Any, Hashable, Optional


class SpanMap:
    """Thread-safe map of span identifiers to spans."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._spans: dict[Hashable, Any] = {}

    def get(self, span_id: Hashable) -> Optional[Any]:
        """The span stored for ``span_id``, or None."""
        with self._lock:
            return self._spans.get(span_id)

    def set(self, span_id: Hashable, span: Any) -> None:
        with self._lock:
            self._spans[span_id] = span

    def delete(self, span_id: Hashable) -> None:
        """Forget ``span_id``; unknown identifiers are ignored."""
        with self._lock:
            self._spans.pop(span_id, None)

    def clear(self) -> None:
        with self._lock:
            self._spans = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._spans)


span_map = SpanMap()