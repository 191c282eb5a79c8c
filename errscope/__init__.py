"""Scopes and events, source context, a sampling profiler, span bookkeeping and a logging handler."""

__version__ = "0.24.0"
__all__ = [
    "loghook",
    "otelutils",
    "profile",
    "profiler",
    "scope",
    "sourcereader",
    "span_recorder",
    "spanmap",
]