"""A logging handler that turns log records into events."""

from __future__ import annotations

import functools
import inspect
import logging
import os
from datetime import datetime, timezone
from types import CodeType
from typing import Any, Callable, Iterable, Optional

from errscope.profile import Frame
from errscope.scope import Event, HTTPRequest, Level, Scope, User, new_request

# Record fields with these names are turned into event metadata instead of extras.
# Their names can be changed per hook with LogHook.set_key.
FIELD_REQUEST = "request"
FIELD_USER = "user"
FIELD_TRANSACTION = "transaction"
FIELD_FINGERPRINT = "fingerprint"
ERROR_KEY = "error"

_RECORD_ATTRIBUTES = frozenset(
    logging.LogRecord("", logging.NOTSET, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

CaptureFunc = Callable[[Event], Optional[str]]
FallbackFunc = Callable[[logging.LogRecord], None]


class DeliveryError(RuntimeError):
    """Raised when an event could not be handed over for sending."""


def _level_for(levelno: int) -> Level:
    if levelno >= logging.CRITICAL:
        return Level.FATAL
    if levelno >= logging.ERROR:
        return Level.ERROR
    if levelno >= logging.WARNING:
        return Level.WARNING
    if levelno >= logging.INFO:
        return Level.INFO
    return Level.DEBUG


def _next_in_chain(error: BaseException) -> Optional[BaseException]:
    if error.__cause__ is not None:
        return error.__cause__
    if error.__suppress_context__:
        return None
    return error.__context__


@functools.lru_cache(maxsize=1024)
def _module_name(code: CodeType) -> str:
    try:
        module = inspect.getmodule(code)
    except Exception:
        module = None
    return module.__name__ if module is not None else ""


def _extract_stacktrace(error: BaseException) -> Optional[dict[str, Any]]:
    tb = error.__traceback__
    if tb is None:
        return None
    frames: list[Frame] = []
    while tb is not None:
        code = tb.tb_frame.f_code
        frames.append(
            Frame(
                function=getattr(code, "co_qualname", code.co_name),
                module=_module_name(code),
                filename=os.path.basename(code.co_filename),
                abs_path=code.co_filename,
                lineno=tb.tb_lineno,
            )
        )
        tb = tb.tb_next
    return {"frames": frames}


class LogHook(logging.Handler):
    """Sends log records as events through ``capture``.

    ``capture`` receives the finished event and returns its identifier, or
    None if the event could not be sent. When ``levels`` is given, only
    records with one of those levels are handled.
    """

    def __init__(
        self,
        capture: CaptureFunc,
        levels: Optional[Iterable[int]] = None,
        *,
        attach_stacktrace: bool = False,
    ) -> None:
        super().__init__()
        self._capture = capture
        self.levels = None if levels is None else list(levels)
        self.attach_stacktrace = attach_stacktrace
        self.scope = Scope()
        self._fallback: Optional[FallbackFunc] = None
        self._keys: dict[str, str] = {}
        if self.levels is not None:
            self.addFilter(lambda record: record.levelno in self.levels)

    def add_tags(self, tags: dict[str, str]) -> None:
        """Add tags to every event sent by this hook."""
        self.scope.set_tags(tags)

    def set_fallback(self, fallback: Optional[FallbackFunc]) -> None:
        """Handle records that could not be sent.

        The fallback is called with the original record; if it returns, the
        failure counts as handled, if it raises, the error is reported as a
        logging error.
        """
        self._fallback = fallback

    def set_key(self, old_key: str, new_key: str) -> None:
        """Use ``new_key`` instead of the field name ``old_key``; "" unsets it."""
        if not old_key:
            return
        if not new_key:
            self._keys.pop(old_key, None)
            return
        self._keys.pop(new_key, None)
        self._keys[old_key] = new_key

    def _key(self, key: str) -> str:
        return self._keys.get(key) or key

    def _capture_event(self, event: Event) -> Optional[str]:
        processed = self.scope.apply_to_event(event, None)
        if processed is None:
            return None
        return self._capture(processed)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            event = self.record_to_event(record)
            if self._capture_event(event) is None:
                if self._fallback is None:
                    raise DeliveryError("failed to send event")
                self._fallback(record)
        except Exception:
            self.handleError(record)

    def record_to_event(self, record: logging.LogRecord) -> Event:
        """Build an event from a log record and its extra fields."""
        data = {
            key: value
            for key, value in record.__dict__.items()
            if key not in _RECORD_ATTRIBUTES
        }
        event = Event(
            level=_level_for(record.levelno),
            extra=data,
            message=record.getMessage(),
            timestamp=datetime.fromtimestamp(record.created, timezone.utc),
        )

        key = self._key(FIELD_REQUEST)
        request = data.get(key)
        if isinstance(request, HTTPRequest):
            del data[key]
            event.request = new_request(request)

        error = data.get(ERROR_KEY)
        if isinstance(error, BaseException):
            del data[ERROR_KEY]
            event.exception = self.exceptions(error)
        elif record.exc_info and record.exc_info[1] is not None:
            event.exception = self.exceptions(record.exc_info[1])

        key = self._key(FIELD_USER)
        user = data.get(key)
        if isinstance(user, User):
            del data[key]
            event.user = user

        key = self._key(FIELD_TRANSACTION)
        transaction = data.get(key)
        if isinstance(transaction, str):
            del data[key]
            event.transaction = transaction

        key = self._key(FIELD_FINGERPRINT)
        fingerprint = data.get(key)
        if isinstance(fingerprint, list) and all(isinstance(x, str) for x in fingerprint):
            del data[key]
            event.fingerprint = fingerprint

        return event

    def exceptions(self, error: BaseException) -> list[dict[str, Any]]:
        """Describe ``error`` and its chain, innermost cause first."""
        if not self.attach_stacktrace:
            return [{"type": "error", "value": str(error), "stacktrace": None}]

        found: list[dict[str, Any]] = []
        seen: set[int] = set()
        current: Optional[BaseException] = error
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            exc = {
                "type": "error",
                "value": str(current),
                "stacktrace": _extract_stacktrace(current),
            }
            current = _next_in_chain(current)
            if found and exc["value"] == found[-1]["value"]:
                last = found[-1]
                if last["stacktrace"] is None:
                    last["stacktrace"] = exc["stacktrace"]
                    continue
                if exc["stacktrace"] is None:
                    continue
            found.append(exc)
        found.reverse()
        return found