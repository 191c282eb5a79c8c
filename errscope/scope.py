"""Scope: contextual data that is merged into events before they are sent."""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlsplit

logger = logging.getLogger(__name__)

MAX_REQUEST_BODY_BYTES = 10 * 1024
DEFAULT_MAX_BREADCRUMBS = 100
TRANSACTION_TYPE = "transaction"

Context = Dict[str, Any]


class Level(str, Enum):
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    FATAL = "fatal"


@dataclass
class Breadcrumb:
    type: str = ""
    category: str = ""
    message: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    level: Optional[Level] = None
    timestamp: Optional[datetime] = None


@dataclass
class Attachment:
    filename: str = ""
    content_type: str = ""
    payload: bytes = b""


@dataclass
class User:
    id: str = ""
    email: str = ""
    ip_address: str = ""
    username: str = ""
    name: str = ""
    segment: str = ""
    data: dict[str, str] = field(default_factory=dict)

    def is_empty(self) -> bool:
        return not (
            self.id
            or self.email
            or self.ip_address
            or self.username
            or self.name
            or self.segment
            or self.data
        )


@dataclass
class HTTPRequest:
    """An incoming HTTP request as seen by the application."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None
    content_length: int = -1


@dataclass
class Request:
    """The request interface of an event."""

    url: str = ""
    method: str = ""
    data: str = ""
    query_string: str = ""
    cookies: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)


def new_request(http_request: HTTPRequest) -> Request:
    """Build the event request interface from an HTTP request."""
    parts = urlsplit(http_request.url)
    headers = dict(http_request.headers)
    if parts.netloc:
        headers.setdefault("Host", parts.netloc)
    return Request(
        url=f"{parts.scheme}://{parts.netloc}{parts.path}",
        method=http_request.method,
        query_string=parts.query,
        headers=headers,
    )


@dataclass
class Event:
    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    type: str = ""
    level: Optional[Level] = None
    message: str = ""
    transaction: str = ""
    timestamp: Optional[datetime] = None
    breadcrumbs: list[Breadcrumb] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    contexts: dict[str, Context] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)
    user: User = field(default_factory=User)
    fingerprint: list[str] = field(default_factory=list)
    request: Optional[Request] = None
    exception: list[Any] = field(default_factory=list)


@dataclass
class EventHint:
    data: Any = None
    event_id: str = ""
    original_exception: Optional[BaseException] = None
    recovered_exception: Any = None
    context: Any = None
    request: Optional[HTTPRequest] = None


EventProcessor = Callable[[Event, Optional[EventHint]], Optional[Event]]


class LimitedBuffer:
    """A byte buffer that keeps at most ``capacity`` bytes and drops the rest."""

    def __init__(self, capacity: int, initial: bytes = b"", overflow: bool = False) -> None:
        self.capacity = capacity
        self._data = bytearray(initial)
        self._overflow = overflow

    def write(self, data: bytes) -> int:
        if self._overflow:
            return len(data)
        left = max(self.capacity - len(self._data), 0)
        if len(data) > left:
            self._overflow = True
            self._data += data[:left]
        else:
            self._data += data
        return len(data)

    def getvalue(self) -> bytes:
        return bytes(self._data)

    def overflow(self) -> bool:
        return self._overflow


class _TeeReader:
    """Wraps a binary stream, copying everything read into a sink."""

    def __init__(self, source: Any, sink: LimitedBuffer) -> None:
        self._source = source
        self._sink = sink

    def read(self, size: int = -1) -> bytes:
        chunk = self._source.read(size)
        self._sink.write(chunk)
        return chunk

    def readline(self, size: int = -1) -> bytes:
        chunk = self._source.readline(size)
        self._sink.write(chunk)
        return chunk

    def close(self) -> None:
        self._source.close()


def clone_context(context: Context) -> Context:
    """Return a shallow copy of a context; values are shared, not copied."""
    return dict(context)


class Scope:
    """Contextual data applied to events: breadcrumbs, tags, user and so on."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._reset()

    def _reset(self) -> None:
        self.breadcrumbs: list[Breadcrumb] = []
        self.attachments: list[Attachment] = []
        self.user = User()
        self.tags: dict[str, str] = {}
        self.contexts: dict[str, Context] = {}
        self.extra: dict[str, Any] = {}
        self.fingerprint: list[str] = []
        self.level: Optional[Level] = None
        self.request: Optional[HTTPRequest] = None
        self.request_body: Optional[LimitedBuffer] = None
        self.event_processors: list[EventProcessor] = []

    def add_breadcrumb(self, breadcrumb: Breadcrumb, limit: int) -> None:
        if breadcrumb.timestamp is None:
            breadcrumb.timestamp = datetime.now(timezone.utc)
        with self._lock:
            self.breadcrumbs.append(breadcrumb)
            if len(self.breadcrumbs) > limit:
                self.breadcrumbs = self.breadcrumbs[len(self.breadcrumbs) - limit:]

    def clear_breadcrumbs(self) -> None:
        with self._lock:
            self.breadcrumbs = []

    def add_attachment(self, attachment: Attachment) -> None:
        with self._lock:
            self.attachments.append(attachment)

    def clear_attachments(self) -> None:
        with self._lock:
            self.attachments = []

    def set_user(self, user: User) -> None:
        with self._lock:
            self.user = user

    def set_request(self, request: Optional[HTTPRequest]) -> None:
        """Set the request and lazily buffer its body as the application reads it."""
        with self._lock:
            self.request = request
            if request is None:
                return
            if request.content_length > MAX_REQUEST_BODY_BYTES:
                return
            if request.body is None:
                return
            buffer = LimitedBuffer(MAX_REQUEST_BODY_BYTES)
            request.body = _TeeReader(request.body, buffer)
            self.request_body = buffer

    def set_request_body(self, body: bytes) -> None:
        with self._lock:
            overflow = len(body) > MAX_REQUEST_BODY_BYTES
            self.request_body = LimitedBuffer(
                MAX_REQUEST_BODY_BYTES, body[:MAX_REQUEST_BODY_BYTES], overflow
            )

    def set_tag(self, key: str, value: str) -> None:
        with self._lock:
            self.tags[key] = value

    def set_tags(self, tags: dict[str, str]) -> None:
        with self._lock:
            self.tags.update(tags)

    def remove_tag(self, key: str) -> None:
        with self._lock:
            self.tags.pop(key, None)

    def set_context(self, key: str, value: Context) -> None:
        with self._lock:
            self.contexts[key] = value

    def set_contexts(self, contexts: dict[str, Context]) -> None:
        with self._lock:
            self.contexts.update(contexts)

    def remove_context(self, key: str) -> None:
        with self._lock:
            self.contexts.pop(key, None)

    def set_extra(self, key: str, value: Any) -> None:
        with self._lock:
            self.extra[key] = value

    def set_extras(self, extra: dict[str, Any]) -> None:
        with self._lock:
            self.extra.update(extra)

    def remove_extra(self, key: str) -> None:
        with self._lock:
            self.extra.pop(key, None)

    def set_fingerprint(self, fingerprint: list[str]) -> None:
        with self._lock:
            self.fingerprint = fingerprint

    def set_level(self, level: Level) -> None:
        with self._lock:
            self.level = level

    def clone(self) -> Scope:
        with self._lock:
            clone = Scope()
            clone.user = self.user
            clone.breadcrumbs = list(self.breadcrumbs)
            clone.attachments = list(self.attachments)
            clone.tags = dict(self.tags)
            clone.contexts = {k: clone_context(v) for k, v in self.contexts.items()}
            clone.extra = dict(self.extra)
            clone.fingerprint = list(self.fingerprint)
            clone.level = self.level
            clone.request = self.request
            clone.request_body = self.request_body
            clone.event_processors = list(self.event_processors)
            return clone

    def clear(self) -> None:
        """Remove all data from the scope."""
        with self._lock:
            self._reset()

    def add_event_processor(self, processor: EventProcessor) -> None:
        with self._lock:
            self.event_processors.append(processor)

    def apply_to_event(self, event: Event, hint: Optional[EventHint]) -> Optional[Event]:
        """Merge the scope into ``event``; return None if a processor drops it."""
        with self._lock:
            event.breadcrumbs.extend(self.breadcrumbs)
            event.attachments.extend(self.attachments)
            event.tags.update(self.tags)

            for key, value in self.contexts.items():
                if key == "trace" and event.type == TRANSACTION_TYPE:
                    # The trace context of a transaction belongs to the transaction itself.
                    continue
                if key not in event.contexts:
                    event.contexts[key] = clone_context(value)

            event.extra.update(self.extra)

            if event.user.is_empty():
                event.user = self.user

            if not event.fingerprint:
                event.fingerprint.extend(self.fingerprint)

            if self.level is not None:
                event.level = self.level

            if event.request is None and self.request is not None:
                event.request = new_request(self.request)
                # Partial bodies are never sent.
                if self.request_body is not None and not self.request_body.overflow():
                    event.request.data = self.request_body.getvalue().decode(
                        "utf-8", errors="replace"
                    )

            for processor in self.event_processors:
                event_id = event.event_id
                result = processor(event, hint)
                if result is None:
                    logger.info("Event dropped by one of the Scope EventProcessors: %s", event_id)
                    return None
                event = result

            return event