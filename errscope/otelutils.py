"""Mapping of OpenTelemetry span data onto event span fields."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any
from urllib.parse import urlsplit

HTTP_STATUS_CODE_KEY = "http.status_code"
RPC_GRPC_STATUS_CODE_KEY = "rpc.grpc.status_code"
HTTP_METHOD_KEY = "http.method"
HTTP_TARGET_KEY = "http.target"
HTTP_ROUTE_KEY = "http.route"
HTTP_URL_KEY = "http.url"
DB_SYSTEM_KEY = "db.system"
DB_STATEMENT_KEY = "db.statement"
RPC_SYSTEM_KEY = "rpc.system"
MESSAGING_SYSTEM_KEY = "messaging.system"
FAAS_TRIGGER_KEY = "faas.trigger"


class SpanStatus(str, Enum):
    UNDEFINED = ""
    OK = "ok"
    CANCELED = "cancelled"
    UNKNOWN = "unknown"
    INVALID_ARGUMENT = "invalid_argument"
    DEADLINE_EXCEEDED = "deadline_exceeded"
    NOT_FOUND = "not_found"
    ALREADY_EXISTS = "already_exists"
    PERMISSION_DENIED = "permission_denied"
    RESOURCE_EXHAUSTED = "resource_exhausted"
    FAILED_PRECONDITION = "failed_precondition"
    ABORTED = "aborted"
    OUT_OF_RANGE = "out_of_range"
    UNIMPLEMENTED = "unimplemented"
    INTERNAL_ERROR = "internal_error"
    UNAVAILABLE = "unavailable"
    DATA_LOSS = "data_loss"
    UNAUTHENTICATED = "unauthenticated"


class TransactionSource(str, Enum):
    CUSTOM = "custom"
    URL = "url"
    ROUTE = "route"
    VIEW = "view"
    COMPONENT = "component"
    TASK = "task"


class SpanKind(str, Enum):
    UNSPECIFIED = "unspecified"
    INTERNAL = "internal"
    SERVER = "server"
    CLIENT = "client"
    PRODUCER = "producer"
    CONSUMER = "consumer"


class StatusCode(IntEnum):
    UNSET = 0
    ERROR = 1
    OK = 2


@dataclass
class ReadOnlySpan:
    """The parts of a finished OpenTelemetry span that are mapped."""

    name: str = ""
    kind: SpanKind = SpanKind.INTERNAL
    status_code: int = StatusCode.UNSET
    attributes: dict[str, Any] = field(default_factory=dict)


@dataclass
class SpanAttributes:
    op: str
    description: str
    source: TransactionSource


_HTTP_STATUSES = {
    "400": SpanStatus.FAILED_PRECONDITION,
    "401": SpanStatus.UNAUTHENTICATED,
    "403": SpanStatus.PERMISSION_DENIED,
    "404": SpanStatus.NOT_FOUND,
    "409": SpanStatus.ABORTED,
    "429": SpanStatus.RESOURCE_EXHAUSTED,
    "499": SpanStatus.CANCELED,
    "500": SpanStatus.INTERNAL_ERROR,
    "501": SpanStatus.UNIMPLEMENTED,
    "503": SpanStatus.UNAVAILABLE,
    "504": SpanStatus.DEADLINE_EXCEEDED,
}

_GRPC_STATUSES = {
    "1": SpanStatus.CANCELED,
    "2": SpanStatus.UNKNOWN,
    "3": SpanStatus.INVALID_ARGUMENT,
    "4": SpanStatus.DEADLINE_EXCEEDED,
    "5": SpanStatus.NOT_FOUND,
    "6": SpanStatus.ALREADY_EXISTS,
    "7": SpanStatus.PERMISSION_DENIED,
    "8": SpanStatus.RESOURCE_EXHAUSTED,
    "9": SpanStatus.FAILED_PRECONDITION,
    "10": SpanStatus.ABORTED,
    "11": SpanStatus.OUT_OF_RANGE,
    "12": SpanStatus.UNIMPLEMENTED,
    "13": SpanStatus.INTERNAL_ERROR,
    "14": SpanStatus.UNAVAILABLE,
    "15": SpanStatus.DATA_LOSS,
    "16": SpanStatus.UNAUTHENTICATED,
}


def _emit(value: Any) -> str:
    """Render an attribute value as text."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value))
    return str(value)


def _as_string(value: Any) -> str:
    return value if isinstance(value, str) else ""


def map_otel_status(span: ReadOnlySpan) -> SpanStatus:
    """Derive a span status from HTTP or gRPC codes, else from the span status."""
    for key, value in span.attributes.items():
        if key == HTTP_STATUS_CODE_KEY:
            status = _HTTP_STATUSES.get(_emit(value))
            if status is not None:
                return status
        if key == RPC_GRPC_STATUS_CODE_KEY:
            status = _GRPC_STATUSES.get(_emit(value))
            if status is not None:
                return status

    if span.status_code in (StatusCode.UNSET, StatusCode.OK):
        return SpanStatus.OK
    if span.status_code == StatusCode.ERROR:
        return SpanStatus.INTERNAL_ERROR
    return SpanStatus.UNKNOWN


def parse_span_attributes(span: ReadOnlySpan) -> SpanAttributes:
    """Choose op, description and source from the span's semantic attributes."""
    for key, value in span.attributes.items():
        if key == HTTP_METHOD_KEY:
            return _describe_http(span)
        if key == DB_SYSTEM_KEY:
            return _describe_db(span)
        if key == RPC_SYSTEM_KEY:
            return SpanAttributes("rpc", span.name, TransactionSource.ROUTE)
        if key == MESSAGING_SYSTEM_KEY:
            return SpanAttributes("messaging", span.name, TransactionSource.ROUTE)
        if key == FAAS_TRIGGER_KEY:
            return SpanAttributes(_as_string(value), span.name, TransactionSource.ROUTE)

    # An empty op is reported as "default".
    return SpanAttributes("", span.name, TransactionSource.CUSTOM)


def _describe_db(span: ReadOnlySpan) -> SpanAttributes:
    description = span.name
    if DB_STATEMENT_KEY in span.attributes:
        description = _as_string(span.attributes[DB_STATEMENT_KEY])
    return SpanAttributes("db", description, TransactionSource.TASK)


def _describe_http(span: ReadOnlySpan) -> SpanAttributes:
    op = {SpanKind.CLIENT: "http.client", SpanKind.SERVER: "http.server"}.get(
        span.kind, "http"
    )

    attrs = span.attributes
    target = _as_string(attrs.get(HTTP_TARGET_KEY, ""))
    route = _as_string(attrs.get(HTTP_ROUTE_KEY, ""))
    method = _as_string(attrs.get(HTTP_METHOD_KEY, ""))
    url = _as_string(attrs.get(HTTP_URL_KEY, ""))

    path = ""
    if target:
        try:
            path = urlsplit(target).path
        except ValueError:
            path = target
    elif route:
        path = route
    elif url:
        try:
            parts = urlsplit(url)
        except ValueError:
            parts = None
        if parts is not None:
            host = parts.netloc.rpartition("@")[2]
            path = f"{parts.scheme}://{host}{parts.path}"

    if not path:
        return SpanAttributes(op, span.name, TransactionSource.CUSTOM)

    if route or path == "/":
        source = TransactionSource.ROUTE
    else:
        source = TransactionSource.URL
    return SpanAttributes(op, f"{method} {path}", source)