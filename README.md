# errscope

Building blocks for collecting and enriching error events in Python programs:
a scope that merges context into events, source-line context, a sampling
profiler, span bookkeeping, mapping of OpenTelemetry-style span data and a
`logging` handler that turns records into events.

## Modules

- `errscope.scope` — `Scope` holds breadcrumbs, attachments, a `User`, tags,
  contexts, extras, a fingerprint, a `Level`, the current `HTTPRequest` and
  event processors. `Scope.apply_to_event(event, hint)` merges them into an
  `Event` and runs the processors; a processor that returns `None` drops the
  event and `apply_to_event` then returns `None`. `Scope.clone()` copies the
  scope, `Scope.clear()` empties it. `add_breadcrumb(breadcrumb, limit)` keeps
  only the newest `limit` breadcrumbs and stamps a missing timestamp with the
  current UTC time. `set_request` wraps the request body so that up to 10 KiB
  of what the application reads is kept (`LimitedBuffer`); the body is put
  into the event only if it did not overflow. `new_request` builds the event's
  `Request` from an `HTTPRequest`, and `clone_context` makes a shallow copy of
  a context.
- `errscope.sourcereader` — `SourceReader.read_context_lines(filename, line,
  context)` reads a file once, caches its lines (files that cannot be read are
  cached as missing) and returns the lines around the 1-based `line` together
  with the index of that line in the returned list.
  `calculate_context_lines(lines, line, context)` does the same on lines you
  already have; an out-of-range line gives `([], 0)`.
- `errscope.profile` — dataclasses of a profile (`Frame`, `ProfileSample`,
  `ProfileThreadMetadata`, `ProfileTrace`, `ProfileTransaction`,
  `ProfileInfo`, plus `ProfileDevice`, `ProfileOS`, `ProfileRuntime`), most
  with a `to_dict()` that gives the serialised form.
- `errscope.profiler` — `start_profiling(start_time, ticker_factory)` starts a
  `ProfileRecorder` in a daemon thread that samples the stack of every thread
  at 101 Hz and keeps the most recent 3030 sample sets (about 30 seconds).
  Times are `time.monotonic_ns()` values. `ProfileRecorder.get_slice(start,
  end)` returns a `ProfilerResult` with the samples, frames, stacks and thread
  names of that range, or `None` when fewer than two sample sets fall in it.
  `ProfileRecorder.stop(wait)` ends sampling. `start_profiling` returns `None`
  if the recorder fails while starting. The default ticker is `TimeTicker`;
  any object with `wait()`, `ticked()` and `stop()` can be supplied instead.
- `errscope.span_recorder` — `SpanRecorder` stores the spans of one
  transaction, thread-safely, up to `max_spans` (1000 by default); further
  spans are dropped and a warning is logged once. `root()` gives the first
  span, `children()` the rest.
- `errscope.otelutils` — `map_otel_status(span)` derives a `SpanStatus` from
  an `http.status_code` or `rpc.grpc.status_code` attribute, else from the
  span's `StatusCode`. `parse_span_attributes(span)` returns a
  `SpanAttributes` with op, description and `TransactionSource` chosen from
  HTTP, database, RPC, messaging and FaaS attributes. Both work on the
  `ReadOnlySpan` dataclass of this module.
- `errscope.spanmap` — `SpanMap`, a thread-safe mapping from span identifiers
  to spans with `get`, `set`, `delete`, `clear` and `len()`.
- `errscope.loghook` — `LogHook(capture, levels=None, attach_stacktrace=False)`
  is a `logging.Handler`. Each record becomes an `Event`: the level is mapped,
  the record's extra fields become event extras, and the fields `request`
  (an `HTTPRequest`), `error` (an exception), `user` (a `User`),
  `transaction` (a string) and `fingerprint` (a list of strings) are lifted
  into the event instead. `set_key` renames these field names, `add_tags` adds
  tags to every event, and `set_fallback` sets a function called with the
  record when `capture` returns `None`. With `attach_stacktrace`, the whole
  exception chain is reported, innermost cause first, with stack traces.

## Examples

```python
from errscope.scope import Breadcrumb, Event, Level, Scope, User

scope = Scope()
scope.set_tag("component", "billing")
scope.set_user(User(id="42", email="someone@example.com"))
scope.set_level(Level.WARNING)
scope.add_breadcrumb(Breadcrumb(message="loaded invoice"), 100)

event = scope.apply_to_event(Event(message="payment failed"), None)
print(event.tags, event.level, event.user.id)
```

Logging records as events:

```python
import logging
from errscope.loghook import LogHook
from errscope.scope import User

captured = []

def capture(event):
    captured.append(event)
    return event.event_id

log = logging.getLogger("shop")
log.addHandler(LogHook(capture, levels=[logging.ERROR]))
log.error("checkout failed", extra={"user": User(id="7"), "transaction": "checkout"})
```

Profiling a stretch of work:

```python
import time
from errscope.profiler import start_profiling

start = time.monotonic_ns()
recorder = start_profiling(start)
...  # the work to observe
result = recorder.get_slice(start, time.monotonic_ns())
recorder.stop(wait=True)
```

Mapping span data:

```python
from errscope.otelutils import ReadOnlySpan, SpanKind, map_otel_status, parse_span_attributes

span = ReadOnlySpan(
    name="request",
    kind=SpanKind.SERVER,
    attributes={"http.method": "GET", "http.target": "/api/users?page=2", "http.status_code": 404},
)
print(parse_span_attributes(span))  # op "http.server", description "GET /api/users", source URL
print(map_otel_status(span))        # SpanStatus.NOT_FOUND
```

## What it does not do

errscope builds and enriches events but does not send them anywhere: there is
no client, no DSN handling and no transport. `LogHook` hands each finished
event to the `capture` function you give it. There is no OpenTelemetry span
processor or propagator either; `otelutils` and `SpanMap` are the pieces such
integrations would use.

## Installing

The package has no runtime dependencies. Its test suite uses pytest, which
the `test` extra installs.