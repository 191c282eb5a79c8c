import logging
from datetime import datetime, timezone

import pytest

from errscope.loghook import LogHook
from errscope.scope import HTTPRequest, Level, Request, User


def make_record(msg="", level=logging.CRITICAL, **extra):
    record = logging.LogRecord("test", level, __file__, 1, msg, None, None)
    record.__dict__.update(extra)
    return record


class Collector:
    def __init__(self, result="event-id"):
        self.events = []
        self.result = result

    def __call__(self, event):
        self.events.append(event)
        return self.result


def raised(exc, cause=None):
    try:
        raise exc from cause
    except BaseException as caught:
        return caught


@pytest.fixture
def hook():
    return LogHook(Collector(), attach_stacktrace=True)


def test_empty_record(hook):
    event = hook.record_to_event(make_record())
    assert event.level == Level.FATAL
    assert event.extra == {}
    assert event.message == ""
    assert event.exception == []


def test_data_fields(hook):
    event = hook.record_to_event(make_record(foo=123.4, bar="oink"))
    assert event.extra == {"bar": "oink", "foo": 123.4}


def test_info_level(hook):
    event = hook.record_to_event(make_record(level=logging.INFO))
    assert event.level == Level.INFO


def test_message(hook):
    event = hook.record_to_event(
        make_record("the only thing we have to fear is fear itself")
    )
    assert event.message == "the only thing we have to fear is fear itself"


def test_timestamp(hook):
    record = make_record()
    record.created = 1.0
    event = hook.record_to_event(record)
    assert event.timestamp == datetime(1970, 1, 1, 0, 0, 1, tzinfo=timezone.utc)


def test_http_request(hook):
    event = hook.record_to_event(
        make_record(request=HTTPRequest(method="GET", url="http://example.com/"))
    )
    assert event.extra == {}
    assert event.request == Request(
        url="http://example.com/", method="GET", headers={"Host": "example.com"}
    )


def test_error(hook):
    event = hook.record_to_event(make_record(error=ValueError("things failed")))
    assert event.extra == {}
    assert event.exception == [
        {"type": "error", "value": "things failed", "stacktrace": None}
    ]


def test_non_error(hook):
    event = hook.record_to_event(make_record(error="this isn't really an error"))
    assert event.extra == {"error": "this isn't really an error"}
    assert event.exception == []


def test_error_with_stack_trace(hook):
    event = hook.record_to_event(make_record(error=raised(ValueError("failure"))))
    assert len(event.exception) == 1
    assert event.exception[0]["value"] == "failure"
    frames = event.exception[0]["stacktrace"]["frames"]
    assert frames[-1].function == "raised"


def test_exc_info_is_used(hook):
    error = raised(ValueError("from exc_info"))
    record = logging.LogRecord(
        "test", logging.ERROR, __file__, 1, "msg", None, (ValueError, error, error.__traceback__)
    )
    event = hook.record_to_event(record)
    assert event.exception[0]["value"] == "from exc_info"


def test_user(hook):
    event = hook.record_to_event(make_record(user=User(id="bob")))
    assert event.extra == {}
    assert event.user == User(id="bob")


def test_non_user(hook):
    event = hook.record_to_event(make_record(user="just say no to drugs"))
    assert event.extra == {"user": "just say no to drugs"}
    assert event.user == User()


def test_transaction_and_fingerprint(hook):
    event = hook.record_to_event(make_record(transaction="txn", fingerprint=["a", "b"]))
    assert event.extra == {}
    assert event.transaction == "txn"
    assert event.fingerprint == ["a", "b"]


def test_set_key_renames_field(hook):
    hook.set_key("user", "account")
    event = hook.record_to_event(make_record(account=User(id="bob"), user=User(id="x")))
    assert event.user == User(id="bob")
    assert event.extra == {"user": User(id="x")}

    hook.set_key("user", "")
    event = hook.record_to_event(make_record(user=User(id="x")))
    assert event.user == User(id="x")


def test_set_key_ignores_empty_old_key(hook):
    hook.set_key("", "account")
    event = hook.record_to_event(make_record(account="value"))
    assert event.extra == {"account": "value"}


def test_exceptions_std_error(hook):
    assert hook.exceptions(ValueError("foo")) == [
        {"type": "error", "value": "foo", "stacktrace": None}
    ]


def test_exceptions_wrapped_no_stack(hook):
    outer = RuntimeError("foo: bar")
    outer.__cause__ = ValueError("bar")
    assert hook.exceptions(outer) == [
        {"type": "error", "value": "bar", "stacktrace": None},
        {"type": "error", "value": "foo: bar", "stacktrace": None},
    ]


def test_exceptions_ignored_stack():
    hook = LogHook(Collector(), attach_stacktrace=False)
    assert hook.exceptions(raised(ValueError("foo"))) == [
        {"type": "error", "value": "foo", "stacktrace": None}
    ]


def test_exceptions_stack(hook):
    result = hook.exceptions(raised(ValueError("foo")))
    assert len(result) == 1
    assert result[0]["value"] == "foo"
    assert result[0]["stacktrace"]["frames"]


def test_exceptions_multi_wrapped(hook):
    original = ValueError("original")
    fmt = RuntimeError("fmt: original")
    fmt.__cause__ = original
    wrap = raised(RuntimeError("wrap: fmt: original"), fmt)
    with_stack = raised(RuntimeError("wrap: fmt: original"), wrap)
    outer = RuntimeError("wrapped: wrap: fmt: original")
    outer.__cause__ = with_stack

    result = hook.exceptions(outer)
    assert [exc["value"] for exc in result] == [
        "original",
        "fmt: original",
        "wrap: fmt: original",
        "wrap: fmt: original",
        "wrapped: wrap: fmt: original",
    ]
    assert [exc["stacktrace"] is not None for exc in result] == [
        False,
        False,
        True,
        True,
        False,
    ]


def test_exceptions_merges_duplicate_without_stack(hook):
    inner = raised(ValueError("same"))
    outer = ValueError("same")
    outer.__cause__ = inner
    result = hook.exceptions(outer)
    assert len(result) == 1
    assert result[0]["stacktrace"] is not None


def test_emit_captures_with_scope_tags():
    collector = Collector()
    hook = LogHook(collector)
    hook.add_tags({"service": "api"})
    hook.emit(make_record("hello"))
    assert len(collector.events) == 1
    assert collector.events[0].tags == {"service": "api"}
    assert collector.events[0].message == "hello"


def test_emit_failure_without_fallback_reports_error(capsys):
    hook = LogHook(Collector(result=None))
    hook.emit(make_record("hello"))
    assert "failed to send event" in capsys.readouterr().err


def test_emit_failure_calls_fallback(capsys):
    hook = LogHook(Collector(result=None))
    handled = []
    hook.set_fallback(handled.append)
    record = make_record("hello")
    hook.emit(record)
    assert handled == [record]
    assert capsys.readouterr().err == ""


def test_emit_dropped_by_scope_processor_calls_fallback():
    collector = Collector()
    hook = LogHook(collector)
    hook.scope.add_event_processor(lambda event, hint: None)
    handled = []
    hook.set_fallback(handled.append)
    hook.emit(make_record("hello"))
    assert collector.events == []
    assert len(handled) == 1


def test_levels_filter_records():
    collector = Collector()
    hook = LogHook(collector, levels=[logging.ERROR])
    log = logging.getLogger("errscope-test-levels")
    log.propagate = False
    log.setLevel(logging.DEBUG)
    log.addHandler(hook)
    try:
        log.info("ignored")
        log.error("sent")
    finally:
        log.removeHandler(hook)
    assert [event.message for event in collector.events] == ["sent"]
    assert collector.events[0].level == Level.ERROR