"""Sampling profiler that keeps a rolling window of every thread's stack."""

from __future__ import annotations

import functools
import inspect
import logging
import os
import sys
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from types import CodeType
from typing import Callable, Iterator, Optional, Protocol

from errscope.profile import Frame, ProfileSample, ProfileThreadMetadata, ProfileTrace

logger = logging.getLogger(__name__)

# 101 Hz rather than 100 Hz to avoid sampling in lockstep with periodic work.
SAMPLING_RATE_HZ = 101
SAMPLING_INTERVAL_NS = 1_000_000_000 // SAMPLING_RATE_HZ
SAMPLING_INTERVAL_S = SAMPLING_INTERVAL_NS / 1_000_000_000
RUNTIME_LIMIT_S = 30
RING_SIZE = RUNTIME_LIMIT_S * SAMPLING_RATE_HZ

# Lets tests provoke failures in the sampling thread:
# below zero the thread fails during startup, above zero it fails when the
# tick with that countdown value is being collected.
_test_profiler_panic = 0

# (module, function, path, line)
_CapturedFrame = tuple[str, str, str, int]
Records = list[tuple[int, list[_CapturedFrame]]]


class Ticker(Protocol):
    def wait(self) -> bool: ...

    def ticked(self) -> None: ...

    def stop(self) -> None: ...


TickerFactory = Callable[[float], Ticker]


class TimeTicker:
    """Delivers ticks at a fixed interval, dropping ticks that were missed."""

    def __init__(self, interval: float) -> None:
        self.interval = interval
        self._deadline = time.monotonic() + interval
        self._stopped = threading.Event()

    def wait(self) -> bool:
        """Block until the next tick; return False once the ticker is stopped."""
        timeout = max(self._deadline - time.monotonic(), 0.0)
        if self._stopped.wait(timeout):
            return False
        now = time.monotonic()
        self._deadline += self.interval
        if self._deadline < now:
            self._deadline = now + self.interval
        return True

    def ticked(self) -> None:
        """Called after a tick has been processed."""

    def stop(self) -> None:
        self._stopped.set()


@dataclass
class ProfilerResult:
    caller_thread_id: int
    trace: ProfileTrace


@dataclass
class _SamplesBucket:
    relative_time_ns: int
    stack_ids: list[int] = field(default_factory=list)
    thread_ids: list[int] = field(default_factory=list)


def get_current_thread_id() -> int:
    """Return the identifier of the calling thread, as used in samples."""
    return threading.get_ident()


@functools.lru_cache(maxsize=4096)
def _module_name(code: CodeType) -> str:
    try:
        module = inspect.getmodule(code)
    except Exception:
        module = None
    return module.__name__ if module is not None else ""


def _walk(top) -> Iterator[_CapturedFrame]:
    frame = top
    while frame is not None:
        code = frame.f_code
        yield (
            _module_name(code),
            getattr(code, "co_qualname", code.co_name),
            code.co_filename,
            frame.f_lineno or 0,
        )
        frame = frame.f_back


class ProfileRecorder:
    """Collects stack samples of all threads into a ring buffer of buckets."""

    def __init__(self, start_time: int, ticker_factory: TickerFactory = TimeTicker) -> None:
        self.start_time = start_time
        self.test_panic = 0
        self._ticker_factory = ticker_factory
        self._ticker: Optional[Ticker] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._finished = threading.Event()
        self._started_ok = False

        self.stack_indexes: dict[tuple[int, ...], int] = {}
        self.stacks: list[list[int]] = []
        self.new_stacks: list[list[int]] = []

        self.frame_indexes: dict[_CapturedFrame, int] = {}
        self.frames: list[Frame] = []
        self.new_frames: list[Frame] = []

        self.buckets: deque[_SamplesBucket] = deque(maxlen=RING_SIZE)

    def run(self, started: threading.Event) -> None:
        """Sample until stopped; ``started`` is set once setup has finished."""
        global _test_profiler_panic
        try:
            self.test_panic = _test_profiler_panic
            if self.test_panic < 0:
                logger.warning(
                    "Profiler failing during startup because the test countdown is %d",
                    self.test_panic,
                )
                raise RuntimeError("expected failure of the profiler during startup")

            self.on_tick()

            ticker = self._ticker_factory(SAMPLING_INTERVAL_S)
            self._ticker = ticker
            self._started_ok = True
            started.set()

            while not self._stop_requested.is_set() and ticker.wait():
                self.on_tick()
                ticker.ticked()
        except Exception as exc:  # the sampling thread must never take the process down
            logger.warning("Profiler failure in run(): %s", exc)
        finally:
            _test_profiler_panic = 0
            if self._ticker is not None:
                self._ticker.stop()
            started.set()
            self._finished.set()

    def stop(self, wait: bool = False) -> None:
        if not self._finished.is_set():
            self._stop_requested.set()
            if self._ticker is not None:
                self._ticker.stop()
        if wait and self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()

    def get_slice(self, start_time: int, end_time: int) -> Optional[ProfilerResult]:
        """Return the samples taken between two ``time.monotonic_ns()`` values."""
        if self.start_time > end_time or start_time > end_time:
            return None

        relative_start = start_time - self.start_time if self.start_time < start_time else 0
        relative_end = end_time - self.start_time

        with self._lock:
            buckets = self._get_buckets(relative_start, relative_end)
            if len(buckets) < 2:
                return None
            trace = ProfileTrace(frames=list(self.frames), stacks=list(self.stacks))

        names = {thread.ident: thread.name for thread in threading.enumerate()}
        samples: list[ProfileSample] = []
        for bucket in buckets:
            elapsed = bucket.relative_time_ns - relative_start
            for thread_id, stack_id in zip(bucket.thread_ids, bucket.stack_ids):
                samples.append(
                    ProfileSample(
                        elapsed_since_start_ns=elapsed,
                        stack_id=stack_id,
                        thread_id=thread_id,
                    )
                )
                if thread_id not in trace.thread_metadata:
                    trace.thread_metadata[thread_id] = ProfileThreadMetadata(
                        name=names.get(thread_id) or f"Thread {thread_id}"
                    )
        samples.reverse()
        trace.samples = samples
        if not samples:
            return None
        return ProfilerResult(caller_thread_id=get_current_thread_id(), trace=trace)

    def _get_buckets(self, relative_start: int, relative_end: int) -> list[_SamplesBucket]:
        """Buckets within the range, newest first. Caller holds the lock."""
        found: list[_SamplesBucket] = []
        for bucket in reversed(self.buckets):
            if bucket.relative_time_ns > relative_end:
                continue
            if bucket.relative_time_ns < relative_start:
                break
            found.append(bucket)
        return found

    def on_tick(self) -> None:
        elapsed_ns = time.monotonic_ns() - self.start_time

        if self.test_panic > 0:
            logger.warning("Profiler test countdown is %d", self.test_panic)
            if self.test_panic == 1:
                raise RuntimeError("expected failure of the profiler on tick")
            self.test_panic -= 1

        records = self.collect_records()
        self.process_records(elapsed_ns, records)

    def collect_records(self) -> Records:
        """Capture the current stack of every thread, innermost frame first."""
        current = sys._current_frames()
        return [(thread_id, list(_walk(top))) for thread_id, top in current.items()]

    def process_records(self, elapsed_ns: int, records: Records) -> None:
        if not records:
            return

        self.new_frames = []
        self.new_stacks = []

        bucket = _SamplesBucket(relative_time_ns=elapsed_ns)
        for thread_id, stack in records:
            bucket.stack_ids.append(self._add_stack(stack))
            bucket.thread_ids.append(thread_id)

        with self._lock:
            self.stacks.extend(self.new_stacks)
            self.frames.extend(self.new_frames)
            self.buckets.append(bucket)

    def _add_stack(self, stack: list[_CapturedFrame]) -> int:
        key = tuple(self._add_frame(captured) for captured in stack)
        index = self.stack_indexes.get(key)
        if index is None:
            index = len(self.stacks) + len(self.new_stacks)
            self.new_stacks.append(list(key))
            self.stack_indexes[key] = index
        return index

    def _add_frame(self, captured: _CapturedFrame) -> int:
        index = self.frame_indexes.get(captured)
        if index is None:
            module, function, path, lineno = captured
            frame = Frame(
                function=function,
                module=module,
                filename=os.path.basename(path),
                abs_path=path,
                lineno=lineno,
            )
            index = len(self.frames) + len(self.new_frames)
            self.new_frames.append(frame)
            self.frame_indexes[captured] = index
        return index


def start_profiling(
    start_time: int, ticker_factory: TickerFactory = TimeTicker
) -> Optional[ProfileRecorder]:
    """Start sampling in a background thread; None if the profiler failed to start."""
    recorder = ProfileRecorder(start_time, ticker_factory)
    started = threading.Event()
    thread = threading.Thread(
        target=recorder.run, args=(started,), name="errscope-profiler", daemon=True
    )
    recorder._thread = thread
    thread.start()
    started.wait()
    if not recorder._started_ok:
        thread.join()
        return None
    return recorder