"""Data model of a sampled profile and its serialisation."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from typing import Any


def _format_time(value: datetime) -> str:
    text = value.isoformat()
    if text.endswith("+00:00"):
        text = text[: -len("+00:00")] + "Z"
    return text


_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)


@dataclass
class Frame:
    """A single stack frame of a profile."""

    function: str = ""
    module: str = ""
    filename: str = ""
    abs_path: str = ""
    lineno: int = 0
    in_app: bool = False

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            key: value
            for key, value in (
                ("function", self.function),
                ("module", self.module),
                ("filename", self.filename),
                ("abs_path", self.abs_path),
            )
            if value
        }
        if self.lineno:
            out["lineno"] = self.lineno
        out["in_app"] = self.in_app
        return out


@dataclass
class ProfileDevice:
    architecture: str = ""
    classification: str = ""
    locale: str = ""
    manufacturer: str = ""
    model: str = ""


@dataclass
class ProfileOS:
    build_number: str = ""
    name: str = ""
    version: str = ""


@dataclass
class ProfileRuntime:
    name: str = ""
    version: str = ""


@dataclass
class ProfileSample:
    """One observation of a thread at a point in time."""

    elapsed_since_start_ns: int = 0
    stack_id: int = 0
    thread_id: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "elapsed_since_start_ns": self.elapsed_since_start_ns,
            "stack_id": self.stack_id,
            "thread_id": self.thread_id,
        }


@dataclass
class ProfileThreadMetadata:
    name: str = ""
    priority: int = 0

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.name:
            out["name"] = self.name
        if self.priority:
            out["priority"] = self.priority
        return out


@dataclass
class ProfileTrace:
    """Frames, stacks (lists of frame indexes) and samples of a profile."""

    frames: list[Frame] = field(default_factory=list)
    samples: list[ProfileSample] = field(default_factory=list)
    stacks: list[list[int]] = field(default_factory=list)
    thread_metadata: dict[int, ProfileThreadMetadata] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "frames": [frame.to_dict() for frame in self.frames],
            "samples": [sample.to_dict() for sample in self.samples],
            "stacks": [list(stack) for stack in self.stacks],
            "thread_metadata": {
                str(thread_id): meta.to_dict()
                for thread_id, meta in self.thread_metadata.items()
            },
        }


@dataclass
class ProfileTransaction:
    active_thread_id: int = 0
    duration_ns: int = 0
    id: str = ""
    name: str = ""
    trace_id: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"active_thread_id": self.active_thread_id}
        if self.duration_ns:
            out["duration_ns"] = self.duration_ns
        out["id"] = self.id
        out["name"] = self.name
        out["trace_id"] = self.trace_id
        return out


@dataclass
class ProfileInfo:
    """The envelope item describing a complete profile."""

    debug_meta: dict[str, Any] | None = None
    device: ProfileDevice = field(default_factory=ProfileDevice)
    environment: str = ""
    event_id: str = ""
    os: ProfileOS = field(default_factory=ProfileOS)
    platform: str = ""
    release: str = ""
    dist: str = ""
    runtime: ProfileRuntime = field(default_factory=ProfileRuntime)
    timestamp: datetime = _ZERO_TIME
    trace: ProfileTrace | None = None
    transaction: ProfileTransaction = field(default_factory=ProfileTransaction)
    version: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {}
        if self.debug_meta is not None:
            out["debug_meta"] = self.debug_meta
        out["device"] = asdict(self.device)
        if self.environment:
            out["environment"] = self.environment
        out["event_id"] = self.event_id
        out["os"] = asdict(self.os)
        out["platform"] = self.platform
        out["release"] = self.release
        out["dist"] = self.dist
        out["runtime"] = asdict(self.runtime)
        out["timestamp"] = _format_time(self.timestamp)
        out["profile"] = self.trace.to_dict() if self.trace is not None else None
        out["transaction"] = self.transaction.to_dict()
        out["version"] = self.version
        return out