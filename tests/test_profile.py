import json
from datetime import datetime, timezone

from errscope.profile import (
    Frame,
    ProfileDevice,
    ProfileInfo,
    ProfileOS,
    ProfileRuntime,
    ProfileSample,
    ProfileThreadMetadata,
    ProfileTrace,
    ProfileTransaction,
)


def _trace():
    frames = [Frame(function="main", module="app", abs_path="/src/app.py", lineno=3)]
    samples = [
        ProfileSample(elapsed_since_start_ns=0, stack_id=0, thread_id=7),
        ProfileSample(elapsed_since_start_ns=10, stack_id=0, thread_id=7),
    ]
    return ProfileTrace(
        frames=frames,
        samples=samples,
        stacks=[[0]],
        thread_metadata={7: ProfileThreadMetadata(name="Goroutine 7")},
    )


def test_sample_keys_and_values():
    sample = ProfileSample(elapsed_since_start_ns=5, stack_id=2, thread_id=9)
    assert sample.to_dict() == {
        "elapsed_since_start_ns": 5,
        "stack_id": 2,
        "thread_id": 9,
    }


def test_thread_metadata_omits_empty_fields():
    assert ProfileThreadMetadata().to_dict() == {}
    assert ProfileThreadMetadata(name="Goroutine 1").to_dict() == {"name": "Goroutine 1"}


def test_frame_omits_empty_strings():
    frame = Frame(function="run", lineno=12)
    out = frame.to_dict()
    assert out["function"] == "run"
    assert out["lineno"] == 12
    assert "module" not in out
    assert "abs_path" not in out


def test_trace_serialises_thread_ids_as_strings():
    out = _trace().to_dict()
    assert list(out["thread_metadata"]) == ["7"]
    assert out["stacks"] == [[0]]
    assert len(out["samples"]) == 2
    assert out["frames"][0]["function"] == "main"


def test_transaction_omits_zero_duration():
    tx = ProfileTransaction(active_thread_id=1, id="abc", name="tx", trace_id="t")
    assert "duration_ns" not in tx.to_dict()
    tx.duration_ns = 42
    assert tx.to_dict()["duration_ns"] == 42


def test_info_round_trips_through_json():
    info = ProfileInfo(
        device=ProfileDevice(architecture="amd64"),
        event_id="e1",
        os=ProfileOS(name="linux"),
        platform="go",
        runtime=ProfileRuntime(name="go", version="1"),
        timestamp=datetime(2020, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        trace=_trace(),
        transaction=ProfileTransaction(id="t1", name="tx"),
        version="1",
    )
    decoded = json.loads(json.dumps(info.to_dict()))
    assert decoded == info.to_dict()
    assert decoded["device"]["architecture"] == "amd64"
    assert decoded["os"]["name"] == "linux"
    assert decoded["profile"]["thread_metadata"]["7"]["name"] == "Goroutine 7"
    assert decoded["timestamp"].endswith("Z")
    assert "debug_meta" not in decoded
    assert "environment" not in decoded


def test_info_includes_optional_fields_when_set():
    info = ProfileInfo(environment="production", debug_meta={"images": []})
    out = info.to_dict()
    assert out["environment"] == "production"
    assert out["debug_meta"] == {"images": []}
    assert out["profile"] is None