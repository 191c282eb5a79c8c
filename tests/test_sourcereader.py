import pytest

from errscope.sourcereader import SourceReader, calculate_context_lines

INPUT = [b"line 1", b"line 2", b"line 3", b"line 4", b"line 5"]


@pytest.mark.parametrize(
    "line, context, want_lines, want_index",
    [
        (2, 0, [b"line 2"], 0),
        (-2, 0, [], 0),
        (2, -2, [b"line 2"], 0),
        (10, 0, [], 0),
        (3, 2, INPUT, 2),
        (2, 3, INPUT, 1),
        (5, 3, [b"line 2", b"line 3", b"line 4", b"line 5"], 3),
        (2, 10, INPUT, 1),
    ],
)
def test_calculate_context_lines(line, context, want_lines, want_index):
    assert calculate_context_lines(INPUT, line, context) == (want_lines, want_index)


def test_calculate_context_lines_without_lines():
    assert calculate_context_lines(None, 1, 1) == ([], 0)


def test_read_context_lines_non_existing_input():
    reader = SourceReader()
    assert reader.read_context_lines("non_existing.go", 2, 10) == ([], 0)
    assert "non_existing.go" in reader.cache
    assert reader.cache["non_existing.go"] is None


def test_read_context_lines_reads_and_caches(tmp_path):
    path = tmp_path / "source.txt"
    path.write_bytes(b"\n".join(INPUT))
    reader = SourceReader()

    assert reader.read_context_lines(str(path), 3, 1) == (
        [b"line 2", b"line 3", b"line 4"],
        1,
    )
    assert reader.cache[str(path)] == INPUT

    path.unlink()
    assert reader.read_context_lines(str(path), 1, 0) == ([b"line 1"], 0)