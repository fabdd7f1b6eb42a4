"""
Tests for range parsing, recording naming and chunked file reads
"""
import pytest

from app.errors import RangeNotSatisfiable, ValidationError
from app.media import (
    captured_at_of,
    iter_file_range,
    media_type_for,
    parse_range,
    recording_name,
    select_latest,
    session_id_of,
)


class TestParseRange:
    def test_no_header_means_full_content(self):
        assert parse_range(None, 1000) is None
        assert parse_range("", 1000) is None

    def test_whole_file_as_range(self):
        byte_range = parse_range("bytes=0-999", 1000)
        assert byte_range.length == 1000
        assert byte_range.content_range == "bytes 0-999/1000"

    def test_open_ended_range_defaults_to_last_byte(self):
        byte_range = parse_range("bytes=500-", 1000)
        assert (byte_range.start, byte_range.end) == (500, 999)
        assert byte_range.length == 500

    def test_single_byte(self):
        byte_range = parse_range("bytes=999-999", 1000)
        assert byte_range.length == 1

    @pytest.mark.parametrize("header", ["bytes=1000-1000", "bytes=0-1000", "bytes=1200-", "bytes=10-5"])
    def test_unsatisfiable(self, header):
        with pytest.raises(RangeNotSatisfiable) as exc_info:
            parse_range(header, 1000)
        assert exc_info.value.headers["Content-Range"] == "bytes */1000"

    def test_any_range_on_empty_file_is_unsatisfiable(self):
        with pytest.raises(RangeNotSatisfiable):
            parse_range("bytes=0-", 0)

    @pytest.mark.parametrize("header", ["bytes=abc-10", "items=0-10", "bytes=-500", "bytes=0-10,20-30"])
    def test_malformed(self, header):
        with pytest.raises(ValidationError):
            parse_range(header, 1000)


class TestRecordingNames:
    def test_round_trip_parts(self):
        name = recording_name("alice", 1700000000000, ".webm")
        assert name == "alice_interview_1700000000000.webm"
        assert session_id_of(name) == "alice"
        assert captured_at_of(name) == 1700000000000

    def test_unparsable_timestamp_is_zero(self):
        assert captured_at_of("alice_interview_latest.webm") == 0
        assert captured_at_of("alice.webm") == 0
        assert session_id_of("alice.webm") is None

    def test_session_ids_with_underscores(self):
        assert session_id_of("jane_doe_interview_5.mp4") == "jane_doe"

    def test_select_latest_by_embedded_timestamp(self):
        names = ["alice_interview_100.webm", "alice_interview_200.webm", "bob_interview_900.webm"]
        assert select_latest(names, "alice") == "alice_interview_200.webm"

    def test_select_latest_compares_numerically(self):
        names = ["alice_interview_99.webm", "alice_interview_100.webm"]
        assert select_latest(names, "alice") == "alice_interview_100.webm"

    def test_unparsable_sorts_last(self):
        names = ["alice_interview_final.webm", "alice_interview_5.webm"]
        assert select_latest(names, "alice") == "alice_interview_5.webm"

    def test_select_latest_owner_is_case_sensitive(self):
        assert select_latest(["Alice_interview_1.webm"], "alice") is None
        assert select_latest(["Alice_interview_1.webm"], "Alice") == "Alice_interview_1.webm"

    def test_select_latest_none(self):
        assert select_latest(["bob_interview_1.webm"], "alice") is None

    def test_media_types(self):
        assert media_type_for("a_interview_1.webm") == "video/webm"
        assert media_type_for("a_interview_1.MP4") == "video/mp4"


class TestIterFileRange:
    @pytest.mark.asyncio
    async def test_reads_exact_window_in_chunks(self, tmp_path):
        path = tmp_path / "clip.webm"
        data = bytes(range(256)) * 4
        path.write_bytes(data)

        chunks = [c async for c in iter_file_range(path, 10, 100, chunk_size=32)]
        assert b"".join(chunks) == data[10:110]
        assert [len(c) for c in chunks] == [32, 32, 32, 4]

    @pytest.mark.asyncio
    async def test_early_close_releases_handle(self, tmp_path, monkeypatch):
        path = tmp_path / "clip.webm"
        path.write_bytes(b"x" * 1000)
        opened = []

        real_open = open

        def tracking_open(*args, **kwargs):
            fh = real_open(*args, **kwargs)
            opened.append(fh)
            return fh

        monkeypatch.setattr("builtins.open", tracking_open)
        stream = iter_file_range(path, 0, 1000, chunk_size=10)
        assert await stream.__anext__() == b"x" * 10
        await stream.aclose()
        assert opened and opened[0].closed
