"""Unit tests for Range header resolution and media response building."""
import pytest

from app.errors import InvalidRangeError
from app.media.delivery import build_media_response
from app.media.ranges import ByteRange, resolve_range
from app.media.schemas import FieldType, MediaRecord

PAYLOAD = bytes(range(256)) * 2  # 512 bytes


def make_record(data: bytes = PAYLOAD, mimetype: str = "video/mp4") -> MediaRecord:
    return MediaRecord(
        filename="alice_welcome.mp4",
        mimetype=mimetype,
        size=len(data),
        owner_id="alice",
        field_type=FieldType.WELCOME,
        data=data,
    )


class TestResolveRange:
    def test_absent_header_means_full_payload(self):
        assert resolve_range(None, 500) is None
        assert resolve_range("", 500) is None

    def test_closed_range(self):
        assert resolve_range("bytes=0-99", 500) == ByteRange(start=0, end=99, size=500)

    def test_open_ended_range(self):
        byte_range = resolve_range("bytes=100-", 500)
        assert (byte_range.start, byte_range.end) == (100, 499)
        assert byte_range.length == 400

    def test_missing_start_reads_from_zero(self):
        byte_range = resolve_range("bytes=-99", 500)
        assert (byte_range.start, byte_range.end) == (0, 99)

    def test_end_clamped_to_last_byte(self):
        byte_range = resolve_range("bytes=400-10000", 500)
        assert byte_range.end == 499
        assert byte_range.content_range == "bytes 400-499/500"

    def test_last_byte(self):
        assert resolve_range("bytes=499-499", 500).length == 1

    @pytest.mark.parametrize("header", ["bytes=600-", "bytes=500-600", "bytes=10-5"])
    def test_unsatisfiable(self, header):
        with pytest.raises(InvalidRangeError) as exc_info:
            resolve_range(header, 500)
        assert exc_info.value.status_code == 416
        assert exc_info.value.size == 500

    def test_any_range_on_empty_payload_is_unsatisfiable(self):
        with pytest.raises(InvalidRangeError):
            resolve_range("bytes=0-", 0)

    @pytest.mark.parametrize("header", ["items=0-10", "bytes=0-1,5-6", "bytes=a-b", "0-99"])
    def test_unrecognized_forms_are_ignored(self, header):
        assert resolve_range(header, 500) is None


class TestBuildMediaResponse:
    def test_full_response(self):
        response = build_media_response(make_record())

        assert response.status_code == 200
        assert response.body == PAYLOAD
        assert response.headers["accept-ranges"] == "bytes"
        assert response.headers["cache-control"] == "public, max-age=31536000"
        assert response.headers["content-type"] == "video/mp4"
        assert response.headers["content-length"] == str(len(PAYLOAD))

    def test_partial_response(self):
        response = build_media_response(make_record(), "bytes=10-19")

        assert response.status_code == 206
        assert response.body == PAYLOAD[10:20]
        assert response.headers["content-range"] == f"bytes 10-19/{len(PAYLOAD)}"
        assert response.headers["content-length"] == "10"
        assert response.headers["accept-ranges"] == "bytes"

    def test_unsatisfiable_response(self):
        response = build_media_response(make_record(), "bytes=9999-")

        assert response.status_code == 416
        assert response.body == b""
        assert response.headers["content-range"] == f"bytes */{len(PAYLOAD)}"
        assert response.headers["accept-ranges"] == "bytes"

    def test_custom_cache_control(self):
        response = build_media_response(make_record(), cache_control="no-store")
        assert response.headers["cache-control"] == "no-store"
