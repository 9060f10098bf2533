"""
Unit tests for the wire codec.
"""

import struct

import pytest

from filestats.analysis.analyzer import AnalysisResult
from filestats.errors import ProtocolError, ValidationError
from filestats.protocol.codec import (
    ERROR_MARKER,
    MAX_FILE_NAME_LENGTH,
    MAX_FILE_SIZE,
    encode_request_header,
    encode_response,
    format_error,
    format_success,
    is_error,
    parse_success,
    read_request_header,
    read_response,
    strip_error_marker,
)


class StreamReader:
    """read_exact over an in-memory buffer, recording every request."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0
        self.requests = []

    def __call__(self, size: int) -> bytes:
        self.requests.append(size)
        if self.offset + size > len(self.data):
            raise ProtocolError("stream ended")
        chunk = self.data[self.offset:self.offset + size]
        self.offset += size
        return chunk


def header(name: bytes, size: int, name_length=None) -> bytes:
    if name_length is None:
        name_length = len(name)
    return struct.pack("<i", name_length) + name + struct.pack("<q", size)


class TestRequestHeader:
    """Tests for encoding and decoding the request header."""

    def test_layout_is_little_endian(self):
        """Test the exact bytes of an encoded header."""
        raw = encode_request_header("ab.txt", 258)

        assert raw == b"\x06\x00\x00\x00" + b"ab.txt" + b"\x02\x01\x00\x00\x00\x00\x00\x00"

    def test_decode_reads_exactly_the_header(self):
        """Test that decoding stops before the payload."""
        reader = StreamReader(encode_request_header("notes.txt", 5) + b"PAYLOAD")

        result = read_request_header(reader)

        assert result.file_name == "notes.txt"
        assert result.file_size == 5
        assert reader.offset == 4 + 9 + 8

    def test_utf8_name(self):
        """Test that the name length is the utf-8 byte length."""
        name = "отчёт.txt"
        raw = encode_request_header(name, 1)

        assert struct.unpack("<i", raw[:4])[0] == len(name.encode("utf-8"))
        assert read_request_header(StreamReader(raw)).file_name == name

    def test_name_length_260_accepted(self):
        """Test the upper name length boundary."""
        name = "a" * MAX_FILE_NAME_LENGTH
        result = read_request_header(StreamReader(header(name.encode(), 1)))

        assert result.file_name == name

    def test_name_length_261_rejected_before_reading_name(self):
        """Test that an oversized name length fails without reading the name."""
        reader = StreamReader(header(b"a" * 261, 1))

        with pytest.raises(ValidationError):
            read_request_header(reader)

        assert reader.requests == [4]

    @pytest.mark.parametrize("length", [0, -1])
    def test_non_positive_name_length_rejected(self, length: int):
        """Test that zero and negative name lengths are rejected."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(b"", 1, name_length=length)))

    @pytest.mark.parametrize("name", [b"..", b"../etc/passwd", b"a..b", b"dir/../x"])
    def test_parent_directory_segment_rejected(self, name: bytes):
        """Test that names containing '..' are rejected."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(name, 1)))

    def test_whitespace_name_rejected(self):
        """Test that a blank name is rejected."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(b"   ", 1)))

    @pytest.mark.parametrize("name", [
        b"a\nLines: 9.txt",
        b"a.txt\r",
        b"nul\x00.txt",
        b"tab\there.txt",
        b"del\x7f.txt",
    ])
    def test_control_characters_rejected(self, name: bytes):
        """Test that names with control characters are rejected."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(name, 1)))

    def test_control_characters_rejected_on_encode(self):
        """Test that the client refuses a name with a newline."""
        with pytest.raises(ValidationError):
            encode_request_header("a\nb.txt", 1)

    def test_invalid_utf8_name_is_protocol_error(self):
        """Test that an undecodable name is a protocol error."""
        with pytest.raises(ProtocolError):
            read_request_header(StreamReader(header(b"\xff\xfe", 1)))

    def test_file_size_100_mib_accepted(self):
        """Test the upper file size boundary."""
        result = read_request_header(StreamReader(header(b"big.bin", MAX_FILE_SIZE)))

        assert result.file_size == 100 * 1024 * 1024

    def test_file_size_100_mib_plus_one_rejected(self):
        """Test one byte over the file size limit."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(b"big.bin", MAX_FILE_SIZE + 1)))

    @pytest.mark.parametrize("size", [0, -5])
    def test_non_positive_file_size_rejected(self, size: int):
        """Test that empty and negative sizes are rejected."""
        with pytest.raises(ValidationError):
            read_request_header(StreamReader(header(b"a.txt", size)))

    def test_truncated_header_is_protocol_error(self):
        """Test that a stream ending mid-header fails."""
        raw = encode_request_header("a.txt", 10)[:-3]

        with pytest.raises(ProtocolError):
            read_request_header(StreamReader(raw))

    def test_encode_applies_same_limits(self):
        """Test that the client side fails fast on bad headers."""
        with pytest.raises(ValidationError):
            encode_request_header("a" * 261, 1)
        with pytest.raises(ValidationError):
            encode_request_header("../x", 1)
        with pytest.raises(ValidationError):
            encode_request_header("a.txt", 0)
        with pytest.raises(ValidationError):
            encode_request_header("a.txt", MAX_FILE_SIZE + 1)


class TestResponse:
    """Tests for reply frames."""

    def test_response_frame_layout(self):
        """Test the int32 length prefix."""
        assert encode_response("hi") == b"\x02\x00\x00\x00hi"

    def test_read_response(self):
        """Test decoding a reply frame."""
        assert read_response(StreamReader(encode_response("Привет"))) == "Привет"

    def test_negative_length_rejected(self):
        """Test that a negative reply length is a protocol error."""
        with pytest.raises(ProtocolError):
            read_response(StreamReader(struct.pack("<i", -1)))

    def test_truncated_body_rejected(self):
        """Test that a short reply body is a protocol error."""
        with pytest.raises(ProtocolError):
            read_response(StreamReader(struct.pack("<i", 10) + b"abc"))

    def test_success_message_round_trip(self):
        """Test that the client parses what the server formats."""
        result = AnalysisResult("notes.txt", 2, 3, 15)
        message = format_success(result)

        assert message == "File name: notes.txt\nLines: 2, Words: 3, Characters: 15"
        assert not is_error(message)
        assert parse_success(message) == result

    def test_error_message_marker(self):
        """Test the error marker convention."""
        message = format_error("Invalid file size: 0 bytes")

        assert message.startswith(ERROR_MARKER)
        assert is_error(message)
        assert strip_error_marker(message) == "Invalid file size: 0 bytes"

    def test_unrecognized_success_message(self):
        """Test that garbage is not mistaken for statistics."""
        with pytest.raises(ProtocolError):
            parse_success("something else")
