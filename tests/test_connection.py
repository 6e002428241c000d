import io

import pytest

from connection import BAD_REQUEST_BODY, MalformedHeader, ConnectionClosed, handle_connection, read_headers
from urlcodec import encode_url


class DuplexStream:
    """In-memory stand-in for socket.makefile("rwb")."""

    def __init__(self, incoming: bytes):
        self.reader = io.BytesIO(incoming)
        self.writer = io.BytesIO()

    def readline(self, size=-1):
        return self.reader.readline(size)

    def write(self, data):
        return self.writer.write(data)

    def flush(self):
        pass

    @property
    def output(self) -> bytes:
        return self.writer.getvalue()


class BrokenWriteStream(DuplexStream):
    def write(self, data):
        raise BrokenPipeError("peer went away")


class BrokenReadStream(DuplexStream):
    def readline(self, size=-1):
        raise ConnectionResetError("reset by peer")


def response(status_line: str, body: bytes) -> bytes:
    return f"HTTP/1.1 {status_line}\r\nContent-Length: {len(body)}\r\n\r\n".encode() + body


def serve(raw: bytes) -> bytes:
    stream = DuplexStream(raw)
    handle_connection(stream, "test")
    return stream.output


@pytest.fixture
def site(tmp_path):
    (tmp_path / "a.txt").write_bytes(b"first file")
    (tmp_path / "b.txt").write_bytes(b"second")
    (tmp_path / "中.txt").write_bytes("unicode".encode())
    return tmp_path


def test_read_headers():
    stream = DuplexStream(b"Host: example.com\r\n\r\n")
    assert read_headers(stream) == {"Host": "example.com"}


def test_read_headers_keeps_case_and_last_value():
    stream = DuplexStream(b"Accept: a\r\naccept: b\r\nAccept: c\n\n")
    assert read_headers(stream) == {"Accept": "c", "accept": "b"}


def test_read_headers_malformed():
    with pytest.raises(MalformedHeader):
        read_headers(DuplexStream(b"Malformed\r\n\r\n"))


def test_read_headers_eof():
    with pytest.raises(ConnectionClosed):
        read_headers(DuplexStream(b"Host: example.com\r\n"))


def test_clean_eof_writes_nothing():
    assert serve(b"") == b""


def test_serves_file(site):
    raw = f"GET {site}/a.txt HTTP/1.1\r\nHost: localhost\r\n\r\n".encode()
    assert serve(raw) == response("200 OK", b"first file")


def test_serves_percent_encoded_path(site):
    raw = f"GET {site}/{encode_url('中.txt')} HTTP/1.1\r\n\r\n".encode()
    assert serve(raw) == response("200 OK", b"unicode")


def test_missing_file(site):
    raw = f"GET {site}/missing HTTP/1.1\r\n\r\n".encode()
    assert serve(raw) == response("404 Not Found", b"<html>404</html>")


def test_directory_listing(site):
    raw = f"GET {site} HTTP/1.1\r\n\r\n".encode()
    out = serve(raw)
    head, body = out.split(b"\r\n\r\n", 1)
    assert head == f"HTTP/1.1 200 OK\r\nContent-Length: {len(body)}".encode()
    assert body.count(b"<li>") == 3
    assert f'<a href="{site}/%E4%B8%AD.txt">中.txt</a>'.encode() in body


def test_persistent_connection(site):
    raw = (
        f"GET {site}/a.txt HTTP/1.1\r\nHost: localhost\r\n\r\n"
        f"GET {site}/b.txt HTTP/1.1\r\nHost: localhost\r\n\r\n"
    ).encode()
    assert serve(raw) == response("200 OK", b"first file") + response("200 OK", b"second")


def test_error_reply_keeps_connection_open(site):
    raw = (
        f"GET {site}/missing HTTP/1.1\r\n\r\n"
        f"GET {site}/b.txt HTTP/1.1\r\n\r\n"
    ).encode()
    assert serve(raw) == response("404 Not Found", b"<html>404</html>") + response("200 OK", b"second")


def test_bare_lf_line_endings(site):
    raw = f"GET {site}/b.txt HTTP/1.1\nHost: localhost\n\n".encode()
    assert serve(raw) == response("200 OK", b"second")


@pytest.mark.parametrize("request_line", [
    "GET /a/b",
    "GET /a/b HTTP/1.1 extra",
    "",
])
def test_bad_request_line_closes_silently(site, request_line):
    raw = f"{request_line}\r\n\r\nGET {site}/a.txt HTTP/1.1\r\n\r\n".encode()
    assert serve(raw) == b""


def test_undecodable_path_closes_silently(site):
    raw = f"GET {site}/%G1 HTTP/1.1\r\n\r\nGET {site}/a.txt HTTP/1.1\r\n\r\n".encode()
    assert serve(raw) == b""


def test_malformed_header_gets_500_and_closes(site):
    raw = (
        f"GET {site}/a.txt HTTP/1.1\r\nMalformed\r\n\r\n"
        f"GET {site}/b.txt HTTP/1.1\r\n\r\n"
    ).encode()
    assert serve(raw) == response("500 Internal Server Error", BAD_REQUEST_BODY)


def test_eof_inside_headers_closes_silently(site):
    raw = f"GET {site}/a.txt HTTP/1.1\r\nHost: localhost\r\n".encode()
    assert serve(raw) == b""


def test_eof_after_request_line_closes_silently(site):
    assert serve(f"GET {site}/a.txt HTTP/1.1\r\n".encode()) == b""


def test_invalid_utf8_line_abandons_connection():
    assert serve(b"GET /\xff HTTP/1.1\r\n\r\n") == b""


def test_write_failure_is_contained(site):
    stream = BrokenWriteStream(f"GET {site}/a.txt HTTP/1.1\r\n\r\n".encode())
    assert handle_connection(stream, "test") is None


def test_read_failure_is_contained():
    stream = BrokenReadStream(b"")
    assert handle_connection(stream) is None
    assert stream.output == b""


@pytest.mark.parametrize("dots", ["..", "%2E%2E", "%2e."])
def test_dot_segments_used_verbatim(site, dots):
    (site / "sub").mkdir()
    raw = f"GET {site}/sub/{dots}/a.txt HTTP/1.1\r\n\r\n".encode()
    assert serve(raw) == response("200 OK", b"first file")


def test_on_response_reports_each_reply(site):
    statuses = []
    raw = (
        f"GET {site}/a.txt HTTP/1.1\r\n\r\n"
        f"GET {site}/missing HTTP/1.1\r\n\r\n"
        f"GET {site}/b.txt HTTP/1.1\r\nMalformed\r\n\r\n"
    ).encode()
    handle_connection(DuplexStream(raw), "test", statuses.append)
    assert statuses == [200, 404, 500]
