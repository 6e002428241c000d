"""
HTTP/1.1 wire format: request-line and header-line parsing, status line
reason phrases and response serialization.
"""

from dataclasses import dataclass
from typing import BinaryIO, Dict, Optional, Tuple

HTTP_VERSION = "HTTP/1.1"
HEADER_SEPARATOR = ": "

# Closed set of status codes the server can emit
STATUS_REASONS: Dict[int, str] = {
    200: "OK",
    201: "Created",
    202: "Accepted",
    204: "No Content",
    301: "Moved Permanently",
    302: "Found",
    304: "Not Modified",
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    500: "Internal Server Error",
    501: "Not Implemented",
    502: "Bad Gateway",
    503: "Service Unavailable",
    504: "Gateway Timeout",
}


@dataclass
class RequestLine:
    """Holds the three tokens of a request line"""
    method: str
    path: str
    version: str


def parse_request_line(line: str) -> Optional[RequestLine]:
    """
    Split a trimmed request line into method, raw path and version.

    Args:
        line: Request line with the line terminator already stripped

    Returns:
        RequestLine, or None unless there are exactly three tokens
    """
    parts = line.split(' ')
    if len(parts) != 3:
        return None
    method, path, version = parts
    return RequestLine(method=method, path=path, version=version)


def parse_header_line(line: str) -> Optional[Tuple[str, str]]:
    """Split a 'Name: Value' line; None unless it has exactly one separator."""
    parts = line.split(HEADER_SEPARATOR)
    if len(parts) != 2:
        return None
    return parts[0].strip(), parts[1].strip()


def reason_phrase(status_code: int) -> str:
    try:
        return STATUS_REASONS[status_code]
    except KeyError:
        raise AssertionError(f"No reason phrase for status code {status_code}") from None


def build_head(status_code: int, content_length: int) -> bytes:
    """Status line plus Content-Length, terminated by the blank line."""
    head = (
        f"{HTTP_VERSION} {status_code} {reason_phrase(status_code)}\r\n"
        f"Content-Length: {content_length}\r\n"
        "\r\n"
    )
    return head.encode("ascii")


def write_response(stream: BinaryIO, status_code: int, body: bytes) -> None:
    """
    Send one complete response on the stream.

    The head is built before anything is written, so an unknown status code
    never leaves a partial response on the wire.

    Args:
        stream: Writable binary stream connected to the client
        status_code: HTTP status code, must be in STATUS_REASONS
        body: Raw response body
    """
    head = build_head(status_code, len(body))
    stream.write(head)
    stream.write(body)
    stream.flush()
