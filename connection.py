"""
Per-connection request loop.

handle_connection() serves one client until it hangs up or breaks the
protocol. It only needs a binary duplex stream with readline(), write() and
flush(), such as socket.makefile("rwb"), and does not care which thread or
worker runs it.
"""

import logging
from typing import BinaryIO, Callable, Dict, Optional

from protocol import parse_header_line, parse_request_line, write_response
from responder import resolve
from urlcodec import decode_url

logger = logging.getLogger("HTTPServer.connection")

BAD_REQUEST_BODY = b"<html>bad requests</html>"


class ConnectionClosed(Exception):
    """The peer closed the stream before the request was complete."""


class MalformedHeader(Exception):
    """A header line did not have the 'Name: Value' shape."""


def _read_line(stream: BinaryIO) -> str:
    """
    Read one line and strip surrounding whitespace, including CR/LF.

    Raises:
        ConnectionClosed: on end of stream
        UnicodeDecodeError: if the line is not valid UTF-8
    """
    data = stream.readline()
    if not data:
        raise ConnectionClosed()
    return data.decode("utf-8").strip()


def read_headers(stream: BinaryIO) -> Dict[str, str]:
    """
    Read header lines up to the blank line that ends the block.

    Names keep their case; a repeated name keeps the last value.

    Raises:
        ConnectionClosed: the stream ended inside the header block
        MalformedHeader: a line could not be split into name and value
    """
    headers = {}
    while True:
        line = _read_line(stream)
        if not line:
            return headers
        field = parse_header_line(line)
        if field is None:
            raise MalformedHeader(line)
        name, value = field
        headers[name] = value


def _serve_request(stream: BinaryIO, conn_id: str, on_response: Optional[Callable[[int], None]]) -> bool:
    """
    Read, dispatch and answer one request.

    Returns:
        True if the connection can carry another request
    """
    try:
        line = _read_line(stream)
    except ConnectionClosed:
        logger.info(f"[{conn_id}] Connection closed by client")
        return False

    request = parse_request_line(line)
    if request is None:
        logger.warning(f"[{conn_id}] Invalid request line: {line!r}")
        return False

    path = decode_url(request.path)
    if path is None:
        logger.warning(f"[{conn_id}] Undecodable path: {request.path!r}")
        return False

    logger.info(f"[{conn_id}] {request.method} {path}")

    try:
        headers = read_headers(stream)
    except ConnectionClosed:
        logger.info(f"[{conn_id}] Connection closed inside header block")
        return False
    except MalformedHeader as e:
        logger.warning(f"[{conn_id}] Malformed header line: {e}")
        write_response(stream, 500, BAD_REQUEST_BODY)
        if on_response is not None:
            on_response(500)
        return False

    logger.debug(f"[{conn_id}] Headers: {headers}")

    status_code, body = resolve(path)
    write_response(stream, status_code, body)
    logger.info(f"[{conn_id}] {status_code} {len(body)} bytes")
    if on_response is not None:
        on_response(status_code)
    return True


def handle_connection(stream: BinaryIO, peer: Optional[str] = None,
                      on_response: Optional[Callable[[int], None]] = None) -> None:
    """
    Serve requests on the stream until the client closes it or a request
    cannot be processed.

    Transport failures (OSError, including socket timeouts) and lines that
    are not valid UTF-8 abandon the connection without a reply. Closing the
    stream is left to the caller.

    Args:
        stream: Binary duplex stream connected to the client
        peer: Label for log messages, usually "host:port"
        on_response: Called with the status code after each reply is sent
    """
    conn_id = peer or "-"
    request_count = 0

    try:
        while _serve_request(stream, conn_id, on_response):
            request_count += 1
    except (OSError, UnicodeDecodeError) as e:
        logger.warning(f"[{conn_id}] Connection abandoned: {e}")

    logger.info(f"[{conn_id}] Connection completed, requests processed: {request_count}")
