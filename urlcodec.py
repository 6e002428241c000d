"""
Percent-encoding for URL paths.

decode_url() turns a raw request path into the text used to address the
filesystem; encode_url() builds the link targets in directory listings.
"""

import codecs
import string
from urllib.parse import quote
from typing import Optional

HEX_DIGITS = frozenset(string.hexdigits)


def _read_byte(raw: str, pos: int) -> Optional[int]:
    """Parse the two hex digits at raw[pos:pos + 2] into a byte value."""
    pair = raw[pos:pos + 2]
    if len(pair) != 2 or not all(ch in HEX_DIGITS for ch in pair):
        return None
    return int(pair, 16)


def decode_url(raw: str) -> Optional[str]:
    """
    Fully percent-decode a URL path.

    A %XX triplet below 127 stands for that ASCII character. Anything higher
    opens a UTF-8 sequence and the following triplets are consumed until they
    complete one character.

    Args:
        raw: Path exactly as it appeared in the request line

    Returns:
        The decoded text, or None if the escapes are malformed
    """
    out = []
    pos = 0
    length = len(raw)

    while pos < length:
        ch = raw[pos]
        pos += 1
        if ch != '%':
            out.append(ch)
            continue

        byte = _read_byte(raw, pos)
        if byte is None:
            return None
        pos += 2

        if byte < 127:
            out.append(chr(byte))
            continue

        decoder = codecs.getincrementaldecoder("utf-8")()
        try:
            text = decoder.decode(bytes([byte]))
            while not text:
                # Continuation bytes must arrive as further %XX triplets
                if pos >= length or raw[pos] != '%':
                    return None
                byte = _read_byte(raw, pos + 1)
                if byte is None:
                    return None
                pos += 3
                text = decoder.decode(bytes([byte]))
        except UnicodeDecodeError:
            return None
        out.append(text)

    return ''.join(out)


def encode_url(raw: str) -> str:
    """
    Percent-encode one path segment, one %XX triplet per UTF-8 byte.

    Only letters, digits and '-_.~' are left as they are. Lone surrogates
    come from undecodable file names and are encoded as their raw bytes.
    """
    return quote(raw, safe="", errors="surrogateescape")
