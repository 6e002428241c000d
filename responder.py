"""
Filesystem responder: maps a decoded request path onto file contents or an
HTML directory listing.

The decoded path is used as-is. There is no normalisation of '..' segments
and no confinement to the server root.
"""

import logging
import os
import stat
from typing import Tuple

from urlcodec import encode_url

logger = logging.getLogger("HTTPServer.responder")

NOT_FOUND_BODY = b"<html>404</html>"
SERVER_ERROR_BODY = b"<html>500</html>"


def render_listing(path: str) -> bytes:
    """
    Build the HTML index of a directory.

    Entries keep the order the filesystem returns them in. Each link is the
    request path with a trailing slash followed by the percent-encoded entry
    name; the link text is the entry name as-is.

    Args:
        path: Decoded request path naming a directory

    Returns:
        UTF-8 encoded HTML page
    """
    base = path if path.endswith('/') else path + '/'
    parts = ['<html><meta charset="utf-8" /><body><ul>']
    with os.scandir(path) as entries:
        for entry in entries:
            name = entry.name
            label = name.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
            parts.append(f'<li><a href="{base}{encode_url(name)}">{label}</a></li>')
    parts.append('</ul></body></html>')
    return ''.join(parts).encode("utf-8")


def render_path(path: str) -> bytes:
    """
    Produce the response body for a decoded path.

    Raises:
        FileNotFoundError: the path does not exist
        OSError: any other filesystem failure
        ValueError: the path contains a NUL character
    """
    if stat.S_ISDIR(os.stat(path).st_mode):
        return render_listing(path)
    with open(path, 'rb') as f:
        return f.read()


def resolve(path: str) -> Tuple[int, bytes]:
    """Map a decoded path onto (status_code, body)."""
    try:
        body = render_path(path)
    except FileNotFoundError:
        logger.info(f"Not found: {path}")
        return 404, NOT_FOUND_BODY
    except (OSError, ValueError) as e:
        logger.warning(f"Error reading {path}: {e}")
        return 500, SERVER_ERROR_BODY

    logger.info(f"Serving {path} ({len(body)} bytes)")
    return 200, body
