#!/usr/bin/env python3
"""
Multi-threaded HTTP File Server Using Socket Programming

Serves files and directory listings straight from the local filesystem:
- One thread per connection, no connection cap
- HTTP/1.1 persistent connections (several requests per connection)
- Directory listings with percent-encoded links
- Optional idle timeout per connection
- Logging to console and logs/server.log

Python Version: 3.8+
"""

import socket
import threading
import os
import sys
import logging
import signal
from typing import Optional, Tuple

from connection import handle_connection

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 25565
LISTEN_BACKLOG = 50


def setup_logging(log_dir: Optional[str] = "logs", level: int = logging.INFO) -> logging.Logger:
    """
    Configure the "HTTPServer" logger used by every module of the server.

    Args:
        log_dir: Directory for server.log, or None to log to the console only
        level: Logging level for all handlers

    Returns:
        The configured logger
    """
    log_format = "%(asctime)s [%(levelname)s] [%(threadName)s] %(name)s: %(message)s"
    date_format = "%Y-%m-%d %H:%M:%S"
    formatter = logging.Formatter(log_format, date_format)

    logger = logging.getLogger("HTTPServer")
    logger.setLevel(level)

    # Replace handlers from an earlier setup
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if log_dir is not None:
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, "server.log"), mode='a')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    # Prevent duplicate logs
    logger.propagate = False
    return logger


class FileServer:
    """
    Accepts TCP connections and runs handle_connection for each of them on
    its own thread.
    """

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, root: Optional[str] = None,
                 idle_timeout: Optional[float] = None, log_dir: Optional[str] = "logs",
                 log_level: int = logging.INFO):
        """
        Initialize the file server with configuration parameters.

        Args:
            host: Server host address (default: 127.0.0.1)
            port: Server port number, 0 picks a free port (default: 25565)
            root: Directory to serve relative paths from, None keeps the cwd
            idle_timeout: Seconds a connection may block on I/O, None waits forever
            log_dir: Directory for server.log, None disables the log file
            log_level: Logging level
        """
        self.host = host
        self.port = port
        self.root = root
        self.idle_timeout = idle_timeout
        self.server_socket = None
        self.running = False
        self.stats_lock = threading.Lock()

        # Statistics tracking
        self.total_requests = 0
        self.total_connections = 0
        self.active_connections = 0

        self.logger = setup_logging(log_dir, log_level)
        self.logger.info(f"File server initialized: {host}:{port}, root={root or os.getcwd()}, "
                         f"idle_timeout={idle_timeout}")

    def install_signal_handlers(self):
        """Stop the server on SIGINT and SIGTERM. Must run on the main thread."""
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals gracefully."""
        self.logger.info(f"Received signal {signum}, initiating graceful shutdown...")
        self.stop()

    def bind(self) -> Tuple[str, int]:
        """
        Create, bind and listen on the server socket.

        Returns:
            The bound (host, port), useful when port 0 was requested
        """
        if self.root is not None:
            os.chdir(self.root)
            self.logger.info(f"Serving from {os.getcwd()}")

        self.server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self.server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self.server_socket.bind((self.host, self.port))
        self.server_socket.listen(LISTEN_BACKLOG)
        # Wake up periodically so stop() is noticed
        self.server_socket.settimeout(1.0)

        self.running = True
        address = self.server_socket.getsockname()[:2]
        self.logger.info(f"Listen on {address[0]}:{address[1]}")
        return address

    def serve_forever(self):
        """Accept connections until stop() is called."""
        server_socket = self.server_socket
        while self.running:
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self.running:
                    self.logger.error(f"Error accepting connection: {e}")
                break

            self.logger.info(f"Incoming client from {client_address[0]}:{client_address[1]}")
            with self.stats_lock:
                self.total_connections += 1
                self.active_connections += 1

            thread = threading.Thread(target=self._handle_connection, args=(client_socket, client_address),
                                      name=f"Conn-{client_address[0]}:{client_address[1]}")
            thread.daemon = True
            thread.start()

    def start(self):
        """Bind and run the accept loop until stopped."""
        try:
            self.bind()
            self.serve_forever()
        except Exception as e:
            self.logger.error(f"Failed to start server: {e}")
            raise
        finally:
            self.stop()

    def _handle_connection(self, client_socket: socket.socket, client_address: Tuple[str, int]):
        """
        Run the request loop for one accepted socket and clean up afterwards.

        Args:
            client_socket: Client socket connection
            client_address: Client address tuple (host, port)
        """
        connection_id = f"{client_address[0]}:{client_address[1]}"

        try:
            client_socket.settimeout(self.idle_timeout)
            stream = client_socket.makefile("rwb")
            try:
                handle_connection(stream, connection_id, self._count_request)
            finally:
                # Closing flushes whatever reply is still buffered
                try:
                    stream.close()
                except OSError as e:
                    self.logger.warning(f"Dropped unsent reply to {connection_id}: {e}")
        except Exception:
            self.logger.exception(f"Error handling connection {connection_id}")
        finally:
            try:
                client_socket.close()
            except OSError:
                pass
            with self.stats_lock:
                self.active_connections -= 1

    def _count_request(self, status_code: int):
        with self.stats_lock:
            self.total_requests += 1

    def stop(self):
        """Stop accepting connections. Threads already serving clients keep running."""
        if self.server_socket is None:
            return
        self.logger.info("Stopping file server...")
        self.running = False

        try:
            self.server_socket.close()
        except OSError:
            pass
        self.server_socket = None

        with self.stats_lock:
            self.logger.info(f"Server stopped. Total requests: {self.total_requests}, "
                             f"Total connections: {self.total_connections}, "
                             f"still active: {self.active_connections}")


def main():
    """
    Main entry point for the file server.
    Parses command line arguments and starts the server.
    """
    # Default values
    host = DEFAULT_HOST
    port = DEFAULT_PORT
    root = "."
    idle_timeout = None

    # Parse command line arguments
    if len(sys.argv) >= 2:
        try:
            port = int(sys.argv[1])
        except ValueError:
            print("Error: Port must be an integer")
            sys.exit(1)

    if len(sys.argv) >= 3:
        host = sys.argv[2]

    if len(sys.argv) >= 4:
        root = sys.argv[3]

    if len(sys.argv) >= 5:
        try:
            idle_timeout = float(sys.argv[4])
        except ValueError:
            print("Error: Idle timeout must be a number")
            sys.exit(1)

    # Validate arguments
    if not (1 <= port <= 65535):
        print("Error: Port must be between 1 and 65535")
        sys.exit(1)

    if not os.path.isdir(root):
        print(f"Error: Root {root} is not a directory")
        sys.exit(1)

    if idle_timeout is not None and idle_timeout <= 0:
        print("Error: Idle timeout must be positive")
        sys.exit(1)

    # Create and start server
    try:
        server = FileServer(host, port, root, idle_timeout)
        server.install_signal_handlers()
        print(f"Starting file server on {host}:{port}...")
        print("Press Ctrl+C to stop the server")
        server.start()
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()


"""
===============================================================================
README - Multi-threaded HTTP File Server
===============================================================================

## Build and Run Instructions

### Prerequisites
- Python 3.8 or higher
- No runtime dependencies (standard library only); pytest for the tests

### Running the Server
```bash
# Default configuration (127.0.0.1:25565, serving the current directory)
python server.py

# Custom port
python server.py 8000

# Custom host and port
python server.py 8000 0.0.0.0

# Custom host, port and root directory
python server.py 8000 0.0.0.0 /srv/files

# ... and drop connections idle for more than 30 seconds
python server.py 8000 0.0.0.0 /srv/files 30
```

### Testing the Server
```bash
curl http://localhost:25565/tmp/
curl http://localhost:25565/etc/hostname
pytest
```

## Request Handling

Each connection is served by `connection.handle_connection`:

1. Read the request line; it must have exactly three space separated tokens
2. Percent-decode the path (`urlcodec.decode_url`), multi-byte UTF-8 included
3. Read `Name: Value` header lines up to the blank line
4. Serve the decoded path (`responder.resolve`):
   - directory: HTML list of entries with percent-encoded links
   - anything else: raw file bytes
   - missing: 404, other filesystem errors: 500
5. Write `HTTP/1.1 <code> <reason>`, `Content-Length` and the body, then wait
   for the next request on the same connection

A bad request line or path ends the connection without a reply. A malformed
header line gets a 500 reply and then the connection is closed.

## Known Limitations

- **No root jail**: the decoded path is used verbatim, so absolute paths and
  `..` segments reach anywhere the process can read
- **Header names are case sensitive** and kept exactly as received
- **No Content-Type**: bodies are sent without a content type hint
- **No timeout by default**: a stalled client holds its thread until the
  idle timeout argument is given
- **Whole files are read into memory** before they are sent
"""
