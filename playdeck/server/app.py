"""
TCP server for playdeck.

One accept thread hands every connection to a ThreadPoolExecutor sized by
server.max_clients. Connections beyond that bound are accepted and wait
in the executor queue until a worker frees up.

Shutdown closes the listening socket, closes every live or queued
connection (which unblocks their pending reads) and waits for the pool.
"""

import socket
import threading
from concurrent.futures import ThreadPoolExecutor

from playdeck.core.exceptions import TransportError
from playdeck.core.logger import get_logger
from playdeck.server.context import ServerContext
from playdeck.server.session import SessionHandler


logger = get_logger(__name__)

ACCEPT_POLL_INTERVAL = 0.5


class PlaydeckServer:
    """
    Listening socket plus session worker pool.

    Args:
        context: Shared services for every session.
        host: Interface to bind. Defaults to config.server.host.
        port: Port to bind, 0 for an ephemeral port. Defaults to config.server.port.

    Usage:
        with PlaydeckServer(context) as server:
            server.serve_forever()
    """

    def __init__(self, context: ServerContext, host: str | None = None, port: int | None = None) -> None:
        server_config = context.config.server
        self.context = context
        self.host = server_config.host if host is None else host
        self.port = server_config.port if port is None else port
        self.max_clients = server_config.max_clients
        self.connection_timeout = server_config.connection_timeout

        self._socket: socket.socket | None = None
        self._executor: ThreadPoolExecutor | None = None
        self._accept_thread: threading.Thread | None = None
        self._stopping = threading.Event()
        self._stopped = threading.Event()
        self._sessions: set[SessionHandler] = set()
        self._sessions_lock = threading.Lock()

    @property
    def address(self) -> tuple[str, int]:
        """(host, port) actually bound; useful when port 0 was requested."""
        if self._socket is None:
            raise TransportError("Server is not started")
        host, port = self._socket.getsockname()[:2]
        return host, port

    @property
    def active_sessions(self) -> int:
        with self._sessions_lock:
            return len(self._sessions)

    def start(self) -> None:
        """
        Bind, listen and start the accept thread.

        Raises:
            TransportError: If the address cannot be bound.
        """
        try:
            self._socket = socket.create_server((self.host, self.port))
        except OSError as e:
            raise TransportError(
                f"Could not bind {self.host}:{self.port}",
                details={"host": self.host, "port": self.port, "error": str(e)}
            ) from e

        self._socket.settimeout(ACCEPT_POLL_INTERVAL)
        self._executor = ThreadPoolExecutor(max_workers=self.max_clients, thread_name_prefix="playdeck-session")
        self._accept_thread = threading.Thread(target=self._accept_loop, name="playdeck-accept", daemon=True)
        self._accept_thread.start()

        host, port = self.address
        logger.info(f"Listening on {host}:{port} (max {self.max_clients} concurrent clients)")

    def _accept_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                conn, addr = self._socket.accept()
            except TimeoutError:
                continue
            except OSError as e:
                if self._stopping.is_set():
                    break
                logger.error(f"Accept failed: {e}")
                continue

            peer = f"{addr[0]}:{addr[1]}"
            handler = SessionHandler(self.context, conn, peer=peer, timeout=self.connection_timeout)
            with self._sessions_lock:
                self._sessions.add(handler)
            logger.debug(f"Accepted {peer}")
            self._executor.submit(self._run_session, handler)

    def _run_session(self, handler: SessionHandler) -> None:
        try:
            handler.run()
        except Exception:
            logger.exception(f"Session {handler.peer} ended with an unexpected error")
        finally:
            with self._sessions_lock:
                self._sessions.discard(handler)

    def serve_forever(self) -> None:
        """Start if needed and block until stop() is called."""
        if self._socket is None:
            self.start()
        self._stopped.wait()

    def stop(self) -> None:
        """Stop accepting, close every connection and wait for the workers."""
        if self._stopping.is_set():
            return
        self._stopping.set()
        logger.info("Shutting down server")

        if self._accept_thread is not None:
            self._accept_thread.join()
        if self._socket is not None:
            self._socket.close()

        with self._sessions_lock:
            sessions = list(self._sessions)
        for handler in sessions:
            handler.close()

        if self._executor is not None:
            self._executor.shutdown(wait=True)

        self._stopped.set()
        logger.info("Server stopped")

    def __enter__(self) -> "PlaydeckServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
