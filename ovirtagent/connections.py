"""Registry of live SSH connections, drained when the runtime stops.

A connection is registered once its agent process is up. Normal teardown
unregisters it; anything still registered at shutdown is force-closed so no
remote session outlives the process.
"""

from __future__ import annotations

import threading
from typing import Protocol

import paramiko
from loguru import logger

log = logger.bind(component="connections")


class Closeable(Protocol):
    hostname: str
    port: int

    def close(self) -> None: ...


class ConnectionRegistry:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connections: list[Closeable] = []

    def register(self, connection: Closeable) -> None:
        with self._lock:
            if not any(c is connection for c in self._connections):
                self._connections.append(connection)

    def unregister(self, connection: Closeable) -> None:
        with self._lock:
            self._connections = [c for c in self._connections if c is not connection]

    def close_all(self) -> int:
        """Force-close every registered connection. Returns how many were closed."""
        with self._lock:
            connections, self._connections = self._connections, []
        for connection in connections:
            log.info(
                "Forcing connection to {host}:{port} closed.",
                host=connection.hostname, port=connection.port,
            )
            try:
                connection.close()
            except (OSError, paramiko.SSHException) as e:
                log.warning("Closing {host} failed: {err}", host=connection.hostname, err=e)
        return len(connections)

    def __contains__(self, connection: object) -> bool:
        with self._lock:
            return any(c is connection for c in self._connections)

    def __len__(self) -> int:
        with self._lock:
            return len(self._connections)
