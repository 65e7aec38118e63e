"""Paramiko-backed SSH connection used by the agent bootstrap."""

from __future__ import annotations

import socket
import threading
from collections.abc import Callable
from typing import Any

import paramiko
from loguru import logger
from scp import SCPClient

log = logger.bind(component="ssh")

type SocketFactory = Callable[[tuple[str, int], float], socket.socket]


def _tcp_socket(address: tuple[str, int], timeout: float) -> socket.socket:
    sock = socket.create_connection(address, timeout=timeout)
    # Small control messages; latency matters more than throughput.
    sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
    return sock


class SSHConnection:
    """One SSH transport to a VM.

    Connecting and authenticating are separate steps so the caller can retry
    the former and fail fast on the latter. ``close`` is idempotent and safe
    to call from another thread to abort a blocked bring-up.
    """

    def __init__(
        self,
        hostname: str,
        port: int = 22,
        *,
        connect_timeout: float = 30.0,
        socket_factory: SocketFactory = _tcp_socket,
        transport_factory: Callable[[socket.socket], paramiko.Transport] = paramiko.Transport,
    ) -> None:
        self.hostname = hostname
        self.port = port
        self._connect_timeout = connect_timeout
        self._socket_factory = socket_factory
        self._transport_factory = transport_factory
        self._transport: paramiko.Transport | None = None
        self._lock = threading.Lock()
        self._closed = False

    def connect(self) -> None:
        """Open the TCP connection and negotiate the SSH transport."""
        with self._lock:
            if self._closed:
                raise paramiko.SSHException("Connection already closed")
            if self._transport is not None:
                self._transport.close()
                self._transport = None
        log.debug("SSH: connecting to {host}:{port}", host=self.hostname, port=self.port)
        sock = self._socket_factory((self.hostname, self.port), self._connect_timeout)
        transport = self._transport_factory(sock)
        with self._lock:
            if self._closed:
                transport.close()
                raise paramiko.SSHException("Connection closed while connecting")
            self._transport = transport
        try:
            transport.start_client(timeout=self._connect_timeout)
        except BaseException:
            transport.close()
            raise
        log.debug("SSH: connected to {host}", host=self.hostname)

    def authenticate(self, username: str, password: str) -> bool:
        """Password authentication. Returns False on rejected credentials."""
        transport = self.transport
        try:
            transport.auth_password(username, password)
        except paramiko.AuthenticationException as e:
            log.debug("SSH: authentication rejected for {user}: {err}", user=username, err=e)
            return False
        return transport.is_authenticated()

    @property
    def transport(self) -> paramiko.Transport:
        if self._transport is None or self._closed:
            raise paramiko.SSHException("SSH not connected")
        return self._transport

    def exec(self, command: str, timeout: float = 30.0) -> tuple[int, bytes]:
        """Run a command; return (exit status, combined stdout+stderr)."""
        cmd_preview = command[:80] + "..." if len(command) > 80 else command
        log.debug("SSHConnection.exec: {cmd}", cmd=cmd_preview)
        channel = self.transport.open_session(timeout=timeout)
        try:
            channel.settimeout(timeout)
            channel.set_combine_stderr(True)
            channel.exec_command(command)
            chunks: list[bytes] = []
            while chunk := channel.recv(32768):
                chunks.append(chunk)
            code = channel.recv_exit_status()
        finally:
            channel.close()
        log.debug("SSHConnection.exec: exit_code={code}", code=code)
        return code, b"".join(chunks)

    def open_sftp(self) -> paramiko.SFTPClient:
        sftp = paramiko.SFTPClient.from_transport(self.transport)
        if sftp is None:
            raise paramiko.SSHException("SFTP subsystem unavailable")
        return sftp

    def open_scp(self) -> SCPClient:
        return SCPClient(self.transport)

    def open_session(self, window_size: int | None = None) -> paramiko.Channel:
        kwargs: dict[str, Any] = {}
        if window_size is not None:
            kwargs["window_size"] = window_size
        return self.transport.open_session(**kwargs)

    def is_alive(self) -> bool:
        return self._transport is not None and not self._closed and self._transport.is_active()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            transport, self._transport = self._transport, None
        if transport is not None:
            transport.close()
            log.debug("SSH: closed connection to {host}", host=self.hostname)

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        return f"SSHConnection({self.hostname}:{self.port})"
