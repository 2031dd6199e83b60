"""
Relay-side UDP transport.

Opens one non-blocking UDP socket, bound locally (to the bootps port, as
a relay would be) and connected to the target server's bootps port. The
connect only fixes the default destination and filters replies to those
coming from the server.

Copyright (c) 2025 DNS Science.io, an After Dark Systems, LLC company.
All rights reserved.
"""

import errno
import logging
import os
import socket

logger = logging.getLogger(__name__)

DHCP_PORT = "bootps"


class TransportError(Exception):
    """Socket could not be resolved, bound or connected."""

    def __init__(self, message: str, errno: int | None = None):
        super().__init__(message)
        self.errno = errno


def _strerror(code: int | None) -> str:
    if code is None:
        return "unknown error"
    return os.strerror(code)


class RelayTransport:
    """
    Connected UDP socket standing in for a relay agent's path to a server.

    Usage:
        with RelayTransport.open("203.0.113.5") as transport:
            transport.send(packet)
            reply = transport.recv(1500)
    """

    def __init__(self, sock: socket.socket):
        self._socket = sock

    @classmethod
    def open(
        cls,
        server: str,
        local: str | None = None,
        port: int | str = DHCP_PORT,
        local_port: int | str | None = None,
    ) -> "RelayTransport":
        """
        Bind a socket locally and connect it to the server.

        Both ends use the bootps port unless told otherwise; ``local_port``
        only differs from ``port`` when probing from an unprivileged port.

        Local candidates are tried in resolver order; for each one that
        binds, remote candidates are tried in order. The first pair that
        connects wins.

        Raises:
            TransportError: no local/remote pair could be used. A failure
                on the remote side is reported in preference to a local
                socket or bind failure.
        """
        local_name = "*" if local is None else local
        bind_port = port if local_port is None else local_port

        try:
            local_candidates = socket.getaddrinfo(
                local, bind_port, socket.AF_INET, socket.SOCK_DGRAM, 0, socket.AI_PASSIVE,
            )
        except socket.gaierror as e:
            raise TransportError(f"local address {local_name}: {e.strerror}") from e

        cause = None
        local_errno = None
        remote_error = None

        for family, socktype, proto, _, sockaddr in local_candidates:
            remote_error = None

            try:
                sock = socket.socket(family, socktype, proto)
                sock.setblocking(False)
            except OSError as e:
                cause, local_errno = "socket", e.errno
                continue

            try:
                sock.bind(sockaddr)
            except OSError as e:
                cause, local_errno = "bind", e.errno
                sock.close()
                continue

            logger.debug(f"Bound to {sockaddr[0]}:{sockaddr[1]}")

            remote_error = cls._connect(sock, family, socktype, proto, server, port)
            if remote_error is None:
                return cls(sock)

            sock.close()

        if remote_error is not None:
            raise remote_error

        raise TransportError(
            f"local address {local_name} port {bind_port} {cause}: {_strerror(local_errno)}",
            errno=local_errno,
        )

    @staticmethod
    def _connect(
        sock: socket.socket,
        family: int,
        socktype: int,
        proto: int,
        server: str,
        port: int | str,
    ) -> TransportError | None:
        """Connect a bound socket to the first usable server address."""
        try:
            remote_candidates = socket.getaddrinfo(server, port, family, socktype, proto)
        except socket.gaierror as e:
            return TransportError(f"server {server}: {e.strerror}")

        connect_errno = None
        for *_, sockaddr in remote_candidates:
            try:
                sock.connect(sockaddr)
            except OSError as e:
                connect_errno = e.errno
                continue

            logger.debug(f"Connected to {sockaddr[0]}:{sockaddr[1]}")
            return None

        if connect_errno is None:
            connect_errno = errno.EADDRNOTAVAIL
        return TransportError(f"server {server}: {_strerror(connect_errno)}", errno=connect_errno)

    @property
    def local_address(self) -> str:
        """The IPv4 address the socket is bound to."""
        if self._socket.family != socket.AF_INET:
            raise TransportError(f"unexpected sockname af {self._socket.family}")
        return self._socket.getsockname()[0]

    @property
    def local_port(self) -> int:
        return self._socket.getsockname()[1]

    @property
    def peer(self) -> tuple[str, int]:
        return self._socket.getpeername()

    def fileno(self) -> int:
        return self._socket.fileno()

    def send(self, data: bytes) -> int:
        """Send one datagram. BlockingIOError and InterruptedError propagate."""
        return self._socket.send(data)

    def recv(self, size: int) -> bytes:
        """Receive one datagram. BlockingIOError and InterruptedError propagate."""
        return self._socket.recv(size)

    def close(self):
        self._socket.close()

    def __enter__(self) -> "RelayTransport":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
