"""Thin TCP socket wrapper tuned for bulk collective communication."""

from __future__ import annotations

import socket
import struct

SOCKET_BUFFER_SIZE = 10 * 1024 * 1024
MAX_RECEIVE_SIZE = 2 * 1024 * 1024
NO_DELAY = True

_SIOCGIFADDR = 0x8915


def _interface_addresses() -> set[str]:
    """IPv4 addresses of the local interfaces, where the platform exposes them."""
    try:
        import fcntl
    except ImportError:
        return set()
    addresses: set[str] = set()
    try:
        interfaces = socket.if_nameindex()
    except OSError:
        return addresses
    with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as probe:
        for _, name in interfaces:
            request = struct.pack("256s", name.encode()[:15])
            try:
                reply = fcntl.ioctl(probe.fileno(), _SIOCGIFADDR, request)
            except OSError:
                continue
            addresses.add(socket.inet_ntoa(reply[20:24]))
    return addresses


def get_local_ip_list() -> set[str]:
    """IPv4 addresses by which this machine may be known."""
    addresses = _interface_addresses()
    for host in (socket.gethostname(), "localhost"):
        try:
            addresses.update(socket.gethostbyname_ex(host)[2])
        except OSError:
            continue
    return {address for address in addresses if "." in address}


class TcpSocket:
    """TCP socket with large buffers and Nagle's algorithm disabled."""

    def __init__(self, sock: socket.socket | None = None) -> None:
        if sock is None:
            sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM, socket.IPPROTO_TCP)
        self.sock: socket.socket | None = sock
        self._configure()

    def _configure(self) -> None:
        sock = self._open()
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, SOCKET_BUFFER_SIZE)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, SOCKET_BUFFER_SIZE)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(NO_DELAY))

    def _open(self) -> socket.socket:
        if self.sock is None:
            raise OSError("socket is closed")
        return self.sock

    @property
    def is_closed(self) -> bool:
        """True once the socket has been closed."""
        return self.sock is None

    def set_timeout(self, timeout_ms: int) -> None:
        """Set a timeout in milliseconds; zero or less blocks without limit."""
        self._open().settimeout(timeout_ms / 1000 if timeout_ms > 0 else None)

    def bind(self, port: int) -> bool:
        """Bind to ``port`` on all interfaces; False if that fails."""
        try:
            self._open().bind(("0.0.0.0", port))
        except OSError:
            return False
        return True

    def connect(self, host: str, port: int) -> bool:
        """Connect to ``host``:``port``; False if that fails."""
        try:
            self._open().connect((host, port))
        except OSError:
            return False
        return True

    def listen(self, backlog: int = 128) -> None:
        """Start accepting connections."""
        self._open().listen(backlog)

    def accept(self) -> "TcpSocket":
        """Wait for and return the next incoming connection."""
        connection, _ = self._open().accept()
        return TcpSocket(connection)

    def send(self, data: bytes) -> int:
        """Send what the kernel takes of ``data`` and return how many bytes went."""
        return self._open().send(data)

    def recv(self, size: int) -> bytes:
        """Receive up to ``size`` bytes; empty bytes mean the peer closed."""
        return self._open().recv(size)

    def close(self) -> None:
        """Close the socket; closing twice does nothing."""
        if self.sock is not None:
            self.sock.close()
            self.sock = None

    def __enter__(self) -> "TcpSocket":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()