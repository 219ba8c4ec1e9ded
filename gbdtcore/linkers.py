"""Point-to-point links between the machines of a distributed run."""

from __future__ import annotations

import logging
import struct
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from .sockets import MAX_RECEIVE_SIZE, SOCKET_BUFFER_SIZE, TcpSocket, get_local_ip_list
from .topology import BruckMap, RecursiveHalvingMap, RecursiveHalvingNodeType

logger = logging.getLogger(__name__)

_RANK = struct.Struct("<i")


@dataclass
class NetworkConfig:
    """Settings of the machine network."""

    num_machines: int = 1
    local_listen_port: int = 12400
    time_out: int = 120
    machine_list_filename: str = ""
    connect_retries: int = 20
    connect_retry_delay: float = 10.0


@dataclass
class MachineList:
    """Addresses read from a machine list file, plus an optional explicit rank."""

    ips: list[str]
    ports: list[int]
    rank: int | None = None

    @property
    def num_machines(self) -> int:
        return len(self.ips)


def parse_machine_list(path, num_machines: int) -> MachineList:
    """Read ``ip port`` lines (and an optional ``rank=N`` line) from ``path``."""
    lines = Path(path).read_text().splitlines()
    if not lines:
        raise ValueError(f"machine list file {path} is empty")
    ips: list[str] = []
    ports: list[int] = []
    rank: int | None = None
    for raw in lines:
        line = raw.strip()
        if "rank=" in line:
            rank = int(line.split("=")[1].strip())
            continue
        parts = line.split()
        if len(parts) != 2:
            continue
        if len(ips) >= num_machines:
            logger.warning(
                "The number of machines in the machine list is larger than "
                "num_machines; the rest is ignored"
            )
            break
        ips.append(parts[0])
        ports.append(int(parts[1]))
    if len(ips) != num_machines:
        logger.warning(
            "The world size differs from the machine list; using %d machines", len(ips)
        )
    return MachineList(ips, ports, rank)


class Linkers(ABC):
    """Blocking byte transport between this machine and its peers."""

    def __init__(self, rank: int, num_machines: int) -> None:
        self.rank = rank
        self.num_machines = num_machines
        self.bruck_map = BruckMap.construct(rank, num_machines)
        self.recursive_halving_map = RecursiveHalvingMap.construct(rank, num_machines)

    @abstractmethod
    def send(self, rank: int, data: bytes) -> None:
        """Send all of ``data`` to ``rank``."""

    @abstractmethod
    def recv(self, rank: int, size: int) -> bytes:
        """Receive exactly ``size`` bytes from ``rank``."""

    def send_recv(self, send_rank: int, send_data: bytes, recv_rank: int, recv_size: int) -> bytes:
        """Send to one peer while receiving from another."""
        if len(send_data) < SOCKET_BUFFER_SIZE:
            # the kernel buffer takes the whole message, so sending does not block
            self.send(send_rank, send_data)
            return self.recv(recv_rank, recv_size)
        failures: list[BaseException] = []

        def worker() -> None:
            try:
                self.send(send_rank, send_data)
            except BaseException as exc:  # re-raised in the calling thread
                failures.append(exc)

        sender = threading.Thread(target=worker, daemon=True)
        sender.start()
        try:
            received = self.recv(recv_rank, recv_size)
        finally:
            sender.join()
        if failures:
            raise failures[0]
        return received


class SocketLinkers(Linkers):
    """Linkers over TCP connections, set up from a machine list file."""

    def __init__(self, config: NetworkConfig) -> None:
        self.config = config
        self.local_listen_port = config.local_listen_port
        self.socket_timeout = config.time_out
        self.network_time = 0.0
        machines = parse_machine_list(config.machine_list_filename, config.num_machines)
        self.client_ips = machines.ips
        self.client_ports = machines.ports
        num_machines = machines.num_machines
        rank = -1 if machines.rank is None else machines.rank

        if num_machines <= 1:
            super().__init__(0, 1)
            self._links: list[TcpSocket | None] = [None]
            return

        if rank == -1:
            local_ips = get_local_ip_list()
            rank = next(
                (
                    i
                    for i, (ip, port) in enumerate(zip(self.client_ips, self.client_ports))
                    if ip in local_ips and port == self.local_listen_port
                ),
                -1,
            )
        if rank == -1:
            raise ValueError("machine list file doesn't contain the local machine")

        super().__init__(rank, num_machines)
        self._links = [None] * num_machines
        listener = TcpSocket()
        try:
            logger.info("try to bind port %d.", self.local_listen_port)
            if not listener.bind(self.local_listen_port):
                raise OSError(f"binding port {self.local_listen_port} failed")
            logger.info("Binding port %d success.", self.local_listen_port)
            self._construct(listener)
        except BaseException:
            self.close()
            raise
        finally:
            listener.close()

    @property
    def _timeout_ms(self) -> int:
        return self.socket_timeout * 60 * 1000

    def _needed_ranks(self) -> set[int]:
        needed = set(self.bruck_map.out_ranks) | set(self.bruck_map.in_ranks)
        halving = self.recursive_halving_map
        if halving.node_type is not RecursiveHalvingNodeType.NORMAL:
            needed.add(halving.neighbor)
        if halving.node_type is not RecursiveHalvingNodeType.OTHER:
            needed.update(halving.ranks)
        return needed

    def _construct(self, listener: TcpSocket) -> None:
        needed = self._needed_ranks()
        incoming = sum(1 for rank in needed if rank < self.rank)
        listener.set_timeout(self._timeout_ms)
        listener.listen(incoming)
        failures: list[BaseException] = []

        def listen() -> None:
            try:
                self._accept_incoming(listener, incoming)
            except BaseException as exc:  # re-raised after join
                failures.append(exc)

        listen_thread = threading.Thread(target=listen, daemon=True)
        listen_thread.start()
        try:
            # the smaller rank connects to the larger one
            for out_rank in sorted(rank for rank in needed if rank > self.rank):
                self._connect(out_rank)
        finally:
            listen_thread.join()
        if failures:
            raise failures[0]
        for rank in range(self.num_machines):
            if self.check_linker(rank):
                logger.info("Connected to rank %d.", rank)

    def _accept_incoming(self, listener: TcpSocket, incoming: int) -> None:
        logger.info("Listening...")
        for _ in range(incoming):
            handler = listener.accept()
            header = bytearray()
            while len(header) < _RANK.size:
                chunk = handler.recv(_RANK.size - len(header))
                if not chunk:
                    handler.close()
                    raise ConnectionError("peer closed before sending its rank")
                header += chunk
            (in_rank,) = _RANK.unpack(header)
            self._set_linker(in_rank, handler)

    def _connect(self, out_rank: int) -> None:
        for _ in range(self.config.connect_retries):
            sock = TcpSocket()
            if sock.connect(self.client_ips[out_rank], self.client_ports[out_rank]):
                break
            sock.close()
            logger.warning(
                "Connect to rank %d failed, wait for %s seconds",
                out_rank,
                self.config.connect_retry_delay,
            )
            time.sleep(self.config.connect_retry_delay)
        else:
            raise ConnectionError(f"could not connect to rank {out_rank}")
        header = memoryview(_RANK.pack(self.rank))
        sent = 0
        while sent < len(header):
            sent += sock.send(header[sent:])
        self._set_linker(out_rank, sock)

    def _set_linker(self, rank: int, sock: TcpSocket) -> None:
        sock.set_timeout(self._timeout_ms)
        self._links[rank] = sock

    def _link(self, rank: int) -> TcpSocket:
        link = self._links[rank]
        if link is None or link.is_closed:
            raise ConnectionError(f"no connection to rank {rank}")
        return link

    def send(self, rank: int, data: bytes) -> None:
        if not data:
            return
        link = self._link(rank)
        view = memoryview(data)
        sent = 0
        while sent < len(view):
            sent += link.send(view[sent:])

    def recv(self, rank: int, size: int) -> bytes:
        link = self._link(rank) if size > 0 else None
        parts: list[bytes] = []
        remaining = size
        while remaining > 0:
            chunk = link.recv(min(remaining, MAX_RECEIVE_SIZE))
            if not chunk:
                raise ConnectionError(f"rank {rank} closed the connection")
            parts.append(chunk)
            remaining -= len(chunk)
        return b"".join(parts)

    def send_recv(self, send_rank: int, send_data: bytes, recv_rank: int, recv_size: int) -> bytes:
        start = time.perf_counter()
        try:
            return super().send_recv(send_rank, send_data, recv_rank, recv_size)
        finally:
            self.network_time += time.perf_counter() - start

    def check_linker(self, rank: int) -> bool:
        """True if there is an open connection to ``rank``."""
        link = self._links[rank]
        return link is not None and not link.is_closed

    def close(self) -> None:
        """Close every connection."""
        for position, link in enumerate(self._links):
            if link is not None:
                link.close()
                self._links[position] = None
        logger.info("Network using %f seconds", self.network_time)

    def __enter__(self) -> "SocketLinkers":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()