"""Collective operations (all-reduce, all-gather, reduce-scatter) over linkers."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from itertools import accumulate

from .linkers import Linkers
from .topology import RecursiveHalvingNodeType

logger = logging.getLogger(__name__)

Reducer = Callable[[bytes, memoryview], None]
"""Folds ``src`` into the writable buffer ``dst`` of the same length."""


class Network:
    """Collective communication between the machines reachable through ``linkers``."""

    def __init__(self, linkers: Linkers) -> None:
        self.linkers = linkers
        self.rank = linkers.rank
        self.num_machines = linkers.num_machines
        self.bruck_map = linkers.bruck_map
        self.recursive_halving_map = linkers.recursive_halving_map
        logger.info(
            "local rank %d, total number of machines %d", self.rank, self.num_machines
        )

    def _check_blocks(self, block_start: Sequence[int], block_len: Sequence[int]) -> None:
        if len(block_start) != self.num_machines or len(block_len) != self.num_machines:
            raise ValueError("need one block per machine")

    def allreduce(self, data: bytes, type_size: int, reducer: Reducer) -> bytes:
        """Reduce ``data`` element-wise over all machines; every machine gets the result."""
        data = bytes(data)
        size = len(data)
        if type_size <= 0 or size % type_size:
            raise ValueError("data length is not a whole number of elements")
        count = size // type_size
        n = self.num_machines
        # small payloads go through all-gather to save round trips
        if count < n or size < 4096:
            return self._allreduce_by_allgather(data, reducer)
        step = max(1, -(-count // n))
        block_len = []
        start = 0
        for _ in range(n - 1):
            length = min(step * type_size, size - start)
            block_len.append(length)
            start += length
        block_len.append(size - start)
        block_start = [0, *accumulate(block_len[:-1])]
        local = self.reduce_scatter(data, block_start, block_len, reducer)
        return self.allgather_blocks(local, block_start, block_len)

    def _allreduce_by_allgather(self, data: bytes, reducer: Reducer) -> bytes:
        size = len(data)
        gathered = bytearray(self.allgather(data))
        view = memoryview(gathered)
        for machine in range(1, self.num_machines):
            offset = machine * size
            reducer(bytes(view[offset:offset + size]), view[:size])
        result = bytes(view[:size])
        view.release()
        return result

    def allgather(self, data: bytes) -> bytes:
        """Concatenate equal-sized ``data`` from all machines in rank order."""
        size = len(data)
        block_start = [machine * size for machine in range(self.num_machines)]
        block_len = [size] * self.num_machines
        return self.allgather_blocks(data, block_start, block_len)

    def allgather_blocks(
        self, data: bytes, block_start: Sequence[int], block_len: Sequence[int]
    ) -> bytes:
        """Gather each machine's block (of ``block_len[rank]`` bytes) into one buffer."""
        self._check_blocks(block_start, block_len)
        n = self.num_machines
        rank = self.rank
        data = bytes(data)
        if len(data) != block_len[rank]:
            raise ValueError(f"expected {block_len[rank]} bytes, got {len(data)}")
        all_size = sum(block_len)
        output = bytearray(all_size)
        output[: len(data)] = data
        write_pos = len(data)
        accumulated = 1
        for step, (out_rank, in_rank) in enumerate(
            zip(self.bruck_map.out_ranks, self.bruck_map.in_ranks)
        ):
            cur_block_size = min(1 << step, n - accumulated)
            send_len = sum(block_len[(rank + j) % n] for j in range(cur_block_size))
            need = sum(block_len[(rank + accumulated + j) % n] for j in range(cur_block_size))
            received = self.linkers.send_recv(out_rank, bytes(output[:send_len]), in_rank, need)
            output[write_pos:write_pos + need] = received
            write_pos += need
            accumulated += cur_block_size
        # blocks sit in order rank, rank+1, ...; rotate so that rank 0 comes first
        shift = all_size - block_start[rank]
        return bytes(output[shift:] + output[:shift])

    def reduce_scatter(
        self,
        data: bytes,
        block_start: Sequence[int],
        block_len: Sequence[int],
        reducer: Reducer,
    ) -> bytes:
        """Reduce ``data`` over all machines and return this machine's block of the result."""
        self._check_blocks(block_start, block_len)
        n = self.num_machines
        rank = self.rank
        halving = self.recursive_halving_map
        buf = bytearray(data)
        view = memoryview(buf)
        is_power_of_2 = (n & (n - 1)) == 0

        if not is_power_of_2:
            if halving.node_type is RecursiveHalvingNodeType.OTHER:
                self.linkers.send(halving.neighbor, bytes(buf))
            elif halving.node_type is RecursiveHalvingNodeType.GROUP_LEADER:
                received = self.linkers.recv(halving.neighbor, len(buf))
                reducer(received, view)

        if halving.node_type is not RecursiveHalvingNodeType.OTHER:
            for target, send_first, send_count, recv_first, recv_count in zip(
                halving.ranks,
                halving.send_block_start,
                halving.send_block_len,
                halving.recv_block_start,
                halving.recv_block_len,
            ):
                send_size = sum(block_len[send_first:send_first + send_count])
                need = sum(block_len[recv_first:recv_first + recv_count])
                send_offset = block_start[send_first]
                received = self.linkers.send_recv(
                    target, bytes(buf[send_offset:send_offset + send_size]), target, need
                )
                recv_offset = block_start[recv_first]
                reducer(received, view[recv_offset:recv_offset + need])

        if not is_power_of_2:
            if halving.node_type is RecursiveHalvingNodeType.GROUP_LEADER:
                neighbor = halving.neighbor
                offset = block_start[neighbor]
                self.linkers.send(neighbor, bytes(buf[offset:offset + block_len[neighbor]]))
            elif halving.node_type is RecursiveHalvingNodeType.OTHER:
                view.release()
                return self.linkers.recv(halving.neighbor, block_len[rank])

        start = block_start[rank]
        result = bytes(view[start:start + block_len[rank]])
        view.release()
        return result