"""Communication schedules for collective operations between machines."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from itertools import accumulate


def _check_rank(rank: int, num_machines: int) -> None:
    if num_machines < 1:
        raise ValueError(f"number of machines must be positive, got {num_machines}")
    if not 0 <= rank < num_machines:
        raise ValueError(f"rank {rank} is outside [0, {num_machines})")


@dataclass
class BruckMap:
    """Peers of one machine at each step of a Bruck all-gather."""

    k: int = 0
    in_ranks: list[int] = field(default_factory=list)
    out_ranks: list[int] = field(default_factory=list)

    @classmethod
    def construct(cls, rank: int, num_machines: int) -> "BruckMap":
        """Build the map for ``rank``; step ``j`` spans a distance of ``2**j``."""
        _check_rank(rank, num_machines)
        distances = []
        while (1 << len(distances)) < num_machines:
            distances.append(1 << len(distances))
        return cls(
            k=len(distances),
            in_ranks=[(rank + d) % num_machines for d in distances],
            out_ranks=[(rank - d + num_machines) % num_machines for d in distances],
        )


class RecursiveHalvingNodeType(enum.Enum):
    """Role of a machine in recursive halving."""

    NORMAL = "normal"
    GROUP_LEADER = "group_leader"
    OTHER = "other"


@dataclass
class RecursiveHalvingMap:
    """Peers and block ranges of one machine at each step of recursive halving."""

    node_type: RecursiveHalvingNodeType = RecursiveHalvingNodeType.NORMAL
    k: int = 0
    neighbor: int = -1
    ranks: list[int] = field(default_factory=list)
    send_block_start: list[int] = field(default_factory=list)
    send_block_len: list[int] = field(default_factory=list)
    recv_block_start: list[int] = field(default_factory=list)
    recv_block_len: list[int] = field(default_factory=list)

    def _add_step(self, peer: int, send_start: int, send_len: int,
                  recv_start: int, recv_len: int) -> None:
        self.ranks.append(peer)
        self.send_block_start.append(send_start)
        self.send_block_len.append(send_len)
        self.recv_block_start.append(recv_start)
        self.recv_block_len.append(recv_len)

    @classmethod
    def construct(cls, rank: int, num_machines: int) -> "RecursiveHalvingMap":
        """Build the map for ``rank`` among ``num_machines`` machines."""
        _check_rank(rank, num_machines)
        k = num_machines.bit_length() - 1
        lower_power_of_2 = 1 << k
        distances = [1 << (k - 1 - i) for i in range(k)]

        if lower_power_of_2 == num_machines:
            rec_map = cls(RecursiveHalvingNodeType.NORMAL, k)
            for distance in distances:
                direction = 1 if (rank // distance) % 2 == 0 else -1
                peer = rank + direction * distance
                rec_map._add_step(
                    peer,
                    (peer // distance) * distance,
                    distance,
                    (rank // distance) * distance,
                    distance,
                )
            return rec_map

        # pair up the trailing machines so that a power of two groups remains
        rest = num_machines - lower_power_of_2
        node_types = [RecursiveHalvingNodeType.NORMAL] * num_machines
        for i in range(rest):
            node_types[num_machines - i * 2 - 2] = RecursiveHalvingNodeType.GROUP_LEADER
            node_types[num_machines - i * 2 - 1] = RecursiveHalvingNodeType.OTHER

        group_to_node: list[int] = []
        node_to_group: list[int] = []
        group_block_len = [0] * lower_power_of_2
        for node, node_type in enumerate(node_types):
            if node_type is not RecursiveHalvingNodeType.OTHER:
                group_to_node.append(node)
            group = len(group_to_node) - 1
            node_to_group.append(group)
            group_block_len[group] += 1
        group_block_start = [0, *accumulate(group_block_len[:-1])]

        rec_map = cls(node_types[rank], k)
        if rec_map.node_type is RecursiveHalvingNodeType.OTHER:
            rec_map.neighbor = rank - 1
            return rec_map
        if rec_map.node_type is RecursiveHalvingNodeType.GROUP_LEADER:
            rec_map.neighbor = rank + 1

        group = node_to_group[rank]
        for distance in distances:
            direction = 1 if (group // distance) % 2 == 0 else -1
            peer_group = group + direction * distance
            recv_first = (group // distance) * distance
            send_first = (peer_group // distance) * distance
            rec_map._add_step(
                group_to_node[peer_group],
                group_block_start[send_first],
                sum(group_block_len[send_first:send_first + distance]),
                group_block_start[recv_first],
                sum(group_block_len[recv_first:recv_first + distance]),
            )
        return rec_map