import socket
from concurrent.futures import ThreadPoolExecutor

import pytest

from gbdtcore.linkers import NetworkConfig, SocketLinkers, parse_machine_list
from gbdtcore.sockets import SOCKET_BUFFER_SIZE


def _free_port():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
        probe.bind(("127.0.0.1", 0))
        return probe.getsockname()[1]


def _two_machine_configs(tmp_path):
    ports = [_free_port(), _free_port()]
    configs = []
    for rank in range(2):
        path = tmp_path / f"machines{rank}.txt"
        path.write_text(
            f"rank={rank}\n127.0.0.1 {ports[0]}\n127.0.0.1 {ports[1]}\n"
        )
        configs.append(
            NetworkConfig(
                num_machines=2,
                local_listen_port=ports[rank],
                time_out=1,
                machine_list_filename=str(path),
                connect_retries=200,
                connect_retry_delay=0.05,
            )
        )
    return configs


def _exchange(configs, size):
    def run(config):
        with SocketLinkers(config) as link:
            other = 1 - link.rank
            payload = bytes([link.rank]) * size
            received = link.send_recv(other, payload, other, len(payload))
            connected = link.check_linker(other)
        return link.rank, received, connected, link.check_linker(other)

    with ThreadPoolExecutor(max_workers=2) as pool:
        futures = [pool.submit(run, config) for config in reversed(configs)]
        return sorted(future.result(timeout=120) for future in futures)


def test_parse_machine_list_reads_addresses(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("127.0.0.1 12400\n  10.0.0.2   12401  \n")
    machines = parse_machine_list(path, 2)
    assert machines.ips == ["127.0.0.1", "10.0.0.2"]
    assert machines.ports == [12400, 12401]
    assert machines.rank is None
    assert machines.num_machines == 2


def test_parse_machine_list_reads_rank(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("rank=1\n127.0.0.1 12400\n127.0.0.1 12401\n")
    machines = parse_machine_list(path, 2)
    assert machines.rank == 1
    assert machines.num_machines == 2


def test_parse_machine_list_ignores_malformed_lines(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("127.0.0.1\n\n127.0.0.1 12400 extra\n127.0.0.1 12402\n")
    machines = parse_machine_list(path, 3)
    assert machines.ips == ["127.0.0.1"]
    assert machines.ports == [12402]


def test_parse_machine_list_truncates_extra_machines(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("127.0.0.1 12400\n127.0.0.1 12401\n127.0.0.1 12402\n")
    machines = parse_machine_list(path, 2)
    assert machines.ports == [12400, 12401]
    assert machines.num_machines == 2


def test_parse_machine_list_shrinks_world(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("127.0.0.1 12400\n")
    assert parse_machine_list(path, 4).num_machines == 1


def test_parse_machine_list_empty_file(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("")
    with pytest.raises(ValueError):
        parse_machine_list(path, 2)


def test_parse_machine_list_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        parse_machine_list(tmp_path / "absent.txt", 2)


def test_single_machine_needs_no_connections(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("127.0.0.1 12400\n")
    config = NetworkConfig(num_machines=1, machine_list_filename=str(path))
    with SocketLinkers(config) as link:
        assert link.rank == 0
        assert link.num_machines == 1
        assert link.check_linker(0) is False


def test_missing_local_machine(tmp_path):
    path = tmp_path / "machines.txt"
    path.write_text("192.0.2.1 12400\n192.0.2.2 12400\n")
    config = NetworkConfig(
        num_machines=2, local_listen_port=12400, machine_list_filename=str(path)
    )
    with pytest.raises(ValueError):
        SocketLinkers(config)


@pytest.mark.parametrize("size", [5000, SOCKET_BUFFER_SIZE + 1])
def test_two_machines_exchange_over_tcp(tmp_path, size):
    results = _exchange(_two_machine_configs(tmp_path), size)

    assert [rank for rank, *_ in results] == [0, 1]
    assert results[0][1] == bytes([1]) * size
    assert results[1][1] == bytes([0]) * size
    assert all(connected for _, _, connected, _ in results)
    assert not any(after_close for *_, after_close in results)