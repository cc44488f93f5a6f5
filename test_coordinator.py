"""
End-to-end tests: coordinator rounds against live rpyc workers on localhost.
"""

import math
import queue
import threading
import time

import pytest

import coordinator
import worker
from chunking import FileJob
from classifier import classify
from cluster import LocalCluster
from errors import ConfigurationError, FileAccessError, WorkerUnavailableError
from protocol import PartialResult
from settings import SPACE, ChunkConfig
from test_chunking import make_text


def write(tmp_path, name, data):
    path = tmp_path / name
    path.write_bytes(data)
    return str(path)


def run_local(paths, workers, capacity=64, **kwargs):
    with LocalCluster(workers, processes=False) as cluster:
        results = coordinator.run(paths, cluster.addresses, capacity, **kwargs)
        cluster.join()
        assert cluster.alive() == 0
    return results


def test_totals_match_single_pass(tmp_path):
    """Boundary correctness: distributed totals equal one classifier pass"""
    data = make_text(2000, seed=11)
    path = write(tmp_path, "big.txt", data)
    [result] = run_local([path], workers=3)
    assert result.totals == classify(data, len(data), SPACE).result
    assert result.chunks > 3


def test_worker_count_invariance(tmp_path):
    """Totals do not depend on how many workers share the file"""
    paths = [write(tmp_path, f"f{i}.txt", make_text(600, seed=i)) for i in range(3)]
    baseline = [r.totals for r in run_local(paths, workers=1)]
    for n in (2, 5):
        assert [r.totals for r in run_local(paths, workers=n)] == baseline


def test_results_in_input_order(tmp_path):
    a = write(tmp_path, "a.txt", b"apple orange idea ")
    b = write(tmp_path, "b.txt", b"cat dog")
    results = run_local([a, b], workers=2)
    assert [r.path for r in results] == [a, b]
    assert results[0].totals == PartialResult(3, 3, 0)
    assert results[1].totals == PartialResult(2, 0, 2)


def test_word_not_counted_twice_at_boundary(tmp_path):
    """A word straddling the fixed read offset is counted exactly once"""
    capacity = 64
    read_size = capacity - 7
    data = b"a " * ((read_size - 3) // 2) + b"stop" + b" end"
    assert data[:read_size].endswith(b"sto")
    path = write(tmp_path, "edge.txt", data)
    [result] = run_local([path], workers=2, capacity=capacity)
    n = (read_size - 3) // 2
    assert result.totals == PartialResult(n + 2, n + 1, 2)
    assert result.chunks == 2


def test_empty_file(tmp_path):
    """Zero bytes give zero counts and the workers still shut down"""
    path = write(tmp_path, "empty.txt", b"")
    [result] = run_local([path], workers=3)
    assert result.totals == PartialResult(0, 0, 0)
    assert result.chunks == 1


def test_single_word_file(tmp_path):
    path = write(tmp_path, "one.txt", b"word")
    [result] = run_local([path], workers=3)
    assert result.totals == PartialResult(1, 0, 1)
    assert result.chunks == 1

    path = write(tmp_path, "two.txt", b"idea")
    [result] = run_local([path], workers=1)
    assert result.totals == PartialResult(1, 1, 0)


def test_missing_file_aborts_and_releases_workers(tmp_path):
    good = write(tmp_path, "good.txt", b"hello world")
    with LocalCluster(2, processes=False) as cluster:
        with pytest.raises(FileAccessError):
            coordinator.run([good, str(tmp_path / "missing.txt")], cluster.addresses, 64)
        cluster.join()
        assert cluster.alive() == 0


def test_no_workers_is_configuration_error(tmp_path):
    path = write(tmp_path, "a.txt", b"a")
    with pytest.raises(ConfigurationError):
        coordinator.run([path], [], 64)


def test_chunk_size_below_minimum_rejected(tmp_path):
    with pytest.raises(ConfigurationError):
        coordinator.run([str(tmp_path / "a.txt")], [("127.0.0.1", 1)], 10)


class StalledService(worker.WordStatsService):
    def exposed_submit(self, status, *fields):
        if fields:
            time.sleep(2)
        return super().exposed_submit(status, *fields)


def test_stalled_worker_times_out(tmp_path):
    """A worker that does not answer in time is reported, not waited on forever"""
    path = write(tmp_path, "a.txt", b"some words here")
    service = StalledService()
    server = worker.start_server(service, "127.0.0.1", 0)
    ready = queue.Queue()
    thread = threading.Thread(
        target=worker.serve, kwargs={"server": server, "on_ready": ready.put}, daemon=True
    )
    thread.start()
    port = ready.get(timeout=10)
    try:
        with pytest.raises(WorkerUnavailableError):
            coordinator.run([path], [("127.0.0.1", port)], 64, result_timeout=0.3)
    finally:
        service.terminated.set()
        thread.join(10)
    assert not thread.is_alive()


def test_workers_accept_connections_once_published():
    """Every published address is already listening"""
    for _ in range(25):
        with LocalCluster(3, processes=False) as cluster:
            conns = coordinator.connect_workers(cluster.addresses, 5)
            coordinator.Coordinator(conns, ChunkConfig(64), 5).shutdown()
            cluster.join()
            assert cluster.alive() == 0


def test_rounds_give_each_worker_at_most_one_chunk(tmp_path):
    """One chunk per worker per round, the last round stops early, every chunk answered"""
    path = write(tmp_path, "rounds.txt", make_text(1500, seed=5))
    with LocalCluster(3, processes=False) as cluster:
        conns = coordinator.connect_workers(cluster.addresses, 10)
        c = coordinator.Coordinator(conns, ChunkConfig(64), 10)
        try:
            c.broadcast_config()
            with FileJob(path, c.config) as job:
                result = c.process(job)
        finally:
            c.shutdown()
        cluster.join()

    per_worker = [s.chunks for s in cluster.services]
    assert result.chunks > 3
    assert c.rounds == math.ceil(result.chunks / 3)
    assert sum(per_worker) == result.chunks
    assert max(per_worker) - min(per_worker) <= 1
