"""Start a pool of workers on this machine, one per process (or thread)."""

import logging
import multiprocessing
import queue
import threading

import worker

logger = logging.getLogger(__name__)

LOCALHOST = "127.0.0.1"
JOIN_TIMEOUT = 10.0


def _worker_process(ports):
    logging.basicConfig(level=logging.INFO, format="[WORKER] %(levelname)s %(message)s")
    server = worker.start_server(worker.WordStatsService(), LOCALHOST, 0)
    worker.serve(server=server, on_ready=ports.put)


class LocalCluster:
    """
    Context manager running `count` workers on ephemeral localhost ports.

    An address is only published once its worker is listening. Workers exit
    on their own when the coordinator sends ALL_DONE; anything still running
    when the block exits is stopped.
    """

    def __init__(self, count: int, processes: bool = True):
        self.count = count
        self.processes = processes
        self.addresses: list[tuple[str, int]] = []
        self.services: list[worker.WordStatsService] = []
        self._runners = []

    def start(self):
        if self.processes:
            ports = multiprocessing.Queue()
            for _ in range(self.count):
                p = multiprocessing.Process(target=_worker_process, args=(ports,), daemon=True)
                p.start()
                self._runners.append(p)
        else:
            ports = queue.Queue()
            for _ in range(self.count):
                service = worker.WordStatsService()
                server = worker.start_server(service, LOCALHOST, 0)
                t = threading.Thread(
                    target=worker.serve,
                    kwargs={"server": server, "on_ready": ports.put},
                    daemon=True,
                )
                t.start()
                self.services.append(service)
                self._runners.append(t)
        # ports arrive in readiness order, not start order
        self.addresses = [(LOCALHOST, ports.get(timeout=JOIN_TIMEOUT)) for _ in self._runners]
        logger.info("Started %d local workers", self.count)
        return self

    def alive(self) -> int:
        return sum(r.is_alive() for r in self._runners)

    def join(self, timeout: float = JOIN_TIMEOUT):
        for r in self._runners:
            r.join(timeout)

    def stop(self):
        for service in self.services:
            service.terminated.set()
        self.join()
        for r in self._runners:
            if self.processes and r.is_alive():
                logger.warning("Worker pid %d still running, terminating", r.pid)
                r.terminate()
                r.join()

    def __enter__(self):
        return self.start()

    def __exit__(self, *exc):
        self.stop()
