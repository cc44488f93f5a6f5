import argparse
import logging
import threading
import time
from enum import Enum

import rpyc
from rpyc.utils.server import ThreadedServer

from classifier import classify
from errors import ProtocolError, WorkerUnavailableError
from protocol import WorkStatus, check_chunk
from settings import WORKER_PORT, ChunkConfig

logger = logging.getLogger(__name__)

READY_POLL = 0.01

PROTOCOL_CONFIG = {
    "allow_public_attrs": True,
    "allow_pickle": False,  # ints, bytes and tuples serialize fine without pickle
}


class WorkerState(Enum):
    AWAITING_WORK = "awaiting-work"
    TERMINATED = "terminated"


class WordStatsService(rpyc.Service):
    """
    Stateless compute unit: classifies one chunk per request.

    Lives in AWAITING_WORK until ALL_DONE arrives, then in TERMINATED. The
    only thing kept between requests is the chunk configuration broadcast
    by the coordinator. The server stops once the coordinator hangs up
    after ALL_DONE (or `terminated` is set directly).
    """

    def __init__(self):
        super().__init__()
        self.config: ChunkConfig | None = None
        self.state = WorkerState.AWAITING_WORK
        self.chunks = 0
        self.terminated = threading.Event()

    def on_disconnect(self, conn):
        if self.state is WorkerState.TERMINATED:
            self.terminated.set()
        else:
            # coordinator went away mid-run; the next one broadcasts its own capacity
            self.config = None

    def exposed_configure(self, chunk_capacity: int):
        if type(chunk_capacity) is not int or chunk_capacity <= 0:
            raise ProtocolError(f"invalid chunk capacity {chunk_capacity!r}")
        if self.config is not None and self.config.capacity != chunk_capacity:
            raise ProtocolError(
                f"already configured for {self.config.capacity} bytes, got {chunk_capacity}"
            )
        self.config = ChunkConfig(chunk_capacity)
        logger.info("Configured for chunks of %d bytes", chunk_capacity)

    def exposed_submit(self, status: int, chunk: bytes = None, size: int = None, carry: int = None):
        """
        Classify one chunk and reply with (words, vowel_start, consonant_end).
        ALL_DONE stops the worker and gets no counts back.
        """
        if self.state is WorkerState.TERMINATED:
            raise ProtocolError("worker already terminated")
        if status == WorkStatus.ALL_DONE:
            logger.info("All work done after %d chunks", self.chunks)
            self.state = WorkerState.TERMINATED
            return None
        if status != WorkStatus.MORE_WORK:
            raise ProtocolError(f"unknown work status {status!r}")
        if self.config is None:
            raise ProtocolError("chunk received before configuration")

        check_chunk(self.config.capacity, chunk, size, carry)
        result, _ = classify(chunk, size, carry)
        self.chunks += 1
        logger.debug("Classified %d bytes -> %s", size, tuple(result))
        return tuple(result)


def start_server(service: WordStatsService, host: str = "0.0.0.0", port: int = WORKER_PORT) -> ThreadedServer:
    """Bind a server for service; port 0 picks a free one (see server.port)."""
    return ThreadedServer(
        service,
        hostname=host,
        port=port,
        protocol_config=PROTOCOL_CONFIG,
    )


def serve(host: str = "0.0.0.0", port: int = WORKER_PORT, server: ThreadedServer | None = None,
          on_ready=None):
    """
    Run a worker until the coordinator sends ALL_DONE.

    on_ready(port) is called once the server accepts connections.
    """
    if server is None:
        server = start_server(WordStatsService(), host, port)
    service = server.service
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()
    # rpyc only listens once start() runs; don't hand out the port before that
    while not server.active:
        if not thread.is_alive():
            raise WorkerUnavailableError(f"worker server on port {server.port} failed to start")
        time.sleep(READY_POLL)
    logger.info("Listening on %s:%d", server.host, server.port)
    if on_ready is not None:
        on_ready(server.port)
    service.terminated.wait()
    server.close()
    thread.join()
    logger.info("Stopped")


def main(argv=None):
    parser = argparse.ArgumentParser(description="Word statistics worker.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=WORKER_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="[WORKER] %(levelname)s %(message)s")
    serve(args.host, args.port)


if __name__ == "__main__":
    main()
