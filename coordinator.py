"""
Coordinator: owns the input files, cuts them into chunks and fans the
chunks out to the workers in rounds.

Per file, each round sends at most one chunk to every worker (in worker
order) and then collects every reply in that same order before the next
round starts. Chunks of one file are built strictly in sequence because
each needs the trailing byte of the one before it.
"""

import argparse
import logging
import os
import sys
import time
from dataclasses import dataclass

import rpyc
from rpyc.core.async_ import AsyncResultTimeout

import settings
from chunking import FileJob
from cluster import LocalCluster
from errors import ConfigurationError, WordStatsError, WorkerUnavailableError
from protocol import PartialResult, WorkStatus
from settings import DEFAULT_CHUNK_BYTES, MAX_FILES, MIN_CHUNK_BYTES, ChunkConfig

logger = logging.getLogger(__name__)


@dataclass
class FileTotals:
    path: str
    totals: PartialResult
    chunks: int = 0


def connect_workers(addresses, timeout: float | None = settings.RESULT_TIMEOUT):
    """Open one connection per worker address."""
    config = {
        "allow_public_attrs": True,
        "allow_pickle": False,
        "import_custom_exceptions": True,
        "instantiate_custom_exceptions": True,
    }
    if timeout:
        config["sync_request_timeout"] = timeout
    conns = []
    try:
        for host, port in addresses:
            logger.info("Connecting to worker %s:%d", host, port)
            conns.append(rpyc.connect(host, port, config=config))
    except OSError as e:
        for conn in conns:
            conn.close()
        raise WorkerUnavailableError(f"could not reach worker {host}:{port}: {e}") from e
    return conns


class Coordinator:
    def __init__(self, conns, config: ChunkConfig, result_timeout: float | None = None):
        if not conns:
            raise ConfigurationError("Requires at least two processes.")
        self.conns = list(conns)
        self.config = config
        self.result_timeout = result_timeout
        self.rounds = 0

    def broadcast_config(self):
        """Tell every worker the chunk capacity before any file is read."""
        for conn in self.conns:
            conn.root.configure(self.config.capacity)

    def process(self, job: FileJob) -> FileTotals:
        """Drive one open file through dispatch/collect rounds until it is exhausted."""
        while not job.finished:
            pending = []
            # dispatch phase
            for index, conn in enumerate(self.conns):
                if job.finished:
                    break
                message = job.next_chunk()
                ar = rpyc.async_(conn.root.submit)(*message.to_wire(self.config.capacity))
                if self.result_timeout:
                    ar.set_expiry(self.result_timeout)
                pending.append((index, ar))

            # collect phase, in dispatch order
            for index, ar in pending:
                job.add(self._collect(index, ar))
            self.rounds += 1
        return FileTotals(job.path, job.totals, job.chunks)

    def _collect(self, index: int, ar) -> PartialResult:
        try:
            value = ar.value
        except AsyncResultTimeout:
            raise WorkerUnavailableError(
                f"worker {index + 1} gave no result within {self.result_timeout}s"
            ) from None
        return PartialResult.from_wire(value)

    def run(self, paths) -> list[FileTotals]:
        results = []
        for path in paths:
            logger.info("Processing %s", path)
            with FileJob(path, self.config) as job:
                results.append(self.process(job))
            logger.info("Finished %s in %d chunks (%d rounds so far)", path, job.chunks, self.rounds)
        return results

    def shutdown(self):
        """Send ALL_DONE to every worker and drop the connections."""
        for index, conn in enumerate(self.conns):
            try:
                conn.root.submit(int(WorkStatus.ALL_DONE))
            except (EOFError, OSError, AsyncResultTimeout):
                logger.warning("Worker %d did not acknowledge termination", index + 1)
            finally:
                conn.close()
        logger.info("Sent termination to %d workers", len(self.conns))


def run(paths, addresses, chunk_capacity: int = DEFAULT_CHUNK_BYTES,
        result_timeout: float | None = settings.RESULT_TIMEOUT) -> list[FileTotals]:
    """Count words in every file using the workers at addresses."""
    config = ChunkConfig.validated(chunk_capacity)
    if not addresses:
        raise ConfigurationError("Requires at least two processes.")
    coordinator = Coordinator(connect_workers(addresses, result_timeout), config, result_timeout)
    try:
        coordinator.broadcast_config()
        return coordinator.run(paths)
    finally:
        coordinator.shutdown()


def print_results(results, elapsed: float, out=None):
    out = out or sys.stdout
    for r in results:
        print(f"\nFile name: {r.path}", file=out)
        print(f"Total number of words = {r.totals.word_count}", file=out)
        print(f"N. of words beginning with a vowel = {r.totals.vowel_start_count}", file=out)
        print(f"N. of words ending with a consonant = {r.totals.consonant_end_count}", file=out)
    print(f"\nElapsed time = {elapsed:.6f} s", file=out)


def chunk_size(text: str) -> int:
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid number of bytes: {text!r}") from None
    if value < MIN_CHUNK_BYTES:
        raise argparse.ArgumentTypeError(
            f"number of bytes must be greater or equal than {MIN_CHUNK_BYTES}"
        )
    return value


def worker_address(text: str) -> tuple[str, int]:
    try:
        return settings.parse_address(text)
    except ConfigurationError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=os.path.basename(sys.argv[0]) or "coordinator",
        description="Count words, words beginning with a vowel and words "
                    "ending with a consonant across worker processes.",
    )
    parser.add_argument("-f", dest="files", action="append", required=True,
                        metavar="FILE", help="filename to process (repeatable)")
    parser.add_argument("-m", dest="chunk_bytes", type=chunk_size, default=DEFAULT_CHUNK_BYTES,
                        metavar="BYTES", help="maximum number of bytes per chunk")
    parser.add_argument("-w", "--worker", dest="workers", action="append",
                        type=worker_address, metavar="HOST[:PORT]",
                        help="worker address (repeatable); defaults to WORKER_HOSTS/NUM_WORKERS")
    parser.add_argument("-l", "--local-workers", type=int, metavar="N",
                        help="spawn N worker processes on this machine")
    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if len(args.files) > MAX_FILES:
        parser.error(f"can only process {MAX_FILES} files at a time")
    if args.local_workers is not None and args.local_workers < 1:
        parser.error("Requires at least two processes.")

    logging.basicConfig(level=logging.INFO, format="[COORD] %(levelname)s %(message)s")
    try:
        timeout = settings.result_timeout()
        delay = settings.startup_delay()
        addresses = args.workers or ([] if args.local_workers else settings.build_workers())
    except ConfigurationError as e:
        parser.error(str(e))

    try:
        if args.local_workers:
            with LocalCluster(args.local_workers) as cluster:
                t0 = time.monotonic()
                results = run(args.files, cluster.addresses, args.chunk_bytes, timeout)
                t1 = time.monotonic()
        else:
            if delay:
                logger.info("Waiting %.0fs for workers...", delay)
                time.sleep(delay)
            t0 = time.monotonic()
            results = run(args.files, addresses, args.chunk_bytes, timeout)
            t1 = time.monotonic()
    except WordStatsError as e:
        print(f"{parser.prog}: {e}", file=sys.stderr)
        return 1

    print_results(results, t1 - t0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
