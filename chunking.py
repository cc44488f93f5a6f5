"""
Split files into chunks that never cut a word in two.

Each read asks for ``capacity - RESERVE_BYTES`` bytes. A full read is
trimmed back to its last whitespace byte and the file cursor is moved back
over the cut-off tail, so the next read starts on the word the trimmed
chunk left out.
"""

import io
import logging
from typing import NamedTuple

from errors import ConfigurationError, FileAccessError
from protocol import ChunkMessage, PartialResult
from settings import SPACE, ChunkConfig

logger = logging.getLogger(__name__)

WHITESPACE = frozenset(b" \t\n\r\x0b\x0c")


class Split(NamedTuple):
    chunk: bytes
    consumed: int
    finished: bool
    carry: int      # byte preceding the chunk, sent along with it
    trailing: int   # last byte of the chunk, carry for the next one


def split_chunk(raw: bytes, requested: int, carry: int, at_eof: bool = False) -> Split:
    """
    Turn one raw read into an effective chunk.

    A read shorter than requested, or one that reached the end of the
    stream, is the last chunk and is kept whole. Anything else is cut just
    after its last whitespace byte.
    """
    if len(raw) < requested or at_eof:
        trailing = raw[-1] if raw else carry
        return Split(raw, len(raw), True, carry, trailing)

    for index in range(len(raw) - 1, -1, -1):
        if raw[index] in WHITESPACE:
            chunk = raw[: index + 1]
            return Split(chunk, len(chunk), False, carry, chunk[-1])

    raise ConfigurationError(
        f"found a word longer than {requested} bytes; use a larger chunk size"
    )


class FileJob:
    """One input file being cut into chunks by the coordinator."""

    def __init__(self, path: str, config: ChunkConfig):
        self.path = path
        self.config = config
        self.carry = SPACE
        self.finished = False
        self.totals = PartialResult()
        self.chunks = 0
        self._fp: io.BufferedReader | None = None

    def open(self) -> "FileJob":
        try:
            self._fp = open(self.path, "rb")
        except OSError as e:
            raise FileAccessError(f"could not open file {self.path}: {e.strerror}") from e
        return self

    def close(self):
        if self._fp is not None:
            self._fp.close()
            self._fp = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    def next_chunk(self) -> ChunkMessage:
        requested = self.config.read_size
        try:
            raw = self._fp.read(requested)
            at_eof = len(raw) == requested and not self._fp.peek(1)
            split = split_chunk(raw, requested, self.carry, at_eof)
            if split.consumed < len(raw):
                self._fp.seek(split.consumed - len(raw), io.SEEK_CUR)
        except OSError as e:
            raise FileAccessError(f"could not read file {self.path}: {e}") from e

        self.carry = split.trailing
        self.finished = split.finished
        self.chunks += 1
        logger.debug("%s: chunk %d, %d bytes", self.path, self.chunks, len(split.chunk))
        return ChunkMessage(split.chunk, split.carry)

    def add(self, result: PartialResult):
        self.totals += result
