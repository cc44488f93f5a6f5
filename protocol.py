"""
Message records exchanged between the coordinator and the workers.

Everything that crosses the wire is a plain int, bytes or tuple so rpyc
can ship it by value with pickling disabled.
"""

from enum import IntEnum
from typing import NamedTuple

from errors import ProtocolError


class WorkStatus(IntEnum):
    MORE_WORK = 1
    ALL_DONE = 2


class PartialResult(NamedTuple):
    word_count: int = 0
    vowel_start_count: int = 0
    consonant_end_count: int = 0

    def __add__(self, other):
        return PartialResult(*(a + b for a, b in zip(self, other)))

    @classmethod
    def from_wire(cls, value) -> "PartialResult":
        """Validate a worker reply and turn it into a PartialResult."""
        try:
            fields = tuple(value)
        except TypeError:
            raise ProtocolError(f"expected 3 counts, got {value!r}") from None
        if len(fields) != 3 or not all(
            type(f) is int and f >= 0 for f in fields
        ):
            raise ProtocolError(f"expected 3 non-negative counts, got {value!r}")
        return cls(*fields)


class ChunkMessage(NamedTuple):
    """One unit of work: the effective chunk plus the byte before it."""

    chunk: bytes
    carry: int
    status: WorkStatus = WorkStatus.MORE_WORK

    @property
    def size(self) -> int:
        return len(self.chunk)

    def to_wire(self, capacity: int) -> tuple[int, bytes, int, int]:
        """(status, padded buffer, effective size, carry) in send order."""
        if self.size > capacity:
            raise ProtocolError(
                f"chunk of {self.size} bytes exceeds capacity {capacity}"
            )
        buffer = self.chunk + bytes(capacity - self.size)
        return int(self.status), buffer, self.size, self.carry


def check_chunk(capacity: int, buffer, size, carry) -> None:
    """Raise ProtocolError unless the chunk fields match the agreed capacity."""
    if not isinstance(buffer, bytes) or len(buffer) != capacity:
        length = len(buffer) if isinstance(buffer, bytes) else type(buffer).__name__
        raise ProtocolError(f"chunk buffer must be {capacity} bytes, got {length}")
    if type(size) is not int or not 0 <= size <= capacity:
        raise ProtocolError(f"effective size {size!r} outside 0..{capacity}")
    if type(carry) is not int or not 0 <= carry <= 0xFF:
        raise ProtocolError(f"carry byte {carry!r} outside 0..255")
