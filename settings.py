import os
from dataclasses import dataclass

from errors import ConfigurationError


DEFAULT_CHUNK_BYTES = 4096
MIN_CHUNK_BYTES = 64
# bytes held back from every read for boundary lookback
RESERVE_BYTES = 7
MAX_FILES = 10
WORKER_PORT = 18861
RESULT_TIMEOUT = 60.0
SPACE = 0x20


@dataclass(frozen=True)
class ChunkConfig:
    """Chunk capacity agreed on by every participant at startup."""

    capacity: int = DEFAULT_CHUNK_BYTES

    @classmethod
    def validated(cls, capacity: int) -> "ChunkConfig":
        if capacity < MIN_CHUNK_BYTES:
            raise ConfigurationError(
                f"number of bytes must be greater or equal than {MIN_CHUNK_BYTES}"
            )
        return cls(capacity)

    @property
    def read_size(self) -> int:
        return self.capacity - RESERVE_BYTES


def parse_address(text: str, default_port: int = WORKER_PORT) -> tuple[str, int]:
    """'host' or 'host:port' -> (host, port)."""
    host, sep, port = text.strip().rpartition(":")
    if not sep:
        return text.strip(), default_port
    try:
        return host, int(port)
    except ValueError:
        raise ConfigurationError(f"invalid worker address {text!r}") from None


def _env(name: str, default: str, cast):
    text = os.environ.get(name, default)
    try:
        return cast(text)
    except ValueError:
        raise ConfigurationError(f"invalid {name} value {text!r}") from None


# worker list from env
def build_workers() -> list[tuple[str, int]]:
    hosts = os.environ.get("WORKER_HOSTS", "").strip()
    if hosts:
        return [parse_address(h) for h in hosts.split(",") if h.strip()]
    n = _env("NUM_WORKERS", "3", int)
    return [(f"worker-{i}", WORKER_PORT) for i in range(1, n + 1)]


def result_timeout() -> float | None:
    """Seconds to wait for one partial result; None means wait forever."""
    value = _env("RESULT_TIMEOUT", str(RESULT_TIMEOUT), float)
    return value if value > 0 else None


def startup_delay() -> float:
    return _env("STARTUP_DELAY", "0", float)
