"""Error types shared by the coordinator and the workers."""


class WordStatsError(Exception):
    """Base class for every fatal condition in a word-stats run."""


class ConfigurationError(WordStatsError):
    """Bad chunk size, too few workers, or a word that cannot fit a chunk."""


class FileAccessError(WordStatsError):
    """An input file could not be opened or read."""


class ProtocolError(WordStatsError):
    """A message did not have the shape both ends agreed on."""


class WorkerUnavailableError(WordStatsError):
    """A worker did not answer within the result timeout."""
