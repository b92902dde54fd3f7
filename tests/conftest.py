import pytest

from submanagers import DatabaseConfig, DatabaseSubmanager
from stores import KeyValueStore


class ListLogger:
    """Collects log lines instead of emitting Qt signals."""

    def __init__(self):
        self.lines = []

    def log_message(self, msg):
        self.lines.append(str(msg))

    def contains(self, needle):
        return any(needle in line for line in self.lines)


@pytest.fixture
def logger():
    return ListLogger()


@pytest.fixture
def db(logger):
    manager = DatabaseSubmanager(DatabaseConfig(path=":memory:"), logger=logger)
    yield manager
    manager.close()


@pytest.fixture
def kv(db):
    return KeyValueStore(db)
