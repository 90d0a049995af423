"""Key/value stores for the last processed block."""

import os
import tempfile
from typing import Protocol

import yaml

CHECKPOINT_KEY = "lastBlockNumber"


class CheckpointStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...


class MemoryCheckpointStore:
    def __init__(self, initial: dict[str, str] | None = None):
        self.data = dict(initial or {})
        self.writes = 0

    def get(self, key: str) -> str | None:
        return self.data.get(key)

    def set(self, key: str, value: str) -> None:
        self.data[key] = value
        self.writes += 1


class FileCheckpointStore:
    """YAML file holding a flat mapping of string keys to string values.

    Writes go to a temporary file that is renamed over the target, so an
    interrupted process leaves either the old or the new checkpoint.
    """

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path) as f:
            return yaml.safe_load(f) or {}

    def get(self, key: str) -> str | None:
        value = self._load().get(key)
        return None if value is None else str(value)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = str(value)
        directory = os.path.dirname(os.path.abspath(self.path))
        fd, tmp = tempfile.mkstemp(dir=directory, prefix=".checkpoint-")
        try:
            with os.fdopen(fd, "w") as f:
                yaml.safe_dump(data, f, default_flow_style=False)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise


def load_checkpoint(store: CheckpointStore) -> int | None:
    raw = store.get(CHECKPOINT_KEY)
    if raw is None or str(raw).strip() == "":
        return None
    return int(raw)


def save_checkpoint(store: CheckpointStore, block: int) -> None:
    store.set(CHECKPOINT_KEY, str(block))
