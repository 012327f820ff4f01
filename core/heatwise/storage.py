"""
File Storage

JSON persistence for the heating history and pickle persistence for the
per-room prediction models and their normalisation statistics.
"""

import json
import logging
import os
import pickle
import re
import tempfile
from pathlib import Path
from typing import Any, Optional

from .exceptions import PersistenceError

logger = logging.getLogger(__name__)


def _safe_name(room: str) -> str:
    return re.sub(r"[^A-Za-z0-9_-]", "_", room)


def _atomic_write(path: Path, payload: bytes):
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(payload)
        os.replace(tmp_path, path)
    except OSError:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


class HistoryFileStore:
    """Stores the exported heating history as a single JSON document."""

    def __init__(self, path: str):
        self.path = Path(path)

    def save(self, data: dict):
        try:
            _atomic_write(self.path, json.dumps(data).encode("utf-8"))
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to write history to {self.path}: {e}") from e
        logger.debug(f"Saved heating history to {self.path}")

    def load(self) -> Optional[dict]:
        """Return the stored history, or None if missing or unreadable."""
        if not self.path.exists():
            return None

        try:
            with open(self.path) as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Failed to read history from {self.path}: {e}")
            return None


class ModelFileStore:
    """Stores one pickled model plus a JSON stats file per room."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def model_path(self, room: str) -> Path:
        return self.directory / f"{_safe_name(room)}_model.pkl"

    def stats_path(self, room: str) -> Path:
        return self.directory / f"{_safe_name(room)}_stats.json"

    def save(self, room: str, model: Any, stats: dict):
        try:
            _atomic_write(self.model_path(room), pickle.dumps(model))
            _atomic_write(self.stats_path(room), json.dumps(stats).encode("utf-8"))
        except (OSError, pickle.PicklingError, TypeError, ValueError) as e:
            raise PersistenceError(f"Failed to save model for {room}: {e}") from e
        logger.info(f"Saved model for {room} to {self.directory}")

    def load(self, room: str) -> Optional[tuple[Any, dict]]:
        """Return (model, stats) for the room, or None if nothing is stored."""
        model_path = self.model_path(room)
        stats_path = self.stats_path(room)
        if not model_path.exists() or not stats_path.exists():
            return None

        try:
            with open(model_path, "rb") as f:
                model = pickle.load(f)
            with open(stats_path) as f:
                stats = json.load(f)
        except (OSError, pickle.UnpicklingError, EOFError, ValueError) as e:
            raise PersistenceError(f"Failed to load model for {room}: {e}") from e
        return model, stats

    def delete(self, room: str):
        for path in (self.model_path(room), self.stats_path(room)):
            if path.exists():
                path.unlink()
