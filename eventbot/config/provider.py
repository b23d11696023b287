"""Snapshot-style JSON config loading.

A provider always holds a complete, validated model. A bad edit on disk is
logged and ignored so the previous snapshot keeps serving.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from collections.abc import Callable
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from ..logging_config import log_structured_error

M = TypeVar("M", bound=BaseModel)


class JsonConfigProvider(Generic[M]):
    """Loads one JSON file into a pydantic model and hands out snapshots.

    Args:
        path: JSON file to read.
        model: Pydantic model class the file is validated against.
        default_factory: Produces the snapshot used when the file is missing.
        on_reload: Optional callback invoked with every newly loaded snapshot.
    """

    def __init__(
        self,
        path: str,
        model: type[M],
        default_factory: Callable[[], M] | None = None,
        on_reload: Callable[[M], Any] | None = None,
    ) -> None:
        self.path = path
        self._model = model
        self._default_factory = default_factory or model
        self._on_reload = on_reload
        self._lock = threading.Lock()
        self._current: M = self._default_factory()
        self.load()

    @property
    def filename(self) -> str:
        return os.path.basename(self.path)

    def snapshot(self) -> M:
        with self._lock:
            return self._current

    def set_on_reload(self, callback: Callable[[M], Any] | None) -> None:
        self._on_reload = callback

    def load(self) -> bool:
        """Read the file into a new snapshot.

        Returns:
            bool: True when a new snapshot was installed.
        """
        try:
            new = self._read()
        except (OSError, ValueError, ValidationError) as e:
            log_structured_error(
                "config_load",
                f"Failed to load {self.path}, keeping previous config",
                exception=e,
                context={"path": self.path},
            )
            return False
        with self._lock:
            self._current = new
        logging.info(f"📁 Loaded {self.filename} from {self.path}")
        return True

    def reload(self) -> bool:
        """Load the file again and notify the reload callback on success."""
        if not self.load():
            return False
        if self._on_reload is not None:
            self._on_reload(self.snapshot())
        return True

    def _read(self) -> M:
        if not os.path.exists(self.path):
            logging.info(f"📁 {self.filename} not found, using defaults")
            return self._default_factory()
        with open(self.path, encoding="utf-8") as f:
            raw = json.load(f)
        if raw is None:
            return self._default_factory()
        return self._model.model_validate(raw)


def validate_file(path: str, model: type[BaseModel]) -> str | None:
    """Return an error description for ``path``, or None if it is valid or absent."""
    if not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            model.model_validate(json.load(f))
    except (OSError, ValueError, ValidationError) as e:
        return f"{os.path.basename(path)}: {e}"
    return None
