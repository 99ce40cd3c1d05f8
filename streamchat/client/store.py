"""Persistent store adapter for conversation snapshots.

The adapter only ever sees full snapshot copies. Storage problems are logged
and reported through ``on_error``; they never reach the conversation flow.

Layout (two independent entries, JSON-encoded):
    - ``selected-model``: the ModelId string
    - ``chat-history``: ``{"messages": [...], "model": "..."}``
"""

import json
import logging
import os
import uuid
from collections.abc import Callable, MutableMapping
from pathlib import Path
from typing import Any, Protocol

from streamchat.errors import StorageError
from streamchat.models.conversation import ConversationSnapshot
from streamchat.models.schemas import ModelId, resolve_model

logger = logging.getLogger(__name__)

CHAT_HISTORY_KEY = "chat-history"
SELECTED_MODEL_KEY = "selected-model"


class KeyValueStore(Protocol):
    """Durable string key-value storage."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MappingKeyValueStore:
    """Key-value store over any mutable mapping.

    With no mapping it is a plain in-memory store, the fallback for
    environments without durable storage. The UI passes NiceGUI's
    per-browser ``app.storage.user`` to get history that survives reloads.
    """

    def __init__(self, data: MutableMapping[str, Any] | None = None) -> None:
        self._data = data if data is not None else {}

    def get(self, key: str) -> str | None:
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """One file per key under a directory.

    Writes go to a temporary file that is then renamed over the target, so
    a reader sees either the old value or the new one.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def get(self, key: str) -> str | None:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp_path = self._root / f"{key}.{uuid.uuid4().hex}.tmp"
        try:
            tmp_path.write_text(value, encoding="utf-8")
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

    def delete(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)


class ConversationStore:
    """Saves and restores conversation snapshots.

    Args:
        backend: Where the entries live. Defaults to in-memory storage.
        on_error: Called with a StorageError whenever persistence fails.
    """

    def __init__(
        self,
        backend: KeyValueStore | None = None,
        on_error: Callable[[StorageError], None] | None = None,
    ) -> None:
        self._backend = backend if backend is not None else MappingKeyValueStore()
        self.on_error = on_error

    def _report(self, message: str, exc: Exception) -> None:
        logger.warning(f"{message}: {exc}")
        if self.on_error is not None:
            self.on_error(StorageError(f"{message}: {exc}"))

    def save(self, snapshot: ConversationSnapshot) -> bool:
        """Persist a full snapshot.

        The snapshot is serialized completely before the backend is touched.

        Returns:
            True if the snapshot was written.
        """
        try:
            payload = snapshot.model_dump_json(by_alias=True)
            self._backend.set(CHAT_HISTORY_KEY, payload)
        except Exception as e:
            self._report("Error saving chat history", e)
            return False
        return True

    def load(self) -> ConversationSnapshot | None:
        """Restore the stored snapshot.

        Returns:
            The snapshot, or None if it is missing or unreadable.
        """
        try:
            raw = self._backend.get(CHAT_HISTORY_KEY)
            if raw is None:
                return None
            return ConversationSnapshot.model_validate_json(raw)
        except Exception as e:
            self._report("Error loading chat history", e)
            return None

    def clear(self) -> bool:
        """Remove the stored snapshot. Safe to call when nothing is stored."""
        try:
            self._backend.delete(CHAT_HISTORY_KEY)
        except Exception as e:
            self._report("Error clearing chat history", e)
            return False
        return True

    def save_model(self, model: ModelId) -> bool:
        try:
            self._backend.set(SELECTED_MODEL_KEY, json.dumps(model.value))
        except Exception as e:
            self._report("Error saving model selection", e)
            return False
        return True

    def load_model(self) -> ModelId | None:
        """Return the stored model selection, or None if nothing usable is stored."""
        try:
            raw = self._backend.get(SELECTED_MODEL_KEY)
            if raw is None:
                return None
            value = json.loads(raw)
        except Exception as e:
            self._report("Error loading model selection", e)
            return None
        if not isinstance(value, str) or value not in {m.value for m in ModelId}:
            logger.info(f"Ignoring unsupported stored model {value!r}")
            return None
        return resolve_model(value)
