from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, Optional, Set

from common import codec
from common.codec import check_serializable
from common.deep_crypto import DeepCrypto
from common.errors import DataboxError, NotInitializedError, NotSerializableError
from common.process import ProcessRunner

from .models import DataboxConfig


logger = logging.getLogger(__name__)


class AlreadyExistsError(DataboxError):
    """Raised by `set` when the key is already present."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Key already exists: {key}")
        self.key = key


class NotFoundError(DataboxError, KeyError):
    """Raised when an operation needs a key that is not present."""

    def __init__(self, key: str, hint: str = "") -> None:
        msg = f"Key does not exist: {key}"
        if hint:
            msg = f"{msg}. {hint}"
        DataboxError.__init__(self, msg)
        self.key = key

    def __str__(self) -> str:
        return self.args[0]


class CorruptStoreError(DataboxError):
    """The store file exists but is not a valid JSON object."""


class StoreIOError(DataboxError):
    """The store file could not be read or written."""


def _detached(value: Any) -> Any:
    # Fresh containers, with tuples turned into lists as they come back from disk
    return codec.decode(codec.encode(value))


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON
    raise ValueError(f"Invalid JSON constant {name}")


def _require_str_key(key: Any) -> None:
    if not isinstance(key, str):
        raise TypeError(f"Key must be a string, got {type(key).__name__}")


def _check_entry(key: str, value: Any) -> None:
    # Top-level keys follow the same rules as nested ones
    check_serializable({key: value})


class Databox:
    """
    Deeply encrypted persistent dictionary backed by a single JSON file.

    Every string in the stored tree (keys included) is encrypted individually
    by the configured external command on `save()`, and decrypted on `load()`.
    Numbers and booleans are stored in plaintext; None and empty containers
    round-trip through tagged placeholders.

    Usage
    - `Databox.open(config)` creates the storage directory and loads the file.
    - `set`/`update`/`remove`/`clear` persist immediately unless `save=False`.
    - All operations raise `DataboxError` subclasses on expected failures.

    Update policy: `update()` requires the key to exist (`NotFoundError`
    otherwise). Pass `create=True` to insert missing keys instead.

    A `Databox` must be loaded before use so that an empty in-memory tree can
    never overwrite an existing file; operations before `load()` raise
    `NotInitializedError`.
    """

    def __init__(self, config: DataboxConfig, *, runner: Optional[ProcessRunner] = None) -> None:
        self._config = config
        self._path = config.resolved_store_path()
        self._crypto = DeepCrypto(
            runner or ProcessRunner(timeout=config.command_timeout, temp_dir=config.temp_dir),
            encrypt_command=config.encryption_cmd,
            decrypt_command=config.decryption_cmd,
            public_key=config.public_key,
            private_key=config.private_key,
            strip_newline=config.strip_trailing_newline,
        )
        self._data: Dict[str, Any] = {}
        self._loaded = False
        self._lock = threading.RLock()

    # -------- Construction helpers --------
    @classmethod
    def open(cls, config: DataboxConfig, *, runner: Optional[ProcessRunner] = None) -> "Databox":
        """Create the storage directory if needed and load existing data."""
        box = cls(config, runner=runner)
        store_dir = os.path.dirname(box.path)
        if store_dir:
            try:
                os.makedirs(store_dir, exist_ok=True)
            except OSError as ex:
                raise StoreIOError(f"Failed to create storage directory: {store_dir}") from ex
        box.load()
        return box

    @property
    def config(self) -> DataboxConfig:
        return self._config

    @property
    def path(self) -> str:
        return self._path

    @property
    def loaded(self) -> bool:
        return self._loaded

    # -------- Persistence --------
    def load(self) -> None:
        """Read and decrypt the store file, replacing the in-memory tree.

        - Missing or empty file → empty store.
        - Raises CorruptStoreError if the file is not a JSON object, and
          DecryptionError if any leaf fails to decrypt. In both cases the
          in-memory tree is left as it was.
        """
        with self._lock:
            try:
                with open(self._path, "r", encoding="utf-8") as f:
                    raw = f.read()
            except FileNotFoundError:
                logger.info("No store file at %s; starting empty", self._path)
                self._replace({})
                return
            except OSError as ex:
                raise StoreIOError(f"Failed to read storage file: {self._path}") from ex

            if not raw.strip():
                self._replace({})
                return

            try:
                parsed = json.loads(raw, parse_constant=_reject_constant)
            except ValueError as ex:
                logger.warning("Store file %s is not valid JSON", self._path)
                raise CorruptStoreError(f"Failed to parse stored data: {ex}") from ex
            if not isinstance(parsed, dict):
                raise CorruptStoreError(
                    f"Failed to parse stored data: expected an object, got {type(parsed).__name__}"
                )

            decrypted = self._crypto.decrypt(parsed)
            if not isinstance(decrypted, dict):
                # A root placeholder decodes to None or an empty container
                decrypted = {}
            self._replace(decrypted)
            logger.info("Loaded %d keys from %s", len(decrypted), self._path)

    def save(self) -> None:
        """Encrypt the whole tree and write it to the store file.

        The file is replaced atomically; on any encryption failure nothing is
        written and the previous file stays intact.
        """
        with self._lock:
            self._ensure_loaded()
            encrypted = self._crypto.encrypt(self._data)
            try:
                payload = json.dumps(encrypted, separators=(",", ":"), allow_nan=False)
            except ValueError as ex:
                raise NotSerializableError(f"Cannot write non-finite floats: {ex}") from ex
            self._write_atomic(payload)
            logger.info("Saved %d keys to %s", len(self._data), self._path)

    # -------- Key/value API --------
    def exists(self, key: str) -> bool:
        _require_str_key(key)
        with self._lock:
            self._ensure_loaded()
            return key in self._data

    def get(self, key: str) -> Any:
        _require_str_key(key)
        with self._lock:
            self._ensure_loaded()
            if key not in self._data:
                raise NotFoundError(key)
            return copy.deepcopy(self._data[key])

    def keys(self) -> Set[str]:
        with self._lock:
            self._ensure_loaded()
            return set(self._data)

    def set(self, key: str, value: Any, *, save: bool = True) -> None:
        """Insert a new key; raises AlreadyExistsError if it is present."""
        _require_str_key(key)
        with self._lock:
            self._ensure_loaded()
            if key in self._data:
                raise AlreadyExistsError(key)
            _check_entry(key, value)
            self._commit({**self._data, key: _detached(value)}, save)

    def update(self, key: str, value: Any, *, save: bool = True, create: bool = False) -> None:
        """Replace the value of an existing key.

        Raises NotFoundError if the key is missing, unless `create=True`.
        """
        _require_str_key(key)
        with self._lock:
            self._ensure_loaded()
            if key not in self._data and not create:
                raise NotFoundError(key, "Use set() to create new keys")
            _check_entry(key, value)
            self._commit({**self._data, key: _detached(value)}, save)

    def remove(self, key: str, *, save: bool = True) -> None:
        _require_str_key(key)
        with self._lock:
            self._ensure_loaded()
            if key not in self._data:
                raise NotFoundError(key)
            data = dict(self._data)
            del data[key]
            self._commit(data, save)

    def clear(self, *, save: bool = True) -> None:
        with self._lock:
            self._ensure_loaded()
            self._commit({}, save)

    # -------- Internal --------
    def _ensure_loaded(self) -> None:
        if not self._loaded:
            raise NotInitializedError("Store not loaded. Call load() or Databox.open() first")

    def _commit(self, data: Dict[str, Any], save: bool) -> None:
        # The previous tree is restored if persisting the new one fails
        previous = self._data
        self._data = data
        if not save:
            return
        try:
            self.save()
        except DataboxError:
            self._data = previous
            raise

    def _replace(self, data: Dict[str, Any]) -> None:
        self._data = data
        self._loaded = True

    def _write_atomic(self, payload: str) -> None:
        store_dir = os.path.dirname(os.path.abspath(self._path))
        try:
            fd, tmp_path = tempfile.mkstemp(prefix=".databox-", suffix=".tmp", dir=store_dir)
        except OSError as ex:
            raise StoreIOError(f"Failed to open storage file: {self._path}") from ex
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as ex:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            logger.warning("Failed to write store file %s", self._path)
            raise StoreIOError(f"Failed to write storage file: {self._path}") from ex


__all__ = [
    "Databox",
    "AlreadyExistsError",
    "NotFoundError",
    "CorruptStoreError",
    "StoreIOError",
]
