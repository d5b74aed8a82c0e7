from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path

import keyring
from keyring.errors import PasswordDeleteError

from auth.errors import InvalidArgumentError

LOGGER = logging.getLogger(__name__)

CREDENTIAL_SERVICE_NAME = "lskmcp"
SESSION_TOKEN_KEY = "BackendApiSessionToken"


class CredentialStore(ABC):
    """Durable storage for the backend session token.

    Reads never raise: storage failures are logged and reported as "no token".
    Writes reject blank tokens but only log storage failures.
    """

    def get(self) -> str | None:
        try:
            token = self._read()
        except Exception:
            LOGGER.exception("Error retrieving session token from %s", self.describe())
            return None

        if token is None:
            LOGGER.debug("No stored session token in %s", self.describe())
            return None
        if not token.strip():
            LOGGER.warning("Stored session token in %s is empty; ignoring it.", self.describe())
            return None
        return token

    def set(self, token: str | None) -> None:
        if token is None or not token.strip():
            raise InvalidArgumentError("Cannot store a null or empty session token.")
        try:
            self._write(token)
        except Exception:
            LOGGER.exception("Error storing session token in %s", self.describe())
            return
        LOGGER.info("Session token stored in %s.", self.describe())

    def clear(self) -> None:
        try:
            self._delete()
        except Exception:
            LOGGER.exception("Error clearing session token in %s", self.describe())
            return
        LOGGER.info("Session token cleared from %s.", self.describe())

    def is_signed_in(self) -> bool:
        return self.get() is not None

    def describe(self) -> str:
        return type(self).__name__

    @abstractmethod
    def _read(self) -> str | None:
        raise NotImplementedError

    @abstractmethod
    def _write(self, token: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def _delete(self) -> None:
        raise NotImplementedError


class MemoryCredentialStore(CredentialStore):
    def __init__(self) -> None:
        self._token: str | None = None

    def _read(self) -> str | None:
        return self._token

    def _write(self, token: str) -> None:
        self._token = token

    def _delete(self) -> None:
        self._token = None


class KeyringCredentialStore(CredentialStore):
    def __init__(
        self,
        service: str = CREDENTIAL_SERVICE_NAME,
        key: str = SESSION_TOKEN_KEY,
    ) -> None:
        self.service = service
        self.key = key

    def describe(self) -> str:
        return f"keyring service={self.service!r} key={self.key!r}"

    def _read(self) -> str | None:
        return keyring.get_password(self.service, self.key)

    def _write(self, token: str) -> None:
        keyring.set_password(self.service, self.key, token)

    def _delete(self) -> None:
        try:
            keyring.delete_password(self.service, self.key)
        except PasswordDeleteError:
            LOGGER.debug("No keyring entry to delete for %s", self.describe())


class FileCredentialStore(CredentialStore):
    """JSON file store laid out as ``{namespace: {key: token}}``.

    Only this store's own key is touched; other namespaces and keys in the
    same file are preserved across writes.
    """

    def __init__(
        self,
        path: str | Path = ".lsk_tokens.json",
        *,
        namespace: str = CREDENTIAL_SERVICE_NAME,
        key: str = SESSION_TOKEN_KEY,
    ) -> None:
        self._path = Path(path)
        self.namespace = namespace
        self.key = key
        self._lock = threading.Lock()

    def describe(self) -> str:
        return f"file {self._path} namespace={self.namespace!r}"

    def _read(self) -> str | None:
        with self._lock:
            entries = self._read_all().get(self.namespace, {})
        token = entries.get(self.key)
        if token is not None and not isinstance(token, str):
            raise RuntimeError("Stored session token must be a string.")
        return token

    def _write(self, token: str) -> None:
        with self._lock:
            all_entries = self._read_all()
            all_entries.setdefault(self.namespace, {})[self.key] = token
            self._write_all(all_entries)

    def _delete(self) -> None:
        with self._lock:
            all_entries = self._read_all()
            entries = all_entries.get(self.namespace)
            if not entries or self.key not in entries:
                return
            del entries[self.key]
            if not entries:
                del all_entries[self.namespace]
            self._write_all(all_entries)

    def _read_all(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}

        raw = json.loads(self._path.read_text(encoding="utf-8"))
        if not isinstance(raw, dict) or not all(isinstance(v, dict) for v in raw.values()):
            raise RuntimeError("Credential file is invalid; expected namespaced JSON objects.")
        return raw

    def _write_all(self, payload: dict[str, dict]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f"{self._path.name}.",
            suffix=".tmp",
            dir=self._path.parent,
        )
        tmp_path = Path(tmp_name)

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self._path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()


def build_credential_store(backend: str, *, path: str | Path | None = None) -> CredentialStore:
    if backend == "keyring":
        return KeyringCredentialStore()
    if backend == "file":
        return FileCredentialStore(path or ".lsk_tokens.json")
    if backend == "memory":
        return MemoryCredentialStore()
    raise ValueError(f"Unknown credential backend: {backend!r}")
