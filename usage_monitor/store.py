"""Credential stores.

Both stores keep entries under ``api_keys:<id>`` names, the same layout as a
prefix-listed key-value namespace. list_all() returns credentials in insertion order.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Optional, Protocol

from usage_monitor.errors import KeyStoreError
from usage_monitor.models import Credential

KEY_PREFIX = "api_keys:"


class KeyStore(Protocol):
    def list_all(self) -> list[Credential]: ...

    def get(self, key_id: str) -> Optional[str]: ...

    def exists(self, secret: str) -> bool: ...

    def add(self, key_id: str, secret: str) -> None: ...

    def delete(self, key_id: str) -> None: ...


class MemoryKeyStore:
    """Dict-backed store for tests and one-shot runs."""

    def __init__(self, credentials: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = {}
        for key_id, secret in (credentials or {}).items():
            self.add(key_id, secret)

    def list_all(self) -> list[Credential]:
        return [
            Credential(id=name[len(KEY_PREFIX):], secret=value)
            for name, value in self._data.items()
            if name.startswith(KEY_PREFIX) and value
        ]

    def get(self, key_id: str) -> Optional[str]:
        return self._data.get(KEY_PREFIX + key_id)

    def exists(self, secret: str) -> bool:
        return any(c.secret == secret for c in self.list_all())

    def add(self, key_id: str, secret: str) -> None:
        self._data[KEY_PREFIX + key_id] = secret

    def delete(self, key_id: str) -> None:
        self._data.pop(KEY_PREFIX + key_id, None)


class JsonKeyStore(MemoryKeyStore):
    """JSON-file store. Every read reloads the file; every write replaces it atomically."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__()

    def _load(self) -> dict[str, str]:
        if self.path.is_symlink():
            raise KeyStoreError(f"Refusing to read key store through symlink: {self.path}")
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise KeyStoreError(f"Cannot read key store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise KeyStoreError(f"Key store {self.path} is not a JSON object")
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        if self.path.is_symlink():
            raise KeyStoreError(f"Refusing to write key store through symlink: {self.path}")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=".keys-", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.chmod(tmp, 0o600)
                os.replace(tmp, self.path)
            except BaseException:
                if os.path.exists(tmp):
                    os.unlink(tmp)
                raise
        except OSError as exc:
            raise KeyStoreError(f"Cannot write key store {self.path}: {exc}") from exc

    def list_all(self) -> list[Credential]:
        self._data = self._load()
        return super().list_all()

    def get(self, key_id: str) -> Optional[str]:
        self._data = self._load()
        return super().get(key_id)

    def add(self, key_id: str, secret: str) -> None:
        data = self._load()
        data[KEY_PREFIX + key_id] = secret
        self._save(data)
        self._data = data

    def delete(self, key_id: str) -> None:
        data = self._load()
        if data.pop(KEY_PREFIX + key_id, None) is not None:
            self._save(data)
        self._data = data
