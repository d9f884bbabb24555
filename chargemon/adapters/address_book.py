from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Union

from chargemon.domain.discovery import is_ipv4
from chargemon.domain.errors import PersistenceError
from chargemon.domain.ports import AddressStorePort

NAMESPACE = "ip_scanner"
KEY_SAVED_IP = "saved_ip"
FILENAME = "address_book.json"


class AddressBook(AddressStorePort):
    """Durable store for the last confirmed hub address (one JSON document).

    The document is namespaced (``{"ip_scanner": {"saved_ip": "..."}}``) so
    other small records can share the file; writes preserve foreign keys.
    """

    def __init__(
        self,
        root_dir: Union[str, Path] = ".",
        *,
        namespace: str = NAMESPACE,
        key: str = KEY_SAVED_IP,
        filename: str = FILENAME,
    ) -> None:
        self.root = Path(root_dir)
        self.path = self.root / filename
        self.namespace = namespace
        self.key = key
        self._log = logging.getLogger(__name__)

    # ---- AddressStorePort ----
    def get(self) -> Optional[str]:
        section = self._load().get(self.namespace)
        if section is None:
            return None
        if not isinstance(section, dict):
            raise PersistenceError("address book section is not an object", context=str(self.path))
        value = section.get(self.key)
        if not value:
            return None
        if not isinstance(value, str) or not is_ipv4(value):
            raise PersistenceError(f"stored address is not IPv4: {value!r}", context=str(self.path))
        return value

    def set(self, address: str) -> None:
        """Overwrite the stored address; durable once this returns."""
        if not is_ipv4(address):
            raise ValueError(f"not an IPv4 address: {address!r}")
        try:
            doc = self._load()
        except PersistenceError as exc:
            # an unreadable document is replaced wholesale
            self._log.warning("Discarding unreadable address book: %s", exc)
            doc = {}
        section = doc.get(self.namespace)
        if not isinstance(section, dict):
            section = {}
        section[self.key] = address.strip()
        doc[self.namespace] = section
        self._write_atomic(doc)
        self._log.info("Saved hub address %s to %s", address, self.path)

    def clear(self) -> None:
        doc = self._load()
        section = doc.get(self.namespace)
        if isinstance(section, dict) and self.key in section:
            section.pop(self.key)
            self._write_atomic(doc)

    # ---- file helpers ----
    def _load(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as exc:
            raise PersistenceError(f"cannot read address book: {exc}", context=str(self.path)) from exc
        if not isinstance(data, dict):
            raise PersistenceError("address book is not a JSON object", context=str(self.path))
        return data

    def _write_atomic(self, doc: Dict[str, Any]) -> None:
        # temp file + fsync + rename: readers see the old or the new document, never a torn one
        tmp_name = None
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".address_book.", suffix=".tmp", dir=str(self.root))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
            tmp_name = None
            self._fsync_dir()
        except OSError as exc:
            raise PersistenceError(f"cannot write address book: {exc}", context=str(self.path)) from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    pass

    def _fsync_dir(self) -> None:
        if os.name != "posix":
            return
        try:
            dir_fd = os.open(str(self.root), os.O_RDONLY)
        except OSError:
            return
        try:
            os.fsync(dir_fd)
        except OSError:
            pass
        finally:
            os.close(dir_fd)


__all__ = ["AddressBook", "KEY_SAVED_IP", "NAMESPACE"]
