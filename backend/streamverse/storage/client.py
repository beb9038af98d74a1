from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Protocol

import requests

from streamverse.errors import StorageUnavailable

logger = logging.getLogger(__name__)

CID_RE = re.compile(r"^[A-Za-z0-9]{8,128}$")


class ChunkStorage(Protocol):
    def read_range(self, cid: str, start: int, end: int) -> bytes:
        """Bytes ``[start, end)`` of the object addressed by ``cid``."""
        ...


class IpfsStorage:
    def __init__(self, api_url: str, timeout: float = 15.0, session: requests.Session | None = None):
        self.api = api_url.rstrip("/")
        self.timeout = timeout
        self._http = session or requests.Session()

    def read_range(self, cid: str, start: int, end: int) -> bytes:
        length = max(0, int(end) - int(start))
        if length == 0:
            return b""
        try:
            r = self._http.post(
                f"{self.api}/cat",
                params={"arg": cid, "offset": int(start), "length": length},
                timeout=self.timeout,
            )
            r.raise_for_status()
        except requests.RequestException as e:
            logger.warning("ipfs cat failed for %s [%d, %d): %s", cid, start, end, e)
            raise StorageUnavailable() from e
        data = r.content
        if len(data) != length:
            logger.warning("ipfs returned %d bytes for %s, expected %d", len(data), cid, length)
            raise StorageUnavailable("storage_short_read")
        return data

    def ping(self) -> bool:
        r = self._http.post(f"{self.api}/id", timeout=3)
        r.raise_for_status()
        return True


class LocalFileStorage:
    """Objects stored as ``<root>/<cid>``. Used in development and tests."""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _path(self, cid: str) -> Path:
        if not CID_RE.match(cid):
            raise StorageUnavailable("bad_cid")
        return self.root / cid

    def read_range(self, cid: str, start: int, end: int) -> bytes:
        length = max(0, int(end) - int(start))
        path = self._path(cid)
        try:
            with path.open("rb") as f:
                f.seek(int(start))
                data = f.read(length)
        except OSError as e:
            logger.warning("local storage read failed for %s: %s", cid, e)
            raise StorageUnavailable() from e
        if len(data) != length:
            raise StorageUnavailable("storage_short_read")
        return data

    def ping(self) -> bool:
        return self.root.is_dir()
