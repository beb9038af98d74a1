from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Protocol


class ChunkSink(Protocol):
    def write(self, index: int, data: bytes) -> None: ...


class BufferSink:
    """Keeps delivered chunks in memory. Indices must arrive strictly in order from ``start_index``."""

    def __init__(self, start_index: int = 0) -> None:
        self.start_index = start_index
        self.chunks: list[bytes] = []

    @property
    def next_index(self) -> int:
        return self.start_index + len(self.chunks)

    def write(self, index: int, data: bytes) -> None:
        if index != self.next_index:
            raise ValueError(f"out of order chunk {index}, expected {self.next_index}")
        self.chunks.append(data)

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


class FileSink:
    """Appends chunks to a file; an existing file is a resume point."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._fh: BinaryIO | None = None

    def write(self, index: int, data: bytes) -> None:
        if self._fh is None:
            self._fh = self.path.open("ab")
        self._fh.write(data)
        self._fh.flush()

    def close(self) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None
