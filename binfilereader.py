"""Random-access fixed-width reads over a file or an in-memory buffer."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import numpy as np

from pvl_errors import LabelError, PvlEofError

ByteOrder = Literal[">", "<"]


class BinFileReader:
    """Read typed scalars at absolute byte offsets.

    Files are memory-mapped read-only; nothing is cached, every read goes back
    to the mapping. ``close()`` (or leaving a ``with`` block)
    releases the mapping.
    """

    def __init__(self, source: str | Path | bytes | bytearray | memoryview) -> None:
        if isinstance(source, (bytes, bytearray, memoryview)):
            self.path = None
            self._data = np.frombuffer(source, dtype=np.uint8)
            return

        self.path = Path(source)
        try:
            if self.path.stat().st_size == 0:
                self._data = np.zeros(0, dtype=np.uint8)
            else:
                self._data = np.memmap(self.path, dtype=np.uint8, mode="r")
        except (OSError, ValueError) as e:
            raise LabelError(f"Failed to open {self.path}: {e}") from e

    def __len__(self) -> int:
        return int(self._data.shape[0])

    def close(self) -> None:
        """Drop the file mapping; later reads see an empty buffer."""
        self._data = np.zeros(0, dtype=np.uint8)

    def __enter__(self) -> "BinFileReader":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def read(self, offset: int, dtype: str) -> np.generic:
        dt = np.dtype(dtype)
        end = offset + dt.itemsize
        if offset < 0 or end > len(self):
            raise PvlEofError(f"Read of {dt.itemsize} bytes at offset {offset} is outside {len(self)} bytes")
        return self._data[offset:end].view(dt)[0]

    def read_bytes(self, offset: int, count: int) -> bytes:
        if offset < 0 or offset + count > len(self):
            raise PvlEofError(f"Read of {count} bytes at offset {offset} is outside {len(self)} bytes")
        return self._data[offset:offset + count].tobytes()

    def read_u8(self, offset: int) -> int:
        return int(self.read(offset, "u1"))

    def read_u16(self, offset: int, order: ByteOrder = ">") -> int:
        return int(self.read(offset, f"{order}u2"))

    def read_i16(self, offset: int, order: ByteOrder = ">") -> int:
        return int(self.read(offset, f"{order}i2"))

    def read_i32(self, offset: int, order: ByteOrder = ">") -> int:
        return int(self.read(offset, f"{order}i4"))

    def read_i64(self, offset: int, order: ByteOrder = ">") -> int:
        return int(self.read(offset, f"{order}i8"))

    def read_f32(self, offset: int, order: ByteOrder = ">") -> float:
        return float(self.read(offset, f"{order}f4"))

    def read_f64(self, offset: int, order: ByteOrder = ">") -> float:
        return float(self.read(offset, f"{order}f8"))
