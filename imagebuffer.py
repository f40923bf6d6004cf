"""In-memory multi-band image with PNG/TIFF export through OpenCV."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

import cv2
import numpy as np

from pvl_errors import LabelError, UnsupportedFormatError

BitDepth = Literal[8, 16]


class ImageBuffer:
    """Band-sequential float32 buffer, indexed ``[band, y, x]``."""

    def __init__(self, width: int, height: int, bands: int = 1) -> None:
        self.width = width
        self.height = height
        self.bands = bands
        self.data = np.zeros((bands, height, width), dtype=np.float32)

    def put(self, x: int, y: int, value: float, band: int = 0) -> None:
        self.data[band, y, x] = value

    def get(self, x: int, y: int, band: int = 0) -> float:
        return float(self.data[band, y, x])

    def normalize_between(self, low: float, high: float) -> None:
        """Linearly stretch all bands together into [low, high]."""
        if self.data.size == 0:
            return
        lo, hi = float(self.data.min()), float(self.data.max())
        if hi == lo:
            self.data[:] = low
            return
        self.data = ((self.data - lo) / (hi - lo) * (high - low) + low).astype(np.float32)

    def to_array(self, depth: BitDepth = 8) -> np.ndarray:
        """HWC (or HW for one band) integer array ready for cv2.imwrite."""
        if self.bands not in (1, 3):
            raise UnsupportedFormatError(f"Only 1- or 3-band images can be exported, not {self.bands}")
        dtype = np.uint8 if depth == 8 else np.uint16
        limit = np.iinfo(dtype).max
        img = np.clip(np.rint(self.data), 0, limit).astype(dtype)
        if self.bands == 1:
            return img[0]
        # RGB bands -> BGR channel order
        return np.stack([img[2], img[1], img[0]], axis=-1)

    def save(self, path: str | Path, depth: BitDepth = 8) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        if not cv2.imwrite(str(path), self.to_array(depth)):
            raise LabelError(f"Failed to write image {path}")
        return path
