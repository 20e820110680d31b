from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import numpy as np

RGBA = tuple[int, int, int, int]


class PixelSource(Protocol):
    width: int
    height: int

    def get_pixel(self, x: int, y: int) -> RGBA:
        """Return the (r, g, b, a) channels of the pixel at column x, row y."""


@dataclass(frozen=True)
class ArrayPixelSource:
    """Pixel source backed by an ``(H, W, 3)`` or ``(H, W, 4)`` uint8 array."""

    rgba: np.ndarray

    def __post_init__(self) -> None:
        array = np.asarray(self.rgba)
        if array.ndim != 3 or array.shape[2] not in (3, 4):
            raise ValueError("pixel array must have shape (H, W, 3) or (H, W, 4)")
        if array.dtype != np.uint8:
            raise ValueError(f"pixel array must be uint8, got {array.dtype}")
        if array.shape[2] == 3:
            alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
            array = np.concatenate([array, alpha], axis=2)
        object.__setattr__(self, "rgba", array)

    @property
    def width(self) -> int:
        return int(self.rgba.shape[1])

    @property
    def height(self) -> int:
        return int(self.rgba.shape[0])

    def get_pixel(self, x: int, y: int) -> RGBA:
        r, g, b, a = self.rgba[y, x]
        return int(r), int(g), int(b), int(a)

    @classmethod
    def from_buffer(cls, buffer: bytes, width: int, height: int) -> ArrayPixelSource:
        """Wrap a raw row-major RGBA byte buffer."""
        expected = width * height * 4
        if len(buffer) < expected:
            raise ValueError(
                f"buffer holds {len(buffer)} bytes, expected {expected} for {width}x{height} RGBA"
            )
        array = np.frombuffer(buffer, dtype=np.uint8, count=expected)
        return cls(array.reshape(height, width, 4))
