from __future__ import annotations

import re

import numpy as np

from .models import LabColor, RGBColor, ShadeEngineError, XYZColor

_HEX_PATTERN = re.compile(r"^#?[0-9A-Fa-f]{6}$")

# sRGB -> XYZ, D65, 2 degree observer.
_SRGB_TO_XYZ = np.array(
    [
        [0.4124564, 0.3575761, 0.1804375],
        [0.2126729, 0.7151522, 0.0721750],
        [0.0193339, 0.1191920, 0.9503041],
    ],
    dtype=np.float64,
)
D65_WHITE = np.array([95.047, 100.0, 108.883], dtype=np.float64)

_EPSILON = 216.0 / 24389.0
_KAPPA = 24389.0 / 27.0


class InvalidHexFormat(ShadeEngineError, ValueError):
    def __init__(self, value: object) -> None:
        super().__init__(f"invalid hex color {value!r}, expected #RRGGBB")
        self.value = value


def hex_to_rgb(value: str) -> RGBColor:
    if not isinstance(value, str) or not _HEX_PATTERN.match(value.strip()):
        raise InvalidHexFormat(value)

    normalized = value.strip().lstrip("#")
    return RGBColor(
        int(normalized[0:2], 16),
        int(normalized[2:4], 16),
        int(normalized[4:6], 16),
    )


def rgb_to_hex(rgb: RGBColor | tuple[int, int, int]) -> str:
    if not isinstance(rgb, RGBColor):
        rgb = RGBColor(*rgb)
    return rgb.hex


def _srgb_to_linear(channels: np.ndarray) -> np.ndarray:
    return np.where(
        channels > 0.04045,
        np.power((channels + 0.055) / 1.055, 2.4),
        channels / 12.92,
    )


def _lab_f(t: np.ndarray) -> np.ndarray:
    return np.where(t > _EPSILON, np.cbrt(t), (_KAPPA * t + 16.0) / 116.0)


def rgb_array_to_xyz(rgb: np.ndarray) -> np.ndarray:
    """Convert ``(..., 3)`` 8-bit sRGB values to XYZ on the 0-100 scale."""
    linear = _srgb_to_linear(np.asarray(rgb, dtype=np.float64) / 255.0)
    return linear @ _SRGB_TO_XYZ.T * 100.0


def xyz_array_to_lab(xyz: np.ndarray) -> np.ndarray:
    f = _lab_f(np.asarray(xyz, dtype=np.float64) / D65_WHITE)
    fx, fy, fz = f[..., 0], f[..., 1], f[..., 2]
    return np.stack(
        [116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz)], axis=-1
    )


def rgb_array_to_lab(rgb: np.ndarray) -> np.ndarray:
    return xyz_array_to_lab(rgb_array_to_xyz(rgb))


def rgb_to_xyz(rgb: RGBColor) -> XYZColor:
    x, y, z = rgb_array_to_xyz(np.asarray(rgb.as_tuple()))
    return XYZColor(float(x), float(y), float(z))


def xyz_to_lab(xyz: XYZColor) -> LabColor:
    l_star, a_star, b_star = xyz_array_to_lab(np.asarray([xyz.x, xyz.y, xyz.z]))
    return LabColor(float(l_star), float(a_star), float(b_star))


def rgb_to_lab(rgb: RGBColor) -> LabColor:
    return xyz_to_lab(rgb_to_xyz(rgb))


def hex_to_lab(value: str) -> LabColor:
    return rgb_to_lab(hex_to_rgb(value))
