"""Perceptual color differences between CIELAB colors.

Both metrics work on numpy arrays with shape ``(..., 3)`` and broadcast like
:func:`numpy.subtract`; the scalar helpers wrap them for single
:class:`LabColor` pairs.
"""
from __future__ import annotations

import numpy as np
from skimage.color import deltaE_ciede2000

from .models import LabColor


def delta_e_76_array(lab1: np.ndarray, lab2: np.ndarray) -> np.ndarray:
    diff = np.asarray(lab1, dtype=np.float64) - np.asarray(lab2, dtype=np.float64)
    return np.sqrt(np.sum(np.square(diff), axis=-1))


def delta_e_2000_array(
    lab1: np.ndarray,
    lab2: np.ndarray,
    k_l: float = 1.0,
    k_c: float = 1.0,
    k_h: float = 1.0,
) -> np.ndarray:
    """CIEDE2000 color difference (Sharma, Wu and Dalal, 2005).

    Hue is taken as 0 for achromatic colors, so grays compare without error.
    """
    lab1, lab2 = np.broadcast_arrays(
        np.asarray(lab1, dtype=np.float64), np.asarray(lab2, dtype=np.float64)
    )
    return deltaE_ciede2000(lab1, lab2, kL=k_l, kC=k_c, kH=k_h, channel_axis=-1)


def delta_e_76(lab1: LabColor, lab2: LabColor) -> float:
    return float(delta_e_76_array(lab1.as_tuple(), lab2.as_tuple()))


def delta_e_2000(lab1: LabColor, lab2: LabColor) -> float:
    first = np.asarray([lab1.as_tuple()], dtype=np.float64)
    second = np.asarray([lab2.as_tuple()], dtype=np.float64)
    return float(delta_e_2000_array(first, second)[0])
