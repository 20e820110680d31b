"""Skin tone sampling over a pixel source.

Pixels are visited on a regular grid, filtered with cheap channel rules that
reject transparent, green-dominant and blue-dominant pixels (backgrounds,
clothing), then ranked by CIELAB lightness. The representative tones are
read at fixed percentiles of the trimmed ranking rather than at the extremes,
so specular highlights and deep shadows do not leak into the result.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass

import numpy as np

from .colorspace import rgb_array_to_lab, rgb_to_lab
from .models import LabColor, RegionSample, RGBColor, ShadeEngineError
from .pixels import PixelSource

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplerConfig:
    target_samples: int = 1000
    min_alpha: int = 200
    dominance_ratio: float = 1.2
    dominance_floor: int = 80
    min_samples: int = 10
    outlier_percent: float = 5.0
    max_outlier_fraction: float = 0.25
    light_percentile: float = 0.95
    dark_percentile: float = 0.05


DEFAULT_SAMPLER_CONFIG = SamplerConfig()

# Region centres as fractions of (width, height) for a roughly centred,
# front-facing portrait.
FACE_REGIONS: dict[str, tuple[float, float]] = {
    "forehead": (0.50, 0.20),
    "left_cheek": (0.30, 0.55),
    "right_cheek": (0.70, 0.55),
    "chin": (0.50, 0.80),
}
REGION_BOX_RATIO = 0.10


class InsufficientSamples(ShadeEngineError, RuntimeError):
    def __init__(self, found: int, required: int) -> None:
        super().__init__(
            f"found {found} skin-colored pixels, need at least {required}; "
            "retake the photo with better lighting"
        )
        self.found = found
        self.required = required


@dataclass(frozen=True)
class SkinSample:
    lightest_hex: str
    darkest_hex: str
    lightest_lab: LabColor
    darkest_lab: LabColor
    visited: int
    accepted: int

    @property
    def coverage(self) -> float:
        if self.visited == 0:
            return 0.0
        return self.accepted / self.visited


def sampling_step(width: int, height: int, target_samples: int) -> int:
    return max(1, int(math.floor(math.sqrt(width * height / target_samples))))


def is_skin_candidate(
    r: int, g: int, b: int, a: int, config: SamplerConfig = DEFAULT_SAMPLER_CONFIG
) -> bool:
    if a < config.min_alpha:
        return False
    ratio = config.dominance_ratio
    floor = config.dominance_floor
    if g > r * ratio and g > b * ratio and g > floor:
        return False
    if b > r * ratio and b > g * ratio and b > floor:
        return False
    return True


def sample_skin_tones(
    source: PixelSource, config: SamplerConfig = DEFAULT_SAMPLER_CONFIG
) -> SkinSample:
    width, height = int(source.width), int(source.height)
    if width <= 0 or height <= 0:
        raise InsufficientSamples(0, config.min_samples)

    step = sampling_step(width, height, config.target_samples)
    accepted: list[tuple[int, int, int]] = []
    visited = 0
    for y in range(0, height, step):
        for x in range(0, width, step):
            visited += 1
            r, g, b, a = source.get_pixel(x, y)
            if is_skin_candidate(r, g, b, a, config):
                accepted.append((r, g, b))

    logger.debug(
        "sampled %d/%d pixels (step=%d) from %dx%d source",
        len(accepted),
        visited,
        step,
        width,
        height,
    )
    if len(accepted) < config.min_samples:
        raise InsufficientSamples(len(accepted), config.min_samples)

    rgb = np.asarray(accepted, dtype=np.uint8)
    lab = rgb_array_to_lab(rgb)
    order = np.argsort(lab[:, 0], kind="stable")

    count = order.shape[0]
    outlier_count = min(
        int(count * config.outlier_percent / 100.0),
        int(count * config.max_outlier_fraction),
    )
    trimmed = order[outlier_count : count - outlier_count]
    size = trimmed.shape[0]

    lightest = int(trimmed[min(int(size * config.light_percentile), size - 1)])
    darkest = int(trimmed[max(int(size * config.dark_percentile), 0)])

    lightest_rgb = RGBColor(*(int(v) for v in rgb[lightest]))
    darkest_rgb = RGBColor(*(int(v) for v in rgb[darkest]))
    return SkinSample(
        lightest_hex=lightest_rgb.hex,
        darkest_hex=darkest_rgb.hex,
        lightest_lab=rgb_to_lab(lightest_rgb),
        darkest_lab=rgb_to_lab(darkest_rgb),
        visited=visited,
        accepted=count,
    )


def sample_face_regions(
    source: PixelSource,
    regions: dict[str, tuple[float, float]] | None = None,
    box_ratio: float = REGION_BOX_RATIO,
    config: SamplerConfig = DEFAULT_SAMPLER_CONFIG,
) -> tuple[RegionSample, ...]:
    """Average the skin-colored pixels inside fixed face regions.

    Regions are positioned by proportion only; no landmark detection is done.
    A region without any qualifying pixel is left out of the result.
    """
    width, height = int(source.width), int(source.height)
    if width <= 0 or height <= 0:
        return ()

    half = max(1, int(min(width, height) * box_ratio / 2))
    samples: list[RegionSample] = []
    for name, (fx, fy) in (regions or FACE_REGIONS).items():
        cx, cy = int(width * fx), int(height * fy)
        totals = [0, 0, 0]
        count = 0
        for y in range(max(cy - half, 0), min(cy + half, height)):
            for x in range(max(cx - half, 0), min(cx + half, width)):
                r, g, b, a = source.get_pixel(x, y)
                if not is_skin_candidate(r, g, b, a, config):
                    continue
                totals[0] += r
                totals[1] += g
                totals[2] += b
                count += 1
        if count == 0:
            logger.debug("region %s has no skin-colored pixels", name)
            continue
        rgb = RGBColor(*(int(round(total / count)) for total in totals))
        samples.append(RegionSample(region=name, hex=rgb.hex, lab=rgb_to_lab(rgb)))
    return tuple(samples)