from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from numbers import Integral
from typing import Any


class ShadeEngineError(Exception):
    """Base class for failures reported by the matching engine."""


class InvalidRGBValue(ShadeEngineError, ValueError):
    def __init__(self, channel: str, value: object) -> None:
        super().__init__(f"invalid {channel} channel {value!r}, expected an integer 0-255")
        self.channel = channel
        self.value = value


class Undertone(str, Enum):
    WARM = "warm"
    COOL = "cool"
    NEUTRAL = "neutral"
    OLIVE = "olive"


class Depth(str, Enum):
    FAIR = "fair"
    LIGHT = "light"
    MEDIUM = "medium"
    DEEP = "deep"
    VERY_DEEP = "very-deep"

    @property
    def label(self) -> str:
        return _DEPTH_LABELS[self]


_DEPTH_LABELS = {
    Depth.FAIR: "Very Light",
    Depth.LIGHT: "Light",
    Depth.MEDIUM: "Medium",
    Depth.DEEP: "Tan / Deep",
    Depth.VERY_DEEP: "Very Deep",
}


@dataclass(frozen=True)
class RGBColor:
    r: int
    g: int
    b: int

    def __post_init__(self) -> None:
        for channel in ("r", "g", "b"):
            value = getattr(self, channel)
            if isinstance(value, bool) or not isinstance(value, Integral) or not 0 <= value <= 255:
                raise InvalidRGBValue(channel, value)
            object.__setattr__(self, channel, int(value))

    @property
    def hex(self) -> str:
        return f"#{self.r:02X}{self.g:02X}{self.b:02X}"

    def as_tuple(self) -> tuple[int, int, int]:
        return self.r, self.g, self.b


@dataclass(frozen=True)
class XYZColor:
    x: float
    y: float
    z: float


@dataclass(frozen=True)
class LabColor:
    l: float
    a: float
    b: float

    def as_tuple(self) -> tuple[float, float, float]:
        return self.l, self.a, self.b

    def to_dict(self) -> dict[str, float]:
        return {"l": float(self.l), "a": float(self.a), "b": float(self.b)}


@dataclass(frozen=True)
class ShadeEntry:
    """A read-only catalog record.

    ``rgb`` and ``lab`` are derived from ``hex`` once, when the entry is
    built, so ranking never re-converts colors.
    """

    id: str
    brand: str
    product: str
    shade_name: str
    hex: str
    undertone: Undertone | None = None
    depth_level: int | None = None
    url: str | None = None
    description: str | None = None
    rgb: RGBColor = field(init=False, repr=False, compare=False)
    lab: LabColor = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        from .colorspace import hex_to_rgb, rgb_to_lab

        rgb = hex_to_rgb(self.hex)
        object.__setattr__(self, "hex", rgb.hex)
        object.__setattr__(self, "rgb", rgb)
        object.__setattr__(self, "lab", rgb_to_lab(rgb))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "brand": self.brand,
            "product": self.product,
            "shade_name": self.shade_name,
            "hex": self.hex,
            "lab": self.lab.to_dict(),
            "undertone": None if self.undertone is None else self.undertone.value,
            "depth_level": self.depth_level,
            "url": self.url,
        }


@dataclass(frozen=True)
class ToneReading:
    hex: str
    lab: LabColor
    undertone: Undertone
    undertone_label: str
    depth: Depth
    depth_level: int
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "hex": self.hex,
            "lab": self.lab.to_dict(),
            "undertone": self.undertone.value,
            "undertone_label": self.undertone_label,
            "depth": self.depth.value,
            "depth_label": self.depth.label,
            "depth_level": self.depth_level,
            "confidence": float(self.confidence),
        }


@dataclass(frozen=True)
class RegionSample:
    region: str
    hex: str
    lab: LabColor

    def to_dict(self) -> dict[str, Any]:
        return {"region": self.region, "hex": self.hex, "lab": self.lab.to_dict()}


@dataclass(frozen=True)
class SkinToneAnalysis:
    dominant: ToneReading
    secondary: ToneReading | None = None
    regions: tuple[RegionSample, ...] = ()
    source: str = "hex"

    @property
    def tone_difference(self) -> float | None:
        if self.secondary is None:
            return None
        from .distance import delta_e_2000

        return delta_e_2000(self.dominant.lab, self.secondary.lab)

    @property
    def undertone_consistent(self) -> bool:
        if self.secondary is None:
            return True
        return self.dominant.undertone == self.secondary.undertone

    def to_dict(self) -> dict[str, Any]:
        difference = self.tone_difference
        return {
            "source": self.source,
            "dominant": self.dominant.to_dict(),
            "secondary": None if self.secondary is None else self.secondary.to_dict(),
            "regions": [region.to_dict() for region in self.regions],
            "tone_difference": None if difference is None else float(difference),
            "undertone_consistent": self.undertone_consistent,
        }


@dataclass(frozen=True)
class MatchResult:
    shade: ShadeEntry
    rank: int
    delta_e: float
    score: float
    match_percentage: float
    undertone_compatible: bool
    depth_compatibility: float = 1.0

    def to_dict(self) -> dict[str, Any]:
        payload = self.shade.to_dict()
        payload.update(
            {
                "rank": self.rank,
                "delta_e": float(self.delta_e),
                "score": float(self.score),
                "match_percentage": float(self.match_percentage),
                "undertone_compatible": self.undertone_compatible,
                "depth_compatibility": float(self.depth_compatibility),
            }
        )
        return payload
