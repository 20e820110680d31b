"""Depth and undertone classification of CIELAB colors.

Both classifications are ordered rule tables evaluated first-match-wins.
The undertone rules overlap on purpose (a*=4, b*=13 satisfies the first two
rules); the order below decides, so reordering the table changes results.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Sequence

from .models import Depth, LabColor, Undertone

DEPTH_RULES: tuple[tuple[float, Depth], ...] = (
    (80.0, Depth.FAIR),
    (65.0, Depth.LIGHT),
    (50.0, Depth.MEDIUM),
    (35.0, Depth.DEEP),
)
DEFAULT_DEPTH = Depth.VERY_DEEP


@dataclass(frozen=True)
class UndertoneRule:
    label: str
    undertone: Undertone
    predicate: Callable[[float, float], bool]

    def matches(self, a_star: float, b_star: float) -> bool:
        return bool(self.predicate(a_star, b_star))


UNDERTONE_RULES: tuple[UndertoneRule, ...] = (
    UndertoneRule("Warm (Peach/Golden)", Undertone.WARM, lambda a, b: a > 3 and b > 10),
    UndertoneRule(
        "Warm (Golden/Yellow)", Undertone.WARM, lambda a, b: b > 12 and abs(a) <= 5
    ),
    UndertoneRule("Cool (Rosy/Pink)", Undertone.COOL, lambda a, b: a > 5 and b <= 10),
    UndertoneRule("Olive", Undertone.OLIVE, lambda a, b: a < 0 and b > 8),
    UndertoneRule(
        "Neutral", Undertone.NEUTRAL, lambda a, b: abs(a) <= 5 and abs(b) <= 10
    ),
    UndertoneRule("Cool (Ash/Gray)", Undertone.COOL, lambda a, b: a < -3 and b < 5),
)
FALLBACK_UNDERTONE = UndertoneRule("Neutral", Undertone.NEUTRAL, lambda a, b: True)

# Symmetric: a pair is compatible when either side lists the other.
UNDERTONE_COMPATIBILITY: dict[Undertone, frozenset[Undertone]] = {
    Undertone.WARM: frozenset({Undertone.WARM, Undertone.NEUTRAL, Undertone.OLIVE}),
    Undertone.COOL: frozenset({Undertone.COOL, Undertone.NEUTRAL}),
    Undertone.OLIVE: frozenset({Undertone.OLIVE, Undertone.NEUTRAL, Undertone.WARM}),
    Undertone.NEUTRAL: frozenset(Undertone),
}

_UNDERTONE_ALIASES: dict[str, Undertone] = {
    "warm": Undertone.WARM,
    "golden": Undertone.WARM,
    "gold": Undertone.WARM,
    "yellow": Undertone.WARM,
    "peach": Undertone.WARM,
    "cool": Undertone.COOL,
    "pink": Undertone.COOL,
    "rosy": Undertone.COOL,
    "rose": Undertone.COOL,
    "red": Undertone.COOL,
    "ash": Undertone.COOL,
    "olive": Undertone.OLIVE,
    "green": Undertone.OLIVE,
    "neutral": Undertone.NEUTRAL,
}
_NC_NW_PATTERN = re.compile(r"^(nc|nw)\d*$")


@dataclass(frozen=True)
class ToneClassification:
    depth: Depth
    depth_level: int
    undertone: Undertone
    undertone_label: str


def classify_depth(
    l_star: float, rules: Sequence[tuple[float, Depth]] = DEPTH_RULES
) -> Depth:
    for threshold, depth in rules:
        if l_star >= threshold:
            return depth
    return DEFAULT_DEPTH


def depth_level(l_star: float) -> int:
    """Map L* onto the catalog's 1 (lightest) to 10 (deepest) scale."""
    return min(10, max(1, 10 - int(l_star // 10)))


def classify_undertone(
    a_star: float, b_star: float, rules: Sequence[UndertoneRule] = UNDERTONE_RULES
) -> UndertoneRule:
    for rule in rules:
        if rule.matches(a_star, b_star):
            return rule
    return FALLBACK_UNDERTONE


def classify(
    lab: LabColor,
    depth_rules: Sequence[tuple[float, Depth]] = DEPTH_RULES,
    undertone_rules: Sequence[UndertoneRule] = UNDERTONE_RULES,
) -> ToneClassification:
    rule = classify_undertone(lab.a, lab.b, undertone_rules)
    return ToneClassification(
        depth=classify_depth(lab.l, depth_rules),
        depth_level=depth_level(lab.l),
        undertone=rule.undertone,
        undertone_label=rule.label,
    )


def normalize_undertone(tag: object) -> Undertone | None:
    """Map a free-form catalog undertone tag onto an undertone category.

    MAC-style ``NC``/``NW`` prefixes follow the brand convention: NC shades
    are golden (warm), NW shades are pink (cool).
    """
    if tag is None:
        return None
    if isinstance(tag, Undertone):
        return tag
    text = str(tag).strip().lower()
    if not text:
        return None
    if text in _UNDERTONE_ALIASES:
        return _UNDERTONE_ALIASES[text]
    match = _NC_NW_PATTERN.match(text)
    if match:
        return Undertone.WARM if match.group(1) == "nc" else Undertone.COOL
    for word in re.findall(r"[a-z]+", text):
        if word in _UNDERTONE_ALIASES:
            return _UNDERTONE_ALIASES[word]
    return None


def undertones_compatible(first: Undertone | None, second: Undertone | None) -> bool:
    if first is None or second is None:
        return True
    return second in UNDERTONE_COMPATIBILITY[first] or first in UNDERTONE_COMPATIBILITY[second]


# Compatibility by absolute difference in depth level; larger gaps fall off
# by 0.1 per level down to DEPTH_COMPATIBILITY_FLOOR.
DEPTH_COMPATIBILITY: tuple[float, ...] = (1.0, 0.9, 0.7, 0.5)
DEPTH_COMPATIBILITY_FLOOR = 0.1


def depth_compatibility(user_level: int | None, shade_level: int | None) -> float:
    if user_level is None or shade_level is None:
        return 1.0
    gap = abs(int(user_level) - int(shade_level))
    if gap < len(DEPTH_COMPATIBILITY):
        return DEPTH_COMPATIBILITY[gap]
    return max(DEPTH_COMPATIBILITY_FLOOR, DEPTH_COMPATIBILITY[-1] - (gap - 3) * 0.1)
