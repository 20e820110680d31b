"""Pairing of dominant-tone and secondary-tone matches.

A face usually needs one shade for its lighter center and another for the
shadow side. Pairs drawn from the same product line (or at least the same
brand) are easier to wear together, so their mean score is discounted and
they sort ahead of mixed pairs.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from .matcher import DEFAULT_POLICY, MatchPolicy
from .models import MatchResult

_LIGHT_COVERAGE_WORDS = frozenset({"sheer", "tint", "tinted", "bb", "cc"})
_FULL_COVERAGE_WORDS = frozenset({"full", "maximum", "complete"})


@dataclass(frozen=True)
class PairedMatch:
    primary: MatchResult
    secondary: MatchResult
    score: float
    same_brand: bool
    same_product: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary": self.primary.to_dict(),
            "secondary": self.secondary.to_dict(),
            "score": float(self.score),
            "same_brand": self.same_brand,
            "same_product": self.same_product,
        }


@dataclass(frozen=True)
class RecommendationGroup:
    brand: str
    product: str
    pairs: tuple[PairedMatch, ...]
    score: float
    coverage: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "brand": self.brand,
            "product": self.product,
            "coverage": self.coverage,
            "score": float(self.score),
            "pairs": [pair.to_dict() for pair in self.pairs],
        }


def pair_matches(
    primary: Sequence[MatchResult],
    secondary: Sequence[MatchResult],
    limit: int = 20,
    policy: MatchPolicy = DEFAULT_POLICY,
) -> list[PairedMatch]:
    """Cross every primary match with every secondary match, best pairs first.

    Same-product pairs come before same-brand pairs, which come before the
    rest; within a tier pairs order by discounted score, then by the ranks of
    their two matches.
    """
    pairs: list[PairedMatch] = []
    for first in primary:
        for second in secondary:
            same_brand = first.shade.brand.lower() == second.shade.brand.lower()
            same_product = same_brand and first.shade.product.lower() == second.shade.product.lower()
            factor = 1.0
            if same_product:
                factor = policy.pair_product_factor
            elif same_brand:
                factor = policy.pair_brand_factor
            pairs.append(
                PairedMatch(
                    primary=first,
                    secondary=second,
                    score=(first.score + second.score) / 2.0 * factor,
                    same_brand=same_brand,
                    same_product=same_product,
                )
            )

    pairs.sort(
        key=lambda pair: (
            not pair.same_product,
            not pair.same_brand,
            pair.score,
            pair.primary.rank,
            pair.secondary.rank,
        )
    )
    return pairs[: max(int(limit), 0)]


def coverage_type(product: str) -> str:
    words = set(re.findall(r"[a-z]+", product.lower()))
    if words & _LIGHT_COVERAGE_WORDS:
        return "light"
    if words & _FULL_COVERAGE_WORDS:
        return "full"
    return "medium"


def group_paired_matches(
    pairs: Iterable[PairedMatch], per_group: int = 3, max_groups: int = 4
) -> list[RecommendationGroup]:
    """Group pairs by the primary shade's brand and product line.

    A group's score is the mean over all of its pairs, though only the first
    ``per_group`` are kept. The best-scoring group of each brand is returned,
    up to ``max_groups`` brands.
    """
    grouped: dict[tuple[str, str], list[PairedMatch]] = {}
    for pair in pairs:
        key = (pair.primary.shade.brand, pair.primary.shade.product)
        grouped.setdefault(key, []).append(pair)

    groups = [
        RecommendationGroup(
            brand=brand,
            product=product,
            pairs=tuple(members[:per_group]),
            score=sum(member.score for member in members) / len(members),
            coverage=coverage_type(product),
        )
        for (brand, product), members in grouped.items()
    ]
    groups.sort(key=lambda group: group.score)

    selected: list[RecommendationGroup] = []
    seen_brands: set[str] = set()
    for group in groups:
        if len(selected) >= max_groups:
            break
        brand_key = group.brand.lower()
        if brand_key in seen_brands:
            continue
        seen_brands.add(brand_key)
        selected.append(group)
    return selected
