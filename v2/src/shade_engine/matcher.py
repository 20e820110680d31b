"""Ranking of catalog shades against a target color.

Every candidate is scored by CIEDE2000 against the target. When an undertone
hint is given, shades whose undertone is incompatible with it get a fixed
additive penalty on the ranking score instead of being dropped, so an
otherwise excellent color fit can still surface. Ties are broken by catalog
order, which keeps results reproducible and makes sharded evaluation merge
to the same answer as a single pass.
"""
from __future__ import annotations

import heapq
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, replace
from itertools import islice
from typing import Any, Iterable, Sequence

import numpy as np
from sklearn.neighbors import KDTree

from .classifier import depth_compatibility, normalize_undertone, undertones_compatible
from .distance import delta_e_2000, delta_e_2000_array
from .models import LabColor, MatchResult, ShadeEntry, Undertone

logger = logging.getLogger(__name__)

# (score, catalog index, raw delta e, undertone compatible, depth compatibility)
_Scored = tuple[float, int, float, bool, float]

# undertone hint -> (catalog indices compatible with it, k-d tree over those rows)
CompatibleIndexes = dict[Undertone, tuple[np.ndarray, "KDTree | None"]]


@dataclass(frozen=True)
class MatchPolicy:
    """Scoring knobs.

    ``depth_penalty`` scales ``1 - depth_compatibility`` into ΔE units and is
    off by default. The pair factors multiply the mean score of a paired
    match when both shades share a product line or only a brand.
    """

    undertone_penalty: float = 6.0
    depth_penalty: float = 0.0
    match_scale: float = 20.0
    default_top_n: int = 5
    prune_threshold: int = 50_000
    prune_candidates: int = 500
    pair_product_factor: float = 0.8
    pair_brand_factor: float = 0.9


DEFAULT_POLICY = MatchPolicy()


@dataclass(frozen=True)
class BrandRecommendation:
    brand: str
    matches: tuple[MatchResult, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "brand": self.brand,
            "matches": [match.to_dict() for match in self.matches],
        }


def match_percentage(delta_e: float, scale: float = DEFAULT_POLICY.match_scale) -> float:
    """Map a color difference onto 0-100; strictly decreasing in ``delta_e``."""
    return 100.0 * math.exp(-max(float(delta_e), 0.0) / scale)


def catalog_lab_matrix(catalog: Sequence[ShadeEntry]) -> np.ndarray:
    if not catalog:
        return np.empty((0, 3), dtype=np.float64)
    return np.asarray([shade.lab.as_tuple() for shade in catalog], dtype=np.float64)


def build_lab_index(catalog_lab: np.ndarray) -> KDTree:
    return KDTree(catalog_lab)


def build_compatible_indexes(
    catalog: Sequence[ShadeEntry], catalog_lab: np.ndarray | None = None
) -> CompatibleIndexes:
    """One k-d tree per undertone hint, over the shades compatible with it."""
    lab = catalog_lab_matrix(catalog) if catalog_lab is None else catalog_lab
    indexes: CompatibleIndexes = {}
    for undertone in Undertone:
        rows = np.flatnonzero(
            [undertones_compatible(undertone, shade.undertone) for shade in catalog]
        )
        indexes[undertone] = (rows, build_lab_index(lab[rows]) if rows.size else None)
    return indexes


def find_matches(
    target: LabColor,
    catalog: Sequence[ShadeEntry],
    n: int | None = None,
    undertone_hint: Undertone | str | None = None,
    policy: MatchPolicy = DEFAULT_POLICY,
    catalog_lab: np.ndarray | None = None,
    lab_index: KDTree | None = None,
    workers: int = 1,
    compatible_indexes: CompatibleIndexes | None = None,
    depth_hint: int | None = None,
) -> list[MatchResult]:
    """Return the ``n`` closest shades to ``target``, best first.

    ``catalog_lab``, ``lab_index`` and ``compatible_indexes`` let a caller
    that answers many queries over the same catalog reuse the Lab matrix and
    k-d trees. The trees are only consulted for catalogs larger than
    ``policy.prune_threshold``: the candidate pool is the
    ``policy.prune_candidates`` nearest shades by Euclidean Lab distance,
    plus as many nearest undertone-compatible shades when a hint is given,
    and that pool is re-ranked with CIEDE2000. A depth term in the score
    disables pruning, since Lab proximity no longer bounds the ranking.
    """
    top_n = policy.default_top_n if n is None else int(n)
    if top_n <= 0 or not catalog:
        return []

    hint = normalize_undertone(undertone_hint)
    use_depth = depth_hint is not None and policy.depth_penalty > 0
    lab = catalog_lab_matrix(catalog) if catalog_lab is None else catalog_lab
    target_arr = np.asarray(target.as_tuple(), dtype=np.float64)

    candidates = np.arange(len(catalog))
    if len(catalog) > policy.prune_threshold and not use_depth:
        k = min(len(catalog), max(policy.prune_candidates, top_n))
        tree = lab_index if lab_index is not None else build_lab_index(lab)
        _, nearest = tree.query(target_arr.reshape(1, 3), k=k)
        pools = [nearest[0]]
        if hint is not None:
            if compatible_indexes is None:
                compatible_indexes = build_compatible_indexes(catalog, lab)
            rows, subtree = compatible_indexes[hint]
            if subtree is not None:
                _, nearest_compatible = subtree.query(
                    target_arr.reshape(1, 3), k=min(k, rows.size)
                )
                pools.append(rows[nearest_compatible[0]])
        candidates = np.unique(np.concatenate(pools))
        logger.debug("pruned %d shades to %d candidates", len(catalog), candidates.size)

    shards = [candidates]
    if workers > 1 and candidates.shape[0] > workers:
        shards = [shard for shard in np.array_split(candidates, workers) if shard.size]

    def score(shard: np.ndarray) -> list[_Scored]:
        return _score_shard(
            target_arr, lab, catalog, shard, hint, depth_hint if use_depth else None, policy, top_n
        )

    if len(shards) == 1:
        ranked = [score(shards[0])]
    else:
        logger.debug("scoring %d candidates in %d shards", candidates.shape[0], len(shards))
        with ThreadPoolExecutor(max_workers=len(shards)) as pool:
            ranked = list(pool.map(score, shards))

    merged = islice(heapq.merge(*ranked, key=lambda item: (item[0], item[1])), top_n)
    return [
        MatchResult(
            shade=catalog[index],
            rank=rank,
            delta_e=delta_e,
            score=score_value,
            match_percentage=match_percentage(delta_e, policy.match_scale),
            undertone_compatible=compatible,
            depth_compatibility=depth_score,
        )
        for rank, (score_value, index, delta_e, compatible, depth_score) in enumerate(
            merged, start=1
        )
    ]


def _score_shard(
    target: np.ndarray,
    lab: np.ndarray,
    catalog: Sequence[ShadeEntry],
    indices: np.ndarray,
    hint: Undertone | None,
    depth_hint: int | None,
    policy: MatchPolicy,
    top_n: int,
) -> list[_Scored]:
    count = indices.shape[0]
    distances = delta_e_2000_array(target.reshape(1, 3), lab[indices])
    if hint is None:
        compatible = np.ones(count, dtype=bool)
    else:
        compatible = np.fromiter(
            (undertones_compatible(hint, catalog[int(i)].undertone) for i in indices),
            dtype=bool,
            count=count,
        )
    if depth_hint is None:
        depth_scores = np.ones(count, dtype=np.float64)
    else:
        depth_scores = np.fromiter(
            (depth_compatibility(depth_hint, catalog[int(i)].depth_level) for i in indices),
            dtype=np.float64,
            count=count,
        )
    scores = distances + np.where(compatible, 0.0, policy.undertone_penalty)
    scores = scores + policy.depth_penalty * (1.0 - depth_scores)

    # lexsort keys run last-to-first: score, then catalog index.
    order = np.lexsort((indices, scores))[:top_n]
    return [
        (
            float(scores[i]),
            int(indices[i]),
            float(distances[i]),
            bool(compatible[i]),
            float(depth_scores[i]),
        )
        for i in order
    ]


def diversify_by_brand(matches: Sequence[MatchResult], n: int) -> list[MatchResult]:
    """Prefer one match per brand, then fill remaining slots by rank."""
    selected: list[MatchResult] = []
    used_brands: set[str] = set()
    for match in matches:
        if len(selected) >= n:
            break
        brand = match.shade.brand.lower()
        if brand not in used_brands:
            selected.append(match)
            used_brands.add(brand)

    for match in matches:
        if len(selected) >= n:
            break
        if match not in selected:
            selected.append(match)

    selected.sort(key=lambda match: match.rank)
    return [replace(match, rank=rank) for rank, match in enumerate(selected, start=1)]


def cross_brand_recommendations(
    matches: Iterable[MatchResult], per_brand: int = 3, max_brands: int = 10
) -> list[BrandRecommendation]:
    groups: dict[str, list[MatchResult]] = {}
    for match in matches:
        groups.setdefault(match.shade.brand, []).append(match)

    recommendations = [
        BrandRecommendation(brand=brand, matches=tuple(group[:per_brand]))
        for brand, group in groups.items()
    ]
    recommendations.sort(key=lambda item: (item.matches[0].score, item.matches[0].rank))
    return recommendations[:max_brands]


def shade_ladder(
    catalog: Iterable[ShadeEntry], brand: str, product: str | None = None
) -> list[ShadeEntry]:
    """Shades of one brand (optionally one product), lightest first."""
    brand_key = brand.strip().lower()
    product_key = product.strip().lower() if product else None
    shades = [
        shade
        for shade in catalog
        if shade.brand.lower() == brand_key
        and (product_key is None or shade.product.lower() == product_key)
    ]
    return sorted(shades, key=lambda shade: -shade.lab.l)


def perimeter_options(
    target: LabColor,
    base: ShadeEntry,
    catalog: Iterable[ShadeEntry],
    min_drop: float = 3.0,
    max_drop: float = 12.0,
    limit: int = 3,
) -> list[ShadeEntry]:
    """Shades a little deeper than ``base``, for contouring around a match.

    Candidates sit ``min_drop`` to ``max_drop`` L* units below the base shade;
    those sharing its undertone come first, then closeness to ``target``.
    """
    candidates = [
        shade
        for shade in catalog
        if shade.id != base.id and min_drop <= base.lab.l - shade.lab.l <= max_drop
    ]
    candidates.sort(
        key=lambda shade: (
            shade.undertone != base.undertone,
            delta_e_2000(target, shade.lab),
        )
    )
    return candidates[:limit]

