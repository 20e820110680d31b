from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import numpy as np

from .catalog import load_catalog
from .classifier import classify
from .colorspace import hex_to_lab, hex_to_rgb
from .matcher import (
    DEFAULT_POLICY,
    MatchPolicy,
    build_compatible_indexes,
    build_lab_index,
    catalog_lab_matrix,
    diversify_by_brand,
    find_matches,
)
from .models import LabColor, MatchResult, ShadeEntry, SkinToneAnalysis, ToneReading, Undertone
from .pairing import PairedMatch, RecommendationGroup, group_paired_matches, pair_matches
from .pixels import PixelSource
from .sampler import DEFAULT_SAMPLER_CONFIG, SamplerConfig, sample_face_regions, sample_skin_tones

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[2] / "data" / "sample_catalog.csv"


class MatchingEngine:
    """Answers shade-matching queries over one fixed catalog.

    The catalog is copied into a tuple at construction and its Lab values are
    stacked into a matrix once; queries never mutate engine state, so a single
    engine can serve concurrent callers.
    """

    def __init__(
        self,
        catalog: Iterable[ShadeEntry],
        policy: MatchPolicy = DEFAULT_POLICY,
        sampler_config: SamplerConfig = DEFAULT_SAMPLER_CONFIG,
        workers: int = 1,
    ) -> None:
        self.catalog: tuple[ShadeEntry, ...] = tuple(catalog)
        self.policy = policy
        self.sampler_config = sampler_config
        self.workers = workers
        self._catalog_lab = catalog_lab_matrix(self.catalog)
        self._lab_index = None
        self._compatible_indexes = None
        if len(self.catalog) > policy.prune_threshold:
            self._lab_index = build_lab_index(self._catalog_lab)
            self._compatible_indexes = build_compatible_indexes(self.catalog, self._catalog_lab)
        logger.debug("engine ready with %d shades", len(self.catalog))

    @classmethod
    def from_path(cls, catalog_path: str | Path | None = None, **kwargs) -> MatchingEngine:
        path = DEFAULT_CATALOG_PATH if catalog_path is None else Path(catalog_path)
        return cls(load_catalog(path), **kwargs)

    @property
    def catalog_lab(self) -> np.ndarray:
        return self._catalog_lab

    def find_matches(
        self,
        target: LabColor,
        n: int | None = None,
        undertone_hint: Undertone | str | None = None,
        diverse: bool = False,
        depth_hint: int | None = None,
    ) -> list[MatchResult]:
        top_n = self.policy.default_top_n if n is None else n
        # Widen the pool so brand diversification has alternatives to choose from.
        pool_size = top_n * 4 if diverse else top_n
        matches = find_matches(
            target,
            self.catalog,
            n=pool_size,
            undertone_hint=undertone_hint,
            policy=self.policy,
            catalog_lab=self._catalog_lab,
            lab_index=self._lab_index,
            workers=self.workers,
            compatible_indexes=self._compatible_indexes,
            depth_hint=depth_hint,
        )
        if diverse:
            return diversify_by_brand(matches, top_n)
        return matches

    def match_hex(
        self,
        hex_value: str,
        n: int | None = None,
        undertone_hint: Undertone | str | None = None,
        diverse: bool = False,
        depth_hint: int | None = None,
    ) -> list[MatchResult]:
        return self.find_matches(
            hex_to_lab(hex_value),
            n=n,
            undertone_hint=undertone_hint,
            diverse=diverse,
            depth_hint=depth_hint,
        )

    def analyze_hex(
        self, hex_value: str, secondary_hex: str | None = None
    ) -> SkinToneAnalysis:
        dominant = _tone_reading(hex_value, confidence=1.0)
        secondary = None
        if secondary_hex is not None:
            secondary = _tone_reading(secondary_hex, confidence=1.0)
        return SkinToneAnalysis(dominant=dominant, secondary=secondary, source="hex")

    def analyze_pixels(self, source: PixelSource) -> SkinToneAnalysis:
        sample = sample_skin_tones(source, self.sampler_config)
        regions = sample_face_regions(source, config=self.sampler_config)
        analysis = SkinToneAnalysis(
            dominant=_tone_reading(sample.lightest_hex, confidence=sample.coverage),
            secondary=_tone_reading(sample.darkest_hex, confidence=sample.coverage),
            regions=regions,
            source="image",
        )
        logger.debug(
            "image analysis: lightest=%s darkest=%s coverage=%.2f",
            sample.lightest_hex,
            sample.darkest_hex,
            sample.coverage,
        )
        return analysis

    def recommend(
        self, analysis: SkinToneAnalysis, n: int | None = None, diverse: bool = False
    ) -> dict[str, list[MatchResult]]:
        hint = analysis.dominant.undertone
        recommendations = {
            "dominant": self.find_matches(
                analysis.dominant.lab,
                n=n,
                undertone_hint=hint,
                diverse=diverse,
                depth_hint=analysis.dominant.depth_level,
            )
        }
        if analysis.secondary is not None:
            recommendations["secondary"] = self.find_matches(
                analysis.secondary.lab,
                n=n,
                undertone_hint=hint,
                diverse=diverse,
                depth_hint=analysis.secondary.depth_level,
            )
        return recommendations

    def pair_recommendations(
        self,
        analysis: SkinToneAnalysis,
        limit: int = 20,
        undertone_hint: Undertone | str | None = None,
    ) -> tuple[list[PairedMatch], list[RecommendationGroup]]:
        """Paired dominant/secondary shades and their per-brand groups.

        Each tone's list is fetched at twice ``limit`` so that same-brand
        partners further down either list can still be paired.
        """
        if analysis.secondary is None:
            raise ValueError("paired recommendations need a secondary tone")
        pool = max(int(limit), 1) * 2
        hint = undertone_hint or analysis.dominant.undertone
        primary = self.find_matches(
            analysis.dominant.lab,
            n=pool,
            undertone_hint=hint,
            depth_hint=analysis.dominant.depth_level,
        )
        secondary = self.find_matches(
            analysis.secondary.lab,
            n=pool,
            undertone_hint=hint,
            depth_hint=analysis.secondary.depth_level,
        )
        pairs = pair_matches(primary, secondary, limit=limit, policy=self.policy)
        return pairs, group_paired_matches(pairs)


def _tone_reading(hex_value: str, confidence: float) -> ToneReading:
    rgb = hex_to_rgb(hex_value)
    lab = hex_to_lab(rgb.hex)
    tone = classify(lab)
    return ToneReading(
        hex=rgb.hex,
        lab=lab,
        undertone=tone.undertone,
        undertone_label=tone.undertone_label,
        depth=tone.depth,
        depth_level=tone.depth_level,
        confidence=float(confidence),
    )
