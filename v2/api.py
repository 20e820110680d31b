from __future__ import annotations

import logging
import os
from functools import lru_cache
from typing import Literal

import requests
from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from v2.src.shade_engine.catalog import CatalogValidationError
from v2.src.shade_engine.colorspace import InvalidHexFormat
from v2.src.shade_engine.engine import DEFAULT_CATALOG_PATH, MatchingEngine
from v2.src.shade_engine.io import read_pixel_source
from v2.src.shade_engine.models import MatchResult, ToneReading
from v2.src.shade_engine.pairing import RecommendationGroup
from v2.src.shade_engine.sampler import InsufficientSamples

logger = logging.getLogger(__name__)

UndertoneName = Literal["warm", "cool", "neutral", "olive"]


class MatchRequest(BaseModel):
    hex: str = Field(..., description="Skin tone as #RRGGBB")
    top_n: int = Field(default=5, ge=1, le=50, description="Maximum shades to return")
    undertone: UndertoneName | None = Field(
        default=None,
        description="Undertone hint; defaults to the undertone classified from hex",
    )
    diverse: bool = Field(
        default=False,
        description="Prefer one shade per brand before repeating a brand",
    )


class AnalyzeRequest(BaseModel):
    image_url: str = Field(..., description="HTTP(S) image URL")
    top_n: int = Field(default=5, ge=1, le=50, description="Maximum shades to return")
    diverse: bool = Field(default=False)


class ToneItem(BaseModel):
    hex: str
    lab: list[float]
    undertone: str
    undertone_label: str
    depth: str
    depth_label: str
    depth_level: int
    confidence: float


class RegionItem(BaseModel):
    region: str
    hex: str


class MatchItem(BaseModel):
    id: str
    brand: str
    product: str
    shade_name: str
    hex: str
    undertone: str | None
    rank: int
    delta_e: float
    match_percentage: float
    undertone_compatible: bool


class PairItem(BaseModel):
    primary: MatchItem
    secondary: MatchItem
    score: float
    same_brand: bool
    same_product: bool


class GroupItem(BaseModel):
    brand: str
    product: str
    coverage: str
    score: float
    pairs: list[PairItem]


class MatchResponse(BaseModel):
    tone: ToneItem
    matches: list[MatchItem]


class AnalyzeResponse(BaseModel):
    dominant: ToneItem
    secondary: ToneItem | None
    regions: list[RegionItem]
    matches: list[MatchItem]
    secondary_matches: list[MatchItem]
    recommendation_groups: list[GroupItem] = Field(default_factory=list)


app = FastAPI(
    title="Foundation Shade Matcher API",
    version="1.0.0",
    description="Match skin tones to foundation shades using CIEDE2000.",
)


@lru_cache(maxsize=1)
def _build_engine() -> MatchingEngine:
    catalog_path = os.environ.get("SHADE_CATALOG_PATH") or DEFAULT_CATALOG_PATH
    return MatchingEngine.from_path(catalog_path)


def _tone_item(tone: ToneReading) -> ToneItem:
    return ToneItem(
        hex=tone.hex,
        lab=[float(v) for v in tone.lab.as_tuple()],
        undertone=tone.undertone.value,
        undertone_label=tone.undertone_label,
        depth=tone.depth.value,
        depth_label=tone.depth.label,
        depth_level=tone.depth_level,
        confidence=float(tone.confidence),
    )


def _match_item(match: MatchResult) -> MatchItem:
    return MatchItem(
        id=match.shade.id,
        brand=match.shade.brand,
        product=match.shade.product,
        shade_name=match.shade.shade_name,
        hex=match.shade.hex,
        undertone=None if match.shade.undertone is None else match.shade.undertone.value,
        rank=match.rank,
        delta_e=float(match.delta_e),
        match_percentage=float(match.match_percentage),
        undertone_compatible=match.undertone_compatible,
    )


def _match_items(matches: list[MatchResult]) -> list[MatchItem]:
    return [_match_item(match) for match in matches]


def _group_items(groups: list[RecommendationGroup]) -> list[GroupItem]:
    return [
        GroupItem(
            brand=group.brand,
            product=group.product,
            coverage=group.coverage,
            score=float(group.score),
            pairs=[
                PairItem(
                    primary=_match_item(pair.primary),
                    secondary=_match_item(pair.secondary),
                    score=float(pair.score),
                    same_brand=pair.same_brand,
                    same_product=pair.same_product,
                )
                for pair in group.pairs
            ],
        )
        for group in groups
    ]


@app.post("/match", response_model=MatchResponse)
async def match_shades(payload: MatchRequest) -> MatchResponse:
    try:
        engine = _build_engine()
        analysis = engine.analyze_hex(payload.hex)
        matches = await run_in_threadpool(
            engine.find_matches,
            analysis.dominant.lab,
            payload.top_n,
            payload.undertone or analysis.dominant.undertone,
            payload.diverse,
        )
    except InvalidHexFormat as exc:
        raise HTTPException(
            status_code=400, detail=f"invalid_hex: {exc}"
        ) from exc
    except CatalogValidationError as exc:
        logger.error("catalog failed to load: %s", exc)
        raise HTTPException(
            status_code=500,
            detail="catalog_unavailable",
        ) from exc

    return MatchResponse(tone=_tone_item(analysis.dominant), matches=_match_items(matches))


@app.post("/analyze", response_model=AnalyzeResponse)
async def analyze_image(payload: AnalyzeRequest) -> AnalyzeResponse:
    try:
        engine = _build_engine()
        source = await run_in_threadpool(read_pixel_source, payload.image_url)
        analysis = await run_in_threadpool(engine.analyze_pixels, source)
        recommendations = await run_in_threadpool(
            engine.recommend, analysis, payload.top_n, payload.diverse
        )
        groups = []
        if analysis.secondary is not None:
            _, groups = await run_in_threadpool(engine.pair_recommendations, analysis)
    except InsufficientSamples as exc:
        raise HTTPException(
            status_code=422,
            detail=f"insufficient_samples: {exc}",
        ) from exc
    except CatalogValidationError as exc:
        logger.error("catalog failed to load: %s", exc)
        raise HTTPException(
            status_code=500,
            detail="catalog_unavailable",
        ) from exc
    except (OSError, requests.RequestException) as exc:
        logger.debug("failed to load image %s", payload.image_url, exc_info=True)
        raise HTTPException(
            status_code=400,
            detail=f"failed_to_load_image: {exc}",
        ) from exc

    logger.info(
        "analyzed image: dominant=%s coverage=%.2f",
        analysis.dominant.hex,
        analysis.dominant.confidence,
    )
    return AnalyzeResponse(
        dominant=_tone_item(analysis.dominant),
        secondary=None if analysis.secondary is None else _tone_item(analysis.secondary),
        regions=[RegionItem(region=region.region, hex=region.hex) for region in analysis.regions],
        matches=_match_items(recommendations["dominant"]),
        secondary_matches=_match_items(recommendations.get("secondary", [])),
        recommendation_groups=_group_items(groups),
    )
