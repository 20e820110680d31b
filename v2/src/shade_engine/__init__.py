from .catalog import CatalogValidationError, build_catalog, load_catalog
from .classifier import classify, depth_compatibility, normalize_undertone, undertones_compatible
from .colorspace import InvalidHexFormat, hex_to_lab, hex_to_rgb, rgb_to_lab
from .distance import delta_e_76, delta_e_2000
from .engine import MatchingEngine
from .matcher import MatchPolicy, find_matches
from .models import (
    Depth,
    InvalidRGBValue,
    LabColor,
    MatchResult,
    RGBColor,
    ShadeEngineError,
    ShadeEntry,
    SkinToneAnalysis,
    Undertone,
)
from .pairing import PairedMatch, RecommendationGroup, group_paired_matches, pair_matches
from .pixels import ArrayPixelSource, PixelSource
from .sampler import InsufficientSamples, SamplerConfig, sample_skin_tones

__all__ = [
    "ArrayPixelSource",
    "CatalogValidationError",
    "Depth",
    "InsufficientSamples",
    "InvalidHexFormat",
    "InvalidRGBValue",
    "LabColor",
    "MatchPolicy",
    "MatchResult",
    "MatchingEngine",
    "PairedMatch",
    "PixelSource",
    "RecommendationGroup",
    "RGBColor",
    "SamplerConfig",
    "ShadeEngineError",
    "ShadeEntry",
    "SkinToneAnalysis",
    "Undertone",
    "build_catalog",
    "classify",
    "delta_e_2000",
    "delta_e_76",
    "depth_compatibility",
    "find_matches",
    "group_paired_matches",
    "hex_to_lab",
    "hex_to_rgb",
    "load_catalog",
    "normalize_undertone",
    "pair_matches",
    "rgb_to_lab",
    "sample_skin_tones",
    "undertones_compatible",
]
