from __future__ import annotations

import csv
import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Mapping

from .classifier import normalize_undertone
from .colorspace import InvalidHexFormat
from .models import ShadeEngineError, ShadeEntry, Undertone

logger = logging.getLogger(__name__)

_NUMBER = re.compile(r"\d+")
_SHADE_NAME_KEYS = ("shade_name", "shade", "name")


class CatalogValidationError(ShadeEngineError, ValueError):
    pass


@dataclass(frozen=True)
class InferredAttributes:
    undertone: Undertone | None
    depth_level: int | None


# Keyword tables, most specific phrase first.
_UNDERTONE_KEYWORDS: tuple[tuple[tuple[str, ...], Undertone], ...] = (
    (("warm", "golden", "honey", "caramel", "yellow", "peach"), Undertone.WARM),
    (("cool", "pink", "rose", "rosy", "porcelain"), Undertone.COOL),
    (("olive",), Undertone.OLIVE),
    (("neutral", "beige", "sand"), Undertone.NEUTRAL),
)
_DEPTH_KEYWORDS: tuple[tuple[tuple[str, ...], int], ...] = (
    (("porcelain", "ivory"), 1),
    (("fair", "alabaster"), 2),
    (("medium light", "light medium"), 4),
    (("very deep", "espresso"), 8),
    (("darkest", "ebony"), 9),
    (("medium deep", "tan"), 6),
    (("light",), 3),
    (("medium",), 5),
    (("deep",), 7),
)


def infer_shade_attributes(
    shade_name: str | None,
    product: str | None = None,
    description: str | None = None,
) -> InferredAttributes:
    """Guess undertone and depth level for records that omit them.

    This is the only place where catalog text is interpreted. The shade name
    is consulted first; product name and description are a weaker fallback
    for the undertone. Depth comes from keywords in the shade name or, failing
    that, from a shade number such as "220" or "NC42" read on the usual
    brand scales. Either field is None when nothing in the text supports a
    guess.
    """
    name = (shade_name or "").strip().lower()
    undertone = _undertone_from_text(name)
    if undertone is None:
        extra = " ".join(part for part in (product, description) if part).lower()
        undertone = _undertone_from_text(extra)
    return InferredAttributes(undertone=undertone, depth_level=_depth_from_name(name))


def _undertone_from_text(text: str) -> Undertone | None:
    if not text:
        return None
    words = re.findall(r"[a-z0-9]+", text)
    for word in words:
        if re.fullmatch(r"(nc|nw)\d+", word):
            return normalize_undertone(word)
    for keywords, undertone in _UNDERTONE_KEYWORDS:
        if any(keyword in words for keyword in keywords):
            return undertone
    return None


def _depth_from_name(name: str) -> int | None:
    if not name:
        return None
    padded = f" {' '.join(re.findall(r'[a-z0-9]+', name))} "
    for phrases, level in _DEPTH_KEYWORDS:
        if any(f" {phrase} " in padded for phrase in phrases):
            return level

    numbers = _NUMBER.findall(name)
    if not numbers:
        return None
    number = int(numbers[0])
    if number < 100:
        # NC15..NC60 style two-digit scales.
        return min(10, max(1, number // 6))
    if number < 200:
        return min(9, number // 50 + 1)
    if number < 400:
        return min(9, (number - 100) // 50 + 3)
    return min(9, (number - 200) // 50 + 5)


def load_catalog(path_like: str | Path) -> list[ShadeEntry]:
    path = Path(path_like)
    if not path.exists():
        raise CatalogValidationError(f"catalog file does not exist: {path}")

    suffix = path.suffix.lower()
    if suffix == ".csv":
        entries = _load_csv(path)
    elif suffix == ".json":
        entries = _load_json(path)
    else:
        raise CatalogValidationError(
            f"unsupported catalog format '{path.suffix}'. Use .csv or .json"
        )

    if not entries:
        logger.warning("catalog %s has no entries", path)
    logger.debug("loaded %d shades from %s", len(entries), path)
    return entries


def build_catalog(
    records: Iterable[Mapping[str, object]], source: str = "records"
) -> list[ShadeEntry]:
    return [
        shade_from_record(record, f"{source}:{idx}")
        for idx, record in enumerate(records, start=1)
    ]


def _load_csv(path: Path) -> list[ShadeEntry]:
    with path.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        if not reader.fieldnames:
            return []

        entries: list[ShadeEntry] = []
        for idx, row in enumerate(reader, start=2):
            entries.append(shade_from_record(row, f"{path}:{idx}"))
        return entries


def _load_json(path: Path) -> list[ShadeEntry]:
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return []
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise CatalogValidationError(f"catalog json at {path} is malformed: {exc}") from exc

    if isinstance(payload, dict):
        if "shades" not in payload or not isinstance(payload["shades"], list):
            raise CatalogValidationError(
                f"json catalog at {path} must be a list or include a 'shades' list"
            )
        records = payload["shades"]
    elif isinstance(payload, list):
        records = payload
    else:
        raise CatalogValidationError(
            f"json catalog at {path} must be a list or object with 'shades'"
        )

    entries: list[ShadeEntry] = []
    for idx, record in enumerate(records, start=1):
        if not isinstance(record, dict):
            raise CatalogValidationError(
                f"invalid catalog entry at {path}:{idx} (expected object)"
            )
        entries.append(shade_from_record(record, f"{path}:{idx}"))
    return entries


def shade_from_record(raw_entry: Mapping[str, object], location: str) -> ShadeEntry:
    normalized: dict[str, object] = {
        str(key).strip().lower(): value
        for key, value in raw_entry.items()
        if key is not None
    }

    brand = _as_clean_str(normalized.get("brand"))
    if not brand:
        raise CatalogValidationError(f"{location}: missing required field 'brand'")

    shade_name = next(
        (
            value
            for value in (_as_clean_str(normalized.get(key)) for key in _SHADE_NAME_KEYS)
            if value
        ),
        None,
    )
    if not shade_name:
        raise CatalogValidationError(f"{location}: missing required field 'shade_name'")

    hex_value = _as_clean_str(normalized.get("hex"))
    if not hex_value:
        raise CatalogValidationError(f"{location}: missing required field 'hex'")

    product = _as_clean_str(normalized.get("product")) or ""
    description = _as_clean_str(normalized.get("description"))
    inferred = infer_shade_attributes(shade_name, product, description)

    undertone_tag = _as_clean_str(normalized.get("undertone"))
    undertone = normalize_undertone(undertone_tag) if undertone_tag else inferred.undertone
    depth = _parse_depth_level(normalized.get("depth_level"), location)
    if depth is None:
        depth = inferred.depth_level

    try:
        return ShadeEntry(
            id=_as_clean_str(normalized.get("id")) or location.rsplit("/", 1)[-1],
            brand=brand,
            product=product,
            shade_name=shade_name,
            hex=hex_value,
            undertone=undertone,
            depth_level=depth,
            url=_as_clean_str(normalized.get("url")),
            description=description,
        )
    except InvalidHexFormat as exc:
        raise CatalogValidationError(f"{location}: invalid hex color '{hex_value}'") from exc


def _parse_depth_level(value: object, location: str) -> int | None:
    text = _as_clean_str(value)
    if text is None:
        return None
    try:
        level = int(float(text))
    except (ValueError, OverflowError) as exc:
        raise CatalogValidationError(
            f"{location}: invalid depth_level '{text}', expected an integer 1-10"
        ) from exc
    if not 1 <= level <= 10:
        raise CatalogValidationError(
            f"{location}: depth_level {level} is outside the 1-10 scale"
        )
    return level


def _as_clean_str(value: object) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None
