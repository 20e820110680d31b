from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import numpy as np
import requests
from PIL import Image

from .pixels import ArrayPixelSource

DEFAULT_MAX_SIDE = 500


def read_pixel_source(
    image_path: str | Path, max_side: int | None = DEFAULT_MAX_SIDE
) -> ArrayPixelSource:
    path_str = str(image_path)
    if path_str.startswith(("http://", "https://")):
        response = requests.get(path_str, timeout=10)
        response.raise_for_status()
        with Image.open(io.BytesIO(response.content)) as image:
            return _to_pixel_source(image, max_side)

    with Image.open(Path(image_path)) as image:
        return _to_pixel_source(image, max_side)


def read_pixel_source_bytes(
    payload: bytes, max_side: int | None = DEFAULT_MAX_SIDE
) -> ArrayPixelSource:
    with Image.open(io.BytesIO(payload)) as image:
        return _to_pixel_source(image, max_side)


def _to_pixel_source(image: Image.Image, max_side: int | None) -> ArrayPixelSource:
    rgba = image.convert("RGBA")
    if max_side is not None and max(rgba.size) > max_side:
        rgba.thumbnail((max_side, max_side))
    return ArrayPixelSource(np.asarray(rgba, dtype=np.uint8))


def write_result_json(payload: dict[str, Any], output_path: str | Path) -> None:
    path = Path(output_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
