from __future__ import annotations

import argparse
import json
import logging
from typing import Any

import requests

from v2.src.shade_engine.engine import MatchingEngine
from v2.src.shade_engine.io import read_pixel_source, write_result_json
from v2.src.shade_engine.matcher import (
    MatchPolicy,
    cross_brand_recommendations,
    perimeter_options,
    shade_ladder,
)
from v2.src.shade_engine.models import ShadeEngineError, SkinToneAnalysis, Undertone

logger = logging.getLogger(__name__)


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--catalog",
        default=None,
        help="Path to a shade catalog (.csv/.json). Defaults to the bundled sample catalog.",
    )
    parser.add_argument(
        "--out",
        default=None,
        help="Optional JSON output path. If omitted, prints JSON to stdout.",
    )


def _add_match_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--top-n",
        type=int,
        default=5,
        help="Maximum number of shades to return.",
    )
    parser.add_argument(
        "--diverse",
        action="store_true",
        help="Prefer one shade per brand before repeating a brand.",
    )
    parser.add_argument(
        "--depth-penalty",
        type=float,
        default=0.0,
        help="Score penalty (ΔE units) for a full depth-level mismatch. 0 disables it.",
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="v2-shade-matcher",
        description="Match skin tones to foundation shades with CIEDE2000.",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    match = subparsers.add_parser(
        "match",
        help="Rank catalog shades against a skin tone given as #RRGGBB.",
    )
    match.add_argument("--hex", required=True, help="Skin tone as #RRGGBB.")
    match.add_argument(
        "--secondary-hex",
        default=None,
        help="Optional second (shadow side) tone as #RRGGBB.",
    )
    match.add_argument(
        "--undertone",
        default=None,
        choices=[undertone.value for undertone in Undertone],
        help="Undertone hint. Defaults to the undertone classified from --hex.",
    )
    _add_match_arguments(match)
    _add_common_arguments(match)

    analyze = subparsers.add_parser(
        "analyze",
        help="Sample skin tones from a photo and rank matching shades.",
    )
    analyze.add_argument(
        "--image", required=True, help="Path or URL to the input image."
    )
    _add_match_arguments(analyze)
    _add_common_arguments(analyze)

    ladder = subparsers.add_parser(
        "ladder",
        help="List a brand's shades from lightest to deepest.",
    )
    ladder.add_argument("--brand", required=True, help="Brand name.")
    ladder.add_argument("--product", default=None, help="Optional product line.")
    _add_common_arguments(ladder)

    return parser


def _run_match(engine: MatchingEngine, args: argparse.Namespace) -> dict[str, Any]:
    analysis = engine.analyze_hex(args.hex, secondary_hex=args.secondary_hex)
    hint = args.undertone or analysis.dominant.undertone
    matches = engine.find_matches(
        analysis.dominant.lab,
        n=args.top_n,
        undertone_hint=hint,
        diverse=args.diverse,
        depth_hint=analysis.dominant.depth_level,
    )
    payload: dict[str, Any] = {
        "analysis": analysis.to_dict(),
        "matches": [match.to_dict() for match in matches],
        "by_brand": [group.to_dict() for group in cross_brand_recommendations(matches)],
        "perimeter_options": [],
    }
    if matches:
        payload["perimeter_options"] = [
            shade.to_dict()
            for shade in perimeter_options(
                analysis.dominant.lab, matches[0].shade, engine.catalog
            )
        ]
    if analysis.secondary is not None:
        secondary = engine.find_matches(
            analysis.secondary.lab,
            n=args.top_n,
            undertone_hint=hint,
            diverse=args.diverse,
            depth_hint=analysis.secondary.depth_level,
        )
        payload["secondary_matches"] = [match.to_dict() for match in secondary]
        payload.update(_paired_payload(engine, analysis, hint))
    return payload


def _paired_payload(
    engine: MatchingEngine, analysis: SkinToneAnalysis, hint: Undertone | str | None = None
) -> dict[str, Any]:
    pairs, groups = engine.pair_recommendations(analysis, undertone_hint=hint)
    return {
        "paired_matches": [pair.to_dict() for pair in pairs],
        "recommendation_groups": [group.to_dict() for group in groups],
    }


def _run_analyze(engine: MatchingEngine, args: argparse.Namespace) -> dict[str, Any]:
    source = read_pixel_source(args.image)
    analysis = engine.analyze_pixels(source)
    recommendations = engine.recommend(analysis, n=args.top_n, diverse=args.diverse)
    logger.info(
        "analyzed %s: %s / %s",
        args.image,
        analysis.dominant.hex,
        analysis.secondary.hex if analysis.secondary else "-",
    )
    payload: dict[str, Any] = {
        "analysis": analysis.to_dict(),
        "matches": {
            name: [match.to_dict() for match in matches]
            for name, matches in recommendations.items()
        },
    }
    if analysis.secondary is not None:
        payload.update(_paired_payload(engine, analysis))
    return payload


def _run_ladder(engine: MatchingEngine, args: argparse.Namespace) -> dict[str, Any]:
    shades = shade_ladder(engine.catalog, args.brand, args.product)
    return {
        "brand": args.brand,
        "product": args.product,
        "shades": [shade.to_dict() for shade in shades],
    }


_COMMANDS = {
    "match": _run_match,
    "analyze": _run_analyze,
    "ladder": _run_ladder,
}


def main() -> None:
    parser = _build_parser()
    args = parser.parse_args()
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    command = _COMMANDS[args.command]
    policy = MatchPolicy(depth_penalty=getattr(args, "depth_penalty", 0.0))

    try:
        engine = MatchingEngine.from_path(args.catalog, policy=policy)
        payload = command(engine, args)
    except ShadeEngineError as exc:
        parser.exit(2, f"error: {exc}\n")
    except (OSError, requests.RequestException) as exc:
        parser.exit(2, f"error: could not read input: {exc}\n")

    if args.out:
        write_result_json(payload, args.out)
    else:
        print(json.dumps(payload, indent=2))


if __name__ == "__main__":
    main()
