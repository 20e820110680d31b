from __future__ import annotations

import numpy as np
import pytest

from v2.src.shade_engine.colorspace import hex_to_lab, rgb_to_hex
from v2.src.shade_engine.matcher import (
    MatchPolicy,
    build_compatible_indexes,
    build_lab_index,
    catalog_lab_matrix,
    cross_brand_recommendations,
    diversify_by_brand,
    find_matches,
    match_percentage,
    perimeter_options,
    shade_ladder,
)
from v2.src.shade_engine.models import MatchResult, ShadeEntry, Undertone

TARGET_HEX = "#D4A574"


def _shade(shade_id, hex_value, brand="Brand", undertone=None, product="Foundation"):
    return ShadeEntry(
        id=shade_id,
        brand=brand,
        product=product,
        shade_name=shade_id,
        hex=hex_value,
        undertone=undertone,
    )


def _random_catalog(count, seed):
    rng = np.random.default_rng(seed)
    return [
        _shade(f"s{idx}", rgb_to_hex(tuple(int(v) for v in rng.integers(0, 256, size=3))))
        for idx in range(count)
    ]


def _result(shade, rank):
    return MatchResult(
        shade=shade,
        rank=rank,
        delta_e=float(rank),
        score=float(rank),
        match_percentage=match_percentage(rank),
        undertone_compatible=True,
    )


def test_identical_shade_ranks_first():
    catalog = [
        _shade("far", "#4E3022"),
        _shade("exact", TARGET_HEX),
        _shade("near", "#D4A674"),
    ]

    matches = find_matches(hex_to_lab(TARGET_HEX), catalog, n=3)

    assert [match.shade.id for match in matches] == ["exact", "near", "far"]
    assert [match.rank for match in matches] == [1, 2, 3]
    assert matches[0].delta_e == pytest.approx(0.0, abs=1e-9)
    assert matches[0].match_percentage == pytest.approx(100.0)
    assert matches[1].delta_e < 1.0


def test_empty_catalog_or_zero_n_returns_nothing():
    target = hex_to_lab(TARGET_HEX)

    assert find_matches(target, [], n=5) == []
    assert find_matches(target, [_shade("a", TARGET_HEX)], n=0) == []


def test_default_top_n_is_five_and_capped_by_catalog():
    target = hex_to_lab(TARGET_HEX)
    catalog = _random_catalog(8, seed=1)

    assert len(find_matches(target, catalog)) == 5
    assert len(find_matches(target, catalog[:3], n=10)) == 3


def test_ties_keep_catalog_order():
    target = hex_to_lab(TARGET_HEX)
    catalog = [_shade("first", "#C38E63"), _shade("second", "#C38E63"), _shade("third", "#C38E63")]

    forward = find_matches(target, catalog, n=3)
    backward = find_matches(target, list(reversed(catalog)), n=3)

    assert [match.shade.id for match in forward] == ["first", "second", "third"]
    assert [match.shade.id for match in backward] == ["third", "second", "first"]


def test_incompatible_undertone_never_outranks_equal_compatible_shade():
    target = hex_to_lab(TARGET_HEX)
    catalog = [
        _shade("cool", "#C38E63", undertone=Undertone.COOL),
        _shade("warm", "#C38E63", undertone=Undertone.WARM),
    ]

    matches = find_matches(target, catalog, n=2, undertone_hint=Undertone.WARM)

    assert [match.shade.id for match in matches] == ["warm", "cool"]
    assert matches[0].undertone_compatible is True
    assert matches[1].undertone_compatible is False
    assert matches[0].delta_e == pytest.approx(matches[1].delta_e)
    assert matches[1].score == pytest.approx(matches[1].delta_e + 6.0)
    assert matches[0].match_percentage == pytest.approx(matches[1].match_percentage)


def test_penalty_is_additive_not_a_filter():
    target = hex_to_lab(TARGET_HEX)
    catalog = [
        _shade("distant-warm", "#8B6F56", undertone=Undertone.WARM),
        _shade("exact-cool", TARGET_HEX, undertone=Undertone.COOL),
    ]

    matches = find_matches(target, catalog, n=2, undertone_hint="warm")

    assert matches[0].shade.id == "exact-cool"
    assert matches[0].undertone_compatible is False


def test_no_hint_means_no_penalty():
    target = hex_to_lab(TARGET_HEX)
    catalog = [_shade("cool", "#C38E63", undertone=Undertone.COOL)]

    [match] = find_matches(target, catalog, n=1)

    assert match.undertone_compatible is True
    assert match.score == match.delta_e


def test_match_percentage_is_strictly_decreasing():
    values = [match_percentage(delta) for delta in (0.0, 0.5, 1.0, 2.0, 5.0, 10.0, 40.0)]

    assert values[0] == 100.0
    assert all(earlier > later for earlier, later in zip(values, values[1:]))
    assert all(0.0 < value <= 100.0 for value in values)


def test_match_percentage_follows_rank_without_hint():
    matches = find_matches(hex_to_lab(TARGET_HEX), _random_catalog(30, seed=3), n=10)

    percentages = [match.match_percentage for match in matches]
    assert percentages == sorted(percentages, reverse=True)


def test_sharded_scoring_matches_single_pass():
    target = hex_to_lab(TARGET_HEX)
    catalog = _random_catalog(60, seed=11)
    # duplicates across shard boundaries exercise the tie-break in the merge
    catalog[5] = _shade("dup-a", "#C38E63")
    catalog[35] = _shade("dup-b", "#C38E63")
    catalog[55] = _shade("dup-c", "#C38E63")

    single = find_matches(target, catalog, n=15, undertone_hint="cool")
    sharded = find_matches(target, catalog, n=15, undertone_hint="cool", workers=4)

    assert [match.shade.id for match in sharded] == [match.shade.id for match in single]
    assert [match.score for match in sharded] == [match.score for match in single]


def test_large_catalogs_are_pruned_with_a_kd_tree():
    target = hex_to_lab(TARGET_HEX)
    near = [_shade(f"near{idx}", hex_value) for idx, hex_value in enumerate(
        ["#D4A675", "#D3A574", "#D5A473", "#D2A676", "#D6A472"]
    )]
    far = [_shade(f"far{idx}", f"#{idx * 4:02X}{idx * 3:02X}{200 + idx:02X}") for idx in range(50)]
    catalog = far[:25] + near + far[25:]
    policy = MatchPolicy(prune_threshold=10, prune_candidates=10)

    exhaustive = find_matches(target, catalog, n=5)
    pruned = find_matches(target, catalog, n=5, policy=policy)
    lab = catalog_lab_matrix(catalog)
    reused = find_matches(
        target, catalog, n=5, policy=policy, catalog_lab=lab, lab_index=build_lab_index(lab)
    )

    expected = [match.shade.id for match in exhaustive]
    assert set(expected) == {shade.id for shade in near}
    assert [match.shade.id for match in pruned] == expected
    assert [match.shade.id for match in reused] == expected


def test_pruning_never_returns_fewer_than_requested():
    catalog = _random_catalog(40, seed=5)
    policy = MatchPolicy(prune_threshold=10, prune_candidates=3)

    matches = find_matches(hex_to_lab(TARGET_HEX), catalog, n=8, policy=policy)

    assert len(matches) == 8


def test_pruning_keeps_compatible_shades_when_a_hint_is_given():
    target = hex_to_lab(TARGET_HEX)
    catalog = [_shade(f"cool{idx}", TARGET_HEX, undertone=Undertone.COOL) for idx in range(12)]
    catalog.append(_shade("warm", "#D9A574", undertone=Undertone.WARM))
    policy = MatchPolicy(prune_threshold=5, prune_candidates=5)

    pruned = find_matches(target, catalog, undertone_hint="warm", policy=policy)
    exhaustive = find_matches(target, catalog, undertone_hint="warm")

    assert exhaustive[0].shade.id == "warm"
    assert pruned[0].shade.id == "warm"
    assert pruned[0].undertone_compatible
    assert pruned[0].score == pytest.approx(exhaustive[0].score)
    assert len(pruned) == 5


def test_prebuilt_compatible_indexes_are_reused():
    target = hex_to_lab(TARGET_HEX)
    catalog = [_shade(f"cool{idx}", TARGET_HEX, undertone=Undertone.COOL) for idx in range(12)]
    catalog.append(_shade("warm", "#D9A574", undertone=Undertone.WARM))
    policy = MatchPolicy(prune_threshold=5, prune_candidates=5)
    lab = catalog_lab_matrix(catalog)
    indexes = build_compatible_indexes(catalog, lab)

    matches = find_matches(
        target,
        catalog,
        undertone_hint=Undertone.WARM,
        policy=policy,
        catalog_lab=lab,
        lab_index=build_lab_index(lab),
        compatible_indexes=indexes,
    )

    assert matches[0].shade.id == "warm"
    assert indexes[Undertone.WARM][0].tolist() == [12]
    assert indexes[Undertone.NEUTRAL][0].size == 13
    assert indexes[Undertone.COOL][1] is not None


def _leveled(shade_id, hex_value, level):
    return ShadeEntry(
        id=shade_id,
        brand="Brand",
        product="Foundation",
        shade_name=shade_id,
        hex=hex_value,
        depth_level=level,
    )


def test_depth_term_is_off_by_default():
    catalog = [_leveled("exact", TARGET_HEX, 8), _leveled("close", "#D2A372", 3)]

    matches = find_matches(hex_to_lab(TARGET_HEX), catalog, depth_hint=3)

    assert [match.shade.id for match in matches] == ["exact", "close"]
    assert all(match.depth_compatibility == 1.0 for match in matches)


def test_depth_penalty_prefers_shades_at_the_same_depth():
    catalog = [
        _leveled("exact", TARGET_HEX, 8),
        _leveled("close", "#D2A372", 3),
        _leveled("untagged", "#D0A170", None),
    ]
    policy = MatchPolicy(depth_penalty=6.0)

    matches = find_matches(hex_to_lab(TARGET_HEX), catalog, depth_hint=3, policy=policy)

    by_id = {match.shade.id: match for match in matches}
    assert matches[0].shade.id == "close"
    assert by_id["exact"].depth_compatibility == pytest.approx(0.3)
    assert by_id["exact"].score == pytest.approx(by_id["exact"].delta_e + 6.0 * 0.7)
    assert by_id["untagged"].depth_compatibility == 1.0
    assert by_id["close"].score == pytest.approx(by_id["close"].delta_e)


def test_depth_term_scores_the_whole_catalog():
    target = hex_to_lab(TARGET_HEX)
    catalog = [_leveled(f"exact{idx}", TARGET_HEX, 9) for idx in range(12)]
    catalog.append(_leveled("deeper", "#C99A6A", 3))
    pruning = MatchPolicy(depth_penalty=10.0, prune_threshold=5, prune_candidates=5)

    matches = find_matches(target, catalog, n=1, depth_hint=3, policy=pruning)

    assert matches[0].shade.id == "deeper"


def test_diversify_by_brand_prefers_new_brands():
    shades = [
        _shade("a1", "#D4A574", brand="Alpha"),
        _shade("a2", "#D4A574", brand="alpha"),
        _shade("b1", "#D4A574", brand="Beta"),
        _shade("a3", "#D4A574", brand="Alpha"),
        _shade("c1", "#D4A574", brand="Gamma"),
    ]
    matches = [_result(shade, rank) for rank, shade in enumerate(shades, start=1)]

    three = diversify_by_brand(matches, 3)
    four = diversify_by_brand(matches, 4)

    assert [match.shade.id for match in three] == ["a1", "b1", "c1"]
    assert [match.rank for match in three] == [1, 2, 3]
    assert [match.shade.id for match in four] == ["a1", "a2", "b1", "c1"]
    assert [match.rank for match in four] == [1, 2, 3, 4]


def test_cross_brand_recommendations_group_and_cap():
    shades = [
        _shade("a1", "#D4A574", brand="Alpha"),
        _shade("b1", "#D4A574", brand="Beta"),
        _shade("a2", "#D4A574", brand="Alpha"),
        _shade("a3", "#D4A574", brand="Alpha"),
        _shade("c1", "#D4A574", brand="Gamma"),
    ]
    matches = [_result(shade, rank) for rank, shade in enumerate(shades, start=1)]

    groups = cross_brand_recommendations(matches, per_brand=2, max_brands=2)

    assert [group.brand for group in groups] == ["Alpha", "Beta"]
    assert [match.shade.id for match in groups[0].matches] == ["a1", "a2"]
    assert groups[0].to_dict()["matches"][0]["id"] == "a1"


def test_shade_ladder_runs_light_to_deep():
    catalog = [
        _shade("deep", "#4E3022", brand="Fenty", product="Pro Filt'r"),
        _shade("fair", "#F3D3BD", brand="Fenty", product="Pro Filt'r"),
        _shade("other", "#FFFFFF", brand="NARS", product="Sheer Glow"),
        _shade("medium", "#B98458", brand="fenty", product="Pro Filt'r"),
        _shade("stick", "#E9C2A1", brand="Fenty", product="Match Stix"),
    ]

    ladder = shade_ladder(catalog, "FENTY")
    product_ladder = shade_ladder(catalog, "Fenty", product="pro filt'r")

    assert [shade.id for shade in ladder] == ["fair", "stick", "medium", "deep"]
    assert [shade.id for shade in product_ladder] == ["fair", "medium", "deep"]
    assert shade_ladder(catalog, "Unknown") == []


def test_perimeter_options_are_slightly_deeper_same_undertone_first():
    base = _shade("base", "#B0B0B0", undertone=Undertone.NEUTRAL)
    catalog = [
        base,
        _shade("too-close", "#AAAAAA", undertone=Undertone.NEUTRAL),
        _shade("cool-step", "#A0A0A0", undertone=Undertone.COOL),
        _shade("neutral-step", "#989898", undertone=Undertone.NEUTRAL),
        _shade("too-deep", "#808080", undertone=Undertone.NEUTRAL),
    ]

    options = perimeter_options(base.lab, base, catalog)

    assert [shade.id for shade in options] == ["neutral-step", "cool-step"]
    for shade in options:
        assert 3.0 <= base.lab.l - shade.lab.l <= 12.0
