from __future__ import annotations

import numpy as np
import pytest

from roster_scan.services.champion_corpus import ChampionClass  # type: ignore[import-not-found]
from roster_scan.services.detections import Rect  # type: ignore[import-not-found]
from roster_scan.services.grid_estimator import GridCell  # type: ignore[import-not-found]
from roster_scan.services.visual_attributes import (  # type: ignore[import-not-found]
    ClassHueProfile,
    bgr_to_hsl_arrays,
    classify_ascension,
    classify_awakened,
    classify_cell,
    classify_class,
    classify_stars,
    hue_distance,
    is_gold,
    rgb_to_hsl,
    stars_from_ratio,
)

# Cell at the origin: star strip rows 74..79 cols 2..97, class icon rows 95..110
# cols 4..19, ascension icon rows 97..108 cols 78..93, awakened gem rows 5..16
# cols 40..59.


def _cell() -> GridCell:
    return GridCell(row=0, col=0, bounds=Rect(0.0, 0.0, 100.0, 116.0), text="x", champion_name="x")


def _canvas() -> np.ndarray:
    return np.full((200, 200, 3), 30, dtype=np.uint8)


def _profile() -> ClassHueProfile:
    return ClassHueProfile.from_hues(
        {
            ChampionClass.SCIENCE: 120.0,
            ChampionClass.COSMIC: 300.0,
            ChampionClass.MUTANT: 45.0,
        }
    )


def test_star_ratio_breakpoints() -> None:
    assert stars_from_ratio(0.80) == 6
    assert stars_from_ratio(0.50) == 4
    assert stars_from_ratio(0.90) == 6
    assert stars_from_ratio(0.91) == 7
    assert stars_from_ratio(0.75) == 5
    assert stars_from_ratio(0.15) == 1
    assert stars_from_ratio(0.0) == 1


def test_hue_distance_wraps() -> None:
    assert hue_distance(350.0, 5.0) == pytest.approx(15.0)
    assert hue_distance(5.0, 350.0) == pytest.approx(15.0)
    assert hue_distance(0.0, 180.0) == pytest.approx(180.0)


def test_gold_check() -> None:
    hue, sat, light = rgb_to_hsl(204, 166, 51)

    assert hue == pytest.approx(45.0, abs=0.5)
    assert sat == pytest.approx(0.6, abs=0.01)
    assert light == pytest.approx(0.5, abs=0.01)
    assert is_gold(hue, sat, light)
    assert not is_gold(220.0, 0.6, 0.5)
    assert not is_gold(45.0, 0.1, 0.5)


def test_vectorized_hsl_matches_scalar() -> None:
    pixels = np.array([[[51, 166, 204], [200, 40, 90], [10, 10, 10]]], dtype=np.uint8)

    hue, sat, light = bgr_to_hsl_arrays(pixels)

    for idx, (b, g, r) in enumerate(pixels[0]):
        expected = rgb_to_hsl(float(r), float(g), float(b))
        assert hue[0, idx] == pytest.approx(expected[0])
        assert sat[0, idx] == pytest.approx(expected[1])
        assert light[0, idx] == pytest.approx(expected[2])


def test_stars_from_bright_span() -> None:
    image = _canvas()
    image[70:85, 12:92] = 255

    cell = _cell()
    assert classify_stars(image, cell) == 6
    assert cell.diagnostics["stars"]["content_width"] == 80


def test_stars_out_of_bounds_is_undetermined() -> None:
    cell = GridCell(row=0, col=0, bounds=Rect(500.0, 500.0, 100.0, 116.0))

    assert classify_stars(_canvas(), cell) is None
    assert cell.diagnostics["stars"]["reason"] == "out_of_bounds"


def test_class_matches_closest_reference_hue() -> None:
    image = _canvas()
    image[92:114, 2:22] = (0, 200, 0)

    cell = _cell()
    assert classify_class(image, cell, _profile()) is ChampionClass.SCIENCE
    assert cell.diagnostics["class"]["hue"] == pytest.approx(120.0)


def test_class_far_from_every_reference_is_undetermined() -> None:
    image = _canvas()
    image[92:114, 2:22] = (200, 0, 0)

    assert classify_class(image, _cell(), _profile()) is None


def test_class_needs_enough_colored_pixels() -> None:
    cell = _cell()

    assert classify_class(_canvas(), cell, _profile()) is None
    assert cell.diagnostics["class"]["reason"] == "insufficient_pixels"


def test_class_crop_partially_outside_is_undetermined() -> None:
    cell = GridCell(row=0, col=0, bounds=Rect(-10.0, 100.0, 100.0, 116.0))

    assert classify_class(_canvas(), cell, _profile()) is None
    assert cell.diagnostics["class"]["reason"] == "out_of_bounds"


def test_ascension_icon_color() -> None:
    image = _canvas()
    image[95:112, 76:96] = (51, 166, 204)
    assert classify_ascension(image, _cell())

    image[95:112, 76:96] = (204, 110, 51)
    assert not classify_ascension(image, _cell())


def test_awakened_gem() -> None:
    image = _canvas()
    assert not classify_awakened(image, _cell())

    image[2:20, 38:62] = (0, 0, 255)
    assert classify_awakened(image, _cell())


def test_classify_cell_marks_awakened_from_sig_level() -> None:
    cell = _cell()
    cell.sig_level = 20

    classify_cell(_canvas(), cell, _profile())

    assert cell.is_awakened
    assert not cell.is_ascended
    assert cell.champion_class is None
    assert cell.stars == 1


def test_profile_from_icons_uses_opaque_pixels_and_overrides() -> None:
    icon = np.zeros((20, 20, 4), dtype=np.uint8)
    icon[..., :3] = (0, 0, 255)
    icon[5:15, 5:15] = (255, 0, 0, 255)

    profile = ClassHueProfile.from_icon_images({ChampionClass.COSMIC: icon, ChampionClass.TECH: icon})

    assert profile.hues[ChampionClass.COSMIC] == pytest.approx(240.0)
    assert profile.hues[ChampionClass.TECH] == pytest.approx(225.0)
